"""Tests for reading files, documents and URLs of installed libraries."""

import asyncio
import json
import tempfile
from pathlib import Path

import pytest

from libvault.errors import DocumentDecodeError, LibraryFileNotFoundError
from libvault.manager import LibraryManager, make_url_resolver
from libvault.models.library import LibraryIdentity
from libvault.storage.file_store import FileLibraryStore
from libvault.utils.streams import stream_to_bytes

LIBRARY = LibraryIdentity("H5P.Example", 1, 2)

SEMANTICS = [
    {"name": "question", "type": "text", "label": "Question"},
    {"name": "answers", "type": "list", "entity": "answer", "fields": []},
]


def _install(tmpdir: str, files: dict) -> LibraryManager:
    """Install H5P.Example 1.2.0 with the given files and return a manager."""
    root = Path(tmpdir)
    source = root / "source"
    source.mkdir()
    (source / "library.json").write_text(json.dumps({
        "machineName": "H5P.Example",
        "majorVersion": 1,
        "minorVersion": 2,
        "patchVersion": 0,
        "title": "Example",
    }))
    for path, content in files.items():
        target = source / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content if isinstance(content, bytes) else content.encode("utf-8"))

    manager = LibraryManager(FileLibraryStore(root / "store"), make_url_resolver("/h5p/libraries/"))
    asyncio.run(manager.install_from_directory(source))
    return manager


def test_get_semantics():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _install(tmpdir, {"semantics.json": json.dumps(SEMANTICS)})
        semantics = asyncio.run(manager.get_semantics(LIBRARY))
        assert [entry.name for entry in semantics] == ["question", "answers"]
        assert semantics[0].label == "Question"
        assert semantics[1].model_extra["entity"] == "answer"


def test_get_semantics_malformed():
    for content in ["{broken", b"\xff\xfe\x00", json.dumps({"not": "a list"}), json.dumps([{"label": "no name"}])]:
        with tempfile.TemporaryDirectory() as tmpdir:
            manager = _install(tmpdir, {"semantics.json": content})
            with pytest.raises(DocumentDecodeError):
                asyncio.run(manager.get_semantics(LIBRARY))


def test_get_semantics_missing_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _install(tmpdir, {})
        with pytest.raises(LibraryFileNotFoundError):
            asyncio.run(manager.get_semantics(LIBRARY))


def test_get_language():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _install(tmpdir, {"language/de.json": json.dumps({"semantics": [{"label": "Frage"}]})})
        document = asyncio.run(manager.get_language(LIBRARY, "de"))
        assert document.semantics == [{"label": "Frage"}]


def test_get_language_missing_returns_none():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _install(tmpdir, {})
        assert asyncio.run(manager.get_language(LIBRARY, "fr")) is None
        assert asyncio.run(manager.get_language(LibraryIdentity("H5P.Missing", 1, 0), "de")) is None


def test_get_language_malformed():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _install(tmpdir, {"language/de.json": "not json"})
        with pytest.raises(DocumentDecodeError):
            asyncio.run(manager.get_language(LIBRARY, "de"))


def test_list_languages_always_has_default():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _install(tmpdir, {"language/de.json": "{}", "language/fr.json": "{}"})
        assert asyncio.run(manager.list_languages(LIBRARY)) == ["de", "fr", "en"]


def test_list_languages_without_language_files():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _install(tmpdir, {})
        assert asyncio.run(manager.list_languages(LIBRARY)) == ["en"]


def test_list_languages_of_missing_library():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _install(tmpdir, {})
        assert asyncio.run(manager.list_languages(LibraryIdentity("H5P.Missing", 1, 0))) == []


def test_get_library_of_missing_library():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _install(tmpdir, {})
        assert asyncio.run(manager.get_library(LibraryIdentity("H5P.Missing", 1, 0))) is None
        assert asyncio.run(manager.get_library(LIBRARY)).title == "Example"


def test_file_access():
    async def read(manager):
        stream = await manager.get_file_stream(LIBRARY, "scripts/example.js")
        return await stream_to_bytes(stream)

    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _install(tmpdir, {"scripts/example.js": "var x;"})
        assert asyncio.run(read(manager)) == b"var x;"
        assert asyncio.run(manager.library_file_exists(LIBRARY, "scripts/example.js"))
        assert not asyncio.run(manager.library_file_exists(LIBRARY, "scripts/other.js"))
        assert asyncio.run(manager.list_files(LIBRARY)) == ["scripts/example.js"]


def test_library_file_url():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _install(tmpdir, {})
        assert manager.get_library_file_url(LIBRARY, "icon.svg") == "/h5p/libraries/H5P.Example-1.2/icon.svg"


def test_upgrades_script_path():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _install(tmpdir, {"upgrades.js": "H5PUpgrades = {};"})
        assert asyncio.run(manager.get_upgrades_script_path(LIBRARY)) == (
            "/h5p/libraries/H5P.Example-1.2/upgrades.js"
        )

    with tempfile.TemporaryDirectory() as tmpdir:
        manager = _install(tmpdir, {})
        assert asyncio.run(manager.get_upgrades_script_path(LIBRARY)) is None


def test_resolver_is_called_with_library_and_path():
    calls = []

    def resolver(library, path):
        calls.append((library, path))
        return "stub"

    with tempfile.TemporaryDirectory() as tmpdir:
        manager = LibraryManager(FileLibraryStore(tmpdir), resolver)
        assert manager.get_library_file_url(LIBRARY, "a.js") == "stub"
        assert calls == [(LIBRARY, "a.js")]


class _BrokenDiskStore(FileLibraryStore):
    async def get_metadata(self, library):
        raise OSError("input/output error")

    async def list_language_codes(self, library):
        raise OSError("input/output error")


def test_advisory_reads_survive_io_errors():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = LibraryManager(_BrokenDiskStore(tmpdir), make_url_resolver("/libs"))
        assert asyncio.run(manager.get_library(LIBRARY)) is None
        assert asyncio.run(manager.list_languages(LIBRARY)) == []
