"""Filesystem-backed library store.

Each library line gets its own directory under the store root::

    <root>/H5P.Example-1.2/library.json      metadata
    <root>/H5P.Example-1.2/.slot.json        store-owned slot data
    <root>/H5P.Example-1.2/<files>           library files

Metadata is written to a temporary file and moved into place so a slot
appears in listings only once it is complete.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any

from libvault.errors import (
    InvalidPathError,
    LibraryFileNotFoundError,
    ManifestUnreadableError,
    NotInstalledError,
    SlotExistsError,
)
from libvault.models.library import (
    MACHINE_NAME_RE,
    MANIFEST_FILE,
    FullLibraryIdentity,
    InstalledLibraryRecord,
    LibraryIdentity,
    LibraryManifest,
)
from libvault.storage.port import ByteStream
from libvault.utils.streams import read_file_chunks

logger = logging.getLogger(__name__)

SLOT_FILE = ".slot.json"
RESERVED_FILES = {MANIFEST_FILE, SLOT_FILE}


class FileLibraryStore:
    """Stores libraries as plain directories on the local filesystem."""

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    def _slot_dir(self, library: LibraryIdentity) -> Path:
        if not MACHINE_NAME_RE.fullmatch(library.machine_name):
            raise InvalidPathError(f"Illegal machine name '{library.machine_name}'")
        slot = self.root / library.uber_name
        if slot.resolve().parent != self.root.resolve():
            raise InvalidPathError(f"Library {library.uber_name} would be stored outside {self.root}")
        return slot

    def _file_path(self, library: LibraryIdentity, path: str) -> Path:
        relative = PurePosixPath(path.replace("\\", "/"))
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise InvalidPathError(f"Illegal path '{path}' in library {library.uber_name}")
        if str(relative) in RESERVED_FILES:
            raise InvalidPathError(f"'{path}' is reserved in library {library.uber_name}")
        return self._slot_dir(library).joinpath(*relative.parts)

    def _write_json_atomic(self, target: Path, data: dict[str, Any]) -> None:
        fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, target)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _read_metadata(self, library: LibraryIdentity) -> LibraryManifest:
        manifest_path = self._slot_dir(library) / MANIFEST_FILE
        try:
            data = json.loads(manifest_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise NotInstalledError(library.uber_name) from None
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ManifestUnreadableError(
                f"Stored library.json of {library.uber_name} is corrupt: {e}"
            ) from e
        return LibraryManifest.from_dict(data)

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    async def exists(self, library: LibraryIdentity) -> bool:
        return await asyncio.to_thread((self._slot_dir(library) / MANIFEST_FILE).is_file)

    async def get_metadata(self, library: LibraryIdentity) -> LibraryManifest:
        return await asyncio.to_thread(self._read_metadata, library)

    async def add_slot(self, manifest: LibraryManifest, restricted: bool) -> InstalledLibraryRecord:
        library = manifest.identity

        def _add() -> None:
            slot = self._slot_dir(library)
            if (slot / MANIFEST_FILE).exists():
                raise SlotExistsError(f"Library {library.uber_name} is already installed")
            slot.mkdir(parents=True, exist_ok=True)
            self._write_json_atomic(
                slot / SLOT_FILE,
                {
                    "restricted": restricted,
                    "installed_at": datetime.now(timezone.utc).isoformat(),
                },
            )
            # library.json last: its presence is what makes the slot visible
            self._write_json_atomic(slot / MANIFEST_FILE, manifest.to_dict())

        await asyncio.to_thread(_add)
        logger.debug("added slot %s", library.uber_name)
        return InstalledLibraryRecord.from_manifest(manifest)

    async def update_metadata(self, manifest: LibraryManifest) -> None:
        library = manifest.identity

        def _update() -> None:
            slot = self._slot_dir(library)
            if not (slot / MANIFEST_FILE).exists():
                raise NotInstalledError(library.uber_name)
            self._write_json_atomic(slot / MANIFEST_FILE, manifest.to_dict())

        await asyncio.to_thread(_update)

    async def delete_slot(self, library: LibraryIdentity) -> None:
        def _delete() -> None:
            slot = self._slot_dir(library)
            manifest_path = slot / MANIFEST_FILE
            # hide the slot from listings before removing the rest
            manifest_path.unlink(missing_ok=True)
            if slot.exists():
                shutil.rmtree(slot)

        await asyncio.to_thread(_delete)
        logger.debug("deleted slot %s", library.uber_name)

    async def clear_files(self, library: LibraryIdentity) -> None:
        def _clear() -> None:
            slot = self._slot_dir(library)
            if not (slot / MANIFEST_FILE).exists():
                raise NotInstalledError(library.uber_name)
            for item in slot.iterdir():
                if item.name in RESERVED_FILES:
                    continue
                if item.is_dir():
                    shutil.rmtree(item)
                else:
                    item.unlink()

        await asyncio.to_thread(_clear)

    async def is_restricted(self, library: LibraryIdentity) -> bool:
        def _read() -> bool:
            try:
                data = json.loads((self._slot_dir(library) / SLOT_FILE).read_text(encoding="utf-8"))
            except (FileNotFoundError, json.JSONDecodeError):
                return False
            return bool(data.get("restricted", False))

        return await asyncio.to_thread(_read)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def add_file(self, library: LibraryIdentity, path: str, stream: ByteStream) -> None:
        target = self._file_path(library, path)
        if not await self.exists(library):
            raise NotInstalledError(library.uber_name)
        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        f = await asyncio.to_thread(open, target, "wb")
        try:
            async for chunk in stream:
                await asyncio.to_thread(f.write, chunk)
        finally:
            await asyncio.to_thread(f.close)

    async def file_exists(self, library: LibraryIdentity, path: str) -> bool:
        try:
            target = self._file_path(library, path)
        except InvalidPathError:
            return False
        return await asyncio.to_thread(target.is_file)

    async def get_file_stream(self, library: LibraryIdentity, path: str) -> ByteStream:
        if not await self.file_exists(library, path):
            raise LibraryFileNotFoundError(library.uber_name, path)
        return read_file_chunks(self._file_path(library, path))

    async def list_files(self, library: LibraryIdentity) -> list[str]:
        def _list() -> list[str]:
            slot = self._slot_dir(library)
            if not (slot / MANIFEST_FILE).exists():
                raise NotInstalledError(library.uber_name)
            files = []
            for item in slot.rglob("*"):
                if not item.is_file():
                    continue
                relative = item.relative_to(slot).as_posix()
                if relative in RESERVED_FILES:
                    continue
                files.append(relative)
            return sorted(files)

        return await asyncio.to_thread(_list)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_identities(self, *machine_names: str) -> list[FullLibraryIdentity]:
        def _list() -> list[FullLibraryIdentity]:
            identities = []
            for slot in sorted(self.root.iterdir()):
                if not slot.is_dir() or not (slot / MANIFEST_FILE).exists():
                    continue
                try:
                    data = json.loads((slot / MANIFEST_FILE).read_text(encoding="utf-8"))
                    manifest = LibraryManifest.from_dict(data)
                except (json.JSONDecodeError, UnicodeDecodeError, ManifestUnreadableError) as e:
                    logger.warning("ignoring slot %s with unreadable library.json: %s", slot, e)
                    continue
                if manifest.identity.uber_name != slot.name:
                    logger.warning(
                        "ignoring slot %s: its library.json describes %s", slot, manifest.identity.uber_name
                    )
                    continue
                if machine_names and manifest.machine_name not in machine_names:
                    continue
                identities.append(manifest.identity)
            return identities

        return await asyncio.to_thread(_list)

    async def list_language_codes(self, library: LibraryIdentity) -> list[str]:
        def _list() -> list[str]:
            slot = self._slot_dir(library)
            if not (slot / MANIFEST_FILE).exists():
                raise NotInstalledError(library.uber_name)
            language_dir = slot / "language"
            if not language_dir.is_dir():
                return []
            return sorted(p.stem for p in language_dir.glob("*.json") if p.is_file())

        return await asyncio.to_thread(_list)
