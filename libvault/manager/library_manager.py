"""Library manager — installs, updates and serves libraries from a store.

It is storage agnostic: everything it persists goes through a LibraryStore.
Installing is all-or-nothing. If copying or verifying a library fails, the
slot is deleted before the error is re-raised, so a library is never left
half installed. Callers must not install the same library line
concurrently.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Callable

from libvault.errors import (
    LibraryError,
    ManifestUnreadableError,
    NotFoundError,
    RollbackError,
)
from libvault.manager.consistency import ConsistencyChecker
from libvault.models.documents import (
    LanguageDocument,
    SemanticsEntry,
    decode_language,
    decode_semantics,
)
from libvault.models.library import (
    MANIFEST_FILE,
    FullLibraryIdentity,
    InstalledLibraryRecord,
    InstallOptions,
    InstallOutcome,
    LibraryIdentity,
    LibraryManifest,
)
from libvault.registry.installed import InstalledLibraryRegistry
from libvault.storage.port import ByteStream, LibraryStore
from libvault.utils.streams import read_file_chunks, stream_to_bytes

logger = logging.getLogger(__name__)

FileUrlResolver = Callable[[LibraryIdentity, str], str]

DEFAULT_LANGUAGE = "en"
DEFAULT_COPY_CONCURRENCY = 8
UPGRADES_SCRIPT = "upgrades.js"


def make_url_resolver(base_url: str) -> FileUrlResolver:
    """Build a resolver that serves files from ``{base_url}/{uber_name}/{path}``."""
    base = base_url.rstrip("/")

    def resolve(library: LibraryIdentity, path: str) -> str:
        return f"{base}/{library.uber_name}/{path}"

    return resolve


def read_manifest(directory: Path) -> LibraryManifest:
    """Load library.json from the root of an install directory."""
    manifest_path = directory / MANIFEST_FILE
    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ManifestUnreadableError(f"No {MANIFEST_FILE} in {directory}") from None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ManifestUnreadableError(f"Could not read {manifest_path}: {e}") from e
    return LibraryManifest.from_dict(data)


def _source_files(directory: Path) -> list[tuple[Path, str]]:
    files = []
    for item in directory.rglob("*"):
        if not item.is_file():
            continue
        relative = item.relative_to(directory).as_posix()
        if relative == MANIFEST_FILE:
            continue
        files.append((item, relative))
    return files


class LibraryManager:
    """Manages library installations and access to installed libraries."""

    def __init__(
        self,
        store: LibraryStore,
        file_url_resolver: FileUrlResolver,
        copy_concurrency: int = DEFAULT_COPY_CONCURRENCY,
        default_language: str = DEFAULT_LANGUAGE,
    ):
        """
        Args:
            store: Where libraries are persisted.
            file_url_resolver: Returns the URL at which a library file can be
                downloaded. There is no default; the host application knows
                how it serves files.
            copy_concurrency: Maximum number of files copied at once.
            default_language: Language of every library's semantics.json.
        """
        if copy_concurrency < 1:
            raise ValueError("copy_concurrency must be at least 1")
        self.store = store
        self.file_url_resolver = file_url_resolver
        self.copy_concurrency = copy_concurrency
        self.default_language = default_language
        self.registry = InstalledLibraryRegistry(store)
        self.consistency = ConsistencyChecker(store)

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------

    async def install_from_directory(
        self, directory: str | Path, options: InstallOptions = InstallOptions()
    ) -> InstallOutcome:
        """Install or update a library from an extracted directory.

        The directory must contain library.json at its root. Its files are
        not deleted. The library is not validated here; that must happen
        before calling this.

        Returns:
            NEW if the line was not installed, PATCH if an older patch of the
            line was replaced, NONE if the same or a newer patch is already
            installed (nothing is changed then).
        """
        directory = Path(directory)
        logger.info("installing from directory %s", directory)
        manifest = await asyncio.to_thread(read_manifest, directory)
        new_version = manifest.identity

        installed = await self.registry.find_installed_line(new_version)
        if installed is None:
            await self._install(directory, manifest, options)
            return InstallOutcome.new(new_version)

        if installed.patch_version < new_version.patch_version:
            await self._update(directory, manifest)
            return InstallOutcome.patch(installed.identity, new_version)

        logger.info(
            "skipping %s: version %s is already installed",
            new_version.full_name,
            installed.identity.full_name,
        )
        return InstallOutcome.none()

    async def is_patched_library(self, library: FullLibraryIdentity) -> FullLibraryIdentity | None:
        return await self.registry.find_patch_candidate(library)

    async def library_has_upgrade(self, library: FullLibraryIdentity) -> bool:
        return await self.registry.has_upgrade(library)

    async def list_installed_libraries(
        self, machine_names: list[str] | None = None
    ) -> dict[str, list[InstalledLibraryRecord]]:
        return await self.registry.list_installed(machine_names)

    async def _install(self, directory: Path, manifest: LibraryManifest, options: InstallOptions) -> None:
        library = manifest.identity
        logger.info("installing library %s from %s", library.full_name, directory)
        await self.store.add_slot(manifest, options.restricted)
        try:
            await self._copy_library_files(directory, library)
            await self.consistency.check(library)
        except Exception as error:
            await self._remove_failed(library, error)
            raise
        logger.info("library %s successfully installed", library.full_name)

    async def _update(self, directory: Path, manifest: LibraryManifest) -> None:
        library = manifest.identity
        logger.info("updating library %s from %s", library.full_name, directory)
        # metadata writes are atomic; if this fails the old install is intact
        await self.store.update_metadata(manifest)
        try:
            await self.store.clear_files(library)
            await self._copy_library_files(directory, library)
            await self.consistency.check(library)
        except Exception as error:
            await self._remove_failed(library, error)
            raise
        logger.info("library %s successfully updated", library.full_name)

    async def _remove_failed(self, library: LibraryIdentity, error: Exception) -> None:
        logger.error("installing %s failed (%s), removing it", library.uber_name, error)
        try:
            await self.store.delete_slot(library)
        except Exception as cleanup_error:
            logger.error("could not remove %s: %s", library.uber_name, cleanup_error)
            raise RollbackError(library.uber_name, error, cleanup_error) from error

    async def _copy_library_files(self, directory: Path, library: LibraryIdentity) -> None:
        """Stream every file except library.json into the store.

        If one copy fails the others are cancelled and awaited before the
        error is raised, so nothing writes into the slot afterwards.
        """
        files = await asyncio.to_thread(_source_files, directory)
        logger.debug("copying %d files from %s to %s", len(files), directory, library.uber_name)
        if not files:
            return

        semaphore = asyncio.Semaphore(self.copy_concurrency)

        async def copy(source: Path, relative: str) -> None:
            async with semaphore:
                await self.store.add_file(library, relative, read_file_chunks(source))

        tasks = [asyncio.create_task(copy(source, relative)) for source, relative in files]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        errors = [task.exception() for task in tasks if task in done and task.exception() is not None]
        if errors:
            raise errors[0]

    # ------------------------------------------------------------------
    # Access to installed libraries
    # ------------------------------------------------------------------

    async def library_exists(self, library: LibraryIdentity) -> bool:
        return await self.store.exists(library)

    async def get_library(self, library: LibraryIdentity) -> LibraryManifest | None:
        """Return the metadata of a library, or None if it can't be read."""
        logger.debug("loading library %s", library.uber_name)
        try:
            return await self.store.get_metadata(library)
        except (LibraryError, OSError) as e:
            logger.warning("library %s is not available: %s", library.uber_name, e)
            return None

    async def get_file_stream(self, library: LibraryIdentity, path: str) -> ByteStream:
        """Raises LibraryFileNotFoundError if the file does not exist."""
        logger.debug("getting file %s from library %s", path, library.uber_name)
        return await self.store.get_file_stream(library, path)

    async def library_file_exists(self, library: LibraryIdentity, path: str) -> bool:
        logger.debug("checking if file %s exists in library %s", path, library.uber_name)
        return await self.store.file_exists(library, path)

    async def list_files(self, library: LibraryIdentity) -> list[str]:
        """List the files of a library, including language files."""
        return await self.store.list_files(library)

    async def get_semantics(self, library: LibraryIdentity) -> list[SemanticsEntry]:
        """Decode semantics.json.

        Raises:
            LibraryFileNotFoundError: If the library has no semantics.json.
            DocumentDecodeError: If the file is not a valid semantics list.
        """
        logger.debug("loading semantics for library %s", library.uber_name)
        raw = await self._read_file(library, "semantics.json")
        return decode_semantics(raw, f"{library.uber_name}/semantics.json")

    async def get_language(self, library: LibraryIdentity, language: str) -> LanguageDocument | None:
        """Decode the language file, or return None if there is none."""
        path = f"language/{language}.json"
        logger.debug("loading language %s for library %s", language, library.uber_name)
        try:
            raw = await self._read_file(library, path)
        except NotFoundError:
            logger.debug("language '%s' not found for %s", language, library.uber_name)
            return None
        return decode_language(raw, f"{library.uber_name}/{path}")

    async def list_languages(self, library: LibraryIdentity) -> list[str]:
        """List the language codes a library has translations for.

        The default language is always included since semantics.json is
        written in it.
        """
        try:
            languages = list(await self.store.list_language_codes(library))
        except (LibraryError, OSError) as e:
            logger.warning("no languages found for library %s: %s", library.uber_name, e)
            return []
        if self.default_language not in languages:
            languages.append(self.default_language)
        return languages

    def get_library_file_url(self, library: LibraryIdentity, path: str) -> str:
        """Return the URL of a library file. Does not check that it exists."""
        url = self.file_url_resolver(library, path)
        logger.debug("URL of %s in %s resolved to %s", path, library.uber_name, url)
        return url

    async def get_upgrades_script_path(self, library: LibraryIdentity) -> str | None:
        """Return the URL of upgrades.js, or None if the library has none."""
        if await self.store.file_exists(library, UPGRADES_SCRIPT):
            return self.get_library_file_url(library, UPGRADES_SCRIPT)
        logger.debug("no upgrades script found for %s", library.uber_name)
        return None

    async def _read_file(self, library: LibraryIdentity, path: str) -> bytes:
        stream = await self.store.get_file_stream(library, path)
        return await stream_to_bytes(stream)
