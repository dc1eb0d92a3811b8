"""Consistency check — verify an installed library has the files it declares."""

from __future__ import annotations

import asyncio
import logging

from libvault.errors import FileMissingError, NotInstalledError
from libvault.models.library import LibraryIdentity
from libvault.storage.port import LibraryStore

logger = logging.getLogger(__name__)


class ConsistencyChecker:
    """Checks that every preloaded JS and CSS file of a library is stored."""

    def __init__(self, store: LibraryStore):
        self.store = store

    async def check(self, library: LibraryIdentity) -> None:
        """Raise if the installed library is incomplete.

        The metadata is read back from the store, not taken from the
        install source.

        Raises:
            NotInstalledError: If the library is not installed.
            FileMissingError: Listing every declared file that is missing.
        """
        if not await self.store.exists(library):
            logger.error("consistency check of %s failed: not installed", library.uber_name)
            raise NotInstalledError(library.uber_name)

        metadata = await self.store.get_metadata(library)
        required = metadata.preloaded_files
        logger.debug("checking files %s for %s", ", ".join(required), library.uber_name)

        present = await asyncio.gather(
            *(self.store.file_exists(library, path) for path in required)
        )
        missing = [path for path, ok in zip(required, present) if not ok]
        if missing:
            raise FileMissingError(library.uber_name, missing)
