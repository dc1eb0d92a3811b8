"""Queries over the libraries installed in a store."""

from __future__ import annotations

import asyncio
import logging

from libvault.models.library import (
    FullLibraryIdentity,
    InstalledLibraryRecord,
    LibraryIdentity,
    compare_versions,
    version_sort_key,
)
from libvault.storage.port import LibraryStore

logger = logging.getLogger(__name__)


class InstalledLibraryRegistry:
    """Lists installed libraries and answers version questions about them."""

    def __init__(self, store: LibraryStore):
        self.store = store

    async def list_installed(
        self, machine_names: list[str] | None = None
    ) -> dict[str, list[InstalledLibraryRecord]]:
        """Get the installed libraries grouped by machine name.

        Args:
            machine_names: Only return libraries with these machine names.
                           All libraries are returned if empty or None.

        Returns:
            A dict mapping machine names to their installed versions,
            sorted from oldest to newest.
        """
        logger.debug("listing installed libraries %s", machine_names or "(all)")
        identities = await self.store.list_identities(*(machine_names or []))
        records = await asyncio.gather(*(self._hydrate(i) for i in identities))

        grouped: dict[str, list[InstalledLibraryRecord]] = {}
        for record in sorted(records, key=lambda r: r.machine_name):
            grouped.setdefault(record.machine_name, []).append(record)
        for versions in grouped.values():
            versions.sort(key=version_sort_key)
        return grouped

    async def find_installed_line(self, library: LibraryIdentity) -> InstalledLibraryRecord | None:
        """Return the installed patch of the library's major/minor line, if any."""
        installed = await self.list_installed([library.machine_name])
        for record in installed.get(library.machine_name, []):
            if (
                record.major_version == library.major_version
                and record.minor_version == library.minor_version
            ):
                return record
        return None

    async def find_patch_candidate(self, library: FullLibraryIdentity) -> FullLibraryIdentity | None:
        """Check if ``library`` is a newer patch of an installed line.

        Only the installed version with the same major and minor version is
        considered.

        Returns:
            The identity of the installed version it would replace, or None
            if that line is not installed or already has an equal or newer
            patch.
        """
        logger.debug("checking if library %s is a patch", library)
        record = await self.find_installed_line(library)
        if record is not None and record.patch_version < library.patch_version:
            return record.identity
        return None

    async def has_upgrade(self, library: FullLibraryIdentity) -> bool:
        """Check if any installed version is at least as new as ``library``.

        Unlike find_patch_candidate this looks at all installed major and
        minor versions of the machine name.
        """
        logger.debug("checking if library %s has an upgrade", library)
        installed = await self.list_installed([library.machine_name])
        versions = installed.get(library.machine_name)
        if not versions:
            return False
        highest = max(versions, key=version_sort_key)
        return compare_versions(highest, library) >= 0

    async def _hydrate(self, identity: FullLibraryIdentity) -> InstalledLibraryRecord:
        manifest = await self.store.get_metadata(identity)
        return InstalledLibraryRecord.from_manifest(manifest)
