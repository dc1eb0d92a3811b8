"""The storage interface the library manager is written against.

Any backend (filesystem, database, object store) can be plugged in by
implementing these coroutines. Stores persist what they are told to; the
version rules (one patch per line, patches only move forward) are enforced
by the library manager, not here.
"""

from __future__ import annotations

from typing import AsyncIterator, Protocol

from libvault.models.library import (
    FullLibraryIdentity,
    InstalledLibraryRecord,
    LibraryIdentity,
    LibraryManifest,
)

ByteStream = AsyncIterator[bytes]


class LibraryStore(Protocol):
    """Persists library metadata and files, one slot per library line."""

    async def exists(self, library: LibraryIdentity) -> bool:
        ...

    async def get_metadata(self, library: LibraryIdentity) -> LibraryManifest:
        """Return the stored library.json.

        Raises:
            NotInstalledError: If there is no slot for the library.
        """
        ...

    async def add_slot(self, manifest: LibraryManifest, restricted: bool) -> InstalledLibraryRecord:
        """Create the slot and persist metadata.

        The slot must only become visible to ``exists`` and
        ``list_identities`` once this returns.
        """
        ...

    async def update_metadata(self, manifest: LibraryManifest) -> None:
        ...

    async def delete_slot(self, library: LibraryIdentity) -> None:
        """Remove metadata and all files. Deleting a missing slot is a no-op."""
        ...

    async def clear_files(self, library: LibraryIdentity) -> None:
        """Remove all library files but keep the slot and its metadata."""
        ...

    async def add_file(self, library: LibraryIdentity, path: str, stream: ByteStream) -> None:
        """Write a file chunk by chunk; the stream must not be buffered whole."""
        ...

    async def file_exists(self, library: LibraryIdentity, path: str) -> bool:
        ...

    async def get_file_stream(self, library: LibraryIdentity, path: str) -> ByteStream:
        """Raises LibraryFileNotFoundError if the file does not exist."""
        ...

    async def list_files(self, library: LibraryIdentity) -> list[str]:
        ...

    async def list_identities(self, *machine_names: str) -> list[FullLibraryIdentity]:
        """List installed libraries, all of them if no machine name is given."""
        ...

    async def list_language_codes(self, library: LibraryIdentity) -> list[str]:
        """Raises NotInstalledError if there is no slot for the library."""
        ...
