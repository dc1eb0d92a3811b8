"""Exceptions raised by the library manager and the stores it drives."""

from __future__ import annotations


class LibraryError(Exception):
    """Base exception for library errors."""
    pass


class NotFoundError(LibraryError):
    """Raised when something looked up in a store does not exist."""
    pass


class NotInstalledError(NotFoundError):
    """Raised when a library is not installed."""

    def __init__(self, library: str):
        super().__init__(f"Library {library} is not installed")
        self.library = library


class LibraryFileNotFoundError(NotFoundError):
    """Raised when a file does not exist in an installed library."""

    def __init__(self, library: str, path: str):
        super().__init__(f"File {path} does not exist in library {library}")
        self.library = library
        self.path = path


class ManifestUnreadableError(LibraryError):
    """Raised when library.json is missing or cannot be parsed."""
    pass


class FileMissingError(LibraryError):
    """Raised when files declared by the manifest are missing from the store."""

    def __init__(self, library: str, files: list[str]):
        super().__init__(
            f"Library {library} is missing files: {', '.join(files)}"
        )
        self.library = library
        self.files = files


class DocumentDecodeError(LibraryError):
    """Raised when a JSON document in a library is malformed."""
    pass


class StoreError(LibraryError):
    """Base exception for errors detected by a store implementation."""
    pass


class SlotExistsError(StoreError):
    """Raised when adding a slot for a library that is already installed."""
    pass


class InvalidPathError(StoreError):
    """Raised when a relative file path is not allowed inside a slot."""
    pass


class RollbackError(LibraryError):
    """Raised when removing a failed installation fails as well.

    ``original`` is the failure that triggered the rollback and
    ``cleanup_error`` the failure of the rollback itself.
    """

    def __init__(self, library: str, original: BaseException, cleanup_error: BaseException):
        super().__init__(
            f"Installing {library} failed ({original}) and removing it "
            f"failed too ({cleanup_error})"
        )
        self.library = library
        self.original = original
        self.cleanup_error = cleanup_error
