"""Library installation — decides between new install, patch and no-op,
copies files into the store and verifies the result."""

from libvault.manager.consistency import ConsistencyChecker
from libvault.manager.library_manager import LibraryManager, make_url_resolver

__all__ = ["ConsistencyChecker", "LibraryManager", "make_url_resolver"]
