"""libvault — installs, versions and verifies content-type libraries."""

__version__ = "0.1.0"
