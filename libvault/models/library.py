"""Library identity, manifest and install result models.

A library is identified by its machine name plus major and minor version
(a "line"); the patch version distinguishes builds of the same line. Only
one patch of a line is installed at a time.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from libvault.errors import ManifestUnreadableError

MANIFEST_FILE = "library.json"

MACHINE_NAME_RE = re.compile(r"[\w.\-]+")

_UBER_NAME_RE = re.compile(
    r"^(?P<machine_name>[\w.\-]+?)-(?P<major>\d+)\.(?P<minor>\d+)(?:\.(?P<patch>\d+))?$"
)


class Versioned(Protocol):
    machine_name: str
    major_version: int
    minor_version: int
    patch_version: int


def compare_versions(a: Versioned, b: Versioned) -> int:
    """Order two libraries by major, minor and patch version.

    Returns a negative number if ``a`` is older than ``b``, zero if both
    versions are equal and a positive number if ``a`` is newer. The machine
    name is not part of the comparison.
    """
    left = (a.major_version, a.minor_version, a.patch_version)
    right = (b.major_version, b.minor_version, b.patch_version)
    return (left > right) - (left < right)


version_sort_key = functools.cmp_to_key(compare_versions)


# --- Identity ---


@dataclass(frozen=True)
class LibraryIdentity:
    """A line of a library: machine name plus major and minor version."""

    machine_name: str
    major_version: int
    minor_version: int

    @property
    def uber_name(self) -> str:
        return f"{self.machine_name}-{self.major_version}.{self.minor_version}"

    def line(self) -> LibraryIdentity:
        return LibraryIdentity(self.machine_name, self.major_version, self.minor_version)

    def __str__(self) -> str:
        return self.uber_name


@dataclass(frozen=True)
class FullLibraryIdentity(LibraryIdentity):
    """One installed build of a library line."""

    patch_version: int = 0

    @property
    def full_name(self) -> str:
        return f"{self.uber_name}.{self.patch_version}"

    def __str__(self) -> str:
        return self.full_name


def parse_uber_name(name: str) -> LibraryIdentity:
    """Parse ``H5P.Example-1.2`` or ``H5P.Example-1.2.3``.

    Returns a FullLibraryIdentity when a patch version is present.
    """
    match = _UBER_NAME_RE.match(name.strip())
    if not match:
        raise ValueError(f"Invalid library name '{name}'. Expected NAME-MAJOR.MINOR[.PATCH]")
    machine_name = match.group("machine_name")
    major = int(match.group("major"))
    minor = int(match.group("minor"))
    if match.group("patch") is not None:
        return FullLibraryIdentity(machine_name, major, minor, int(match.group("patch")))
    return LibraryIdentity(machine_name, major, minor)


# --- Manifest ---


_INTERPRETED_KEYS = {
    "machineName",
    "majorVersion",
    "minorVersion",
    "patchVersion",
    "title",
    "runnable",
    "preloadedJs",
    "preloadedCss",
}


@dataclass
class LibraryManifest:
    """The contents of library.json.

    Keys this package does not interpret are kept in ``extra`` and written
    back unchanged.
    """

    machine_name: str
    major_version: int
    minor_version: int
    patch_version: int
    title: str = ""
    runnable: bool = False
    preloaded_js: list[str] = field(default_factory=list)
    preloaded_css: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def identity(self) -> FullLibraryIdentity:
        return FullLibraryIdentity(
            self.machine_name, self.major_version, self.minor_version, self.patch_version
        )

    @property
    def preloaded_files(self) -> list[str]:
        return [*self.preloaded_js, *self.preloaded_css]

    @classmethod
    def from_dict(cls, data: Any) -> LibraryManifest:
        if not isinstance(data, dict):
            raise ManifestUnreadableError("library.json must contain a JSON object")

        machine_name = data.get("machineName")
        if not isinstance(machine_name, str) or not machine_name:
            raise ManifestUnreadableError("library.json is missing 'machineName'")
        if not MACHINE_NAME_RE.fullmatch(machine_name):
            raise ManifestUnreadableError(
                f"library.json: invalid machineName '{machine_name}'. "
                "Only letters, digits, '_', '.' and '-' are allowed"
            )

        versions = {}
        for key in ("majorVersion", "minorVersion", "patchVersion"):
            value = data.get(key)
            # bool is an int subclass but never a valid version
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ManifestUnreadableError(
                    f"library.json of {machine_name}: '{key}' must be a non-negative integer"
                )
            versions[key] = value

        return cls(
            machine_name=machine_name,
            major_version=versions["majorVersion"],
            minor_version=versions["minorVersion"],
            patch_version=versions["patchVersion"],
            title=data.get("title", ""),
            runnable=bool(data.get("runnable", False)),
            preloaded_js=_paths(data, "preloadedJs"),
            preloaded_css=_paths(data, "preloadedCss"),
            extra={k: v for k, v in data.items() if k not in _INTERPRETED_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "machineName": self.machine_name,
            "majorVersion": self.major_version,
            "minorVersion": self.minor_version,
            "patchVersion": self.patch_version,
            "title": self.title,
            "runnable": self.runnable,
        }
        if self.preloaded_js:
            data["preloadedJs"] = [{"path": p} for p in self.preloaded_js]
        if self.preloaded_css:
            data["preloadedCss"] = [{"path": p} for p in self.preloaded_css]
        data.update(self.extra)
        return data


def _paths(data: dict, key: str) -> list[str]:
    entries = data.get(key) or []
    if not isinstance(entries, list):
        raise ManifestUnreadableError(f"library.json: '{key}' must be a list")
    paths = []
    for entry in entries:
        path = entry.get("path") if isinstance(entry, dict) else None
        if not isinstance(path, str) or not path:
            raise ManifestUnreadableError(f"library.json: every entry of '{key}' needs a 'path'")
        paths.append(path)
    return paths


# --- Installed libraries ---


@dataclass
class InstalledLibraryRecord:
    """An installed library as shown in listings. Holds no file contents."""

    machine_name: str
    major_version: int
    minor_version: int
    patch_version: int
    title: str = ""
    runnable: bool = False

    @property
    def identity(self) -> FullLibraryIdentity:
        return FullLibraryIdentity(
            self.machine_name, self.major_version, self.minor_version, self.patch_version
        )

    @classmethod
    def from_manifest(cls, manifest: LibraryManifest) -> InstalledLibraryRecord:
        return cls(
            machine_name=manifest.machine_name,
            major_version=manifest.major_version,
            minor_version=manifest.minor_version,
            patch_version=manifest.patch_version,
            title=manifest.title,
            runnable=manifest.runnable,
        )


# --- Installation ---


@dataclass(frozen=True)
class InstallOptions:
    """Options for installing a library."""

    restricted: bool = False  # needs a special permission to be used


class InstallType(Enum):
    """What an installation did."""

    NEW = "new"
    PATCH = "patch"
    NONE = "none"


@dataclass(frozen=True)
class InstallOutcome:
    """Result of installing a library from a directory."""

    type: InstallType
    new_version: FullLibraryIdentity | None = None
    old_version: FullLibraryIdentity | None = None

    @classmethod
    def new(cls, identity: FullLibraryIdentity) -> InstallOutcome:
        return cls(InstallType.NEW, new_version=identity)

    @classmethod
    def patch(cls, old: FullLibraryIdentity, new: FullLibraryIdentity) -> InstallOutcome:
        return cls(InstallType.PATCH, new_version=new, old_version=old)

    @classmethod
    def none(cls) -> InstallOutcome:
        return cls(InstallType.NONE)
