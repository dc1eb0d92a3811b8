"""Tests for library identity, version ordering and manifest parsing."""

import itertools

import pytest

from libvault.errors import ManifestUnreadableError
from libvault.models.library import (
    FullLibraryIdentity,
    InstalledLibraryRecord,
    InstallOutcome,
    InstallType,
    LibraryIdentity,
    LibraryManifest,
    compare_versions,
    parse_uber_name,
    version_sort_key,
)


def _v(major, minor, patch, name="H5P.Example"):
    return FullLibraryIdentity(name, major, minor, patch)


# --- Version ordering ---


def test_compare_matches_tuple_order():
    triples = list(itertools.product([0, 1, 2, 10], repeat=3))
    for a, b in itertools.product(triples, repeat=2):
        result = compare_versions(_v(*a), _v(*b))
        expected = (a > b) - (a < b)
        assert result == expected, (a, b)


def test_compare_uses_integers_not_strings():
    assert compare_versions(_v(1, 10, 0), _v(1, 9, 0)) > 0
    assert compare_versions(_v(2, 0, 0), _v(10, 0, 0)) < 0


def test_compare_ignores_machine_name():
    assert compare_versions(_v(1, 0, 0, "A"), _v(1, 0, 0, "B")) == 0


def test_sort_key_orders_ascending():
    versions = [_v(1, 2, 0), _v(1, 0, 5), _v(0, 9, 9), _v(1, 0, 10)]
    ordered = sorted(versions, key=version_sort_key)
    assert [(v.major_version, v.minor_version, v.patch_version) for v in ordered] == [
        (0, 9, 9),
        (1, 0, 5),
        (1, 0, 10),
        (1, 2, 0),
    ]


def test_compare_works_on_installed_records():
    old = InstalledLibraryRecord("A", 1, 0, 0)
    new = InstalledLibraryRecord("A", 1, 0, 5)
    assert compare_versions(old, new) < 0


# --- Names ---


def test_uber_and_full_name():
    library = _v(1, 2, 3)
    assert library.uber_name == "H5P.Example-1.2"
    assert library.full_name == "H5P.Example-1.2.3"
    assert library.line() == LibraryIdentity("H5P.Example", 1, 2)


def test_parse_uber_name():
    assert parse_uber_name("H5P.Example-1.2") == LibraryIdentity("H5P.Example", 1, 2)
    assert parse_uber_name("H5P.Drag-Question-10.0.7") == FullLibraryIdentity(
        "H5P.Drag-Question", 10, 0, 7
    )


def test_parse_uber_name_rejects_garbage():
    for name in ["H5P.Example", "H5P.Example-1", "-1.2", "H5P.Example-a.b"]:
        with pytest.raises(ValueError):
            parse_uber_name(name)


# --- Manifest ---


def _manifest_data(**overrides):
    data = {
        "machineName": "H5P.Example",
        "majorVersion": 1,
        "minorVersion": 2,
        "patchVersion": 3,
        "title": "Example",
        "runnable": 1,
        "preloadedJs": [{"path": "scripts/example.js"}],
        "preloadedCss": [{"path": "styles/example.css"}],
        "license": "MIT",
        "preloadedDependencies": [{"machineName": "H5P.Other", "majorVersion": 1, "minorVersion": 0}],
    }
    data.update(overrides)
    return data


def test_manifest_from_dict():
    manifest = LibraryManifest.from_dict(_manifest_data())
    assert manifest.identity == _v(1, 2, 3)
    assert manifest.runnable is True
    assert manifest.preloaded_files == ["scripts/example.js", "styles/example.css"]
    assert manifest.extra["license"] == "MIT"


def test_manifest_keeps_unknown_fields():
    data = _manifest_data()
    restored = LibraryManifest.from_dict(data).to_dict()
    assert restored["preloadedDependencies"] == data["preloadedDependencies"]
    assert restored["preloadedJs"] == data["preloadedJs"]
    assert restored["license"] == "MIT"


def test_manifest_missing_machine_name():
    data = _manifest_data()
    del data["machineName"]
    with pytest.raises(ManifestUnreadableError):
        LibraryManifest.from_dict(data)


def test_manifest_rejects_bad_versions():
    for bad in ["1", -1, 1.5, True, None]:
        with pytest.raises(ManifestUnreadableError):
            LibraryManifest.from_dict(_manifest_data(patchVersion=bad))


def test_manifest_rejects_bad_preloaded_entries():
    with pytest.raises(ManifestUnreadableError):
        LibraryManifest.from_dict(_manifest_data(preloadedJs=[{"file": "a.js"}]))
    with pytest.raises(ManifestUnreadableError):
        LibraryManifest.from_dict(_manifest_data(preloadedCss="a.css"))


def test_manifest_rejects_non_object():
    with pytest.raises(ManifestUnreadableError):
        LibraryManifest.from_dict(["not", "an", "object"])


# --- Install outcome ---


def test_install_outcome_variants():
    new = InstallOutcome.new(_v(1, 0, 0))
    assert new.type == InstallType.NEW
    assert new.old_version is None

    patch = InstallOutcome.patch(_v(1, 0, 0), _v(1, 0, 5))
    assert patch.type == InstallType.PATCH
    assert patch.old_version.patch_version == 0
    assert patch.new_version.patch_version == 5

    assert InstallOutcome.none().type == InstallType.NONE


def test_manifest_rejects_unsafe_machine_names():
    for bad in ["../outside", "My Lib", "a/b", "a\\b", "abc\n", ""]:
        with pytest.raises(ManifestUnreadableError):
            LibraryManifest.from_dict(_manifest_data(machineName=bad))


def test_manifest_accepts_dashes_and_digits_in_machine_name():
    manifest = LibraryManifest.from_dict(_manifest_data(machineName="H5P.Foo-Bar2"))
    assert manifest.identity.uber_name == "H5P.Foo-Bar2-1.2"
    assert parse_uber_name(manifest.identity.uber_name) == LibraryIdentity("H5P.Foo-Bar2", 1, 2)
