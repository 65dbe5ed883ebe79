from __future__ import annotations

from pathlib import Path

import pytest

from backup_core.data_models import RawEntry
from backup_core.errors import (
    InvalidFilenameError,
    InvalidRemoteURLError,
    TransportError,
    TraversalError,
    WhitelistError,
)
from backup_core.paths_and_safety import (
    RESTORE_WHITELIST,
    assert_within,
    validate_archive_entries,
    validate_backup_directory,
    validate_entry_name,
    validate_filename,
    validate_remote_directory,
    validate_remote_url,
)


def _entry(name: str) -> RawEntry:
    return RawEntry(name=name, data=b"x", size=1)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("config.yaml", "config.yaml"),
        ("profiles/a.yaml", "profiles/a.yaml"),
        ("profiles/", "profiles"),
        ("./themes//dark.css", "themes/dark.css"),
        ("profiles\\nested\\b.yaml", "profiles/nested/b.yaml"),
    ],
)
def test_entry_names_are_normalized(raw: str, expected: str) -> None:
    assert validate_entry_name(raw) == expected


@pytest.mark.parametrize(
    "bad",
    ["", "../evil", "/etc/passwd", "..\\evil", "profiles/../../evil", "C:/evil", "c:evil", "a\x00b", "./"],
)
def test_unsafe_entry_names_are_rejected(bad: str) -> None:
    with pytest.raises(TraversalError):
        validate_entry_name(bad)


def test_archive_entries_outside_whitelist_are_rejected() -> None:
    with pytest.raises(WhitelistError):
        validate_archive_entries([_entry("config.yaml"), _entry("random-dir/x")])


def test_archive_entry_validation_is_all_or_nothing() -> None:
    entries = [_entry("config.yaml"), _entry("profiles/a.yaml"), _entry("../evil")]
    with pytest.raises(TraversalError):
        validate_archive_entries(entries)


def test_archive_entries_return_safe_paths_in_order() -> None:
    validated = validate_archive_entries([_entry("themes\\dark.css"), _entry("config.yaml")])
    assert [safe for safe, _ in validated] == ["themes/dark.css", "config.yaml"]


def test_custom_whitelist_is_honoured() -> None:
    with pytest.raises(WhitelistError):
        validate_archive_entries([_entry("config.yaml")], whitelist={"profiles"})


def test_restore_whitelist_contents() -> None:
    assert RESTORE_WHITELIST == {
        "config.yaml",
        "mihomo.yaml",
        "profile.yaml",
        "override.yaml",
        "themes",
        "profiles",
        "override",
        "substore",
    }


@pytest.mark.parametrize(
    "bad",
    ["", " ", ".", "..", "a/b", r"a\b", "../x.zip", "x..zip", "/abs.zip", "C:x.zip", " x.zip", "a\x00.zip"],
)
def test_invalid_backup_filenames_are_rejected(bad: str) -> None:
    with pytest.raises(InvalidFilenameError):
        validate_filename(bad)


def test_plain_backup_filename_is_accepted() -> None:
    assert validate_filename("linux_2024-01-01_00-00-00.zip") == "linux_2024-01-01_00-00-00.zip"


@pytest.mark.parametrize(
    "bad",
    ["", "   ", "ftp://dav.example.com", "file:///etc", "dav.example.com/path", "https://", "http://host:notaport"],
)
def test_invalid_remote_urls_are_rejected(bad: str) -> None:
    with pytest.raises(InvalidRemoteURLError):
        validate_remote_url(bad)


def test_remote_url_accepts_http_and_https() -> None:
    assert validate_remote_url("https://dav.example.com/remote.php/dav") == "https://dav.example.com/remote.php/dav"
    assert validate_remote_url(" http://127.0.0.1:8080 ") == "http://127.0.0.1:8080"


def test_remote_directory_is_normalized_and_traversal_rejected() -> None:
    assert validate_remote_directory("/backups//pxdesk/") == "backups/pxdesk"
    with pytest.raises(InvalidFilenameError):
        validate_remote_directory("../outside")
    with pytest.raises(InvalidFilenameError):
        validate_remote_directory("/")


def test_backup_directory_must_exist_and_be_a_directory(tmp_path: Path) -> None:
    with pytest.raises(TransportError):
        validate_backup_directory(tmp_path / "missing")

    a_file = tmp_path / "file.txt"
    a_file.write_text("x", encoding="utf-8")
    with pytest.raises(TransportError):
        validate_backup_directory(a_file)

    assert validate_backup_directory(tmp_path) == tmp_path.resolve()


def test_assert_within_rejects_escape(tmp_path: Path) -> None:
    base = tmp_path / "stage"
    base.mkdir()
    assert assert_within(base, base / "a" / "b", "test") == (base / "a" / "b").resolve()
    with pytest.raises(TraversalError):
        assert_within(base, base / ".." / "evil", "test")
