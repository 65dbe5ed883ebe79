from __future__ import annotations

import io
import zipfile
from pathlib import Path

import pytest

from backup_core.app_config import DataDirectoryLayout
from backup_core.archive_codec import build_archive, parse_archive
from backup_core.data_models import EntryKind, Manifest, ManifestEntry
from backup_core.errors import CorruptArchiveError, NoContentError
from tree_helpers import damaged_deflate_zip


def test_build_archive_captures_existing_items_in_manifest_order(layout: DataDirectoryLayout) -> None:
    archive = build_archive(layout.get_manifest())

    names = [entry.relative_path for entry in archive.entries]
    assert names == [
        "config.yaml",
        "profile.yaml",
        "themes",
        "themes/dark.css",
        "profiles",
        "profiles/a.yaml",
    ]
    assert archive.top_level_names == ("config.yaml", "profile.yaml", "themes", "profiles")


def test_build_archive_never_includes_unlisted_state(layout: DataDirectoryLayout) -> None:
    archive = build_archive(layout.get_manifest())
    assert not any(entry.relative_path.startswith("work") for entry in archive.entries)


def test_payload_is_a_standard_zip(layout: DataDirectoryLayout) -> None:
    archive = build_archive(layout.get_manifest())

    with zipfile.ZipFile(io.BytesIO(archive.payload)) as zf:
        assert zf.read("config.yaml") == b"app: old\n"
        assert zf.read("profiles/a.yaml") == b"profile: a\n"
        assert zf.getinfo("profiles/").is_dir()


def test_empty_directory_is_captured_as_directory_entry(tmp_path: Path) -> None:
    (tmp_path / "substore").mkdir()
    manifest = Manifest.of([ManifestEntry(tmp_path / "substore", "substore", EntryKind.DIRECTORY)])

    raw = parse_archive(build_archive(manifest).payload)

    assert [(e.name, e.is_directory) for e in raw] == [("substore/", True)]


def test_missing_items_are_skipped(tmp_path: Path) -> None:
    (tmp_path / "config.yaml").write_text("x", encoding="utf-8")
    manifest = Manifest.of(
        [
            ManifestEntry(tmp_path / "config.yaml", "config.yaml", EntryKind.FILE),
            ManifestEntry(tmp_path / "mihomo.yaml", "mihomo.yaml", EntryKind.FILE),
            ManifestEntry(tmp_path / "themes", "themes", EntryKind.DIRECTORY),
        ]
    )

    archive = build_archive(manifest)

    assert archive.top_level_names == ("config.yaml",)


def test_unreadable_file_is_skipped_with_warning(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    (tmp_path / "config.yaml").write_text("x", encoding="utf-8")
    (tmp_path / "mihomo.yaml").write_text("y", encoding="utf-8")
    locked = tmp_path / "mihomo.yaml"
    real_read_bytes = Path.read_bytes

    def _read_bytes(self: Path) -> bytes:
        if self == locked:
            raise PermissionError("locked")
        return real_read_bytes(self)

    monkeypatch.setattr(Path, "read_bytes", _read_bytes)
    manifest = Manifest.of(
        [
            ManifestEntry(tmp_path / "config.yaml", "config.yaml", EntryKind.FILE),
            ManifestEntry(locked, "mihomo.yaml", EntryKind.FILE),
        ]
    )

    archive = build_archive(manifest)

    assert archive.top_level_names == ("config.yaml",)
    assert "Failed to add file to backup" in caplog.text


def test_nothing_to_back_up_raises_no_content(tmp_path: Path) -> None:
    layout = DataDirectoryLayout(root=tmp_path / "empty")
    with pytest.raises(NoContentError):
        build_archive(layout.get_manifest())


def test_manifest_rejects_duplicate_and_nested_names(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        Manifest.of(
            [
                ManifestEntry(tmp_path / "a", "config.yaml", EntryKind.FILE),
                ManifestEntry(tmp_path / "b", "config.yaml", EntryKind.FILE),
            ]
        )
    with pytest.raises(ValueError):
        Manifest.of([ManifestEntry(tmp_path / "a", "profiles/a.yaml", EntryKind.FILE)])


def test_parse_archive_keeps_raw_names_untouched() -> None:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("../evil", b"boom")
        zf.writestr("config.yaml", b"ok")

    raw = parse_archive(buffer.getvalue())

    assert [e.name for e in raw] == ["../evil", "config.yaml"]
    assert raw[1].data == b"ok"
    assert raw[1].size == 2


@pytest.mark.parametrize(
    "payload",
    [b"", b"not a zip at all", b"PK\x03\x04truncated", damaged_deflate_zip()],
    ids=["empty", "text", "truncated", "damaged-deflate"],
)
def test_corrupt_payload_raises_corrupt_archive(payload: bytes) -> None:
    with pytest.raises(CorruptArchiveError):
        parse_archive(payload)


def test_empty_zip_parses_to_no_entries() -> None:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w"):
        pass
    assert parse_archive(buffer.getvalue()) == []
