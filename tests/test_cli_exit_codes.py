from __future__ import annotations

from pathlib import Path

import pytest

import backup_core.app_config as app_config_module
import pxdesk.cli as cli_module
from backup_core.errors import RollbackFailure
from backup_core.restore.data_models import RestoreOutcome, TransactionState
from tree_helpers import damaged_deflate_zip, read_tree


@pytest.fixture(autouse=True)
def _isolated_dirs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_module, "setup_logging", lambda **_kwargs: tmp_path / "logs" / "pxdesk.log")
    monkeypatch.setattr(cli_module, "get_logs_dir", lambda: tmp_path / "logs")
    monkeypatch.setattr(app_config_module, "get_config_dir", lambda: tmp_path / "config")


def _only_backup(backup_dir: Path) -> str:
    names = [p.name for p in backup_dir.iterdir()]
    assert len(names) == 1
    return names[0]


def test_backup_list_and_restore_round_trip(
    data_root: Path,
    backup_dir: Path,
    work_root: Path,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    rc = cli_module.main(["backup", "--local-dir", str(backup_dir), "--data-root", str(data_root)])
    out = capsys.readouterr().out
    assert rc == 0
    assert "Created backup:" in out
    name = _only_backup(backup_dir)

    rc = cli_module.main(["list", "--local-dir", str(backup_dir)])
    assert rc == 0
    assert name in capsys.readouterr().out

    target = tmp_path / "restored"
    rc = cli_module.main(
        [
            "restore",
            "--local-dir",
            str(backup_dir),
            name,
            "--data-root",
            str(target),
            "--work-root",
            str(work_root),
        ]
    )
    out = capsys.readouterr().out
    assert rc == 0
    assert "Restored" in out
    assert read_tree(target)["config.yaml"] == "app: old\n"
    assert (tmp_path / "logs" / "restore_journal.jsonl").is_file()


def test_list_reports_empty_store(backup_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = cli_module.main(["list", "--local-dir", str(backup_dir)])
    assert rc == 0
    assert "No backups found." in capsys.readouterr().out


def test_backup_of_empty_data_root_returns_2(
    tmp_path: Path, backup_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    rc = cli_module.main(
        ["backup", "--local-dir", str(backup_dir), "--data-root", str(tmp_path / "empty")]
    )
    out = capsys.readouterr().out
    assert rc == 2
    assert "ERROR:" in out
    assert list(backup_dir.iterdir()) == []


def test_restore_of_missing_backup_returns_2(
    data_root: Path, backup_dir: Path, work_root: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    rc = cli_module.main(
        [
            "restore",
            "--local-dir",
            str(backup_dir),
            "linux_2024-01-01_00-00-00.zip",
            "--data-root",
            str(data_root),
            "--work-root",
            str(work_root),
        ]
    )
    assert rc == 2
    assert "ERROR:" in capsys.readouterr().out


def test_restore_returns_1_on_rollback_failure(
    monkeypatch: pytest.MonkeyPatch,
    data_root: Path,
    backup_dir: Path,
    work_root: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    snapshot = work_root / "restore-snapshot-x"

    def _rollback_failed(**_kwargs: object) -> RestoreOutcome:
        return RestoreOutcome(
            run_id="RID",
            backup_name="linux_2024-01-01_00-00-00.zip",
            target_root=data_root,
            state=TransactionState.ROLLBACK_FAILED,
            error=RollbackFailure(f"Recover from {snapshot}", snapshot_path=snapshot),
            snapshot_path=snapshot,
        )

    monkeypatch.setattr(cli_module, "restore_backup", _rollback_failed)

    rc = cli_module.main(
        [
            "restore",
            "--local-dir",
            str(backup_dir),
            "linux_2024-01-01_00-00-00.zip",
            "--data-root",
            str(data_root),
            "--work-root",
            str(work_root),
        ]
    )
    out = capsys.readouterr().out
    assert rc == 1
    assert "ERROR:" in out
    assert str(snapshot) in out


def test_restore_file_rejects_non_zip(
    data_root: Path, tmp_path: Path, work_root: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    other = tmp_path / "backup.tar"
    other.write_bytes(b"x")

    rc = cli_module.main(
        ["restore-file", str(other), "--data-root", str(data_root), "--work-root", str(work_root)]
    )
    assert rc == 2
    assert "ERROR:" in capsys.readouterr().out


def test_restore_file_with_damaged_archive_returns_2(
    data_root: Path, tmp_path: Path, work_root: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    before = read_tree(data_root)
    archive = tmp_path / "damaged.zip"
    archive.write_bytes(damaged_deflate_zip())

    rc = cli_module.main(
        ["restore-file", str(archive), "--data-root", str(data_root), "--work-root", str(work_root)]
    )
    assert rc == 2
    assert "ERROR:" in capsys.readouterr().out
    assert read_tree(data_root) == before


def test_delete_rejects_path_like_name(backup_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = cli_module.main(["delete", "--local-dir", str(backup_dir), "../x.zip"])
    assert rc == 2
    assert "ERROR:" in capsys.readouterr().out


def test_webdav_without_settings_returns_2(capsys: pytest.CaptureFixture[str]) -> None:
    rc = cli_module.main(["list", "--webdav"])
    out = capsys.readouterr().out
    assert rc == 2
    assert "WebDAV is not configured" in out


def test_config_set_webdav_validates_and_hides_password(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    rc = cli_module.main(["config", "set-webdav", "--url", "ftp://nope"])
    assert rc == 2
    assert "ERROR:" in capsys.readouterr().out
    assert not (tmp_path / "config" / "backup_settings.json").exists()

    rc = cli_module.main(
        [
            "config",
            "set-webdav",
            "--url",
            "https://dav.example.com",
            "--username",
            "alice",
            "--password",
            "s3cret",
        ]
    )
    assert rc == 0
    capsys.readouterr()

    rc = cli_module.main(["config", "show"])
    out = capsys.readouterr().out
    assert rc == 0
    assert "https://dav.example.com" in out
    assert "alice" in out
    assert "s3cret" not in out
    assert "webdav_dir: pxdesk" in out


def test_config_set_local_dir(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = cli_module.main(["config", "set-local-dir", str(tmp_path / "b")])
    assert rc == 0
    capsys.readouterr()

    cli_module.main(["config", "show"])
    assert str(tmp_path / "b") in capsys.readouterr().out
