from __future__ import annotations

import io
import zipfile
from datetime import datetime
from pathlib import Path

import pytest

import backup_core.restore.execute as execute_module
import backup_core.restore.rollback as rollback_module
import backup_core.restore.snapshot as snapshot_module
from backup_core.clock import FixedClock
from backup_core.errors import FailureKind, RollbackFailure, WriteFailure
from backup_core.restore.data_models import TransactionState
from backup_core.restore.journal import RestoreExecutionJournal
from backup_core.restore.service import restore_backup
from backup_core.transport.local import LocalDirectoryTransport
from tree_helpers import read_tree

NAME = "linux_2024-01-01_00-00-00.zip"


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls: list[tuple[str, Path]] = []

    def notify_fatal(self, message: str, recovery_path: Path) -> None:
        self.calls.append((message, recovery_path))


def _store_archive(backup_dir: Path, entries: dict[str, bytes]) -> LocalDirectoryTransport:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    (backup_dir / NAME).write_bytes(buffer.getvalue())
    return LocalDirectoryTransport(backup_dir)


def _archive_entries() -> dict[str, bytes]:
    # Sorted stage order: config.yaml, mihomo.yaml, profiles, themes.
    return {
        "config.yaml": b"app: new\n",
        "mihomo.yaml": b"mode: rule\n",
        "profiles/b.yaml": b"profile: b\n",
        "themes/light.css": b"html {}\n",
    }


def _fail_after(count: int, monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Let the first `count` swaps succeed, then fail every further one."""
    real_replace = execute_module._replace_item
    attempted: list[str] = []

    def _replace(staged: Path, destination: Path) -> None:
        attempted.append(destination.name)
        if len(attempted) > count:
            raise OSError("disk full")
        real_replace(staged, destination)

    monkeypatch.setattr(execute_module, "_replace_item", _replace)
    return attempted


def test_failed_swap_rolls_back_to_exact_pre_restore_state(
    data_root: Path, backup_dir: Path, work_root: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    before = read_tree(data_root)
    transport = _store_archive(backup_dir, _archive_entries())
    attempted = _fail_after(2, monkeypatch)
    notifier = RecordingNotifier()

    outcome = restore_backup(
        transport=transport,
        backup_name=NAME,
        target_root=data_root,
        notifier=notifier,
        work_root=work_root,
    )

    assert attempted == ["config.yaml", "mihomo.yaml", "profiles"]
    assert outcome.state is TransactionState.ROLLED_BACK
    assert outcome.swapped_names == ("config.yaml", "mihomo.yaml")
    assert isinstance(outcome.error, WriteFailure)
    assert outcome.failure_kind is FailureKind.WRITE_FAILURE
    assert isinstance(outcome.error.__cause__, OSError)
    # mihomo.yaml did not exist before and must be gone again.
    assert read_tree(data_root) == before
    assert notifier.calls == []
    assert outcome.snapshot_path is None
    assert list(work_root.iterdir()) == []
    assert outcome.history[-2:] == (TransactionState.ROLLING_BACK, TransactionState.ROLLED_BACK)


def test_failure_on_first_swap_still_restores_everything(
    data_root: Path, backup_dir: Path, work_root: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    before = read_tree(data_root)
    transport = _store_archive(backup_dir, _archive_entries())
    _fail_after(0, monkeypatch)

    outcome = restore_backup(
        transport=transport, backup_name=NAME, target_root=data_root, work_root=work_root
    )

    assert outcome.state is TransactionState.ROLLED_BACK
    assert outcome.swapped_names == ()
    assert read_tree(data_root) == before


def test_staging_failure_rolls_back_without_touching_data_root(
    data_root: Path, backup_dir: Path, work_root: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    before = read_tree(data_root)
    transport = _store_archive(backup_dir, _archive_entries())
    rolled_back: list[str] = []
    real_roll_back = rollback_module.roll_back_items

    def _spy(**kwargs: object) -> list[str]:
        names = list(kwargs["names"])  # type: ignore[call-overload]
        rolled_back.extend(names)
        return real_roll_back(**{**kwargs, "names": names})  # type: ignore[arg-type]

    def _broken_write(self: Path, data: bytes) -> int:
        raise OSError("read-only filesystem")

    monkeypatch.setattr(rollback_module, "roll_back_items", _spy)
    monkeypatch.setattr(Path, "write_bytes", _broken_write)

    outcome = restore_backup(
        transport=transport, backup_name=NAME, target_root=data_root, work_root=work_root
    )

    assert outcome.state is TransactionState.ROLLED_BACK
    assert TransactionState.SNAPSHOTTING not in outcome.history
    assert rolled_back == []
    assert read_tree(data_root) == before


def test_snapshot_failure_rolls_back_before_any_swap(
    data_root: Path, backup_dir: Path, work_root: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    before = read_tree(data_root)
    transport = _store_archive(backup_dir, _archive_entries())

    def _broken_copy(source: Path, destination: Path) -> None:
        raise OSError("no space left")

    monkeypatch.setattr(snapshot_module, "copy_item", _broken_copy)

    outcome = restore_backup(
        transport=transport, backup_name=NAME, target_root=data_root, work_root=work_root
    )

    assert outcome.state is TransactionState.ROLLED_BACK
    assert TransactionState.SWAPPING not in outcome.history
    assert outcome.swapped_names == ()
    assert read_tree(data_root) == before
    assert list(work_root.iterdir()) == []


def test_rollback_failure_escalates_and_keeps_snapshot(
    data_root: Path, backup_dir: Path, work_root: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    transport = _store_archive(backup_dir, _archive_entries())
    _fail_after(2, monkeypatch)

    def _broken_restore(snapshot_item: Path, destination: Path) -> None:
        raise PermissionError("locked by another process")

    monkeypatch.setattr(rollback_module, "_restore_item", _broken_restore)
    notifier = RecordingNotifier()

    outcome = restore_backup(
        transport=transport,
        backup_name=NAME,
        target_root=data_root,
        notifier=notifier,
        work_root=work_root,
    )

    assert outcome.state is TransactionState.ROLLBACK_FAILED
    assert outcome.failure_kind is FailureKind.ROLLBACK_FAILURE
    assert isinstance(outcome.error, RollbackFailure)
    assert isinstance(outcome.error.__cause__, PermissionError)

    snapshot = outcome.snapshot_path
    assert snapshot is not None
    assert outcome.error.snapshot_path == snapshot
    assert str(snapshot) in str(outcome.error)
    # The pre-restore state survives in the snapshot for manual recovery.
    assert read_tree(snapshot) == {
        "config.yaml": "app: old\n",
        "profile.yaml": "items: []\n",
        "profiles": "<dir>",
        "profiles/a.yaml": "profile: a\n",
        "themes": "<dir>",
        "themes/dark.css": "body {}\n",
    }

    assert len(notifier.calls) == 1
    message, recovery_path = notifier.calls[0]
    assert recovery_path == snapshot
    assert str(snapshot) in message

    with pytest.raises(RollbackFailure):
        outcome.raise_for_failure()


def test_notifier_errors_do_not_mask_the_outcome(
    data_root: Path, backup_dir: Path, work_root: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    transport = _store_archive(backup_dir, _archive_entries())
    _fail_after(1, monkeypatch)

    def _broken_restore(snapshot_item: Path, destination: Path) -> None:
        raise OSError("still locked")

    class ExplodingNotifier:
        def notify_fatal(self, message: str, recovery_path: Path) -> None:
            raise RuntimeError("no display")

    monkeypatch.setattr(rollback_module, "_restore_item", _broken_restore)

    outcome = restore_backup(
        transport=transport,
        backup_name=NAME,
        target_root=data_root,
        notifier=ExplodingNotifier(),
        work_root=work_root,
    )

    assert outcome.state is TransactionState.ROLLBACK_FAILED
    assert outcome.snapshot_path is not None and outcome.snapshot_path.exists()


def test_journal_write_failures_never_interrupt_rollback(
    data_root: Path,
    backup_dir: Path,
    work_root: Path,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    before = read_tree(data_root)
    transport = _store_archive(backup_dir, _archive_entries())
    _fail_after(2, monkeypatch)
    notifier = RecordingNotifier()

    journal = RestoreExecutionJournal(
        tmp_path / "logs" / "restore.jsonl", clock=FixedClock(datetime(2024, 1, 1))
    )
    real_append = journal.append
    refused: list[str] = []

    def _append(event: str, data: object) -> None:
        if event in {"restore_rollback_item", "restore_swap_failed"}:
            refused.append(event)
            raise OSError("log disk full")
        real_append(event, data)  # type: ignore[arg-type]

    monkeypatch.setattr(journal, "append", _append)

    outcome = restore_backup(
        transport=transport,
        backup_name=NAME,
        target_root=data_root,
        notifier=notifier,
        work_root=work_root,
        journal=journal,
    )

    assert outcome.state is TransactionState.ROLLED_BACK
    assert read_tree(data_root) == before
    assert notifier.calls == []
    assert refused.count("restore_rollback_item") == 4
    assert list(work_root.iterdir()) == []
