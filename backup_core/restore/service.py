"""
Restore transaction manager.

One `RestoreTransaction` performs one full restore pass against a live data
directory:

    Validating -> Staging -> Snapshotting -> Swapping -> Committed
    (Staging | Snapshotting | Swapping) -> RollingBack -> RolledBack | RollbackFailed

Validation failures abort before any filesystem write. Once staging starts the
transaction always runs to a terminal state; there is no external abort point.
Nothing is retried, and rollback is attempted exactly once.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Iterable, List, Optional

from backup_core.archive_codec import parse_archive
from backup_core.clock import Clock, SystemClock
from backup_core.data_models import RawEntry
from backup_core.data_root_lock import acquire_data_root_lock
from backup_core.errors import (
    BackupCoreError,
    CorruptArchiveError,
    DataRootBusyError,
    InvalidFilenameError,
    RollbackFailure,
    WriteFailure,
)
from backup_core.paths_and_safety import (
    RESTORE_WHITELIST,
    validate_archive_entries,
    validate_filename,
)
from backup_core.transport.base import BackupTransport
from backup_core.transport.local import LocalDirectoryTransport

from . import rollback
from .data_models import ALLOWED_TRANSITIONS, RestoreOutcome, TransactionState
from .execute import execute_swap, plan_swap
from .fs_ops import create_work_dir, list_top_level
from .journal import RestoreExecutionJournal
from .notify import FatalNotifier, LoggingNotifier
from .snapshot import SnapshotResult, take_snapshot
from .stage import build_restore_stage

logger = logging.getLogger(__name__)


def _new_run_id(clock: Clock) -> str:
    return f"{clock.now():%Y%m%d-%H%M%S}-{uuid.uuid4().hex[:8]}"


class RestoreTransaction:
    """
    A single restore attempt against `target_root`.

    Parameters
    ----------
    transport:
        Store holding the archive.
    backup_name:
        Archive name in the store. Treated as an opaque label.
    target_root:
        Live data directory to restore into.
    notifier:
        Escalation channel used only when rollback fails.
    work_root:
        Directory under which the staging and snapshot directories are created.
        Defaults to the OS temp directory.
    whitelist:
        Top-level names restore may touch.
    clock:
        Injectable clock (run ids, journal timestamps).
    journal:
        Optional append-only execution journal.
    """

    def __init__(
        self,
        *,
        transport: BackupTransport,
        backup_name: str,
        target_root: Path,
        notifier: FatalNotifier | None = None,
        work_root: Path | None = None,
        whitelist: Iterable[str] = RESTORE_WHITELIST,
        clock: Clock | None = None,
        journal: RestoreExecutionJournal | None = None,
    ) -> None:
        self._transport = transport
        self._backup_name = backup_name
        self._target_root = Path(target_root).expanduser()
        self._notifier = notifier if notifier is not None else LoggingNotifier()
        self._work_root = Path(work_root) if work_root is not None else Path(tempfile.gettempdir())
        self._whitelist = frozenset(whitelist)
        self._clock = clock if clock is not None else SystemClock()
        self._journal = journal

        self.run_id = _new_run_id(self._clock)
        self.state = TransactionState.IDLE
        self._history: List[TransactionState] = [TransactionState.IDLE]

        self._stage_root: Optional[Path] = None
        self._snapshot: Optional[SnapshotResult] = None
        self._snapshot_root: Optional[Path] = None
        self._staged_names: tuple[str, ...] = ()
        self._swapped: List[str] = []
        self._swap_started = False

    @property
    def history(self) -> tuple[TransactionState, ...]:
        return tuple(self._history)

    @property
    def stage_root(self) -> Optional[Path]:
        return self._stage_root

    @property
    def snapshot_root(self) -> Optional[Path]:
        return self._snapshot_root

    def run(self) -> RestoreOutcome:
        """
        Execute the transaction and return its typed outcome.

        Only unexpected programming errors escape; every domain failure is
        reported through the outcome's `state` and `error`.
        """
        if self.state is not TransactionState.IDLE:
            raise RuntimeError(f"Restore transaction {self.run_id} has already run")

        self._record(
            "restore_run_started",
            {
                "run_id": self.run_id,
                "backup_name": self._backup_name,
                "target_root": str(self._target_root),
                "store": self._transport.describe(),
            },
        )
        try:
            with acquire_data_root_lock(self._target_root, command="restore", run_id=self.run_id):
                return self._run_locked()
        except DataRootBusyError as exc:
            return self._abort(exc)

    def reject(self, error: BackupCoreError) -> RestoreOutcome:
        """Abort before running because a caller-side precondition failed."""
        if self.state is not TransactionState.IDLE:
            raise RuntimeError(f"Restore transaction {self.run_id} has already run")
        return self._abort(error)

    def _run_locked(self) -> RestoreOutcome:
        self._transition(TransactionState.VALIDATING)
        try:
            validated = self._validate()
        except BackupCoreError as exc:
            return self._abort(exc)

        try:
            return self._apply(validated)
        finally:
            self._remove_best_effort(self._stage_root, purpose="staging")

    def _validate(self) -> list[tuple[str, RawEntry]]:
        validate_filename(self._backup_name)
        if self._target_root.exists() and not self._target_root.is_dir():
            raise BackupCoreError(f"Data root is not a directory: {self._target_root}")
        self._transport.check()

        payload = self._transport.download(self._backup_name)
        raw_entries = parse_archive(payload)
        if not raw_entries:
            raise CorruptArchiveError(f"Backup archive contains no entries: {self._backup_name}")

        validated = validate_archive_entries(raw_entries, whitelist=self._whitelist)
        self._record(
            "restore_archive_validated",
            {"entries_count": len(validated), "size_bytes": len(payload)},
        )
        return validated

    def _apply(self, validated: list[tuple[str, RawEntry]]) -> RestoreOutcome:
        try:
            self._transition(TransactionState.STAGING)
            self._stage_root = create_work_dir(
                self._work_root, prefix="restore-stage", run_id=self.run_id
            )
            stage = build_restore_stage(
                entries=validated, stage_root=self._stage_root, journal=self._journal
            )
            self._staged_names = stage.top_level_names

            self._transition(TransactionState.SNAPSHOTTING)
            self._snapshot_root = create_work_dir(
                self._work_root, prefix="restore-snapshot", run_id=self.run_id
            )
            self._snapshot = take_snapshot(
                target_root=self._target_root,
                snapshot_root=self._snapshot_root,
                whitelist=self._whitelist,
                journal=self._journal,
            )

            self._transition(TransactionState.SWAPPING)
            plan = plan_swap(stage_root=self._stage_root, target_root=self._target_root)
            self._swap_started = True
            execute_swap(plan=plan, completed=self._swapped, journal=self._journal)
        except Exception as exc:  # noqa: BLE001
            failure = exc if isinstance(exc, WriteFailure) else None
            if failure is None:
                failure = WriteFailure(f"Restore failed while {self.state.value}: {exc}")
                failure.__cause__ = exc
            logger.error("Restore %s failed while %s: %s", self.run_id, self.state.value, failure)
            return self._roll_back(failure)

        self._transition(TransactionState.COMMITTED)
        self._remove_best_effort(self._snapshot_root, purpose="snapshot")
        logger.info(
            "Restored %s into %s (%s)",
            self._backup_name,
            self._target_root,
            ", ".join(self._swapped) or "nothing",
        )
        return self._outcome(error=None)

    def _touched_names(self) -> list[str]:
        if not self._swap_started:
            # Nothing under the data root has been modified yet.
            return []
        if self._stage_root is not None:
            try:
                return list_top_level(self._stage_root)
            except OSError:
                logger.warning(
                    "Cannot list stage %s; rolling back every whitelisted name",
                    self._stage_root,
                    exc_info=True,
                )
        return sorted(self._whitelist)

    def _roll_back(self, failure: WriteFailure) -> RestoreOutcome:
        self._transition(TransactionState.ROLLING_BACK)
        snapshot_names = self._snapshot.names if self._snapshot is not None else ()
        try:
            rollback.roll_back_items(
                names=self._touched_names(),
                target_root=self._target_root,
                snapshot_root=self._snapshot_root,
                snapshot_names=snapshot_names,
                journal=self._journal,
            )
        except Exception as exc:  # noqa: BLE001
            return self._escalate(failure, exc)

        self._remove_best_effort(self._snapshot_root, purpose="snapshot")
        self._transition(TransactionState.ROLLED_BACK)
        return self._outcome(error=failure)

    def _escalate(self, failure: WriteFailure, rollback_exc: BaseException) -> RestoreOutcome:
        self._transition(TransactionState.ROLLBACK_FAILED)
        recovery_path = self._snapshot_root if self._snapshot_root is not None else self._work_root
        message = (
            "Restore failed and the automatic rollback also failed. "
            f"Your previous configuration was saved to: {recovery_path}. "
            f"Copy its contents back into {self._target_root} to recover."
        )
        error = RollbackFailure(message, snapshot_path=recovery_path)
        error.__cause__ = rollback_exc
        error.__context__ = failure
        logger.critical(
            "Restore %s rollback failed: %s", self.run_id, rollback_exc, exc_info=rollback_exc
        )

        try:
            self._notifier.notify_fatal(message, recovery_path)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to notify operator about rollback failure")

        return self._outcome(error=error, snapshot_path=recovery_path)

    def _abort(self, error: BackupCoreError) -> RestoreOutcome:
        self._transition(TransactionState.ABORTED)
        logger.warning("Restore %s aborted: %s", self.run_id, error)
        return self._outcome(error=error)

    def _transition(self, new_state: TransactionState) -> None:
        allowed = ALLOWED_TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise RuntimeError(f"Illegal restore transition {self.state.value} -> {new_state.value}")
        previous = self.state
        self.state = new_state
        self._history.append(new_state)
        logger.debug("Restore %s: %s -> %s", self.run_id, previous.value, new_state.value)
        self._record("restore_state_changed", {"from": previous.value, "to": new_state.value})

    def _record(self, event: str, data: dict[str, object]) -> None:
        if self._journal is not None:
            self._journal.record(event, data)

    def _remove_best_effort(self, path: Optional[Path], *, purpose: str) -> None:
        if path is None:
            return
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return
        except OSError:
            logger.warning(
                "Failed to clean up %s directory. Please delete it manually: %s",
                purpose,
                path,
                exc_info=True,
            )
            return
        self._record("restore_work_dir_removed", {"purpose": purpose, "path": str(path)})

    def _outcome(
        self, *, error: BackupCoreError | None, snapshot_path: Path | None = None
    ) -> RestoreOutcome:
        return RestoreOutcome(
            run_id=self.run_id,
            backup_name=self._backup_name,
            target_root=self._target_root,
            state=self.state,
            error=error,
            snapshot_path=snapshot_path,
            staged_names=self._staged_names,
            swapped_names=tuple(self._swapped),
            history=self.history,
        )


def restore_backup(
    *,
    transport: BackupTransport,
    backup_name: str,
    target_root: Path,
    notifier: FatalNotifier | None = None,
    work_root: Path | None = None,
    clock: Clock | None = None,
    journal: RestoreExecutionJournal | None = None,
) -> RestoreOutcome:
    """
    Restore `backup_name` from `transport` into `target_root`.

    Returns
    -------
    RestoreOutcome
        Terminal state plus the attached error, if any.
    """
    transaction = RestoreTransaction(
        transport=transport,
        backup_name=backup_name,
        target_root=target_root,
        notifier=notifier,
        work_root=work_root,
        clock=clock,
        journal=journal,
    )
    return transaction.run()


def restore_from_file(
    *,
    archive_path: Path,
    target_root: Path,
    notifier: FatalNotifier | None = None,
    work_root: Path | None = None,
    clock: Clock | None = None,
    journal: RestoreExecutionJournal | None = None,
) -> RestoreOutcome:
    """
    Restore a zip archive picked directly from the local filesystem.

    The file must end in ``.zip``; its directory may be read-only.
    """
    archive_path = Path(archive_path).expanduser()
    transaction = RestoreTransaction(
        transport=LocalDirectoryTransport(archive_path.parent, require_writable=False),
        backup_name=archive_path.name,
        target_root=target_root,
        notifier=notifier,
        work_root=work_root,
        clock=clock,
        journal=journal,
    )
    if archive_path.suffix.lower() != ".zip":
        return transaction.reject(
            InvalidFilenameError(f"Only .zip backup files are supported: {archive_path}")
        )
    return transaction.run()
