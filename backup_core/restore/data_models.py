from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from backup_core.errors import BackupCoreError, FailureKind


class TransactionState(str, Enum):
    """State of a restore transaction."""

    IDLE = "idle"
    VALIDATING = "validating"
    STAGING = "staging"
    SNAPSHOTTING = "snapshotting"
    SWAPPING = "swapping"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset(
    {
        TransactionState.COMMITTED,
        TransactionState.ROLLED_BACK,
        TransactionState.ROLLBACK_FAILED,
        TransactionState.ABORTED,
    }
)

ALLOWED_TRANSITIONS: dict[TransactionState, frozenset[TransactionState]] = {
    TransactionState.IDLE: frozenset({TransactionState.VALIDATING, TransactionState.ABORTED}),
    TransactionState.VALIDATING: frozenset({TransactionState.STAGING, TransactionState.ABORTED}),
    TransactionState.STAGING: frozenset(
        {TransactionState.SNAPSHOTTING, TransactionState.ROLLING_BACK}
    ),
    TransactionState.SNAPSHOTTING: frozenset(
        {TransactionState.SWAPPING, TransactionState.ROLLING_BACK}
    ),
    TransactionState.SWAPPING: frozenset(
        {TransactionState.COMMITTED, TransactionState.ROLLING_BACK}
    ),
    TransactionState.ROLLING_BACK: frozenset(
        {TransactionState.ROLLED_BACK, TransactionState.ROLLBACK_FAILED}
    ),
}


@dataclass(frozen=True, slots=True)
class RestoreOutcome:
    """
    Typed result of one restore transaction.

    Attributes
    ----------
    run_id:
        Unique transaction identifier.
    backup_name:
        Name of the archive that was requested.
    target_root:
        Live data directory the restore targeted.
    state:
        Terminal transaction state.
    error:
        The failure that ended the transaction, attached untouched; None when
        committed.
    snapshot_path:
        Snapshot directory left on disk for manual recovery. Only set when the
        rollback failed.
    staged_names:
        Top-level names extracted from the archive.
    swapped_names:
        Top-level names that were placed into the data root before the
        transaction resolved.
    history:
        Every state the transaction passed through, in order.
    """

    run_id: str
    backup_name: str
    target_root: Path
    state: TransactionState
    error: BackupCoreError | None = None
    snapshot_path: Path | None = None
    staged_names: tuple[str, ...] = ()
    swapped_names: tuple[str, ...] = ()
    history: tuple[TransactionState, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.state is TransactionState.COMMITTED

    @property
    def failure_kind(self) -> FailureKind | None:
        return self.error.failure_kind if self.error is not None else None

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable

    def raise_for_failure(self) -> None:
        """Raise the attached error if the transaction did not commit."""
        if self.error is not None:
            raise self.error

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable payload."""
        return {
            "run_id": self.run_id,
            "backup_name": self.backup_name,
            "target_root": str(self.target_root),
            "state": self.state.value,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "error": str(self.error) if self.error is not None else None,
            "snapshot_path": str(self.snapshot_path) if self.snapshot_path else None,
            "staged_names": list(self.staged_names),
            "swapped_names": list(self.swapped_names),
            "history": [state.value for state in self.history],
        }
