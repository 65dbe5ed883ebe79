from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from backup_core.errors import WriteFailure

from .fs_ops import copy_item, item_exists
from .journal import RestoreExecutionJournal


class SnapshotError(WriteFailure):
    """Raised when the pre-restore safety snapshot cannot be taken."""


@dataclass(frozen=True)
class SnapshotResult:
    """
    Pre-restore copy of the whitelisted items that existed in the data root.

    Attributes
    ----------
    snapshot_root : Path
        Directory holding the copies, one per top-level name.
    names : tuple[str, ...]
        Names that were present and copied. Absent names are not listed.
    """

    snapshot_root: Path
    names: tuple[str, ...]


def take_snapshot(
    *,
    target_root: Path,
    snapshot_root: Path,
    whitelist: Iterable[str],
    journal: RestoreExecutionJournal | None = None,
) -> SnapshotResult:
    """
    Copy every whitelisted item currently under `target_root` into `snapshot_root`.

    Raises
    ------
    SnapshotError
        If any present item cannot be copied.
    """
    copied: list[str] = []
    for name in sorted(whitelist):
        source = target_root / name
        if not item_exists(source):
            continue
        try:
            copy_item(source, snapshot_root / name)
        except OSError as exc:
            raise SnapshotError(f"Failed to snapshot {source} into {snapshot_root}") from exc
        copied.append(name)

    if journal is not None:
        journal.record(
            "restore_snapshot_taken",
            {"snapshot_root": str(snapshot_root), "names": list(copied)},
        )
    return SnapshotResult(snapshot_root=snapshot_root, names=tuple(copied))
