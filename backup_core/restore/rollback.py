"""
Rollback of a partially applied restore.

For every touched top-level name the item under the data root is removed and,
if it existed before the restore, copied back from the snapshot. The loop runs
exactly once; any exception escapes to the transaction manager, which turns it
into a `RollbackFailure`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from .fs_ops import copy_item, item_exists, remove_item
from .journal import RestoreExecutionJournal

logger = logging.getLogger(__name__)


def _restore_item(snapshot_item: Path, destination: Path) -> None:
    copy_item(snapshot_item, destination)


def roll_back_items(
    *,
    names: Iterable[str],
    target_root: Path,
    snapshot_root: Path | None,
    snapshot_names: Iterable[str],
    journal: RestoreExecutionJournal | None = None,
) -> list[str]:
    """
    Return each touched name under `target_root` to its pre-restore state.

    Parameters
    ----------
    names:
        Top-level names the restore may have modified.
    target_root:
        Live data directory.
    snapshot_root:
        Snapshot directory, or None if no snapshot was taken.
    snapshot_names:
        Names present in the snapshot. Names missing here did not exist before
        the restore and are only removed.
    journal:
        Optional execution journal.

    Returns
    -------
    list[str]
        Names processed, in order.

    Raises
    ------
    OSError
        If an item cannot be removed or copied back.
    """
    snapshotted = frozenset(snapshot_names)
    processed: list[str] = []
    for name in names:
        destination = target_root / name
        remove_item(destination)

        restored = False
        if snapshot_root is not None and name in snapshotted:
            source = snapshot_root / name
            if item_exists(source):
                _restore_item(source, destination)
                restored = True

        logger.info("Rolled back %s (restored from snapshot: %s)", destination, restored)
        if journal is not None:
            journal.record("restore_rollback_item", {"name": name, "restored": restored})
        processed.append(name)
    return processed
