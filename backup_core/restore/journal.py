"""
Execution journal for restore transactions.

Every transaction writes one JSON line per event to a file kept outside the
data root, so the record survives a rollback and is never restored over.

Events written by the restore package:

- ``restore_run_started`` / ``restore_state_changed``: lifecycle, one line per
  state transition.
- ``restore_archive_validated``: entry count and payload size.
- ``stage_build_started`` / ``stage_build_completed``: extraction progress.
- ``restore_snapshot_taken``: names copied aside before the swap.
- ``restore_swap_planned`` / ``restore_item_swapped`` / ``restore_swap_failed``.
- ``restore_rollback_item``: one line per name returned to its previous state.
- ``restore_work_dir_removed``: stage or snapshot cleanup.

The journal is an audit aid. Transaction code writes through `record()`, which
never raises, so a full or read-only log directory cannot interrupt staging,
swapping or rollback.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from backup_core.clock import Clock

logger = logging.getLogger(__name__)


class RestoreExecutionJournal:
    """
    Append-only JSONL journal for restore transactions.

    Each line is ``{"data": ..., "event": ..., "ts": ...}`` with sorted keys and
    an ISO-8601 timestamp taken from the injected clock.
    """

    def __init__(self, journal_path: Path, *, clock: Clock) -> None:
        self._journal_path = journal_path
        self._clock = clock
        self._journal_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._journal_path

    def append(self, event: str, data: Mapping[str, Any]) -> None:
        """
        Write one event line.

        Raises
        ------
        OSError
            If the journal file cannot be written.
        TypeError
            If `data` is not JSON-serializable.
        """
        line = json.dumps(
            {"ts": self._clock.now().isoformat(), "event": event, "data": dict(data)},
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
        )
        with self._journal_path.open("a", encoding="utf-8", newline="\n") as handle:
            handle.write(line + "\n")
            handle.flush()

    def record(self, event: str, data: Mapping[str, Any]) -> bool:
        """
        Write one event line, logging instead of raising on failure.

        Returns
        -------
        bool
            True if the line was written.
        """
        try:
            self.append(event, data)
        except (OSError, TypeError, ValueError):
            logger.warning(
                "Failed to append %s to restore journal %s", event, self._journal_path, exc_info=True
            )
            return False
        return True

    def read_events(self) -> list[dict[str, Any]]:
        """Return all recorded events in order (empty if nothing was written yet)."""
        try:
            text = self._journal_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        return [json.loads(line) for line in text.splitlines() if line.strip()]
