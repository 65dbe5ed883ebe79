from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class FatalNotifier(Protocol):
    """Operator-facing escalation channel for unrecoverable restore failures."""

    def notify_fatal(self, message: str, recovery_path: Path) -> None:
        """
        Tell the operator that manual recovery is required.

        Implementations may offer to open `recovery_path` (the kept snapshot
        directory) for the operator.
        """
        ...


@dataclass(frozen=True, slots=True)
class LoggingNotifier:
    """Notifier that only records the escalation in the log (headless use)."""

    def notify_fatal(self, message: str, recovery_path: Path) -> None:
        logger.critical("%s Recovery location: %s", message, recovery_path)
