"""
Domain exceptions for pxdesk backup and restore.

Notes
-----
Engine code avoids raising generic exceptions. Every expected failure mode maps
to a domain exception whose `failure_kind` lets callers branch on retryable vs.
fatal outcomes without inspecting message strings.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path


class FailureKind(str, Enum):
    """Coarse classification of a failed backup/restore operation."""

    INVALID_INPUT = "invalid_input"
    INVALID_ARCHIVE = "invalid_archive"
    NO_CONTENT = "no_content"
    TRANSPORT = "transport"
    BUSY = "busy"
    WRITE_FAILURE = "write_failure"
    ROLLBACK_FAILURE = "rollback_failure"


class BackupCoreError(RuntimeError):
    """Base exception for all backup/restore domain failures."""

    failure_kind: FailureKind = FailureKind.INVALID_INPUT
    retryable: bool = False


class InvalidFilenameError(BackupCoreError):
    """Raised when a backup name is not a plain, normalized file name."""


class InvalidRemoteURLError(BackupCoreError):
    """Raised when a WebDAV base URL is missing, malformed, or not http(s)."""


class TraversalError(BackupCoreError):
    """Raised when an archive entry name escapes the extraction root."""

    failure_kind = FailureKind.INVALID_ARCHIVE


class WhitelistError(BackupCoreError):
    """Raised when an archive entry targets a top-level name restore may not touch."""

    failure_kind = FailureKind.INVALID_ARCHIVE


class CorruptArchiveError(BackupCoreError):
    """Raised when archive bytes cannot be decoded as a zip container."""

    failure_kind = FailureKind.INVALID_ARCHIVE


class NoContentError(BackupCoreError):
    """Raised when a backup would contain no entries at all."""

    failure_kind = FailureKind.NO_CONTENT


class TransportError(BackupCoreError):
    """Raised when a transport adapter cannot complete upload/download/list/delete."""

    failure_kind = FailureKind.TRANSPORT
    retryable = True


class NotFoundError(TransportError):
    """Raised when the named archive does not exist in the backup store."""

    retryable = False


class DataRootBusyError(BackupCoreError):
    """Raised when another backup or restore already holds the data root."""

    failure_kind = FailureKind.BUSY
    retryable = True


class WriteFailure(BackupCoreError):
    """Raised when staging, snapshotting, or swapping fails mid-restore."""

    failure_kind = FailureKind.WRITE_FAILURE


class RollbackFailure(BackupCoreError):
    """
    Raised when the rollback of a failed restore itself fails.

    The data root is left partially restored. The snapshot directory is kept
    and named here as the manual recovery location.
    """

    failure_kind = FailureKind.ROLLBACK_FAILURE

    def __init__(self, message: str, *, snapshot_path: Path) -> None:
        super().__init__(message)
        self.snapshot_path = snapshot_path
