"""
Local directory backup store.

Archives live directly inside an operator-chosen directory. Writes are atomic
(temp file + replace) so a crashed upload never leaves a half-written archive
under a valid backup name.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import tempfile
from pathlib import Path

from backup_core.data_models import BackupDescriptor, is_backup_name
from backup_core.errors import NotFoundError, TransportError
from backup_core.paths_and_safety import validate_backup_directory, validate_filename

logger = logging.getLogger(__name__)


class LocalDirectoryTransport:
    """
    Backup store backed by a local (or mounted) directory.

    Parameters
    ----------
    directory:
        Directory holding the archives.
    require_writable:
        If False, `check()` accepts read-only directories. Used when restoring
        from a file the operator picked on read-only media.
    """

    def __init__(self, directory: Path, *, require_writable: bool = True) -> None:
        self._directory = Path(directory).expanduser()
        self._require_writable = require_writable

    @property
    def directory(self) -> Path:
        return self._directory

    def describe(self) -> str:
        return str(self._directory)

    def check(self) -> None:
        self._root()

    def upload(self, name: str, data: bytes) -> BackupDescriptor:
        root = self._root(writable=True)
        target = self._member_path(root, name)
        temp_path: Path | None = None

        try:
            # One temp file per upload, even for the same backup name.
            with tempfile.NamedTemporaryFile(
                "wb", dir=root, prefix=f".{name}.", suffix=".tmp", delete=False
            ) as handle:
                temp_path = Path(handle.name)
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, target)
        except OSError as exc:
            try:
                if temp_path is not None:
                    temp_path.unlink(missing_ok=True)
            except OSError:
                logger.error("Failed to clean up incomplete backup file: %s", temp_path, exc_info=True)
            raise TransportError(f"Failed to write backup file: {target} ({exc})") from exc

        logger.info("Wrote local backup %s (%d bytes)", target, len(data))
        return BackupDescriptor.from_name(name, location=str(target))

    def download(self, name: str) -> bytes:
        path = self._member_path(self._root(), name)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise NotFoundError(f"Backup file does not exist: {path}") from exc
        except OSError as exc:
            raise TransportError(f"Failed to read backup file: {path} ({exc})") from exc

    def list(self, pattern: str | None = None) -> list[BackupDescriptor]:
        root = self._root()
        try:
            names = os.listdir(root)
        except OSError as exc:
            raise TransportError(f"Cannot read backup directory: {root} ({exc})") from exc

        descriptors: list[BackupDescriptor] = []
        for name in names:
            if not is_backup_name(name):
                continue
            if pattern is not None and not fnmatch.fnmatchcase(name, pattern):
                continue
            if not (root / name).is_file():
                continue
            descriptors.append(BackupDescriptor.from_name(name, location=str(root / name)))
        return descriptors

    def delete(self, name: str) -> None:
        path = self._member_path(self._root(writable=True), name)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise NotFoundError(f"Backup file does not exist: {path}") from exc
        except OSError as exc:
            raise TransportError(f"Failed to delete backup file: {path} ({exc})") from exc
        logger.info("Deleted local backup %s", path)

    def close(self) -> None:
        return None

    def _root(self, *, writable: bool = False) -> Path:
        if writable or self._require_writable:
            return validate_backup_directory(self._directory)
        try:
            root = self._directory.resolve(strict=True)
        except OSError as exc:
            raise TransportError(f"Backup directory does not exist: {self._directory}") from exc
        if not root.is_dir():
            raise TransportError(f"Backup path is not a directory: {root}")
        return root

    @staticmethod
    def _member_path(root: Path, name: str) -> Path:
        path = root / validate_filename(name)
        if path.parent != root:
            raise TransportError(f"Invalid backup file path: {path}")
        return path
