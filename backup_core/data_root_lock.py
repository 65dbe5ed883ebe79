"""
Data-root locking.

Backup and restore must not run concurrently against the same data directory.
This module keeps one in-process lock per resolved data root. The application
is assumed to be the only process that owns a given data directory, so no lock
file is written; a lock file would itself be a write outside the restore
whitelist.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from backup_core.errors import DataRootBusyError


@dataclass(frozen=True, slots=True)
class DataRootLockInfo:
    """
    Who currently holds a data-root lock.

    Attributes
    ----------
    data_root:
        Resolved data root.
    command:
        High-level command name, e.g. "restore".
    run_id:
        Optional transaction identifier.
    """

    data_root: Path
    command: str
    run_id: str | None = None


_registry_guard = threading.Lock()
_locks: dict[Path, threading.Lock] = {}
_holders: dict[Path, DataRootLockInfo] = {}


def _lock_for(data_root: Path) -> threading.Lock:
    with _registry_guard:
        lock = _locks.get(data_root)
        if lock is None:
            lock = threading.Lock()
            _locks[data_root] = lock
        return lock


@contextmanager
def acquire_data_root_lock(
    data_root: Path,
    *,
    command: str,
    run_id: str | None = None,
    timeout: float | None = 0.0,
) -> Iterator[DataRootLockInfo]:
    """
    Hold the lock for `data_root` for the duration of the block.

    Parameters
    ----------
    data_root:
        Data directory to lock. Resolved before keying.
    command:
        High-level command name for error reporting.
    run_id:
        Optional transaction identifier for error reporting.
    timeout:
        Seconds to wait. 0 fails immediately when held; None waits forever.

    Raises
    ------
    DataRootBusyError
        If the lock is held and was not released within `timeout`.
    """
    key = Path(data_root).expanduser().resolve()
    lock = _lock_for(key)

    if timeout is None:
        acquired = lock.acquire()
    elif timeout <= 0:
        acquired = lock.acquire(blocking=False)
    else:
        acquired = lock.acquire(timeout=timeout)

    if not acquired:
        holder = _holders.get(key)
        details = f" (held by {holder.command}, run_id={holder.run_id!r})" if holder else ""
        raise DataRootBusyError(f"Another backup or restore is running for {key}{details}")

    info = DataRootLockInfo(data_root=key, command=command, run_id=run_id)
    _holders[key] = info
    try:
        yield info
    finally:
        _holders.pop(key, None)
        lock.release()


def is_data_root_locked(data_root: Path) -> bool:
    """Return True if a backup or restore currently holds `data_root`."""
    key = Path(data_root).expanduser().resolve()
    return _lock_for(key).locked()
