from __future__ import annotations

from typing import Protocol

from backup_core.data_models import BackupDescriptor


class BackupTransport(Protocol):
    """
    Uniform capability set shared by every backup store.

    Notes
    -----
    Implementations validate their own configuration in `check()` and call it
    before any I/O. Failures surface as `TransportError` (or `NotFoundError`)
    and are never retried at this layer.
    """

    def describe(self) -> str:
        """Return a human-readable, credential-free label for the store."""
        ...

    def check(self) -> None:
        """Validate configuration without transferring any archive."""
        ...

    def upload(self, name: str, data: bytes) -> BackupDescriptor:
        """Store `data` under `name` and return its descriptor."""
        ...

    def download(self, name: str) -> bytes:
        """Return the bytes stored under `name`."""
        ...

    def list(self, pattern: str | None = None) -> list[BackupDescriptor]:
        """Return descriptors of stored archives, optionally narrowed by a glob."""
        ...

    def delete(self, name: str) -> None:
        """Remove the archive stored under `name`."""
        ...

    def close(self) -> None:
        """Release any held resources (sessions, handles)."""
        ...
