"""
Backup catalog: the operator-facing list of stored archives.

Only names that follow ``{platform}_{YYYY-MM-DD_HH-mm-ss}.zip`` are listed.
Because the timestamp is zero-padded, sorting names in reverse yields newest
first without parsing dates.
"""

from __future__ import annotations

import logging

from backup_core.data_models import BackupDescriptor
from backup_core.paths_and_safety import validate_filename
from backup_core.transport.base import BackupTransport

logger = logging.getLogger(__name__)


def list_available(transport: BackupTransport, *, limit: int | None = None) -> list[BackupDescriptor]:
    """
    List archives in a store, newest first.

    Parameters
    ----------
    transport:
        Store to list.
    limit:
        Optional maximum number of descriptors to return.

    Returns
    -------
    list[BackupDescriptor]
        Descriptors following the naming convention, sorted by name descending.

    Raises
    ------
    TransportError
        If the store cannot be listed.
    """
    descriptors = [d for d in transport.list() if d.follows_convention]
    descriptors.sort(key=lambda d: d.name, reverse=True)
    if limit is not None:
        descriptors = descriptors[: max(limit, 0)]
    logger.debug("Listed %d backups in %s", len(descriptors), transport.describe())
    return descriptors


def remove(transport: BackupTransport, name: str) -> None:
    """
    Delete a stored archive after validating its name.

    Raises
    ------
    InvalidFilenameError
        If `name` is not a plain file name. Nothing is sent to the store.
    TransportError
        If the store rejects the delete.
    """
    validate_filename(name)
    transport.delete(name)
    logger.info("Removed backup %s from %s", name, transport.describe())
