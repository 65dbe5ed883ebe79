"""
Backup production.

This module coordinates:
- building an archive from the configuration collaborator's manifest
- naming it ``{platform}_{YYYY-MM-DD_HH-mm-ss}.zip`` from an injectable clock
- uploading it through a transport adapter

Safety posture
--------------
- Read-only against the data directory.
- A backup of nothing is an error (`NoContentError`); no empty archive is ever
  uploaded.
- Holds the data-root lock while reading so a concurrent restore cannot hand
  it a half-swapped directory.
"""

from __future__ import annotations

import logging
from pathlib import Path

from backup_core.app_config import ConfigurationCollaborator
from backup_core.archive_codec import build_archive
from backup_core.clock import Clock, SystemClock
from backup_core.data_models import BackupDescriptor, Manifest, build_backup_name
from backup_core.data_root_lock import acquire_data_root_lock
from backup_core.transport.base import BackupTransport

logger = logging.getLogger(__name__)


def produce_backup(
    *,
    manifest: Manifest,
    transport: BackupTransport,
    clock: Clock | None = None,
    platform_tag: str | None = None,
) -> BackupDescriptor:
    """
    Build an archive from `manifest` and upload it.

    Parameters
    ----------
    manifest:
        Items to capture.
    transport:
        Destination store.
    clock:
        Injectable clock used for the archive name.
    platform_tag:
        Optional platform tag override for the archive name.

    Returns
    -------
    BackupDescriptor
        Descriptor of the uploaded archive, including its location.

    Raises
    ------
    NoContentError
        If no manifest item exists. Nothing is uploaded.
    TransportError
        If the store is misconfigured or the upload fails.
    InvalidRemoteURLError
        If the WebDAV URL is invalid. Raised before the archive is built.
    """
    clock_to_use = clock if clock is not None else SystemClock()

    transport.check()
    archive = build_archive(manifest)
    name = build_backup_name(clock_to_use.now(), platform_tag=platform_tag)

    descriptor = transport.upload(name, archive.payload)
    logger.info(
        "Backup %s uploaded to %s (%d entries, %d bytes; %s)",
        name,
        transport.describe(),
        len(archive.entries),
        len(archive.payload),
        ", ".join(archive.top_level_names),
    )
    return descriptor


def run_backup(
    *,
    config: ConfigurationCollaborator,
    transport: BackupTransport,
    clock: Clock | None = None,
    lock_timeout: float | None = 0.0,
) -> BackupDescriptor:
    """
    Back up the application's current state while holding the data-root lock.

    Raises
    ------
    DataRootBusyError
        If a restore currently holds the data root.
    """
    data_root: Path = config.data_root()
    with acquire_data_root_lock(data_root, command="backup", timeout=lock_timeout):
        return produce_backup(manifest=config.get_manifest(), transport=transport, clock=clock)
