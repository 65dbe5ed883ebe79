"""
Zip archive encoding and decoding.

`build_archive` reads the live state described by a manifest and encodes it as
a standard zip container. `parse_archive` decodes a container into untrusted
raw entries without touching the filesystem; callers must pass the result
through `paths_and_safety.validate_archive_entries` before extracting anything.
"""

from __future__ import annotations

import io
import logging
import struct
import zipfile
import zlib
from pathlib import Path
from typing import Iterable

from .data_models import Archive, ArchiveEntry, EntryKind, Manifest, ManifestEntry, RawEntry
from .errors import CorruptArchiveError, NoContentError

logger = logging.getLogger(__name__)


def build_archive(manifest: Manifest) -> Archive:
    """
    Build a zip archive from the items listed in `manifest`.

    Parameters
    ----------
    manifest:
        Ordered items to capture. Missing items are skipped, as are items that
        cannot be read (locked or permission denied); both are logged.

    Returns
    -------
    Archive
        Archive with entries in manifest order and the encoded zip payload.

    Raises
    ------
    NoContentError
        If none of the manifest items could be captured.
    """
    entries: list[ArchiveEntry] = []
    for item in manifest.entries:
        if item.kind is EntryKind.FILE:
            entries.extend(_read_file_item(item))
        else:
            entries.extend(_read_directory_item(item))

    if not entries:
        raise NoContentError("Nothing to back up: no configuration files or directories were found.")

    return Archive(entries=tuple(entries), payload=_encode_zip(entries))


def parse_archive(payload: bytes) -> list[RawEntry]:
    """
    Decode zip bytes into raw entries.

    Entry names are returned exactly as stored; nothing is written to disk.

    Raises
    ------
    CorruptArchiveError
        If the payload is not a readable zip container.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(payload), "r") as zf:
            entries: list[RawEntry] = []
            for info in zf.infolist():
                data = b"" if info.is_dir() else zf.read(info)
                entries.append(RawEntry(name=info.filename, data=data, size=info.file_size))
            return entries
    except (
        zipfile.BadZipFile,
        zipfile.LargeZipFile,
        zlib.error,
        struct.error,
        ValueError,
        NotImplementedError,
        RuntimeError,
        EOFError,
    ) as exc:
        raise CorruptArchiveError(f"Backup file is not a valid zip archive: {exc}") from exc


def _read_file_item(item: ManifestEntry) -> list[ArchiveEntry]:
    if not item.source_path.is_file():
        logger.info("Skipping missing backup file: %s", item.source_path)
        return []
    try:
        data = item.source_path.read_bytes()
    except OSError:
        logger.warning("Failed to add file to backup: %s", item.source_path, exc_info=True)
        return []
    return [ArchiveEntry(relative_path=item.archive_name, data=data)]


def _read_directory_item(item: ManifestEntry) -> list[ArchiveEntry]:
    root = item.source_path
    if not root.is_dir():
        logger.info("Skipping missing backup directory: %s", root)
        return []

    # A directory that fails part-way is left out entirely rather than half-captured.
    try:
        entries = [ArchiveEntry(relative_path=item.archive_name, data=b"", is_directory=True)]
        for path in _iter_tree(root):
            relative = f"{item.archive_name}/{path.relative_to(root).as_posix()}"
            if path.is_dir():
                entries.append(ArchiveEntry(relative_path=relative, data=b"", is_directory=True))
            elif path.is_file():
                entries.append(ArchiveEntry(relative_path=relative, data=path.read_bytes()))
    except OSError:
        logger.warning("Failed to add folder to backup: %s", root, exc_info=True)
        return []
    return entries


def _iter_tree(root: Path) -> Iterable[Path]:
    return sorted(root.rglob("*"), key=lambda p: p.relative_to(root).as_posix())


def _encode_zip(entries: Iterable[ArchiveEntry]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for entry in entries:
            if entry.is_directory:
                zf.writestr(entry.relative_path + "/", b"")
            else:
                zf.writestr(entry.relative_path, entry.data)
    return buffer.getvalue()
