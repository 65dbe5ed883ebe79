"""
Filesystem path policy and safety gates.

This module is the single choke point for deciding which names backup and
restore may read, write, or delete:

- Archive entry names are untrusted. They are normalized and rejected if they
  could escape the extraction root (zip-slip).
- Restore only touches the fixed whitelist of top-level names under the data
  root.
- Backup names used for download/delete are opaque labels, never paths.
- Remote store URLs are restricted to http/https.

Nothing in the engine should join an untrusted name onto a filesystem path
without going through this module.
"""

from __future__ import annotations

import os
import posixpath
import re
from pathlib import Path
from typing import TYPE_CHECKING, Iterable
from urllib.parse import urlsplit

from .errors import (
    InvalidFilenameError,
    InvalidRemoteURLError,
    TransportError,
    TraversalError,
    WhitelistError,
)

if TYPE_CHECKING:
    from .data_models import RawEntry

APP_CONFIG_FILE = "config.yaml"
ENGINE_CONFIG_FILE = "mihomo.yaml"
PROFILE_INDEX_FILE = "profile.yaml"
OVERRIDE_INDEX_FILE = "override.yaml"
THEMES_DIR = "themes"
PROFILES_DIR = "profiles"
OVERRIDE_DIR = "override"
SUBSTORE_DIR = "substore"

RESTORE_WHITELIST: frozenset[str] = frozenset(
    {
        APP_CONFIG_FILE,
        ENGINE_CONFIG_FILE,
        PROFILE_INDEX_FILE,
        OVERRIDE_INDEX_FILE,
        THEMES_DIR,
        PROFILES_DIR,
        OVERRIDE_DIR,
        SUBSTORE_DIR,
    }
)

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


def validate_entry_name(raw_name: str) -> str:
    """
    Normalize an untrusted archive entry name into a safe relative path.

    Parameters
    ----------
    raw_name:
        Entry name as stored in the archive. Both ``/`` and ``\\`` are treated
        as separators.

    Returns
    -------
    str
        Forward-slash relative path with no empty, ``.`` or ``..`` segments.

    Raises
    ------
    TraversalError
        If the name is empty, absolute, carries a drive or root marker, or
        contains a ``..`` segment.
    """
    if not raw_name or "\x00" in raw_name:
        raise TraversalError(f"Invalid path in archive: {raw_name!r}")

    unified = raw_name.replace("\\", "/")
    if unified.startswith("/") or _DRIVE_PREFIX.match(unified):
        raise TraversalError(f"Absolute path in archive: {raw_name!r}")

    parts = [part for part in unified.split("/") if part not in ("", ".")]
    if not parts:
        raise TraversalError(f"Empty path in archive: {raw_name!r}")
    if any(part == ".." for part in parts):
        raise TraversalError(f"Path traversal in archive: {raw_name!r}")
    if any(":" in part for part in parts):
        raise TraversalError(f"Drive or stream marker in archive path: {raw_name!r}")

    return "/".join(parts)


def validate_top_level(
    safe_relative_path: str, *, whitelist: Iterable[str] = RESTORE_WHITELIST
) -> str:
    """
    Ensure a validated entry lives under a whitelisted top-level name.

    Returns
    -------
    str
        The top-level name.

    Raises
    ------
    WhitelistError
        If the first path segment is not whitelisted.
    """
    head = safe_relative_path.split("/", 1)[0]
    if head not in frozenset(whitelist):
        raise WhitelistError(f"Unknown file in archive: {safe_relative_path!r}")
    return head


def validate_archive_entries(
    entries: Iterable["RawEntry"],
    *,
    whitelist: Iterable[str] = RESTORE_WHITELIST,
) -> list[tuple[str, "RawEntry"]]:
    """
    Validate every archive entry before anything is extracted.

    This is an all-or-nothing gate: the first violation raises and no entry is
    returned for extraction.

    Returns
    -------
    list[tuple[str, RawEntry]]
        ``(safe_relative_path, entry)`` pairs in archive order.

    Raises
    ------
    TraversalError
        If any entry name is unsafe.
    WhitelistError
        If any entry targets a non-whitelisted top-level name.
    """
    allowed = frozenset(whitelist)
    validated: list[tuple[str, "RawEntry"]] = []
    for entry in entries:
        safe_path = validate_entry_name(entry.name)
        validate_top_level(safe_path, whitelist=allowed)
        validated.append((safe_path, entry))
    return validated


def validate_filename(candidate: str) -> str:
    """
    Validate a backup name used for download or delete.

    The name is an opaque label. It must not contain separators or ``..``, must
    not be absolute, and must equal its own normalized form.

    Raises
    ------
    InvalidFilenameError
        If the name could be interpreted as anything other than a plain file name.
    """
    if not candidate or candidate.strip() != candidate:
        raise InvalidFilenameError(f"Invalid filename: {candidate!r}")
    if "\x00" in candidate or ".." in candidate:
        raise InvalidFilenameError(f"Invalid filename: {candidate!r}")
    if "/" in candidate or "\\" in candidate or ":" in candidate:
        raise InvalidFilenameError(f"Invalid filename: {candidate!r}")
    if candidate == "." or os.path.isabs(candidate) or posixpath.normpath(candidate) != candidate:
        raise InvalidFilenameError(f"Invalid filename: {candidate!r}")
    return candidate


def validate_remote_url(url: str) -> str:
    """
    Validate a WebDAV base URL before any network call.

    Raises
    ------
    InvalidRemoteURLError
        If the URL is empty, malformed, scheme-less, or not http/https.
    """
    if not url or not url.strip():
        raise InvalidRemoteURLError("Invalid WebDAV URL: empty")
    try:
        parsed = urlsplit(url.strip())
        _ = parsed.port
    except ValueError as exc:
        raise InvalidRemoteURLError(f"Invalid WebDAV URL: {exc}") from exc

    if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
        raise InvalidRemoteURLError("Invalid WebDAV URL: scheme must be http or https")
    return url.strip()


def validate_remote_directory(remote_directory: str) -> str:
    """
    Normalize a WebDAV remote directory into a relative, traversal-free path.

    Raises
    ------
    InvalidFilenameError
        If the directory contains ``..`` segments or is empty.
    """
    parts = [part for part in remote_directory.replace("\\", "/").split("/") if part not in ("", ".")]
    if not parts or any(part == ".." for part in parts):
        raise InvalidFilenameError(f"Invalid remote directory: {remote_directory!r}")
    return "/".join(parts)


def validate_backup_directory(directory: Path) -> Path:
    """
    Validate that a local backup directory exists, is a directory, and is writable.

    Returns
    -------
    pathlib.Path
        Resolved directory.

    Raises
    ------
    TransportError
        If the directory is missing, not a directory, or not writable.
    """
    directory = Path(directory).expanduser()
    try:
        resolved = directory.resolve(strict=True)
    except (FileNotFoundError, OSError) as exc:
        raise TransportError(f"Backup directory does not exist: {directory}") from exc

    if not resolved.is_dir():
        raise TransportError(f"Backup path is not a directory: {resolved}")
    if not os.access(resolved, os.W_OK):
        raise TransportError(f"Backup directory is not writable: {resolved}")
    return resolved


def assert_within(base: Path, candidate: Path, purpose: str) -> Path:
    """
    Ensure `candidate` stays within `base` after resolution.

    Raises
    ------
    TraversalError
        If the resolved candidate is outside the resolved base.
    """
    base_resolved = base.resolve()
    resolved = candidate.resolve()
    try:
        resolved.relative_to(base_resolved)
    except ValueError as exc:
        raise TraversalError(
            f"Unsafe path for {purpose}: {resolved} is not within {base_resolved}"
        ) from exc
    return resolved
