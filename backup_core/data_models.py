"""
Core data models for backup production, archives, and the backup catalog.

Notes
-----
All models are immutable. Serialization helpers (`to_dict`) are deterministic
so they can be written to journals and printed by the CLI without surprises.
"""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

from .paths_and_safety import validate_entry_name

PLATFORM_TAGS = ("darwin", "win32", "linux")
BACKUP_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
BACKUP_NAME_PATTERN = re.compile(
    r"^(?P<platform>darwin|win32|linux)_"
    r"(?P<timestamp>\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2})\.zip$"
)


class EntryKind(str, Enum):
    """Kind of filesystem item a manifest entry refers to."""

    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True, slots=True)
class ManifestEntry:
    """
    One item that a fresh backup should contain.

    Attributes
    ----------
    source_path:
        Absolute path of the live file or directory.
    archive_name:
        Top-level name the item receives inside the archive.
    kind:
        Whether the item is a single file or a directory tree.
    """

    source_path: Path
    archive_name: str
    kind: EntryKind

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable payload."""
        return {
            "source_path": str(self.source_path),
            "archive_name": self.archive_name,
            "kind": self.kind.value,
        }


@dataclass(frozen=True, slots=True)
class Manifest:
    """
    Ordered description of everything a backup must contain.

    Archive names are unique, relative, and free of traversal segments.
    """

    entries: tuple[ManifestEntry, ...]

    @classmethod
    def of(cls, entries: Iterable[ManifestEntry]) -> "Manifest":
        manifest = cls(entries=tuple(entries))
        manifest.validate()
        return manifest

    def validate(self) -> None:
        """
        Validate manifest invariants.

        Raises
        ------
        ValueError
            If an archive name is duplicated, nested, or not a safe relative name.
        """
        seen: set[str] = set()
        for entry in self.entries:
            safe_name = validate_entry_name(entry.archive_name)
            if safe_name != entry.archive_name or "/" in safe_name:
                raise ValueError(
                    f"Manifest archive name must be a plain top-level name: {entry.archive_name!r}"
                )
            if safe_name in seen:
                raise ValueError(f"Duplicate manifest archive name: {safe_name!r}")
            seen.add(safe_name)

    @property
    def archive_names(self) -> tuple[str, ...]:
        return tuple(entry.archive_name for entry in self.entries)


@dataclass(frozen=True, slots=True)
class ArchiveEntry:
    """
    A single archive member.

    Attributes
    ----------
    relative_path:
        Normalized forward-slash relative path.
    data:
        File bytes (empty for directory entries).
    is_directory:
        True for explicit directory entries.
    """

    relative_path: str
    data: bytes
    is_directory: bool = False


@dataclass(frozen=True, slots=True)
class Archive:
    """
    An encoded backup archive.

    Attributes
    ----------
    entries:
        Members in the order they were written.
    payload:
        The zip container bytes.
    """

    entries: tuple[ArchiveEntry, ...]
    payload: bytes

    @property
    def top_level_names(self) -> tuple[str, ...]:
        names: list[str] = []
        for entry in self.entries:
            head = entry.relative_path.split("/", 1)[0]
            if head not in names:
                names.append(head)
        return tuple(names)


@dataclass(frozen=True, slots=True)
class RawEntry:
    """
    An undecoded, untrusted archive member as read from a zip container.

    Attributes
    ----------
    name:
        Entry name exactly as stored in the container.
    data:
        Entry bytes.
    size:
        Uncompressed size reported by the container.
    """

    name: str
    data: bytes
    size: int

    @property
    def is_directory(self) -> bool:
        return self.name.endswith("/") or self.name.endswith("\\")


@dataclass(frozen=True, slots=True)
class BackupDescriptor:
    """
    Catalog view of one stored archive.

    Attributes
    ----------
    name:
        Archive file name.
    platform_tag:
        Platform that produced the archive, if the name follows the convention.
    created_at:
        Naive local timestamp decoded from the name, if it follows the convention.
    location:
        Human-readable location (full local path or remote URL), when known.
    """

    name: str
    platform_tag: str | None = None
    created_at: datetime | None = None
    location: str | None = None

    @classmethod
    def from_name(cls, name: str, *, location: str | None = None) -> "BackupDescriptor":
        match = BACKUP_NAME_PATTERN.match(name)
        if match is None:
            return cls(name=name, location=location)
        return cls(
            name=name,
            platform_tag=match.group("platform"),
            created_at=datetime.strptime(match.group("timestamp"), BACKUP_TIMESTAMP_FORMAT),
            location=location,
        )

    @property
    def follows_convention(self) -> bool:
        return self.created_at is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable payload."""
        return {
            "name": self.name,
            "platform_tag": self.platform_tag,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "location": self.location,
        }


def is_backup_name(name: str) -> bool:
    """Return True if `name` follows `{platform}_{YYYY-MM-DD_HH-mm-ss}.zip`."""
    return BACKUP_NAME_PATTERN.match(name) is not None


def current_platform_tag() -> str:
    """
    Return the platform tag used in backup names.

    Unknown POSIX platforms are tagged "linux" so their archives still appear in
    catalog listings.
    """
    if sys.platform.startswith("win") or sys.platform == "cygwin":
        return "win32"
    if sys.platform == "darwin":
        return "darwin"
    return "linux"


def build_backup_name(now: datetime, *, platform_tag: str | None = None) -> str:
    """
    Build an archive name for a backup taken at `now`.

    Parameters
    ----------
    now:
        Backup time. The zero-padded format keeps name order chronological.
    platform_tag:
        Optional override; defaults to the running platform.

    Returns
    -------
    str
        Name such as ``linux_2024-01-01_00-00-00.zip``.
    """
    tag = platform_tag or current_platform_tag()
    if tag not in PLATFORM_TAGS:
        raise ValueError(f"Unsupported platform tag: {tag!r}")
    return f"{tag}_{now.strftime(BACKUP_TIMESTAMP_FORMAT)}.zip"
