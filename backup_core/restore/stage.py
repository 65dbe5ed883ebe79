from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from backup_core.data_models import RawEntry
from backup_core.errors import TraversalError, WriteFailure
from backup_core.paths_and_safety import assert_within

from .journal import RestoreExecutionJournal


class RestoreStageError(WriteFailure):
    """Raised when extracting validated entries into the stage fails."""


@dataclass(frozen=True)
class StageBuildResult:
    """
    Result of building a restore stage directory.

    Attributes
    ----------
    staged_files : int
        Number of file entries written.
    staged_directories : int
        Number of directory entries created.
    stage_root : Path
        Root directory containing staged restore content.
    top_level_names : tuple[str, ...]
        Top-level names present in the stage, in archive order.
    """

    staged_files: int
    staged_directories: int
    stage_root: Path
    top_level_names: tuple[str, ...]


def build_restore_stage(
    *,
    entries: Sequence[tuple[str, RawEntry]],
    stage_root: Path,
    journal: RestoreExecutionJournal | None = None,
) -> StageBuildResult:
    """
    Extract validated archive entries into `stage_root`.

    Parameters
    ----------
    entries:
        ``(safe_relative_path, entry)`` pairs returned by
        `validate_archive_entries`. Unvalidated entries must never reach here.
    stage_root:
        Existing, empty staging directory.
    journal:
        Optional execution journal.

    Returns
    -------
    StageBuildResult
        Summary of staging work performed.

    Raises
    ------
    RestoreStageError
        If any entry cannot be written.
    """
    staged_files = 0
    staged_directories = 0
    top_level: list[str] = []

    if journal is not None:
        journal.record(
            "stage_build_started",
            {"stage_root": str(stage_root), "entries_count": len(entries)},
        )

    for safe_path, entry in entries:
        destination = stage_root / safe_path
        try:
            # Second line of defence after name validation: resolved paths stay in the stage.
            assert_within(stage_root, destination, purpose="staged archive entry")
            if entry.is_directory:
                destination.mkdir(parents=True, exist_ok=True)
                staged_directories += 1
            else:
                destination.parent.mkdir(parents=True, exist_ok=True)
                destination.write_bytes(entry.data)
                staged_files += 1
        except (OSError, TraversalError) as exc:
            raise RestoreStageError(f"Failed to stage archive entry {safe_path!r}") from exc

        head = safe_path.split("/", 1)[0]
        if head not in top_level:
            top_level.append(head)

    if journal is not None:
        journal.record(
            "stage_build_completed",
            {"staged_files": staged_files, "staged_directories": staged_directories},
        )

    return StageBuildResult(
        staged_files=staged_files,
        staged_directories=staged_directories,
        stage_root=stage_root,
        top_level_names=tuple(top_level),
    )
