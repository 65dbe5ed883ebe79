from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List

from backup_core.errors import WriteFailure

from .fs_ops import copy_item, list_top_level, remove_item
from .journal import RestoreExecutionJournal


@dataclass(frozen=True)
class SwapPlan:
    """
    Planned item-by-item swap of staged content into the data root.

    Attributes
    ----------
    stage_root : Path
        Directory containing staged restore data.
    target_root : Path
        Live data directory.
    names : list[str]
        Top-level staged names, in the order they will be swapped.
    operations : list[str]
        Human-readable ordered list of planned operations.
    """

    stage_root: Path
    target_root: Path
    names: List[str]
    operations: List[str]


class SwapError(WriteFailure):
    """Raised when a staged item cannot be placed into the data root."""


def plan_swap(*, stage_root: Path, target_root: Path) -> SwapPlan:
    """
    Plan the swap without mutating the filesystem.

    Raises
    ------
    SwapError
        If the stage cannot be listed or the target is not a directory.
    """
    if target_root.exists() and not target_root.is_dir():
        raise SwapError(f"Data root exists but is not a directory: {target_root}")
    try:
        names = list_top_level(stage_root)
    except OSError as exc:
        raise SwapError(f"Cannot list stage directory: {stage_root}") from exc

    operations: List[str] = []
    for name in names:
        destination = target_root / name
        if destination.exists():
            operations.append(f"remove {destination}")
        operations.append(f"copy {stage_root / name} -> {destination}")

    return SwapPlan(stage_root=stage_root, target_root=target_root, names=names, operations=operations)


def _replace_item(staged: Path, destination: Path) -> None:
    remove_item(destination)
    copy_item(staged, destination)


def execute_swap(
    *,
    plan: SwapPlan,
    completed: List[str],
    journal: RestoreExecutionJournal | None = None,
) -> List[str]:
    """
    Replace each planned top-level item in the data root with its staged copy.

    The swap is item-by-item: there is no multi-item atomicity, so a failure
    leaves earlier items replaced and later ones untouched. Staged items are
    copied, not moved, so the stage listing stays intact for rollback.

    Parameters
    ----------
    plan:
        Pre-validated swap plan.
    completed:
        Receives each name as soon as it has been swapped, so the caller knows
        how far the swap got even when it raises.
    journal:
        Optional append-only execution journal.

    Returns
    -------
    list[str]
        The swapped names (same object as `completed`).

    Raises
    ------
    SwapError
        If any item cannot be removed or copied.
    """
    if journal is not None:
        journal.record(
            "restore_swap_planned",
            {
                "stage_root": str(plan.stage_root),
                "target_root": str(plan.target_root),
                "operations": list(plan.operations),
            },
        )

    try:
        plan.target_root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise SwapError(f"Cannot create data root: {plan.target_root}") from exc

    for name in plan.names:
        try:
            _replace_item(plan.stage_root / name, plan.target_root / name)
        except OSError as exc:
            if journal is not None:
                journal.record(
                    "restore_swap_failed",
                    {"name": name, "error_type": type(exc).__name__, "error": str(exc)},
                )
            raise SwapError(f"Failed to restore {name!r} into {plan.target_root}") from exc

        completed.append(name)
        if journal is not None:
            journal.record("restore_item_swapped", {"name": name})

    return completed
