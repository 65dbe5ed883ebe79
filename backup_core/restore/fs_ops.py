"""Filesystem primitives shared by staging, snapshotting, swapping, and rollback."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path


def create_work_dir(work_root: Path, *, prefix: str, run_id: str) -> Path:
    """Create a fresh, uniquely named directory under `work_root`."""
    work_root.mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix=f"{prefix}-{run_id}-", dir=work_root))


def item_exists(path: Path) -> bool:
    # lexists: a dangling symlink still occupies the name.
    return os.path.lexists(path)


def remove_item(path: Path) -> None:
    """Remove a file, symlink, or directory tree. Absent paths are ignored."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        return
    try:
        path.unlink()
    except FileNotFoundError:
        return


def copy_item(source: Path, destination: Path) -> None:
    """Copy a file or directory tree, preserving symlinks and timestamps."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    if source.is_dir() and not source.is_symlink():
        shutil.copytree(source, destination, symlinks=True)
    else:
        shutil.copy2(source, destination, follow_symlinks=False)


def list_top_level(root: Path) -> list[str]:
    """Return the sorted top-level names in `root`."""
    return sorted(os.listdir(root))
