from __future__ import annotations

from pathlib import Path

import pytest

from backup_core.app_config import DataDirectoryLayout
from tree_helpers import write_tree


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    root = tmp_path / "data"
    write_tree(
        root,
        {
            "config.yaml": "app: old\n",
            "profile.yaml": "items: []\n",
            "profiles/a.yaml": "profile: a\n",
            "themes/dark.css": "body {}\n",
            "work/core.log": "runtime state, never backed up\n",
        },
    )
    return root


@pytest.fixture
def layout(data_root: Path) -> DataDirectoryLayout:
    return DataDirectoryLayout(root=data_root)


@pytest.fixture
def backup_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "backups"
    directory.mkdir()
    return directory


@pytest.fixture
def work_root(tmp_path: Path) -> Path:
    return tmp_path / "work-root"
