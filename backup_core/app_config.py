"""
Application directories, data-directory layout, and persisted backup settings.

This module is the configuration collaborator for backup and restore. It knows
which files and directories make up the application's persisted state and where
they live; the backup/restore core only ever sees the resulting `Manifest` and
the data root.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Protocol

from platformdirs import user_config_path, user_data_path, user_log_path, user_state_path

from .data_models import EntryKind, Manifest, ManifestEntry
from .paths_and_safety import (
    APP_CONFIG_FILE,
    ENGINE_CONFIG_FILE,
    OVERRIDE_DIR,
    OVERRIDE_INDEX_FILE,
    PROFILE_INDEX_FILE,
    PROFILES_DIR,
    SUBSTORE_DIR,
    THEMES_DIR,
)

logger = logging.getLogger(__name__)

APP_NAME = "pxdesk"
DATA_DIR_ENV = "PXDESK_DATA_DIR"
SETTINGS_FILE_NAME = "backup_settings.json"


def default_data_root() -> Path:
    """
    Resolve the live application data directory.

    Preference order:
    1) ``PXDESK_DATA_DIR`` if set
    2) the per-user data directory for the platform
    """
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path(user_data_path(APP_NAME))


def get_config_dir() -> Path:
    return Path(user_config_path(APP_NAME))


def get_logs_dir() -> Path:
    return Path(user_log_path(APP_NAME))


def default_work_root() -> Path:
    """Directory under which restore staging and snapshot directories are created."""
    return Path(user_state_path(APP_NAME)) / "restore-work"


class ConfigurationCollaborator(Protocol):
    """What backup and restore need to know about the application's state."""

    def get_manifest(self) -> Manifest:
        """Return the items a fresh backup must contain."""
        ...

    def data_root(self) -> Path:
        """Return the live directory restore must target."""
        ...


@dataclass(frozen=True, slots=True)
class DataDirectoryLayout:
    """
    File and directory layout of the application's data directory.

    Attributes
    ----------
    root:
        The live data directory.
    """

    root: Path

    @classmethod
    def default(cls) -> "DataDirectoryLayout":
        return cls(root=default_data_root())

    def data_root(self) -> Path:
        return self.root

    def app_config_path(self) -> Path:
        return self.root / APP_CONFIG_FILE

    def engine_config_path(self) -> Path:
        return self.root / ENGINE_CONFIG_FILE

    def profile_index_path(self) -> Path:
        return self.root / PROFILE_INDEX_FILE

    def override_index_path(self) -> Path:
        return self.root / OVERRIDE_INDEX_FILE

    def themes_dir(self) -> Path:
        return self.root / THEMES_DIR

    def profiles_dir(self) -> Path:
        return self.root / PROFILES_DIR

    def override_dir(self) -> Path:
        return self.root / OVERRIDE_DIR

    def substore_dir(self) -> Path:
        return self.root / SUBSTORE_DIR

    def get_manifest(self) -> Manifest:
        files = (
            self.app_config_path(),
            self.engine_config_path(),
            self.profile_index_path(),
            self.override_index_path(),
        )
        directories = (
            self.themes_dir(),
            self.profiles_dir(),
            self.override_dir(),
            self.substore_dir(),
        )
        entries = [ManifestEntry(path, path.name, EntryKind.FILE) for path in files]
        entries += [ManifestEntry(path, path.name, EntryKind.DIRECTORY) for path in directories]
        return Manifest.of(entries)


@dataclass(frozen=True, slots=True)
class BackupSettings:
    """
    Persisted backup settings.

    Notes
    -----
    The WebDAV password is stored in clear text, like the rest of the
    application's configuration; the file is created owner-readable only.
    """

    webdav_url: str
    webdav_username: str
    webdav_password: str
    webdav_dir: str
    local_backup_dir: Path | None

    @staticmethod
    def defaults() -> "BackupSettings":
        return BackupSettings(
            webdav_url="",
            webdav_username="",
            webdav_password="",
            webdav_dir="pxdesk",
            local_backup_dir=None,
        )


def _settings_path(config_dir: Path | None) -> Path:
    root = get_config_dir() if config_dir is None else config_dir
    return root / SETTINGS_FILE_NAME


def load_backup_settings(*, config_dir: Path | None = None) -> BackupSettings:
    """
    Load backup settings from disk.

    Returns
    -------
    BackupSettings
        Loaded settings, or defaults if missing or unreadable.
    """
    path = _settings_path(config_dir)
    defaults = BackupSettings.defaults()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return defaults
    except (OSError, json.JSONDecodeError):
        logger.warning("Ignoring unreadable backup settings: %s", path, exc_info=True)
        return defaults
    if not isinstance(payload, dict):
        return defaults

    def _s(key: str, default: str) -> str:
        value = payload.get(key)
        return value if isinstance(value, str) else default

    local_dir = payload.get("local_backup_dir")
    return BackupSettings(
        webdav_url=_s("webdav_url", defaults.webdav_url),
        webdav_username=_s("webdav_username", defaults.webdav_username),
        webdav_password=_s("webdav_password", defaults.webdav_password),
        webdav_dir=_s("webdav_dir", defaults.webdav_dir) or defaults.webdav_dir,
        local_backup_dir=Path(local_dir) if isinstance(local_dir, str) and local_dir.strip() else None,
    )


def save_backup_settings(settings: BackupSettings, *, config_dir: Path | None = None) -> Path:
    """Save backup settings to disk and return the settings file path."""
    path = _settings_path(config_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = asdict(settings)
    payload["local_backup_dir"] = (
        str(settings.local_backup_dir) if settings.local_backup_dir is not None else None
    )
    path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    if os.name != "nt":
        path.chmod(0o600)
    return path
