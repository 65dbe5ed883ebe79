"""
Transport adapter construction and caching.

A `TransportFactory` builds one adapter per configuration tuple and hands the
same instance back on later requests, so a WebDAV session is reused across a
catalog refresh, a backup, and a restore. The factory is owned by the caller
(CLI invocation, GUI window); there is no module-level adapter state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Union

import requests

from backup_core.app_config import BackupSettings

from .base import BackupTransport
from .local import LocalDirectoryTransport
from .webdav import DEFAULT_REMOTE_DIRECTORY, WebDavTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LocalTransportConfig:
    """Configuration for a local directory store."""

    directory: Path
    require_writable: bool = True


@dataclass(frozen=True, slots=True)
class WebDavTransportConfig:
    """Configuration for a WebDAV store. The password is kept out of repr()."""

    base_url: str
    username: str
    password: str = field(repr=False)
    remote_directory: str = DEFAULT_REMOTE_DIRECTORY
    timeout: float | None = None


TransportConfig = Union[LocalTransportConfig, WebDavTransportConfig]


class TransportFactory:
    """
    Build and cache transport adapters keyed by their configuration.

    Parameters
    ----------
    session_factory:
        Callable producing a `requests.Session` for new WebDAV adapters.
    """

    def __init__(self, *, session_factory: Callable[[], requests.Session] = requests.Session) -> None:
        self._session_factory = session_factory
        self._adapters: dict[TransportConfig, BackupTransport] = {}

    def get(self, config: TransportConfig) -> BackupTransport:
        """
        Return the adapter for `config`, constructing it on first use.

        Raises
        ------
        TypeError
            If `config` is not a known transport configuration.
        """
        adapter = self._adapters.get(config)
        if adapter is not None:
            return adapter

        if isinstance(config, LocalTransportConfig):
            adapter = LocalDirectoryTransport(config.directory, require_writable=config.require_writable)
        elif isinstance(config, WebDavTransportConfig):
            adapter = WebDavTransport(
                config.base_url,
                config.username,
                config.password,
                config.remote_directory,
                timeout=config.timeout,
                session=self._session_factory(),
            )
        else:
            raise TypeError(f"Unsupported transport configuration: {type(config)!r}")

        logger.debug("Created %s for %s", type(adapter).__name__, adapter.describe())
        self._adapters[config] = adapter
        return adapter

    def close(self) -> None:
        """Close and forget every cached adapter."""
        adapters = list(self._adapters.values())
        self._adapters.clear()
        for adapter in adapters:
            adapter.close()


def webdav_config_from_settings(
    settings: BackupSettings, *, timeout: float | None = None
) -> WebDavTransportConfig:
    """Build a WebDAV configuration from persisted backup settings."""
    return WebDavTransportConfig(
        base_url=settings.webdav_url,
        username=settings.webdav_username,
        password=settings.webdav_password,
        remote_directory=settings.webdav_dir or DEFAULT_REMOTE_DIRECTORY,
        timeout=timeout,
    )
