"""
WebDAV backup store.

Archives live in one remote collection (``{base_url}/{remote_directory}/``).
The base URL is validated before any request is made. Network, auth, and
protocol failures surface as `TransportError` and are not retried here.
"""

from __future__ import annotations

import fnmatch
import logging
import posixpath
from typing import Any
from urllib.parse import quote, unquote, urlsplit
from xml.etree import ElementTree

import requests

from backup_core.data_models import BackupDescriptor
from backup_core.errors import NotFoundError, TransportError
from backup_core.logging_setup import redact
from backup_core.paths_and_safety import (
    validate_filename,
    validate_remote_directory,
    validate_remote_url,
)

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_DIRECTORY = "pxdesk"
DEFAULT_LIST_PATTERN = "*.zip"

_DAV_NS = "{DAV:}"
_PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:"><d:prop><d:resourcetype/><d:getlastmodified/>'
    "<d:getcontentlength/></d:prop></d:propfind>"
)


class WebDavTransport:
    """
    Backup store backed by a WebDAV collection.

    Parameters
    ----------
    base_url:
        Server base URL. Only http and https are accepted.
    username, password:
        HTTP basic-auth credentials.
    remote_directory:
        Collection path (relative to `base_url`) holding the archives.
    timeout:
        Optional per-request timeout in seconds. None means no timeout; the
        caller owns timeout policy.
    session:
        Optional pre-built `requests.Session` (injected by tests).
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        remote_directory: str = DEFAULT_REMOTE_DIRECTORY,
        *,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url
        self._remote_directory = remote_directory
        self._timeout = timeout
        self._session = session if session is not None else requests.Session()
        self._session.auth = (username, password)

    def describe(self) -> str:
        return redact(f"{self._base_url.rstrip('/')}/{self._remote_directory.strip('/')}")

    def check(self) -> None:
        validate_remote_url(self._base_url)
        validate_remote_directory(self._remote_directory)

    def upload(self, name: str, data: bytes) -> BackupDescriptor:
        self.check()
        url = self._object_url(validate_filename(name))

        # The collection may already exist; any MKCOL outcome is acceptable.
        try:
            response = self._request("MKCOL", self._collection_url())
            logger.debug("MKCOL %s -> %s", self.describe(), response.status_code)
        except TransportError:
            logger.debug("MKCOL failed for %s; continuing with upload", self.describe(), exc_info=True)

        response = self._request("PUT", url, data=data)
        self._raise_for_status(response, "upload", name)
        logger.info("Uploaded WebDAV backup %s (%d bytes)", redact(url), len(data))
        return BackupDescriptor.from_name(name, location=redact(url))

    def download(self, name: str) -> bytes:
        self.check()
        response = self._request("GET", self._object_url(validate_filename(name)))
        self._raise_for_status(response, "download", name)
        return response.content

    def list(self, pattern: str | None = None) -> list[BackupDescriptor]:
        self.check()
        response = self._request(
            "PROPFIND",
            self._collection_url(),
            data=_PROPFIND_BODY.encode("utf-8"),
            headers={"Depth": "1", "Content-Type": "application/xml; charset=utf-8"},
        )
        if response.status_code == 404:
            return []
        self._raise_for_status(response, "list", self._remote_directory)

        descriptors: list[BackupDescriptor] = []
        for name in _parse_multistatus_names(response.content):
            if not fnmatch.fnmatchcase(name, DEFAULT_LIST_PATTERN):
                continue
            # A caller pattern narrows the zip listing, it never widens it.
            if pattern is not None and not fnmatch.fnmatchcase(name, pattern):
                continue
            descriptors.append(
                BackupDescriptor.from_name(name, location=redact(self._object_url(name)))
            )
        return descriptors

    def delete(self, name: str) -> None:
        self.check()
        response = self._request("DELETE", self._object_url(validate_filename(name)))
        self._raise_for_status(response, "delete", name)
        logger.info("Deleted WebDAV backup %s", name)

    def close(self) -> None:
        self._session.close()

    def _collection_url(self) -> str:
        directory = validate_remote_directory(self._remote_directory)
        return f"{self._base_url.rstrip('/')}/{quote(directory)}/"

    def _object_url(self, name: str) -> str:
        return self._collection_url() + quote(name)

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            raise TransportError(f"WebDAV {method} failed for {redact(url)}: {exc}") from exc

    @staticmethod
    def _raise_for_status(response: requests.Response, action: str, name: str) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        if status == 404:
            raise NotFoundError(f"WebDAV {action} failed: {name!r} not found")
        if status in (401, 403):
            raise TransportError(f"WebDAV {action} failed: authentication rejected ({status})")
        raise TransportError(f"WebDAV {action} failed for {name!r}: HTTP {status}")


def _parse_multistatus_names(body: bytes) -> list[str]:
    """Return the base names of non-collection members in a PROPFIND response."""
    try:
        root = ElementTree.fromstring(body)
    except ElementTree.ParseError as exc:
        raise TransportError(f"WebDAV list failed: malformed PROPFIND response ({exc})") from exc

    names: list[str] = []
    for response in root.iter(f"{_DAV_NS}response"):
        href = response.findtext(f"{_DAV_NS}href")
        if not href:
            continue
        if response.find(f".//{_DAV_NS}resourcetype/{_DAV_NS}collection") is not None:
            continue
        path = unquote(urlsplit(href.strip()).path)
        name = posixpath.basename(path.rstrip("/"))
        if name:
            names.append(name)
    return names
