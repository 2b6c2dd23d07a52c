"""Capability interfaces for the three snapshot sources.

The orchestrator never touches a filesystem or the network directly; it
talks to three injected capabilities:

- ``LocalStore``  -- the local cache (always readable and writable).
- ``FileStore``   -- ``db.json`` inside a user-granted directory; every read
  and write re-checks permission, since a grant can be revoked at any time.
- ``RemoteSource`` -- the read-only remote snapshot.

Concrete implementations:

- ``JsonCacheStore``: one JSON document holding the snapshot under
  ``APP_STATE_KEY`` and the last granted directory under ``DIRECTORY_KEY``.
- ``DirectoryFileStore``: ``<directory>/db.json``, permission checked with
  ``os.access``.
- ``HttpRemoteSource``: plain ``requests`` GET with cache-bypassing headers.

Failure policy: reads of local sources return ``None`` instead of raising
when the document is missing, unreadable or malformed; writes return
``False``.  Only the remote source raises, so the orchestrator can tell a
transport failure from an empty remote.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import requests

from appstate_sync.file_handler import (
    read_json_document,
    write_json_document,
)
from appstate_sync.sync.errors import (
    MalformedSnapshotError,
    TransportError,
)
from appstate_sync.sync.records import LAST_SAVED_FIELD, Snapshot

logger = logging.getLogger(__name__)

APP_STATE_KEY = "app_full_state"
DIRECTORY_KEY = "current_dir"
DB_FILENAME = "db.json"

_NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, max-age=0",
    "Pragma": "no-cache",
    "Accept": "application/json",
}


def utc_timestamp() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def with_last_saved(snapshot: Snapshot) -> Snapshot:
    """Return a shallow copy of *snapshot* stamped with ``lastSaved``."""
    stamped = dict(snapshot)
    stamped[LAST_SAVED_FIELD] = utc_timestamp()
    return stamped


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class LocalStore(Protocol):
    """Local cache of the full snapshot and of the directory grant."""

    def read(self) -> Snapshot | None:
        """Return the cached snapshot, or ``None`` if there is none."""
        ...  # pragma: no cover

    def write(self, snapshot: Snapshot) -> bool:
        """Overwrite the cached snapshot wholesale."""
        ...  # pragma: no cover

    def read_directory(self) -> Path | None:
        """Return the last granted directory, if any."""
        ...  # pragma: no cover

    def save_directory(self, directory: Path) -> None:
        """Remember a granted directory across sessions."""
        ...  # pragma: no cover

    def clear_directory(self) -> None:
        """Forget the granted directory."""
        ...  # pragma: no cover


class FileStore(Protocol):
    """Snapshot document inside a user-granted directory."""

    directory: Path

    def can_read(self) -> bool:
        ...  # pragma: no cover

    def can_write(self) -> bool:
        ...  # pragma: no cover

    def request_permission(self) -> bool:
        """Ask for read/write access; ``True`` when granted."""
        ...  # pragma: no cover

    def read(self) -> Snapshot | None:
        """Return the file snapshot, or ``None`` if unavailable."""
        ...  # pragma: no cover

    def write(self, snapshot: Snapshot) -> bool:
        """Write the snapshot; ``False`` when denied or failed."""
        ...  # pragma: no cover


class RemoteSource(Protocol):
    """Read-only remote snapshot."""

    def fetch(self) -> Snapshot:
        """Fetch the remote snapshot.

        Raises:
            TransportError: On network failure or non-OK status.
            MalformedSnapshotError: On an unparsable body.
        """
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Local cache
# ---------------------------------------------------------------------------


class JsonCacheStore:
    """Local cache kept in a single keyed JSON document.

    Args:
        path: Location of the cache document.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def read(self) -> Snapshot | None:
        value = self._load().get(APP_STATE_KEY)
        if value is None:
            return None
        if not isinstance(value, dict):
            logger.warning(
                "Cached state in %s is not an object -- ignoring",
                self.path,
            )
            return None
        return value

    def write(self, snapshot: Snapshot) -> bool:
        return self._store(APP_STATE_KEY, with_last_saved(snapshot))

    def read_directory(self) -> Path | None:
        value = self._load().get(DIRECTORY_KEY)
        if not value or not isinstance(value, str):
            return None
        return Path(value)

    def save_directory(self, directory: Path) -> None:
        self._store(DIRECTORY_KEY, str(Path(directory).resolve()))

    def clear_directory(self) -> None:
        document = self._load()
        if document.pop(DIRECTORY_KEY, None) is not None:
            self._dump(document)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            document = read_json_document(self.path)
        except (OSError, ValueError) as exc:
            logger.warning("Cache %s is unreadable: %s", self.path, exc)
            return {}
        if not isinstance(document, dict):
            logger.warning("Cache %s has a non-object root", self.path)
            return {}
        return document

    def _store(self, key: str, value: Any) -> bool:
        document = self._load()
        document[key] = value
        return self._dump(document)

    def _dump(self, document: dict[str, Any]) -> bool:
        try:
            write_json_document(self.path, document, indent=None)
        except OSError as exc:
            logger.error("Failed to write cache %s: %s", self.path, exc)
            return False
        return True


# ---------------------------------------------------------------------------
# Local snapshot file
# ---------------------------------------------------------------------------


class DirectoryFileStore:
    """``db.json`` inside a user-granted directory.

    Args:
        directory: The granted directory.
        filename: Name of the snapshot document.
    """

    def __init__(self, directory: Path, filename: str = DB_FILENAME) -> None:
        self.directory = Path(directory)
        self.filename = filename

    @property
    def path(self) -> Path:
        return self.directory / self.filename

    def can_read(self) -> bool:
        return self.directory.is_dir() and os.access(
            self.directory, os.R_OK | os.X_OK
        )

    def can_write(self) -> bool:
        if not self.can_read() or not os.access(self.directory, os.W_OK):
            return False
        return not self.path.exists() or os.access(self.path, os.W_OK)

    def request_permission(self) -> bool:
        granted = self.can_read() and self.can_write()
        if not granted:
            logger.info(
                "Read/write permission not granted for %s", self.directory
            )
        return granted

    def read(self) -> Snapshot | None:
        if not self.can_read():
            logger.info("No read permission for %s", self.directory)
            return None
        if not self.path.exists():
            return None
        try:
            document = read_json_document(self.path)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable %s: %s", self.path, exc)
            return None
        if not isinstance(document, dict):
            logger.warning("Ignoring %s: root is not an object", self.path)
            return None
        return document

    def write(self, snapshot: Snapshot) -> bool:
        if not self.can_write():
            logger.info("No write permission for %s", self.directory)
            return False
        try:
            write_json_document(self.path, with_last_saved(snapshot))
        except OSError as exc:
            logger.error("Failed to save %s: %s", self.path, exc)
            return False
        return True


# ---------------------------------------------------------------------------
# Remote snapshot
# ---------------------------------------------------------------------------


class HttpRemoteSource:
    """Remote snapshot fetched with a plain HTTP GET.

    Args:
        url: Snapshot URL.
        timeout: Read timeout in seconds (connect timeout is capped at 10).
        session: Optional ``requests.Session`` (one is created if omitted).
    """

    def __init__(
        self,
        url: str,
        timeout: float = 15.0,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self) -> Snapshot:
        try:
            response = self.session.get(
                self.url,
                headers=_NO_CACHE_HEADERS,
                timeout=(min(10.0, self.timeout), self.timeout),
            )
        except requests.RequestException as exc:
            raise TransportError(
                f"Remote fetch failed for {self.url}: {exc}"
            ) from exc

        if not response.ok:
            raise TransportError(
                f"Remote fetch returned HTTP {response.status_code} for {self.url}",
                status_code=response.status_code,
            )

        try:
            document = response.json()
        except ValueError as exc:
            raise MalformedSnapshotError(
                f"Remote snapshot is not valid JSON: {exc}"
            ) from exc
        if not isinstance(document, dict):
            raise MalformedSnapshotError(
                "Remote snapshot root is not an object"
            )
        return document
