"""Shared pytest fixtures for appstate-sync tests."""

from __future__ import annotations

import copy
from pathlib import Path

import pytest

from appstate_sync.sync.errors import TransportError
from appstate_sync.sync.orchestrator import SyncOrchestrator
from appstate_sync.sync.records import COLLECTION_NAMES
from appstate_sync.sync.state import AppStateContainer


def make_snapshot(**collections) -> dict:
    """Build a snapshot with every known collection present."""
    snapshot = {name: [] for name in COLLECTION_NAMES}
    snapshot.update(copy.deepcopy(collections))
    return snapshot


# ---------------------------------------------------------------------------
# In-memory store fakes
# ---------------------------------------------------------------------------


class FakeCache:
    """In-memory ``LocalStore``."""

    def __init__(self, snapshot=None, directory=None):
        self.snapshot = copy.deepcopy(snapshot)
        self.directory = directory
        self.writes: list[dict] = []

    def read(self):
        return copy.deepcopy(self.snapshot)

    def write(self, snapshot):
        self.snapshot = copy.deepcopy(snapshot)
        self.writes.append(copy.deepcopy(snapshot))
        return True

    def read_directory(self):
        return self.directory

    def save_directory(self, directory):
        self.directory = directory

    def clear_directory(self):
        self.directory = None


class FakeFileStore:
    """In-memory ``FileStore`` with switchable permissions."""

    def __init__(self, directory, snapshot=None, readable=True, writable=True):
        self.directory = Path(directory)
        self.snapshot = copy.deepcopy(snapshot)
        self.readable = readable
        self.writable = writable
        self.writes: list[dict] = []

    def can_read(self):
        return self.readable

    def can_write(self):
        return self.writable

    def request_permission(self):
        return self.readable and self.writable

    def read(self):
        if not self.readable:
            return None
        return copy.deepcopy(self.snapshot)

    def write(self, snapshot):
        if not self.writable:
            return False
        self.snapshot = copy.deepcopy(snapshot)
        self.writes.append(copy.deepcopy(snapshot))
        return True


class FakeRemote:
    """``RemoteSource`` returning a fixed snapshot or raising."""

    def __init__(self, snapshot=None, error: Exception | None = None):
        self.snapshot = snapshot
        self.error = error
        self.calls = 0

    def fetch(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.snapshot)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def projects_base():
    """Base-side projects with one record at t=100."""
    return [{"id": "p1", "name": "Alpha", "v": "a", "lastModifiedAt": 100}]


@pytest.fixture
def fake_cache():
    return FakeCache()


@pytest.fixture
def fake_file_store(tmp_path):
    return FakeFileStore(tmp_path)


@pytest.fixture
def failing_remote():
    return FakeRemote(error=TransportError("connection refused"))


@pytest.fixture
def make_orchestrator():
    """Factory building an orchestrator over in-memory fakes.

    The file store factory always returns the given ``file_store``.
    """

    def _make(
        cache=None,
        file_store=None,
        remote=None,
        picker=None,
        state=None,
        **kwargs,
    ):
        cache = cache if cache is not None else FakeCache()
        kwargs.setdefault("save_debounce", 0)
        return SyncOrchestrator(
            state or AppStateContainer(),
            cache,
            remote,
            file_store_factory=lambda directory: file_store,
            directory_picker=picker,
            **kwargs,
        )

    return _make
