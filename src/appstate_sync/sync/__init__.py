"""Snapshot sync and conflict-resolution engine.

Public API for reconciling one application state held by three
uncoordinated sources: the local cache, a ``db.json`` file in a
user-granted directory, and a read-only remote snapshot.

Architecture
------------
Reconciliation is **timestamp-driven auto-merge plus a human decision for
the residue**.  The merge engine keeps the strictly newer revision of
every record and never drops a one-sided record; the diff detector
surfaces exactly the records whose timestamps tie but whose content
differs, which no machine rule can settle.  Those go through a decision
session whose finalization patch corrects the auto-merge result.

Modules:

- ``records``      -- record/snapshot helpers and the collection catalogue.
- ``merger``       -- ``merge_snapshots()``: pure timestamp merge.
- ``differ``       -- ``compute_diffs()``: per-collection conflict set.
- ``decision``     -- ``DecisionSession``: side selection and finalization.
- ``state``        -- ``AppStateContainer``: owner of the live state.
- ``stores``       -- cache, directory file and remote source capabilities.
- ``saver``        -- ``DebouncedSaver``: coalesced persistence.
- ``orchestrator`` -- ``SyncOrchestrator``: startup, remote and directory
  flows.
- ``models``       -- ``DiffEntry``, ``Selection``, ``SyncOutcome``: data
  contracts.
- ``reporter``     -- Human-readable and JSON formatting.

Usage example
-------------
::

    from pathlib import Path
    from appstate_sync.sync import (
        AppStateContainer,
        DirectoryFileStore,
        HttpRemoteSource,
        JsonCacheStore,
        SyncOrchestrator,
    )

    orchestrator = SyncOrchestrator(
        AppStateContainer(),
        JsonCacheStore(Path("~/.cache/appstate_sync/cache.json").expanduser()),
        HttpRemoteSource("https://example.com/db.json"),
        file_store_factory=DirectoryFileStore,
    )

    await orchestrator.startup()
    users = await orchestrator.remote_sync()
    if orchestrator.pending_decision:
        await orchestrator.confirm_decision()
    await orchestrator.close()
"""

from .decision import DecisionSession, create_strategy, parse_selections
from .differ import compute_diffs, count_diffs, has_conflicts
from .errors import (
    DecisionCancelledError,
    DirectoryAccessError,
    MalformedSnapshotError,
    NoPendingDecisionError,
    PermissionDeniedError,
    SyncError,
    TransportError,
)
from .merger import merge_lists, merge_snapshots
from .models import (
    DiffEntry,
    DiffStatus,
    FinalizationPatch,
    Selection,
    Side,
    SyncFlow,
    SyncOutcome,
)
from .orchestrator import PendingDecision, SyncOrchestrator
from .reporter import (
    diffs_to_json,
    format_conflict_diff,
    format_diff_summary,
    format_outcome,
    outcome_to_json,
)
from .state import AppStateContainer
from .stores import DirectoryFileStore, HttpRemoteSource, JsonCacheStore

__all__ = [
    "AppStateContainer",
    "DecisionCancelledError",
    "DecisionSession",
    "DiffEntry",
    "DiffStatus",
    "DirectoryAccessError",
    "DirectoryFileStore",
    "FinalizationPatch",
    "HttpRemoteSource",
    "JsonCacheStore",
    "MalformedSnapshotError",
    "NoPendingDecisionError",
    "PendingDecision",
    "PermissionDeniedError",
    "Selection",
    "Side",
    "SyncError",
    "SyncFlow",
    "SyncOrchestrator",
    "SyncOutcome",
    "TransportError",
    "compute_diffs",
    "count_diffs",
    "create_strategy",
    "diffs_to_json",
    "format_conflict_diff",
    "format_diff_summary",
    "format_outcome",
    "has_conflicts",
    "merge_lists",
    "merge_snapshots",
    "outcome_to_json",
    "parse_selections",
]
