"""Human-in-the-loop decision protocol for ambiguous records.

A ``DecisionSession`` holds the diff map produced by
:func:`~appstate_sync.sync.differ.compute_diffs` together with the two
snapshots it came from.  The session keeps one selected side per diffed
record, lets the presentation layer flip choices, and finally turns the
choices into a *finalization patch* that corrects the auto-merge result.

The session does no I/O and never touches live state: the orchestrator
applies the resolved snapshot.

Batch strategies (``newest``, ``file``, ``cache``) are provided for
unattended use through ``create_strategy()``.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any, Callable

from appstate_sync.sync.errors import DecisionCancelledError
from appstate_sync.sync.merger import merge_snapshots
from appstate_sync.sync.models import (
    DiffEntry,
    DiffStatus,
    FinalizationPatch,
    Newer,
    Selection,
    Side,
)
from appstate_sync.sync.records import (
    PRIMARY_COLLECTION,
    Record,
    RecordId,
    Snapshot,
    get_collection,
    index_by_id,
    record_id,
    sort_schedulable,
)

logger = logging.getLogger(__name__)

Selections = dict[str, list[Selection]]


def default_side(entry: DiffEntry) -> Side:
    """Side pre-selected for *entry*.

    The newer side when timestamps tell them apart, the file side for
    records only the file has, otherwise the cache side.
    """
    if entry.newer == Newer.FILE or entry.status == DiffStatus.ONLY_FILE:
        return Side.FILE
    return Side.CACHE


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class DecisionSession:
    """Per-record side selection over one diff map.

    Args:
        diffs: Diff map from ``compute_diffs(file_snapshot, cache_snapshot)``.
        file_snapshot: The snapshot being brought in (file or remote).
        cache_snapshot: The local cache snapshot.
    """

    def __init__(
        self,
        diffs: Mapping[str, list[DiffEntry]],
        file_snapshot: Snapshot | None,
        cache_snapshot: Snapshot | None,
    ) -> None:
        self.diffs: dict[str, list[DiffEntry]] = {
            name: list(entries) for name, entries in diffs.items()
        }
        self.file_snapshot: Snapshot = copy.deepcopy(file_snapshot or {})
        self.cache_snapshot: Snapshot = copy.deepcopy(cache_snapshot or {})
        self._file_selected: dict[str, set[RecordId]] = {}
        self._cancelled = False
        self.select_all_newest()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def total(self) -> int:
        """Number of diffed records across all collections."""
        return sum(len(entries) for entries in self.diffs.values())

    def entries(self) -> list[tuple[str, DiffEntry]]:
        """All diffed records as ``(collection, entry)`` pairs."""
        return [
            (name, entry)
            for name, entries in self.diffs.items()
            for entry in entries
        ]

    def side_for(self, collection: str, rid: RecordId) -> Side:
        """Currently selected side for one diffed record."""
        self._require_entry(collection, rid)
        if rid in self._file_selected.get(collection, set()):
            return Side.FILE
        return Side.CACHE

    def selections(self) -> Selections:
        """Current choices in the decision surface contract shape."""
        result: Selections = {}
        for name, entries in self.diffs.items():
            chosen = self._file_selected.get(name, set())
            result[name] = [
                Selection(
                    id=entry.id,
                    side=Side.FILE if entry.id in chosen else Side.CACHE,
                )
                for entry in entries
            ]
        return result

    # ------------------------------------------------------------------
    # Mutations (no I/O)
    # ------------------------------------------------------------------

    def toggle(self, collection: str, rid: RecordId) -> Side:
        """Flip the selected side for one record and return the new side."""
        self._check_active()
        self._require_entry(collection, rid)
        chosen = self._file_selected.setdefault(collection, set())
        if rid in chosen:
            chosen.discard(rid)
            return Side.CACHE
        chosen.add(rid)
        return Side.FILE

    def select(self, collection: str, rid: RecordId, side: Side | str) -> None:
        """Select *side* for one record."""
        self._check_active()
        self._require_entry(collection, rid)
        chosen = self._file_selected.setdefault(collection, set())
        if Side(side) == Side.FILE:
            chosen.add(rid)
        else:
            chosen.discard(rid)

    def select_all(self, side: Side | str) -> None:
        """Select the same side for every diffed record."""
        self._check_active()
        for name, entry in self.entries():
            self.select(name, entry.id, side)

    def select_all_newest(self) -> None:
        """Reset every selection to the default rule."""
        self._check_active()
        self._file_selected = {
            name: {
                entry.id
                for entry in entries
                if default_side(entry) == Side.FILE
            }
            for name, entries in self.diffs.items()
        }

    def cancel(self) -> None:
        """Discard the session; the auto-merge result stays in effect."""
        self._cancelled = True
        self._file_selected = {}
        logger.info("Decision session cancelled (%d records)", self.total)

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def finalize(
        self, selections: Mapping[str, list[Selection]] | None = None
    ) -> FinalizationPatch:
        """Build the finalization patch.

        Args:
            selections: Confirmed choices; defaults to the session's current
                selections.

        Returns:
            A ``FinalizationPatch``; ``patch.records(name)`` lists the
            chosen record of every diffed id followed by every file-side
            record whose id was not diffed.
        """
        self._check_active()
        if selections is None:
            selections = self.selections()
        return build_finalization_patch(
            selections, self.file_snapshot, self.cache_snapshot
        )

    def resolve(
        self, selections: Mapping[str, list[Selection]] | None = None
    ) -> Snapshot:
        """Return the final state: auto-merge corrected by the patch."""
        patch = self.finalize(selections)
        merged = merge_snapshots(self.cache_snapshot, self.file_snapshot)
        return apply_finalization(merged, patch)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_active(self) -> None:
        if self._cancelled:
            raise DecisionCancelledError("Decision session was cancelled")

    def _require_entry(self, collection: str, rid: RecordId) -> None:
        for entry in self.diffs.get(collection, []):
            if entry.id == rid:
                return
        raise KeyError(f"No diffed record {rid!r} in '{collection}'")


# ---------------------------------------------------------------------------
# Patch construction and application
# ---------------------------------------------------------------------------


def build_finalization_patch(
    selections: Mapping[str, list[Selection]],
    file_snapshot: Snapshot | None,
    cache_snapshot: Snapshot | None,
) -> FinalizationPatch:
    """Assemble the patch for confirmed *selections*.

    Args:
        selections: Confirmed side per diffed id, per collection.
        file_snapshot: The file-side snapshot the diff came from.
        cache_snapshot: The cache-side snapshot the diff came from.

    Returns:
        The finalization patch.  A selected side that lacks the record
        contributes nothing and the id is listed under ``dropped``.
    """
    chosen: dict[str, list[Record]] = {}
    preserved: dict[str, list[Record]] = {}
    dropped: dict[str, list[RecordId]] = {}

    for name, picks in selections.items():
        file_index = index_by_id(get_collection(file_snapshot, name))
        cache_index = index_by_id(get_collection(cache_snapshot, name))

        diffed: set[RecordId] = set()
        chosen[name] = []
        for selection in picks:
            diffed.add(selection.id)
            source = file_index if selection.side == Side.FILE else cache_index
            item = source.get(selection.id)
            if item is None:
                dropped.setdefault(name, []).append(selection.id)
            else:
                chosen[name].append(copy.deepcopy(item))

        preserved[name] = [
            copy.deepcopy(item)
            for item in get_collection(file_snapshot, name)
            if record_id(item) not in diffed
        ]

    return FinalizationPatch(
        chosen=chosen, preserved=preserved, dropped=dropped
    )


def apply_finalization(
    merged: Snapshot, patch: FinalizationPatch
) -> Snapshot:
    """Overlay a finalization patch on an auto-merge result.

    Diffed ids take the chosen record in place (or are removed when the
    chosen side has none).  Preserved records are only inserted when their
    id is missing, so ids outside the conflict window keep the value the
    auto-merge gave them.
    """
    result = copy.deepcopy(merged)
    for name in patch.collections():
        current = [
            item
            for item in (result.get(name) or [])
            if record_id(item) is not None
        ]
        position = {record_id(item): i for i, item in enumerate(current)}

        for item in patch.chosen.get(name, []):
            rid = record_id(item)
            if rid in position:
                current[position[rid]] = copy.deepcopy(item)
            else:
                position[rid] = len(current)
                current.append(copy.deepcopy(item))

        for item in patch.preserved.get(name, []):
            rid = record_id(item)
            if rid not in position:
                position[rid] = len(current)
                current.append(copy.deepcopy(item))

        gone = set(patch.dropped.get(name, []))
        if gone:
            current = [i for i in current if record_id(i) not in gone]

        if name == PRIMARY_COLLECTION:
            current = sort_schedulable(current)
        result[name] = current
    return result


# ---------------------------------------------------------------------------
# Selection parsing and batch strategies
# ---------------------------------------------------------------------------


def parse_selections(payload: Any) -> Selections:
    """Parse the JSON decision surface contract.

    Args:
        payload: ``{collection: [{"id": ..., "side": "file"|"cache"}]}``.

    Returns:
        Parsed selections.

    Raises:
        ValueError: If the payload does not have the expected shape.
    """
    if not isinstance(payload, Mapping):
        raise ValueError("Selections must be an object keyed by collection")
    result: Selections = {}
    for name, items in payload.items():
        if not isinstance(items, list):
            raise ValueError(
                f"Selections for '{name}' must be a list, got {type(items).__name__}"
            )
        result[str(name)] = [Selection.model_validate(i) for i in items]
    return result


def _newest(session: DecisionSession) -> None:
    session.select_all_newest()


def _prefer_file(session: DecisionSession) -> None:
    session.select_all(Side.FILE)


def _prefer_cache(session: DecisionSession) -> None:
    session.select_all(Side.CACHE)


_STRATEGY_MAP: dict[str, Callable[[DecisionSession], None]] = {
    "newest": _newest,
    "file": _prefer_file,
    "cache": _prefer_cache,
}


def create_strategy(name: str) -> Callable[[DecisionSession], None]:
    """Return a batch selection strategy for unattended resolution.

    Args:
        name: One of ``"newest"``, ``"file"``, ``"cache"``.

    Raises:
        ValueError: If the strategy name is not recognised.
    """
    strategy = _STRATEGY_MAP.get(name)
    if strategy is None:
        raise ValueError(
            f"Unknown decision strategy: '{name}'. Valid strategies: {sorted(_STRATEGY_MAP)}"
        )
    return strategy
