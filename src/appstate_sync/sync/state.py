"""Live application state container.

``AppStateContainer`` is the single owner of the in-memory snapshot.  Its
only mutation surface is ``apply_snapshot()``; everything else (record
upserts, removals, orchestrator results) is expressed as a partial
snapshot and routed through it, so listeners such as the debounced saver
see every change.

Key design choices:

* **Partial application** -- a list value replaces that collection, any
  other non-``None`` value replaces that scalar field; absent keys are
  left alone.  A partial snapshot therefore never wipes data it does not
  mention.
* **Copy in, copy out** -- snapshots are deep-copied on the way in and on
  the way out, so callers can never mutate live state behind the
  container's back.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping
from typing import Any

from appstate_sync.sync.records import (
    COLLECTION_NAMES,
    PRIMARY_COLLECTION,
    Record,
    RecordId,
    Snapshot,
    as_record_list,
    record_id,
    sort_schedulable,
    stamp_record,
)

logger = logging.getLogger(__name__)

Listener = Callable[[Snapshot], None]


class AppStateContainer:
    """Explicit container for the live application state.

    Args:
        initial: Optional starting snapshot.
    """

    def __init__(self, initial: Snapshot | None = None) -> None:
        self._state: Snapshot = {name: [] for name in COLLECTION_NAMES}
        self._listeners: list[Listener] = []
        self._version = 0
        if initial:
            self._apply(initial)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def version(self) -> int:
        """Number of applied changes since construction."""
        return self._version

    def get_snapshot(self) -> Snapshot:
        """Return a deep copy of the live state."""
        return copy.deepcopy(self._state)

    def get_collection(self, name: str) -> list[Record]:
        """Return a deep copy of one collection."""
        return copy.deepcopy(self._state.get(name) or [])

    # ------------------------------------------------------------------
    # Mutation surface
    # ------------------------------------------------------------------

    def apply_snapshot(self, snapshot: Mapping[str, Any] | None) -> bool:
        """Apply a (possibly partial) snapshot to the live state.

        Returns:
            ``True`` if anything was applied.
        """
        if not snapshot or not isinstance(snapshot, Mapping):
            return False
        changed = self._apply(snapshot)
        if changed:
            self._version += 1
            self._notify()
        return changed

    def upsert_record(
        self,
        collection: str,
        record: Record,
        *,
        stamp: bool = False,
        author: str | None = None,
    ) -> None:
        """Insert or replace one record by id.

        Args:
            collection: Target collection.
            record: The record to store.
            stamp: Mark the record as a fresh local write (sets
                ``lastModifiedAt`` to now) so it wins the next merge.
            author: Value for ``lastModifiedBy`` when stamping.
        """
        if stamp:
            record = stamp_record(record, author=author)
        rid = record_id(record)
        if rid is None:
            raise ValueError(f"Record in '{collection}' has no usable id")
        records = self.get_collection(collection)
        for i, item in enumerate(records):
            if record_id(item) == rid:
                records[i] = copy.deepcopy(record)
                break
        else:
            records.append(copy.deepcopy(record))
        self.apply_snapshot({collection: records})

    def remove_record(self, collection: str, rid: RecordId) -> bool:
        """Remove one record by id.  Returns ``False`` if it was absent."""
        records = self.get_collection(collection)
        kept = [item for item in records if record_id(item) != rid]
        if len(kept) == len(records):
            return False
        self.apply_snapshot({collection: kept})
        return True

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* for change notifications.

        Returns:
            A callable that unsubscribes the listener.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _apply(self, snapshot: Mapping[str, Any]) -> bool:
        changed = False
        for key, value in snapshot.items():
            if key in COLLECTION_NAMES:
                if not isinstance(value, list):
                    continue
                records = copy.deepcopy(as_record_list(value))
                if key == PRIMARY_COLLECTION:
                    records = sort_schedulable(records)
                self._state[key] = records
                changed = True
            elif value is not None:
                self._state[key] = copy.deepcopy(value)
                changed = True
        return changed

    def _notify(self) -> None:
        snapshot = self.get_snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("State listener %r failed", listener)
