"""Timestamp-driven snapshot merge.

Folds an *incoming* snapshot into a *base* snapshot, collection by
collection, record by record ("update, never overwrite"):

* A record present on one side only is always kept.
* A record present on both sides is replaced by the incoming version only
  when the incoming ``lastModifiedAt`` is **strictly** greater.  Equal or
  older timestamps keep the base version, so a tie never silently
  promotes the incoming side; ties with differing content are what the
  diff detector reports for a human decision.
* Scalar top-level fields are replaced wholesale by the incoming value.

Merging is pure: inputs are never mutated and the result is a deep copy.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable
from typing import Any

from appstate_sync.sync.records import (
    COLLECTION_NAMES,
    PRIMARY_COLLECTION,
    Record,
    RecordId,
    Snapshot,
    as_record_list,
    record_id,
    record_time,
    sort_schedulable,
)

logger = logging.getLogger(__name__)


def merge_lists(base: Any, incoming: Any) -> list[Record]:
    """Merge two record lists by id and ``lastModifiedAt``.

    Args:
        base: Records of the base side (usually the local cache).
        incoming: Records of the incoming side (file or remote).

    Returns:
        Merged list: base order first, then records new on the incoming
        side in incoming order.  Replaced records keep their base slot.
    """
    merged: dict[RecordId, Record] = {}

    for item in as_record_list(base):
        rid = record_id(item)
        if rid not in merged:
            merged[rid] = item

    for item in as_record_list(incoming):
        rid = record_id(item)
        existing = merged.get(rid)
        if existing is None:
            merged[rid] = item
        elif record_time(item) > record_time(existing):
            merged[rid] = item

    return [copy.deepcopy(item) for item in merged.values()]


def merge_snapshots(
    base: Snapshot | None,
    incoming: Snapshot | None,
    collections: Iterable[str] = COLLECTION_NAMES,
) -> Snapshot:
    """Merge two full-state snapshots.

    Args:
        base: The snapshot merged into (usually the cache).  ``None`` or a
            non-mapping is treated as absent.
        incoming: The snapshot merged from.  ``None`` or a non-mapping is
            treated as absent.
        collections: Names of the record collections to merge per record.

    Returns:
        A new snapshot.  When one side is absent a deep copy of the other
        is returned (``{}`` when both are absent).
    """
    if not isinstance(base, dict):
        base = None
    if not isinstance(incoming, dict):
        incoming = None

    if base is None and incoming is None:
        return {}
    if base is None:
        return copy.deepcopy(incoming)  # type: ignore[arg-type]
    if incoming is None:
        return copy.deepcopy(base)

    result: Snapshot = copy.deepcopy({**base, **incoming})
    for name in collections:
        records = merge_lists(base.get(name), incoming.get(name))
        if name == PRIMARY_COLLECTION:
            records = sort_schedulable(records)
        result[name] = records

    logger.debug(
        "Merged snapshots: %s",
        ", ".join(f"{name}={len(result[name])}" for name in collections),
    )
    return result
