"""Detect records whose resolution is genuinely ambiguous.

The auto-merge in :mod:`appstate_sync.sync.merger` settles every case a
timestamp can decide.  This module surfaces the residue:

===========================  ==================================
Both sides, same content     not reported
Both sides, different times  not reported (newer wins in merge)
Both sides, equal times,     ``CONFLICT`` (needs a human)
different content
One side only                not reported, or ``ONLY_FILE`` /
                             ``ONLY_CACHE`` when
                             ``include_one_sided`` is set
===========================  ==================================
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from appstate_sync.sync.models import DiffEntry, DiffStatus, Newer
from appstate_sync.sync.records import (
    COLLECTION_NAMES,
    RecordId,
    Snapshot,
    get_collection,
    index_by_id,
    record_label,
    record_time,
    records_equal,
)

logger = logging.getLogger(__name__)

DiffMap = dict[str, list[DiffEntry]]


def _union_ids(
    file_index: Mapping[RecordId, object],
    cache_index: Mapping[RecordId, object],
) -> list[RecordId]:
    ids = list(file_index)
    ids.extend(rid for rid in cache_index if rid not in file_index)
    return ids


def compute_diffs(
    file_snapshot: Snapshot | None,
    cache_snapshot: Snapshot | None,
    *,
    include_one_sided: bool = False,
    collections: Iterable[str] = COLLECTION_NAMES,
) -> DiffMap:
    """Compute the per-collection set of records needing review.

    Args:
        file_snapshot: The snapshot being brought in (local file or
            remote).  ``None`` is treated as empty.
        cache_snapshot: The local cache snapshot.  ``None`` is treated as
            empty.
        include_one_sided: Also report records present on one side only,
            for visibility.  These never need a decision.
        collections: Names of the collections to compare.

    Returns:
        Dict mapping every collection name to its (possibly empty) list of
        ``DiffEntry`` values, in file order then cache-only order.
    """
    results: DiffMap = {}

    for name in collections:
        file_index = index_by_id(get_collection(file_snapshot, name))
        cache_index = index_by_id(get_collection(cache_snapshot, name))
        entries: list[DiffEntry] = []

        for rid in _union_ids(file_index, cache_index):
            file_rec = file_index.get(rid)
            cache_rec = cache_index.get(rid)

            if file_rec is None or cache_rec is None:
                if include_one_sided:
                    entries.append(_one_sided_entry(rid, file_rec, cache_rec))
                continue

            file_time = record_time(file_rec)
            cache_time = record_time(cache_rec)
            if file_time != cache_time:
                continue
            if records_equal(file_rec, cache_rec):
                continue

            entries.append(
                DiffEntry(
                    id=rid,
                    label=record_label(file_rec),
                    status=DiffStatus.CONFLICT,
                    file_record=file_rec,
                    cache_record=cache_rec,
                    file_time=file_time,
                    cache_time=cache_time,
                    newer=Newer.EQUAL,
                )
            )

        results[name] = entries

    conflicts = count_diffs(results, conflicts_only=True)
    if conflicts:
        logger.info("Detected %d conflicting record(s)", conflicts)
    return results


def _one_sided_entry(
    rid: RecordId,
    file_rec: dict | None,
    cache_rec: dict | None,
) -> DiffEntry:
    if file_rec is not None:
        return DiffEntry(
            id=rid,
            label=record_label(file_rec),
            status=DiffStatus.ONLY_FILE,
            file_record=file_rec,
            file_time=record_time(file_rec),
            newer=Newer.FILE,
        )
    return DiffEntry(
        id=rid,
        label=record_label(cache_rec),
        status=DiffStatus.ONLY_CACHE,
        cache_record=cache_rec,
        cache_time=record_time(cache_rec),
        newer=Newer.CACHE,
    )


def count_diffs(
    diffs: Mapping[str, list[DiffEntry]], conflicts_only: bool = False
) -> int:
    """Count surfaced entries across all collections."""
    return sum(
        1
        for entries in diffs.values()
        for entry in entries
        if not conflicts_only or entry.is_conflict
    )


def has_conflicts(diffs: Mapping[str, list[DiffEntry]]) -> bool:
    """Return ``True`` when at least one true conflict is present."""
    return any(
        entry.is_conflict
        for entries in diffs.values()
        for entry in entries
    )
