"""Record and collection model for mergeable snapshots.

A *record* is any JSON object carrying a stable ``id`` and an optional
``lastModifiedAt`` logical write time.  Everything else in a record is an
opaque payload: the engine only reads ``id``, ``lastModifiedAt`` and, for
presentation, a human-readable label.

A *snapshot* maps a closed set of collection names to lists of records,
plus scalar fields (settings blobs) that are merged by whole-value
replacement.

Key design choices:

* Records stay plain ``dict`` objects so snapshots round-trip through JSON
  untouched; the helpers below are the only place record fields are read.
* Content equality is **canonical serialization** equality (sorted keys,
  compact separators), so two records that differ only in key order are
  the same content.
* Malformed input (non-mapping records, missing ids, non-list
  collections) is skipped, never raised.
"""

from __future__ import annotations

import copy
import json
import time
from collections.abc import Iterable, Mapping
from typing import Any

Record = dict[str, Any]
Snapshot = dict[str, Any]
RecordId = str | int

ID_FIELD = "id"
TIMESTAMP_FIELD = "lastModifiedAt"
AUTHOR_FIELD = "lastModifiedBy"
LAST_SAVED_FIELD = "lastSaved"

COLLECTION_NAMES: tuple[str, ...] = (
    "projects",
    "users",
    "auditLogs",
    "employees",
    "suppliers",
    "subcontractors",
    "purchaseOrders",
    "stockAlertItems",
    "tools",
    "assets",
    "vehicles",
)

PRIMARY_COLLECTION = "projects"

COLLECTION_LABELS: dict[str, str] = {
    "projects": "Projects",
    "users": "User accounts",
    "auditLogs": "Audit log",
    "employees": "Employees",
    "suppliers": "Suppliers",
    "subcontractors": "Subcontractors",
    "purchaseOrders": "Purchase orders",
    "stockAlertItems": "Stock alerts",
    "tools": "Tools",
    "assets": "Assets",
    "vehicles": "Vehicles",
}

_LABEL_FIELDS = ("name", "plateNumber")


# ---------------------------------------------------------------------------
# Field accessors
# ---------------------------------------------------------------------------


def record_id(record: Any) -> RecordId | None:
    """Return the record id, or ``None`` when the record is malformed."""
    if not isinstance(record, Mapping):
        return None
    value = record.get(ID_FIELD)
    if value is None or value == "" or isinstance(value, bool):
        return None
    if not isinstance(value, (str, int)):
        return None
    return value


def record_time(record: Any) -> float:
    """Return ``lastModifiedAt`` as a number; absent or invalid is 0."""
    if not isinstance(record, Mapping):
        return 0
    value = record.get(TIMESTAMP_FIELD)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


def record_label(record: Any) -> str:
    """Human-readable label: ``name``, then ``plateNumber``, then the id."""
    if isinstance(record, Mapping):
        for field in _LABEL_FIELDS:
            value = record.get(field)
            if value:
                return str(value)
    return str(record_id(record))


def collection_label(name: str) -> str:
    """Display label for a collection name."""
    return COLLECTION_LABELS.get(name, name)


# ---------------------------------------------------------------------------
# Canonical serialization
# ---------------------------------------------------------------------------


def canonical_json(record: Any) -> str:
    """Serialize *record* with stable key ordering for content comparison."""
    return json.dumps(
        record,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def records_equal(left: Any, right: Any) -> bool:
    """Return ``True`` when both records serialize identically."""
    return canonical_json(left) == canonical_json(right)


# ---------------------------------------------------------------------------
# Collection helpers
# ---------------------------------------------------------------------------


def as_record_list(value: Any) -> list[Record]:
    """Return the well-formed records of a collection value.

    Non-list values yield ``[]``; entries without a usable id are dropped.
    """
    if not isinstance(value, list):
        return []
    return [item for item in value if record_id(item) is not None]


def get_collection(snapshot: Any, name: str) -> list[Record]:
    """Return the records of collection *name* in *snapshot* (never raises)."""
    if not isinstance(snapshot, Mapping):
        return []
    return as_record_list(snapshot.get(name))


def index_by_id(records: Iterable[Record]) -> dict[RecordId, Record]:
    """Index records by id; the first occurrence of a duplicated id wins."""
    index: dict[RecordId, Record] = {}
    for item in records:
        rid = record_id(item)
        if rid is not None and rid not in index:
            index[rid] = item
    return index


def stamp_record(
    record: Mapping[str, Any],
    now_ms: int | None = None,
    author: str | None = None,
) -> Record:
    """Return a copy of *record* stamped as a fresh local write.

    Args:
        record: The edited record.
        now_ms: Write time in epoch milliseconds (defaults to now).
        author: Optional value for ``lastModifiedBy``.
    """
    stamped = copy.deepcopy(dict(record))
    stamped[TIMESTAMP_FIELD] = (
        now_ms if now_ms is not None else int(time.time() * 1000)
    )
    if author is not None:
        stamped[AUTHOR_FIELD] = author
    return stamped


def schedule_key(record: Mapping[str, Any]) -> str:
    """Sort key for schedulable records: appointment, then report date."""
    value = (
        record.get("appointmentDate")
        or record.get("reportDate")
        or "9999-12-31"
    )
    return str(value)


def sort_schedulable(records: Iterable[Record]) -> list[Record]:
    """Stable ascending sort by scheduling date; undated records last."""
    return sorted(records, key=schedule_key)
