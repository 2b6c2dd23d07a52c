"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync results:

- ``format_diff_summary`` -- per-collection listing of surfaced records.
- ``format_conflict_diff`` -- unified diff of one conflict for review.
- ``summarize_record_change`` / ``describe_record_change`` -- which
  fields differ between two revisions of a record.
- ``format_outcome`` -- summary of one orchestrator flow.
- ``diffs_to_json`` / ``outcome_to_json`` -- structured dicts for JSON
  output, in the decision surface contract shape.
"""

from __future__ import annotations

import difflib
import json
from collections.abc import Mapping
from typing import Any

from .models import DiffEntry, DiffStatus, SyncOutcome
from .records import (
    AUTHOR_FIELD,
    TIMESTAMP_FIELD,
    canonical_json,
    collection_label,
)

_IGNORED_FIELDS = frozenset({TIMESTAMP_FIELD, AUTHOR_FIELD})

_STATUS_TAGS = {
    DiffStatus.CONFLICT: "CONFLICT",
    DiffStatus.ONLY_FILE: "file only",
    DiffStatus.ONLY_CACHE: "cache only",
}


# ------------------------------------------------------------------
# Record change summary
# ------------------------------------------------------------------


def summarize_record_change(
    old: Mapping[str, Any] | None, new: Mapping[str, Any] | None
) -> list[str]:
    """List the top-level fields that differ between two revisions.

    Bookkeeping fields (``lastModifiedAt``, ``lastModifiedBy``) are
    ignored.  A changed ``status`` is reported with both values.

    Args:
        old: Previous revision of the record.
        new: New revision of the record.

    Returns:
        Sorted list of change descriptions; empty if nothing differs.
    """
    old = old or {}
    new = new or {}
    changes: list[str] = []
    for key in sorted(set(old) | set(new)):
        if key in _IGNORED_FIELDS:
            continue
        if canonical_json(old.get(key)) == canonical_json(new.get(key)):
            continue
        if key == "status":
            changes.append(
                f"status ({old.get(key)} -> {new.get(key)})"
            )
        elif key not in old:
            changes.append(f"{key} (added)")
        elif key not in new:
            changes.append(f"{key} (removed)")
        else:
            changes.append(key)
    return changes


def describe_record_change(
    old: Mapping[str, Any] | None, new: Mapping[str, Any] | None
) -> str:
    """One-line description of a record change."""
    changes = summarize_record_change(old, new)
    return ", ".join(changes) if changes else "content updated"


# ------------------------------------------------------------------
# Human-readable output
# ------------------------------------------------------------------


def format_diff_summary(diffs: Mapping[str, list[DiffEntry]]) -> str:
    """Format a diff map as a per-collection listing.

    Collections without entries are omitted.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    total = 0
    conflicts = 0
    for name, entries in diffs.items():
        if not entries:
            continue
        lines.append(f"{collection_label(name)} ({name}): {len(entries)}")
        for entry in entries:
            total += 1
            if entry.is_conflict:
                conflicts += 1
                detail = describe_record_change(
                    entry.cache_record, entry.file_record
                )
                lines.append(
                    f"  [{_STATUS_TAGS[entry.status]}] {entry.label} "
                    f"(id={entry.id}): {detail}"
                )
            else:
                lines.append(
                    f"  [{_STATUS_TAGS[entry.status]}] {entry.label} "
                    f"(id={entry.id})"
                )

    if not total:
        return "No differences requiring a decision."
    header = f"{total} record(s) surfaced, {conflicts} conflict(s)"
    return "\n".join([header, ""] + lines)


def format_conflict_diff(collection: str, entry: DiffEntry) -> str:
    """Format a single conflict for interactive review.

    Shows a unified diff between the pretty-printed cache and file
    versions of the record.

    Args:
        collection: Collection the record belongs to.
        entry: The diff entry.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append(
        f"{collection_label(collection)}: {entry.label} (id={entry.id})"
    )
    lines.append(
        f"Status: {entry.status.value}  file time: {entry.file_time}  "
        f"cache time: {entry.cache_time}"
    )
    lines.append("")

    cache_lines = _pretty(entry.cache_record).splitlines(keepends=True)
    file_lines = _pretty(entry.file_record).splitlines(keepends=True)
    diff = difflib.unified_diff(
        cache_lines,
        file_lines,
        fromfile=f"cache: {collection}/{entry.id}",
        tofile=f"file: {collection}/{entry.id}",
    )
    diff_text = "".join(diff)
    if diff_text:
        lines.append(diff_text.rstrip())
    else:
        lines.append("(no textual differences)")
    return "\n".join(lines).rstrip()


def format_outcome(outcome: SyncOutcome) -> str:
    """Format the outcome of one orchestrator flow."""
    lines = [f"Sync flow '{outcome.flow.value}'"]
    lines.append(f"Started: {outcome.started_at}")
    if outcome.completed_at:
        lines.append(f"Completed: {outcome.completed_at}")
    lines.append(f"Applied: {'yes' if outcome.applied else 'no'}")
    if outcome.conflicts:
        lines.append(f"Conflicts: {outcome.conflicts}")
    if outcome.awaiting_decision:
        kind = "blocking" if outcome.blocking else "non-blocking"
        lines.append(f"Awaiting decision ({kind})")
    if outcome.error:
        lines.append(f"Error: {outcome.error}")
    return "\n".join(lines)


def _pretty(record: Mapping[str, Any] | None) -> str:
    if record is None:
        return ""
    return (
        json.dumps(record, indent=2, sort_keys=True, ensure_ascii=False, default=str)
        + "\n"
    )


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def diffs_to_json(diffs: Mapping[str, list[DiffEntry]]) -> dict:
    """Convert a diff map to the decision surface contract shape.

    Returns:
        ``{collection: [{id, label, status, fileRecord?, cacheRecord?,
        fileTime?, cacheTime?}]}``; absent optional fields are omitted.
    """
    result: dict[str, list[dict]] = {}
    for name, entries in diffs.items():
        items = []
        for entry in entries:
            item: dict[str, Any] = {
                "id": entry.id,
                "label": entry.label,
                "status": entry.status.value,
            }
            if entry.file_record is not None:
                item["fileRecord"] = entry.file_record
            if entry.cache_record is not None:
                item["cacheRecord"] = entry.cache_record
            if entry.file_time is not None:
                item["fileTime"] = entry.file_time
            if entry.cache_time is not None:
                item["cacheTime"] = entry.cache_time
            items.append(item)
        result[name] = items
    return result


def outcome_to_json(outcome: SyncOutcome) -> dict:
    """Convert a flow outcome to a structured dict."""
    data = outcome.model_dump(mode="json")
    data["ok"] = outcome.ok
    return data
