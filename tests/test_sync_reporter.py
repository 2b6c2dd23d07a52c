"""Tests for sync reporter formatting functions.

Covers:
- summarize_record_change / describe_record_change field listings
- format_diff_summary with conflicts and one-sided records
- format_conflict_diff unified diff output
- format_outcome lines for each outcome shape
- diffs_to_json / outcome_to_json structure
"""

from __future__ import annotations

from appstate_sync.sync.models import (
    DiffEntry,
    DiffStatus,
    Newer,
    SyncFlow,
    SyncOutcome,
)
from appstate_sync.sync.reporter import (
    describe_record_change,
    diffs_to_json,
    format_conflict_diff,
    format_diff_summary,
    format_outcome,
    outcome_to_json,
    summarize_record_change,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _conflict(rid=1, label="Hall", cache_v="a", file_v="z") -> DiffEntry:
    return DiffEntry(
        id=rid,
        label=label,
        status=DiffStatus.CONFLICT,
        cache_record={"id": rid, "v": cache_v, "lastModifiedAt": 100},
        file_record={"id": rid, "v": file_v, "lastModifiedAt": 100},
        cache_time=100,
        file_time=100,
    )


def _outcome(**kwargs) -> SyncOutcome:
    kwargs.setdefault("flow", SyncFlow.REMOTE)
    kwargs.setdefault("started_at", "2026-02-07T10:00:00+00:00")
    return SyncOutcome(**kwargs)


# ---------------------------------------------------------------------------
# Record change summary
# ---------------------------------------------------------------------------


class TestSummarizeRecordChange:
    def test_lists_changed_fields_sorted(self):
        old = {"id": 1, "name": "A", "budget": 1, "lastModifiedAt": 1}
        new = {"id": 1, "name": "B", "budget": 2, "lastModifiedAt": 2}
        assert summarize_record_change(old, new) == ["budget", "name"]

    def test_status_shows_both_values(self):
        changes = summarize_record_change({"status": "open"}, {"status": "done"})
        assert changes == ["status (open -> done)"]

    def test_added_and_removed(self):
        changes = summarize_record_change({"old": 1}, {"new": 2})
        assert changes == ["new (added)", "old (removed)"]

    def test_bookkeeping_fields_ignored(self):
        old = {"lastModifiedAt": 1, "lastModifiedBy": "ann"}
        new = {"lastModifiedAt": 2, "lastModifiedBy": "bob"}
        assert summarize_record_change(old, new) == []
        assert describe_record_change(old, new) == "content updated"

    def test_describe_joins_changes(self):
        assert describe_record_change({"a": 1, "b": 1}, {"a": 2, "b": 2}) == "a, b"


# ---------------------------------------------------------------------------
# format_diff_summary
# ---------------------------------------------------------------------------


class TestFormatDiffSummary:
    def test_no_entries(self):
        assert format_diff_summary({"projects": [], "tools": []}) == (
            "No differences requiring a decision."
        )

    def test_conflict_and_one_sided(self):
        diffs = {
            "projects": [_conflict()],
            "tools": [
                DiffEntry(
                    id="t1",
                    label="Drill",
                    status=DiffStatus.ONLY_FILE,
                    file_record={"id": "t1", "name": "Drill"},
                    newer=Newer.FILE,
                )
            ],
            "users": [],
        }
        output = format_diff_summary(diffs)
        lines = output.splitlines()

        assert lines[0] == "2 record(s) surfaced, 1 conflict(s)"
        assert "Projects (projects): 1" in lines
        assert "  [CONFLICT] Hall (id=1): v" in lines
        assert "  [file only] Drill (id=t1)" in lines
        assert "users" not in output


# ---------------------------------------------------------------------------
# format_conflict_diff
# ---------------------------------------------------------------------------


class TestFormatConflictDiff:
    def test_unified_diff_between_sides(self):
        output = format_conflict_diff("projects", _conflict())
        assert output.startswith("Projects: Hall (id=1)")
        assert "--- cache: projects/1" in output
        assert "+++ file: projects/1" in output
        assert '-  "v": "a"' in output
        assert '+  "v": "z"' in output

    def test_identical_records(self):
        entry = _conflict(cache_v="same", file_v="same")
        output = format_conflict_diff("projects", entry)
        assert "(no textual differences)" in output

    def test_one_sided_entry(self):
        entry = DiffEntry(
            id="c",
            label="c",
            status=DiffStatus.ONLY_CACHE,
            cache_record={"id": "c"},
            newer=Newer.CACHE,
        )
        output = format_conflict_diff("tools", entry)
        assert "Status: ONLY_CACHE" in output
        assert '-  "id": "c"' in output


# ---------------------------------------------------------------------------
# format_outcome
# ---------------------------------------------------------------------------


class TestFormatOutcome:
    def test_applied_outcome(self):
        output = format_outcome(
            _outcome(applied=True, completed_at="2026-02-07T10:00:01+00:00")
        )
        assert output.splitlines() == [
            "Sync flow 'remote'",
            "Started: 2026-02-07T10:00:00+00:00",
            "Completed: 2026-02-07T10:00:01+00:00",
            "Applied: yes",
        ]

    def test_pending_blocking_decision(self):
        output = format_outcome(
            _outcome(
                flow=SyncFlow.DIRECTORY,
                conflicts=2,
                awaiting_decision=True,
                blocking=True,
            )
        )
        assert "Applied: no" in output
        assert "Conflicts: 2" in output
        assert "Awaiting decision (blocking)" in output

    def test_error_line(self):
        output = format_outcome(_outcome(error="HTTP 503"))
        assert output.endswith("Error: HTTP 503")


# ---------------------------------------------------------------------------
# JSON output
# ---------------------------------------------------------------------------


class TestJsonOutput:
    def test_diffs_to_json_contract_shape(self):
        data = diffs_to_json({"projects": [_conflict()], "tools": []})
        item = data["projects"][0]
        assert item["id"] == 1
        assert item["status"] == "CONFLICT"
        assert item["fileRecord"]["v"] == "z"
        assert item["cacheRecord"]["v"] == "a"
        assert item["fileTime"] == 100
        assert data["tools"] == []

    def test_absent_fields_omitted(self):
        entry = DiffEntry(
            id="f", label="f", status=DiffStatus.ONLY_FILE, file_record={"id": "f"}
        )
        item = diffs_to_json({"tools": [entry]})["tools"][0]
        assert "cacheRecord" not in item
        assert "cacheTime" not in item
        assert "fileTime" not in item

    def test_outcome_to_json(self):
        data = outcome_to_json(_outcome(error="boom"))
        assert data["flow"] == "remote"
        assert data["ok"] is False
        assert data["error"] == "boom"
        assert data["conflicts"] == 0
