"""Tests for sync/decision.py -- decision sessions and finalization."""

from __future__ import annotations

import pytest

from appstate_sync.sync.decision import (
    DecisionSession,
    apply_finalization,
    build_finalization_patch,
    create_strategy,
    default_side,
    parse_selections,
)
from appstate_sync.sync.differ import compute_diffs
from appstate_sync.sync.errors import DecisionCancelledError
from appstate_sync.sync.merger import merge_snapshots
from appstate_sync.sync.models import DiffEntry, DiffStatus, Newer, Selection, Side


@pytest.fixture
def conflict_pair():
    """File and cache snapshots with one tie conflict and untouched records."""
    file_snap = {
        "projects": [
            {"id": 1, "name": "Hall", "v": "z", "lastModifiedAt": 100},
            {"id": 2, "name": "Depot", "v": "new", "lastModifiedAt": 300},
            {"id": 3, "name": "Yard", "lastModifiedAt": 10},
        ]
    }
    cache_snap = {
        "projects": [
            {"id": 1, "name": "Hall", "v": "a", "lastModifiedAt": 100},
            {"id": 2, "name": "Depot", "v": "old", "lastModifiedAt": 200},
            {"id": 4, "name": "Shed", "lastModifiedAt": 10},
        ]
    }
    return file_snap, cache_snap


def _session(file_snap, cache_snap, **kwargs):
    return DecisionSession(
        compute_diffs(file_snap, cache_snap, **kwargs), file_snap, cache_snap
    )


def _by_id(records):
    return {record["id"]: record for record in records}


class TestDefaultSide:
    def test_conflict_defaults_to_cache(self):
        entry = DiffEntry(id=1, label="x", status=DiffStatus.CONFLICT)
        assert default_side(entry) == Side.CACHE

    def test_only_file_defaults_to_file(self):
        entry = DiffEntry(
            id=1, label="x", status=DiffStatus.ONLY_FILE, newer=Newer.FILE
        )
        assert default_side(entry) == Side.FILE

    def test_newer_file_defaults_to_file(self):
        entry = DiffEntry(
            id=1, label="x", status=DiffStatus.CONFLICT, newer=Newer.FILE
        )
        assert default_side(entry) == Side.FILE

    def test_only_cache_defaults_to_cache(self):
        entry = DiffEntry(
            id=1, label="x", status=DiffStatus.ONLY_CACHE, newer=Newer.CACHE
        )
        assert default_side(entry) == Side.CACHE


class TestSelections:
    def test_initial_selection_uses_default_rule(self, conflict_pair):
        session = _session(*conflict_pair)
        assert session.total == 1
        assert session.side_for("projects", 1) == Side.CACHE

    def test_toggle_flips_side(self, conflict_pair):
        session = _session(*conflict_pair)
        assert session.toggle("projects", 1) == Side.FILE
        assert session.side_for("projects", 1) == Side.FILE
        assert session.toggle("projects", 1) == Side.CACHE

    def test_toggle_unknown_id_raises(self, conflict_pair):
        session = _session(*conflict_pair)
        with pytest.raises(KeyError):
            session.toggle("projects", 99)

    def test_select_all_and_reset(self, conflict_pair):
        session = _session(*conflict_pair, include_one_sided=True)
        session.select_all(Side.FILE)
        assert all(
            sel.side == Side.FILE
            for sels in session.selections().values()
            for sel in sels
        )
        session.select_all_newest()
        sides = {sel.id: sel.side for sel in session.selections()["projects"]}
        assert sides == {1: Side.CACHE, 3: Side.FILE, 4: Side.CACHE}

    def test_selections_shape(self, conflict_pair):
        session = _session(*conflict_pair)
        selections = session.selections()
        assert selections["projects"] == [Selection(id=1, side=Side.CACHE)]
        assert selections["tools"] == []


class TestFinalization:
    def test_selected_file_side_wins(self, conflict_pair):
        file_snap, cache_snap = conflict_pair
        session = _session(file_snap, cache_snap)
        session.toggle("projects", 1)

        final = _by_id(session.resolve()["projects"])

        assert final[1]["v"] == "z"

    def test_cache_selection_keeps_automerge_value(self, conflict_pair):
        session = _session(*conflict_pair)
        final = _by_id(session.resolve()["projects"])
        assert final[1]["v"] == "a"

    def test_non_diffed_ids_unaffected(self, conflict_pair):
        file_snap, cache_snap = conflict_pair
        session = _session(file_snap, cache_snap)
        session.toggle("projects", 1)

        automerge = _by_id(merge_snapshots(cache_snap, file_snap)["projects"])
        final = _by_id(session.resolve()["projects"])

        assert set(final) == {1, 2, 3, 4}
        for rid in (2, 3, 4):
            assert final[rid] == automerge[rid]

    def test_explicit_selections_override_session(self, conflict_pair):
        session = _session(*conflict_pair)
        final = session.resolve({"projects": [Selection(id=1, side=Side.FILE)]})
        assert _by_id(final["projects"])[1]["v"] == "z"

    def test_patch_lists_chosen_then_preserved(self, conflict_pair):
        file_snap, cache_snap = conflict_pair
        patch = build_finalization_patch(
            {"projects": [Selection(id=1, side=Side.FILE)]},
            file_snap,
            cache_snap,
        )
        assert [r["id"] for r in patch.records("projects")] == [1, 2, 3]
        assert patch.dropped == {}

    def test_missing_side_drops_record(self):
        file_snap = {"tools": []}
        cache_snap = {"tools": [{"id": "t1"}]}
        patch = build_finalization_patch(
            {"tools": [Selection(id="t1", side=Side.FILE)]},
            file_snap,
            cache_snap,
        )
        assert patch.dropped == {"tools": ["t1"]}
        merged = merge_snapshots(cache_snap, file_snap)
        assert apply_finalization(merged, patch)["tools"] == []

    def test_apply_does_not_mutate_merged(self, conflict_pair):
        file_snap, cache_snap = conflict_pair
        merged = merge_snapshots(cache_snap, file_snap)
        before = [dict(r) for r in merged["projects"]]
        patch = build_finalization_patch(
            {"projects": [Selection(id=1, side=Side.FILE)]},
            file_snap,
            cache_snap,
        )
        apply_finalization(merged, patch)
        assert merged["projects"] == before


class TestCancellation:
    def test_cancelled_session_rejects_use(self, conflict_pair):
        session = _session(*conflict_pair)
        session.cancel()
        assert session.cancelled
        with pytest.raises(DecisionCancelledError):
            session.toggle("projects", 1)
        with pytest.raises(DecisionCancelledError):
            session.finalize()


class TestParseSelections:
    def test_valid_payload(self):
        parsed = parse_selections(
            {"projects": [{"id": 1, "side": "file"}, {"id": "x", "side": "cache"}]}
        )
        assert parsed["projects"][0] == Selection(id=1, side=Side.FILE)
        assert parsed["projects"][1].side == Side.CACHE

    def test_rejects_non_mapping(self):
        with pytest.raises(ValueError):
            parse_selections([{"id": 1, "side": "file"}])

    def test_rejects_non_list_values(self):
        with pytest.raises(ValueError, match="must be a list"):
            parse_selections({"projects": {"id": 1}})

    def test_rejects_bad_side(self):
        with pytest.raises(ValueError):
            parse_selections({"projects": [{"id": 1, "side": "remote"}]})


class TestStrategies:
    def test_file_strategy(self, conflict_pair):
        session = _session(*conflict_pair)
        create_strategy("file")(session)
        assert session.side_for("projects", 1) == Side.FILE

    def test_cache_and_newest(self, conflict_pair):
        session = _session(*conflict_pair)
        session.toggle("projects", 1)
        create_strategy("cache")(session)
        assert session.side_for("projects", 1) == Side.CACHE
        session.toggle("projects", 1)
        create_strategy("newest")(session)
        assert session.side_for("projects", 1) == Side.CACHE

    def test_unknown_strategy(self):
        with pytest.raises(ValueError, match="Unknown decision strategy"):
            create_strategy("coin-flip")
