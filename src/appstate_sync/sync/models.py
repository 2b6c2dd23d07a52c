"""Pydantic models for the snapshot sync engine.

Defines the data contracts shared by the differ, the decision protocol,
the orchestrator and the reporter:

- ``DiffStatus``: Why a record was surfaced for review.
- ``Side``: Which source a selection picks.
- ``DiffEntry``: One record that needs (or is offered for) a decision.
- ``Selection``: One confirmed side choice.
- ``SyncFlow``: The orchestrator flow that produced an outcome.
- ``SyncOutcome``: Result of one orchestrator flow.

All models are frozen (immutable).
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel


class DiffStatus(str, Enum):
    """Classification of a surfaced record."""

    ONLY_FILE = "ONLY_FILE"
    ONLY_CACHE = "ONLY_CACHE"
    CONFLICT = "CONFLICT"


class Side(str, Enum):
    """Source side of a snapshot pair.

    The *file* side is whichever snapshot is being brought in (the local
    ``db.json`` or the remote snapshot); the *cache* side is the local cache.
    """

    FILE = "file"
    CACHE = "cache"


class Newer(str, Enum):
    """Which side carries the newer timestamp."""

    FILE = "file"
    CACHE = "cache"
    EQUAL = "equal"


class DiffEntry(BaseModel):
    """A record surfaced by the diff detector.

    Attributes:
        id: Record id shared by both sides.
        label: Human-readable label (name, plate number or id).
        status: ``CONFLICT`` for true conflicts; ``ONLY_FILE`` or
            ``ONLY_CACHE`` for one-sided records shown for visibility.
        file_record: Full record from the file side, if present.
        cache_record: Full record from the cache side, if present.
        file_time: ``lastModifiedAt`` on the file side.
        cache_time: ``lastModifiedAt`` on the cache side.
        newer: Which side is newer; ``equal`` for conflicts.
    """

    id: str | int
    label: str
    status: DiffStatus
    file_record: dict[str, Any] | None = None
    cache_record: dict[str, Any] | None = None
    file_time: float | None = None
    cache_time: float | None = None
    newer: Newer = Newer.EQUAL

    model_config = {"frozen": True}

    @property
    def is_conflict(self) -> bool:
        """``True`` when this entry needs a human decision."""
        return self.status == DiffStatus.CONFLICT


class Selection(BaseModel):
    """A confirmed choice of side for one diffed record."""

    id: str | int
    side: Side

    model_config = {"frozen": True}


class FinalizationPatch(BaseModel):
    """Correction applied on top of an auto-merge after a decision.

    Attributes:
        chosen: Per collection, the selected record of every diffed id.
        preserved: Per collection, file-side records whose id was not
            diffed.
        dropped: Per collection, diffed ids whose selected side has no
            record.
    """

    chosen: dict[str, list[dict[str, Any]]] = {}
    preserved: dict[str, list[dict[str, Any]]] = {}
    dropped: dict[str, list[str | int]] = {}

    model_config = {"frozen": True}

    def records(self, collection: str) -> list[dict[str, Any]]:
        """Ordered patch list: chosen records, then preserved records."""
        return list(self.chosen.get(collection, [])) + list(
            self.preserved.get(collection, [])
        )

    def collections(self) -> list[str]:
        """Collection names the patch touches, in insertion order."""
        names = list(self.chosen)
        names.extend(n for n in self.preserved if n not in names)
        names.extend(n for n in self.dropped if n not in names)
        return names


class SyncFlow(str, Enum):
    """Orchestrator lifecycle flows."""

    STARTUP = "startup"
    REMOTE = "remote"
    DIRECTORY = "directory"
    DECISION = "decision"
    IMPORT = "import"


class SyncOutcome(BaseModel):
    """Result of one orchestrator flow.

    Attributes:
        flow: The flow that ran.
        applied: Whether live state was changed.
        conflicts: Number of true conflicts detected.
        awaiting_decision: Whether a decision session is pending.
        blocking: Whether the pending decision blocks further application.
        error: Failure description for aborted or degraded flows.
        started_at: ISO 8601 timestamp when the flow started.
        completed_at: ISO 8601 timestamp when the flow completed.
    """

    flow: SyncFlow
    applied: bool = False
    conflicts: int = 0
    awaiting_decision: bool = False
    blocking: bool = False
    error: str | None = None
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def ok(self) -> bool:
        """``True`` when the flow finished without an error."""
        return self.error is None

    def summary(self) -> str:
        """One-line human-readable summary of the outcome."""
        parts = [f"{self.flow.value}:"]
        parts.append("applied" if self.applied else "not applied")
        if self.conflicts:
            parts.append(f"{self.conflicts} conflicts")
        if self.awaiting_decision:
            parts.append(
                "awaiting decision"
                + (" (blocking)" if self.blocking else "")
            )
        if self.error:
            parts.append(f"error: {self.error}")
        return " ".join(parts)
