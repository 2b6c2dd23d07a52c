"""Error taxonomy for the sync engine.

Only I/O can fail.  Merge ambiguity (equal timestamps, differing content)
is *not* an error: it is the trigger for the decision protocol and is
reported through ``DiffEntry`` values, never raised.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all sync failures."""


class TransportError(SyncError):
    """The remote snapshot could not be fetched (network or non-OK status)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedSnapshotError(SyncError):
    """A snapshot document could not be parsed or has an unexpected shape."""


class PermissionDeniedError(SyncError):
    """Read or write access to the granted directory was denied or revoked."""


class DirectoryAccessError(SyncError):
    """A directory could not be acquired from the picker.

    Attributes:
        cancelled: ``True`` when the user dismissed the picker.  Cancelled
            picks abort the flow silently; other failures are surfaced.
    """

    def __init__(self, message: str, cancelled: bool = False) -> None:
        super().__init__(message)
        self.cancelled = cancelled


class DecisionCancelledError(SyncError):
    """A discarded decision session was used after ``cancel()``."""


class NoPendingDecisionError(SyncError):
    """A decision was confirmed while no decision was pending."""
