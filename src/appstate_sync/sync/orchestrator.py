"""Sync orchestrator: sequences cache, directory file and remote snapshot.

Three lifecycle flows feed snapshots through the merge engine and the
diff detector and apply the result to the ``AppStateContainer``:

- **startup** -- merge the cache with the previously granted directory
  file (when still readable) and apply it.  No decision step.
- **remote sync** -- fetch the remote snapshot, apply and persist the
  auto-merge at once, then offer a *non-blocking* decision for any true
  conflicts.
- **directory re-sync** -- user-initiated; when the directory file and the
  cache conflict, a *blocking* decision is opened and nothing is applied
  until it is confirmed.

Failure policy: remote, permission and parse failures never escape a
flow.  They are logged and recorded on the returned ``SyncOutcome``; the
live state is left as it was.

Every change to the live state is persisted by a ``DebouncedSaver``.
Flows that read the cache flush it first.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from appstate_sync.core.async_utils import run_sync, run_with_timeout
from appstate_sync.file_handler import read_json_document, write_json_document
from appstate_sync.sync.decision import (
    DecisionSession,
    Selections,
    apply_finalization,
)
from appstate_sync.sync.differ import DiffMap, compute_diffs, count_diffs
from appstate_sync.sync.errors import (
    DirectoryAccessError,
    MalformedSnapshotError,
    NoPendingDecisionError,
    PermissionDeniedError,
)
from appstate_sync.sync.merger import merge_snapshots
from appstate_sync.sync.models import SyncFlow, SyncOutcome
from appstate_sync.sync.records import (
    PRIMARY_COLLECTION,
    Record,
    Snapshot,
)
from appstate_sync.sync.saver import DebouncedSaver
from appstate_sync.sync.state import AppStateContainer
from appstate_sync.sync.stores import (
    FileStore,
    LocalStore,
    RemoteSource,
    utc_timestamp,
    with_last_saved,
)

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
LAST_UPDATE_FIELD = "lastUpdateInfo"

FileStoreFactory = Callable[[Path], FileStore]
DirectoryPicker = Callable[[], Path]


@dataclass
class PendingDecision:
    """A decision session waiting for confirmation or cancellation.

    Attributes:
        flow: The flow that opened the session.
        session: The decision session itself.
        blocking: ``True`` when nothing was applied yet (directory
            re-sync); ``False`` when the auto-merge is already live.
    """

    flow: SyncFlow
    session: DecisionSession
    blocking: bool


class SyncOrchestrator:
    """Drive the sync flows against injected stores.

    Args:
        state: Live state container.
        cache: Local cache store.
        remote: Remote snapshot source, or ``None`` to disable remote sync.
        file_store_factory: Builds a file store for a granted directory.
        directory_picker: Asks the user for a directory.  May raise
            ``DirectoryAccessError`` (``cancelled=True`` on user cancel).
        save_debounce: Idle window for debounced saves, in seconds.
        remote_timeout: Deadline for the remote fetch, in seconds.
        include_one_sided: Also surface one-sided records in decisions.
    """

    def __init__(
        self,
        state: AppStateContainer,
        cache: LocalStore,
        remote: RemoteSource | None = None,
        *,
        file_store_factory: FileStoreFactory,
        directory_picker: DirectoryPicker | None = None,
        save_debounce: float = 0.5,
        remote_timeout: float = 15.0,
        include_one_sided: bool = False,
    ) -> None:
        self.state = state
        self.cache = cache
        self.remote = remote
        self.file_store_factory = file_store_factory
        self.directory_picker = directory_picker
        self.remote_timeout = remote_timeout
        self.include_one_sided = include_one_sided

        self._file_store: FileStore | None = None
        self._pending: PendingDecision | None = None
        self._last_outcome: SyncOutcome | None = None

        self.saver = DebouncedSaver(
            cache, lambda: self._file_store, delay=save_debounce
        )
        self._unsubscribe = state.subscribe(self.saver.schedule)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def file_store(self) -> FileStore | None:
        """File store of the currently granted directory, if any."""
        return self._file_store

    @property
    def pending_decision(self) -> PendingDecision | None:
        return self._pending

    @property
    def last_outcome(self) -> SyncOutcome | None:
        return self._last_outcome

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    async def startup(self) -> SyncOutcome:
        """Merge the cache with the granted directory file and apply it."""
        started = utc_timestamp()
        cache_snapshot = await run_sync(self.cache.read)

        file_snapshot = None
        directory = await run_sync(self.cache.read_directory)
        if directory is not None:
            store = self.file_store_factory(directory)
            self._file_store = store
            if await run_sync(store.can_read):
                file_snapshot = await run_sync(store.read)
            else:
                logger.info(
                    "Saved directory %s is not readable; using cache only",
                    directory,
                )

        if not cache_snapshot and not file_snapshot:
            logger.info("Startup: no cached or file snapshot to restore")
            return self._finish(SyncFlow.STARTUP, started)

        merged = merge_snapshots(cache_snapshot, file_snapshot)
        applied = self.state.apply_snapshot(merged)
        logger.info(
            "Startup: restored state (cache=%s, file=%s)",
            cache_snapshot is not None,
            file_snapshot is not None,
        )
        return self._finish(SyncFlow.STARTUP, started, applied=applied)

    async def remote_sync(self) -> list[Record]:
        """Pull the remote snapshot and auto-merge it into live state.

        Returns:
            The merged ``users`` collection, or the live users unmodified
            when the remote is unavailable.
        """
        started = utc_timestamp()
        live_users = self.state.get_collection(USERS_COLLECTION)
        if self.remote is None:
            logger.debug("Remote sync skipped: no remote source")
            return live_users

        try:
            remote_snapshot = await run_with_timeout(
                self.remote_timeout, self.remote.fetch
            )
        except Exception as exc:
            logger.warning("Remote sync failed, using local cache: %s", exc)
            self._finish(
                SyncFlow.REMOTE, started, error=str(exc) or type(exc).__name__
            )
            return live_users

        await self.saver.flush()
        cached = await run_sync(self.cache.read)
        if not cached:
            cached = {USERS_COLLECTION: live_users}

        merged = merge_snapshots(cached, remote_snapshot)
        applied = self.state.apply_snapshot(merged)
        if not await run_sync(self.cache.write, merged):
            logger.error("Failed to persist remote merge to cache")

        diffs = compute_diffs(
            remote_snapshot, cached, include_one_sided=self.include_one_sided
        )
        conflicts = count_diffs(diffs, conflicts_only=True)
        if conflicts:
            self._open_decision(
                SyncFlow.REMOTE, diffs, remote_snapshot, cached, blocking=False
            )

        self._finish(
            SyncFlow.REMOTE,
            started,
            applied=applied,
            conflicts=conflicts,
        )
        return list(merged.get(USERS_COLLECTION) or [])

    async def directory_resync(self, force: bool = False) -> SyncOutcome:
        """Re-sync with the directory file on explicit user request.

        Args:
            force: Ask for a new directory even if one is saved.
        """
        started = utc_timestamp()
        await self.saver.flush()
        try:
            store = await self._acquire_file_store(force)
        except DirectoryAccessError as exc:
            if exc.cancelled:
                logger.info("Directory selection cancelled")
                return self._finish(SyncFlow.DIRECTORY, started)
            logger.error("Directory access failed: %s", exc)
            return self._finish(SyncFlow.DIRECTORY, started, error=str(exc))
        except PermissionDeniedError as exc:
            logger.error("%s", exc)
            return self._finish(SyncFlow.DIRECTORY, started, error=str(exc))

        file_snapshot = await run_sync(store.read)
        cache_snapshot = await run_sync(self.cache.read)

        diffs = compute_diffs(
            file_snapshot, cache_snapshot, include_one_sided=self.include_one_sided
        )
        conflicts = count_diffs(diffs, conflicts_only=True)
        if conflicts:
            self._open_decision(
                SyncFlow.DIRECTORY,
                diffs,
                file_snapshot,
                cache_snapshot,
                blocking=True,
            )
            return self._finish(
                SyncFlow.DIRECTORY, started, conflicts=conflicts
            )

        merged = merge_snapshots(cache_snapshot, file_snapshot)
        applied = self.state.apply_snapshot(merged)
        logger.info("Directory re-sync applied without conflicts")
        return self._finish(SyncFlow.DIRECTORY, started, applied=applied)

    async def confirm_decision(
        self, selections: Selections | None = None
    ) -> SyncOutcome:
        """Resolve the pending decision and apply the final state.

        Args:
            selections: Confirmed choices; defaults to the session's
                current selections.

        Raises:
            NoPendingDecisionError: If no decision is pending.
        """
        pending = self._pending
        if pending is None:
            raise NoPendingDecisionError("No decision is pending")
        started = utc_timestamp()
        if pending.blocking:
            final = pending.session.resolve(selections)
        else:
            # the auto-merge is already live and may have been edited since
            final = apply_finalization(
                self.state.get_snapshot(), pending.session.finalize(selections)
            )
        self._pending = None
        final[LAST_UPDATE_FIELD] = _update_info(
            f"Confirmed {pending.flow.value} decision"
        )
        applied = self.state.apply_snapshot(final)
        logger.info(
            "Decision confirmed for %d records (%s flow)",
            pending.session.total,
            pending.flow.value,
        )
        return self._finish(SyncFlow.DECISION, started, applied=applied)

    def cancel_decision(self) -> bool:
        """Discard the pending decision.

        Returns:
            ``False`` if no decision was pending.
        """
        pending, self._pending = self._pending, None
        if pending is None:
            return False
        pending.session.cancel()
        return True

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    async def export_snapshot(self, path: Path | None = None) -> Path:
        """Write the live state to a standalone JSON document.

        Args:
            path: Target path; defaults to ``db_<timestamp>.json`` in the
                current directory.

        Returns:
            The path written.
        """
        if path is None:
            stamp = datetime.now(timezone.utc).isoformat()
            path = Path(f"db_{stamp.replace(':', '-').replace('.', '-')}.json")
        document = with_last_saved(self.state.get_snapshot())
        await run_sync(write_json_document, Path(path), document)
        logger.info("Exported snapshot to %s", path)
        return Path(path)

    async def import_snapshot(self, path: Path) -> SyncOutcome:
        """Replace the live state with a previously exported document.

        Raises:
            FileNotFoundError: If *path* does not exist.
            MalformedSnapshotError: If the document is not a snapshot with
                a ``projects`` list.
        """
        started = utc_timestamp()
        try:
            document = await run_sync(read_json_document, Path(path))
        except ValueError as exc:
            raise MalformedSnapshotError(str(exc)) from exc
        if not isinstance(document, dict) or not isinstance(
            document.get(PRIMARY_COLLECTION), list
        ):
            raise MalformedSnapshotError(
                f"{path} is not a snapshot (no '{PRIMARY_COLLECTION}' list)"
            )
        document[LAST_UPDATE_FIELD] = _update_info(
            f"Imported {Path(path).name}"
        )
        applied = self.state.apply_snapshot(document)
        logger.info("Imported snapshot from %s", path)
        return self._finish(SyncFlow.IMPORT, started, applied=applied)

    # ------------------------------------------------------------------
    # Persistence lifecycle
    # ------------------------------------------------------------------

    async def flush(self) -> bool:
        """Write any pending debounced save now."""
        return await self.saver.flush()

    async def close(self, flush: bool = True) -> None:
        """Stop listening to state changes, flushing or dropping saves."""
        self._unsubscribe()
        if flush:
            await self.saver.flush()
        else:
            self.saver.cancel()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _acquire_file_store(self, force: bool) -> FileStore:
        directory = None if force else await run_sync(self.cache.read_directory)
        if directory is None:
            if self.directory_picker is None:
                raise DirectoryAccessError("No directory selected")
            directory = await run_sync(self.directory_picker)
            await run_sync(self.cache.save_directory, directory)

        store = self.file_store_factory(directory)
        self._file_store = store
        if not await run_sync(store.request_permission):
            raise PermissionDeniedError(
                f"Read/write permission denied for {directory}"
            )
        return store

    def _open_decision(
        self,
        flow: SyncFlow,
        diffs: DiffMap,
        file_snapshot: Snapshot | None,
        cache_snapshot: Snapshot | None,
        *,
        blocking: bool,
    ) -> None:
        if self._pending is not None:
            logger.info(
                "Replacing pending %s decision", self._pending.flow.value
            )
        session = DecisionSession(diffs, file_snapshot, cache_snapshot)
        self._pending = PendingDecision(flow, session, blocking)
        logger.info(
            "%s: %d records need a decision%s",
            flow.value,
            session.total,
            " (blocking)" if blocking else "",
        )

    def _finish(
        self,
        flow: SyncFlow,
        started: str,
        *,
        applied: bool = False,
        conflicts: int = 0,
        error: str | None = None,
    ) -> SyncOutcome:
        pending = self._pending
        outcome = SyncOutcome(
            flow=flow,
            applied=applied,
            conflicts=conflicts,
            awaiting_decision=pending is not None,
            blocking=pending.blocking if pending is not None else False,
            error=error,
            started_at=started,
            completed_at=utc_timestamp(),
        )
        self._last_outcome = outcome
        return outcome


def _update_info(name: str) -> dict[str, str]:
    return {"name": name, "time": utc_timestamp()}
