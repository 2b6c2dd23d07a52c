"""Debounced persistence of the live state.

Every state change schedules a save; saves that arrive inside the idle
window replace the pending one, so a burst of edits costs one write.
Each write is a full snapshot, so a lost pending save only delays
persistence.

The cache is always written.  The directory file is written only when a
file store is attached and still reports write permission.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from appstate_sync.core.async_utils import run_sync
from appstate_sync.sync.records import Snapshot
from appstate_sync.sync.stores import FileStore, LocalStore

logger = logging.getLogger(__name__)


class DebouncedSaver:
    """Coalesce snapshot saves after an idle window.

    Args:
        cache: Local cache store, written on every save.
        file_store: Callable returning the current file store (or ``None``
            when no directory is granted).
        delay: Idle window in seconds.
    """

    def __init__(
        self,
        cache: LocalStore,
        file_store: Callable[[], FileStore | None] = lambda: None,
        delay: float = 0.5,
    ) -> None:
        self.cache = cache
        self.file_store = file_store
        self.delay = max(0.0, float(delay))
        self._pending: Snapshot | None = None
        self._task: asyncio.Task[None] | None = None
        self._writing: asyncio.Future[bool] | None = None
        self.saves = 0

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def schedule(self, snapshot: Snapshot) -> None:
        """Queue *snapshot* for saving, restarting the idle window.

        Outside a running event loop the snapshot stays pending until
        ``flush()``.
        """
        self._pending = snapshot
        self._cancel_task()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; save deferred until flush")
            return
        self._task = loop.create_task(self._delayed_save())

    async def flush(self) -> bool:
        """Write the pending snapshot now.

        A write already running in the background is awaited first, so
        the cache is current once this returns.

        Returns:
            ``True`` if a snapshot was written to the cache.
        """
        self._cancel_task()
        return await self._save_pending()

    def cancel(self) -> None:
        """Drop the pending snapshot without writing it."""
        self._cancel_task()
        if self._pending is not None:
            logger.debug("Discarding pending save")
        self._pending = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _delayed_save(self) -> None:
        await asyncio.sleep(self.delay)
        await self._save_pending()

    async def _save_pending(self) -> bool:
        writing = self._writing
        if writing is not None and not writing.done():
            # one write at a time
            await asyncio.shield(writing)
        snapshot, self._pending = self._pending, None
        if snapshot is None:
            return False
        self._writing = asyncio.ensure_future(run_sync(self._write, snapshot))
        # survives cancellation of the idle-window task
        return await asyncio.shield(self._writing)

    def _write(self, snapshot: Snapshot) -> bool:
        saved = self.cache.write(snapshot)
        if not saved:
            logger.error("Debounced save to cache failed")
        store = self.file_store()
        if store is not None and store.can_write():
            if not store.write(snapshot):
                logger.warning(
                    "Debounced save to %s failed", store.directory
                )
        self.saves += 1
        logger.debug("Saved snapshot (save #%d)", self.saves)
        return saved
