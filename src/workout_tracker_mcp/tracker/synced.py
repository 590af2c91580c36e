"""Local-first synced state backed by the key-value store.

Values are read from and written to a :class:`LocalCache` synchronously.
Reconciliation with the remote store runs in background asyncio tasks:

* the first read of a key fetches the remote copy; a remote value replaces
  the cached one unless the key was written locally in the meantime, and a
  missing remote value is bootstrapped from the local one;
* every write is queued per key with at most one request in flight, later
  writes coalescing into a single pending push of the latest local value.

Remote failures are logged and recorded as the key's last sync error. They
are never raised to callers.
"""

import asyncio
import logging
from typing import Any, Callable, Generic, TypeVar

from workout_tracker_mcp.tracker.cache import LocalCache
from workout_tracker_mcp.tracker.client import KeyValueStoreClient
from workout_tracker_mcp.tracker.exceptions import NotFound

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PUT = "put"
_DELETE = "delete"


class _Cell:
    """Bookkeeping for one key."""

    def __init__(self, key: str, default: Any):
        self.key = key
        self.default = default
        self.dirty = False
        self.fetch_requested = False
        self.fetched = False
        self.fetch_task: asyncio.Task | None = None
        self.write_task: asyncio.Task | None = None
        self.pending: str | None = None
        self.last_error: Exception | None = None
        self.subscriptions: list["SyncedState"] = []


class SyncedStore:
    """Process-wide registry of synced keys sharing one cache and client."""

    def __init__(self, client: KeyValueStoreClient, cache: LocalCache | None = None):
        self._client = client
        self._cache = cache if cache is not None else LocalCache()
        self._cells: dict[str, _Cell] = {}

    def _cell(self, key: str, default: Any = None) -> _Cell:
        cell = self._cells.get(key)
        if cell is None:
            cell = self._cells[key] = _Cell(key, default)
        return cell

    # --- reads and writes ---

    def get(self, key: str, default: Any = None) -> Any:
        """Return the best-known local value; the first read starts a fetch."""
        cell = self._cell(key, default)
        cell.fetch_requested = True
        self._kick(cell)
        return self._cache.get(key, default)

    def set(self, key: str, value: Any, default: Any = None) -> Any:
        """Store ``value`` (or ``value(previous)`` if callable) and queue a push."""
        cell = self._cell(key, default)
        previous = self._cache.get(key, cell.default if default is None else default)
        new_value = value(previous) if callable(value) else value
        self._cache.put(key, new_value)
        cell.dirty = True
        cell.pending = _PUT
        self._kick(cell)
        self._broadcast(cell)
        return new_value

    def remove(self, key: str) -> None:
        cell = self._cell(key)
        self._cache.delete(key)
        cell.dirty = True
        cell.pending = _DELETE
        self._kick(cell)
        self._broadcast(cell)

    def state(self, key: str, default: Any = None) -> "SyncedState":
        """Open a subscribed handle on ``key``."""
        handle = SyncedState(self, key, default)
        self._cell(key, default).subscriptions.append(handle)
        self.get(key, default)
        return handle

    def last_sync_error(self, key: str) -> Exception | None:
        cell = self._cells.get(key)
        return cell.last_error if cell else None

    def sync_errors(self) -> dict[str, Exception]:
        return {key: cell.last_error for key, cell in self._cells.items() if cell.last_error}

    def _detach(self, handle: "SyncedState") -> None:
        cell = self._cells.get(handle.key)
        if cell and handle in cell.subscriptions:
            cell.subscriptions.remove(handle)

    def _broadcast(self, cell: _Cell) -> None:
        for handle in list(cell.subscriptions):
            if not handle.alive:
                continue
            handle._notify(self._cache.get(cell.key, handle.default))

    # --- background work ---

    @staticmethod
    def _spawn(factory: Callable[[], Any]) -> asyncio.Task | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        return loop.create_task(factory())

    def _kick(self, cell: _Cell) -> None:
        if cell.fetch_requested and not cell.fetched and cell.fetch_task is None:
            cell.fetch_task = self._spawn(lambda: self._fetch(cell))
        if cell.pending is not None and cell.write_task is None:
            cell.write_task = self._spawn(lambda: self._drain(cell))

    async def _fetch(self, cell: _Cell) -> None:
        try:
            value = await self._client.get(cell.key)
        except NotFound:
            if not cell.dirty:
                logger.debug("No remote value for %r, pushing local copy", cell.key)
                cell.pending = _PUT
                self._kick(cell)
        except Exception as exc:
            logger.warning("Error loading %r from storage: %s", cell.key, exc)
            cell.last_error = exc
        else:
            if cell.dirty:
                logger.debug("Keeping local value for %r written before fetch completed", cell.key)
            else:
                self._cache.put(cell.key, value)
                self._broadcast(cell)
        finally:
            cell.fetched = True
            cell.fetch_task = None

    async def _drain(self, cell: _Cell) -> None:
        try:
            while cell.pending is not None:
                operation, cell.pending = cell.pending, None
                try:
                    if operation == _DELETE:
                        await self._client.delete(cell.key)
                    else:
                        await self._client.put(cell.key, self._cache.get(cell.key, cell.default))
                except Exception as exc:
                    logger.warning("Error saving %r to storage: %s", cell.key, exc)
                    cell.last_error = exc
                else:
                    cell.last_error = None
        finally:
            cell.write_task = None

    async def flush(self) -> None:
        """Wait until no fetch or write is in flight or pending."""
        while True:
            for cell in list(self._cells.values()):
                self._kick(cell)
            tasks = [
                task
                for cell in self._cells.values()
                for task in (cell.fetch_task, cell.write_task)
                if task is not None
            ]
            if not tasks:
                return
            await asyncio.gather(*tasks)

    async def aclose(self) -> None:
        await self.flush()
        for cell in self._cells.values():
            for handle in list(cell.subscriptions):
                handle.close()


class SyncedState(Generic[T]):
    """A subscribed read/write handle on one synced key."""

    def __init__(self, store: SyncedStore, key: str, default: T):
        self.store = store
        self.key = key
        self.default = default
        self.alive = True
        self._callbacks: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self.store.get(self.key, self.default)

    @property
    def last_sync_error(self) -> Exception | None:
        return self.store.last_sync_error(self.key)

    def set(self, value: T | Callable[[T], T]) -> T:
        return self.store.set(self.key, value, self.default)

    def remove(self) -> None:
        self.store.remove(self.key)

    def subscribe(self, callback: Callable[[T], None]) -> None:
        self._callbacks.append(callback)

    def close(self) -> None:
        self.alive = False
        self._callbacks.clear()
        self.store._detach(self)

    def _notify(self, value: T) -> None:
        for callback in list(self._callbacks):
            try:
                callback(value)
            except Exception:
                logger.exception("Subscriber for %r failed", self.key)
