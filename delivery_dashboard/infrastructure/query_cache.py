import asyncio
import contextlib
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict

from delivery_dashboard.core.errors import DashboardError
from delivery_dashboard.domain.models import Order, OrderCollection
from delivery_dashboard.domain.queries import ALL_ORDERS_KEY, OrderQuery, detail_key, email_key
from delivery_dashboard.interfaces.IOrderStore import IOrderStore

logger = logging.getLogger(__name__)

class QueryStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class QueryState(BaseModel):
    """What a view sees for one cache key at one moment.

    ``data`` keeps the last good result even after a failed fetch, but then
    ``is_stale`` is set and ``error`` says why; it is never passed off as fresh.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    key: str
    status: QueryStatus = QueryStatus.IDLE
    data: Optional[Union[OrderCollection, Order]] = None
    error: Optional[DashboardError] = None
    is_stale: bool = False
    updated_at: Optional[datetime] = None

    @property
    def is_loading(self) -> bool:
        return self.status == QueryStatus.LOADING

    @property
    def is_error(self) -> bool:
        return self.status == QueryStatus.ERROR

    @property
    def is_fresh(self) -> bool:
        return self.status == QueryStatus.SUCCESS and not self.is_stale


class _CacheEntry:
    def __init__(self, key: str, fetch: Callable[[], Awaitable[Union[OrderCollection, Order]]]):
        self.key = key
        self.fetch = fetch
        self.lock = asyncio.Lock()
        self.status = QueryStatus.IDLE
        self.data = None
        self.error = None
        self.is_stale = False
        self.updated_at = None
        # Bumped by invalidation; a fetch that started before the bump stays stale
        self.generation = 0
        # Bumped whenever a fetch settles (success or error)
        self.settled = 0

    @property
    def is_fresh(self) -> bool:
        return self.status == QueryStatus.SUCCESS and not self.is_stale

    def snapshot(self) -> QueryState:
        return QueryState(
            key=self.key,
            status=self.status,
            data=self.data,
            error=self.error,
            is_stale=self.is_stale,
            updated_at=self.updated_at,
        )


class OrderQueryCache:
    """Last fetched order collections and order details, keyed by query.

    There is no expiry timer: an entry only goes stale when a confirmed
    mutation invalidates it, and invalidation refetches before returning so
    the next read from the same session sees the new state.
    """

    def __init__(self, store: IOrderStore):
        self.store = store
        self._entries: Dict[str, _CacheEntry] = {}

    # --- Reads ---

    async def get_orders(self, query: OrderQuery) -> QueryState:
        entry = self._entry(query.key, lambda: self.store.list_orders(query))
        return await self._read(entry)

    async def read_orders(self, query: OrderQuery) -> OrderCollection:
        """Like ``get_orders`` but raises the fetch error instead of returning it."""
        state = await self.get_orders(query)
        if state.is_error:
            raise state.error
        return state.data

    async def get_order_detail(self, order_id: str) -> QueryState:
        entry = self._entry(detail_key(order_id), lambda: self.store.get_order(order_id))
        return await self._read(entry)

    async def read_order_detail(self, order_id: str) -> Order:
        state = await self.get_order_detail(order_id)
        if state.is_error:
            raise state.error
        return state.data

    @contextlib.asynccontextmanager
    async def open_detail(self, order_id: str) -> AsyncIterator["DetailView"]:
        """Fetch an order's detail for as long as the block is open.

        Leaving the block before the fetch resolves cancels it and the
        result is never cached.
        """
        view = DetailView(self, order_id)
        view.start()
        try:
            yield view
        finally:
            await view.close()

    def peek(self, key: str) -> QueryState:
        entry = self._entries.get(key)
        return entry.snapshot() if entry else QueryState(key=key)

    def find_order(self, order_id: str, fresh_only: bool = False) -> Optional[Order]:
        """Best known copy of an order without touching the network.

        Detail entries win over list entries.
        """
        detail = self._entries.get(detail_key(order_id))
        if detail and isinstance(detail.data, Order) and (detail.is_fresh or not fresh_only):
            return detail.data

        for entry in self._entries.values():
            if not isinstance(entry.data, OrderCollection):
                continue
            if fresh_only and not entry.is_fresh:
                continue
            order = entry.data.get(order_id)
            if order is not None:
                return order
        return None

    # --- Invalidation ---

    def keys_for_order(self, order_id: str, email: Optional[str] = None) -> List[str]:
        """Every key whose result could change when this order changes."""
        keys = [ALL_ORDERS_KEY, detail_key(order_id)]
        if email:
            keys.append(email_key(email))
        for key, entry in self._entries.items():
            if isinstance(entry.data, OrderCollection) and entry.data.contains(order_id):
                keys.append(key)
        return list(dict.fromkeys(keys))

    async def invalidate(self, *keys: str) -> None:
        """Mark the given keys stale and refetch the ones that are cached."""
        entries = [self._entries[k] for k in dict.fromkeys(keys) if k in self._entries]
        for entry in entries:
            entry.generation += 1
            entry.is_stale = True

        if entries:
            logger.info(f"🔄 Refetching {len(entries)} invalidated key(s): {', '.join(e.key for e in entries)}")
        await asyncio.gather(*(self._refetch(entry) for entry in entries))

    async def invalidate_order(self, order_id: str, email: Optional[str] = None) -> None:
        await self.invalidate(*self.keys_for_order(order_id, email))

    def forget_order(self, order_id: str) -> None:
        self._entries.pop(detail_key(order_id), None)

    # --- Internals ---

    def _entry(self, key: str, fetch) -> _CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = _CacheEntry(key, fetch)
            self._entries[key] = entry
        return entry

    async def _read(self, entry: _CacheEntry) -> QueryState:
        seen = entry.settled
        async with entry.lock:
            # Someone else's fetch settled while we waited: share its outcome
            if entry.is_fresh or entry.settled != seen:
                return entry.snapshot()
            await self._fetch(entry)
        return entry.snapshot()

    async def _refetch(self, entry: _CacheEntry) -> None:
        async with entry.lock:
            await self._fetch(entry)

    async def _fetch(self, entry: _CacheEntry) -> None:
        generation = entry.generation
        previous = entry.status
        entry.status = QueryStatus.LOADING
        try:
            data = await entry.fetch()
        except asyncio.CancelledError:
            entry.status = previous
            raise
        except DashboardError as e:
            logger.warning(f"⚠️ Fetch for {entry.key} failed: {e.detail}")
            entry.status = QueryStatus.ERROR
            entry.error = e
            entry.is_stale = True
        except Exception:
            logger.exception(f"❌ Unexpected error fetching {entry.key}")
            entry.status = previous
            raise
        else:
            entry.status = QueryStatus.SUCCESS
            entry.data = data
            entry.error = None
            entry.is_stale = entry.generation != generation
        entry.updated_at = datetime.now(timezone.utc)
        entry.settled += 1


class DetailView:
    """One open order-detail view; see ``OrderQueryCache.open_detail``."""

    def __init__(self, cache: OrderQueryCache, order_id: str):
        self.cache = cache
        self.order_id = order_id
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._task = asyncio.ensure_future(self.cache.get_order_detail(self.order_id))

    async def state(self) -> QueryState:
        if self._task.cancelled():
            # Closed before the fetch resolved; nothing was cached
            return self.cache.peek(detail_key(self.order_id))
        return await asyncio.shield(self._task)

    async def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
