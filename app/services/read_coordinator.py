"""
Read coordinator: the single entry point observers use for review aggregates.

It owns a registry of observed tools. Each entry pairs a change feed
subscription with an aggregate cache and a task that turns notifications
into cache invalidations. Entries are reference counted: the first observer
of a tool opens its feed, the last one to leave closes it, so live feeds are
bounded by the number of tools being viewed right now.
"""

import asyncio
import contextlib
from typing import Dict, List, Optional

from app.core.logger import logger
from app.events.change_feed import ChangeFeedSubscription, StreamFactory
from app.models.aggregate import AggregateSnapshot
from app.models.review import Review
from app.repositories.review import ReviewRepository
from app.services.aggregate import compute_aggregate
from app.services.aggregate_cache import CLOSED, AggregateCache


class _ToolEntry:
    """Registry slot for one observed tool"""

    def __init__(self, cache: AggregateCache, subscription: ChangeFeedSubscription):
        self.cache = cache
        self.subscription = subscription
        self.refcount = 0
        self.started = False
        self.consumer: Optional[asyncio.Task] = None
        self.lock = asyncio.Lock()


class AggregateObservation:
    """
    Handle yielding a tool's aggregate snapshots as they change.

    Iterate with ``async for``; the first item is the current snapshot.
    When several snapshots pile up between reads only the newest is yielded.
    close() (or leaving ``async with``) ends the iteration and releases the
    tool's feed if this was its last observer. Closing the coordinator ends
    the iteration too.
    """

    def __init__(self, coordinator: "ReadCoordinator", entry: _ToolEntry):
        self.tool_id = entry.cache.tool_id
        self._coordinator = coordinator
        self._entry = entry
        self._queue = entry.cache.subscribe()
        self._closed = False
        self._exhausted = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self):
        return self

    async def __anext__(self) -> AggregateSnapshot:
        if self._exhausted:
            raise StopAsyncIteration

        item = await self._queue.get()
        while not self._queue.empty() and item is not CLOSED:
            nxt = self._queue.get_nowait()
            if nxt is CLOSED:
                self._exhausted = True
                break
            item = nxt

        if item is CLOSED:
            self._exhausted = True
            raise StopAsyncIteration
        return item

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self) -> None:
        """Stop observing; repeated calls are no-ops"""
        if self._closed:
            return
        self._closed = True
        self._entry.cache.unsubscribe(self._queue)
        self._queue.put_nowait(CLOSED)
        await self._coordinator._release(self._entry)


class ReadCoordinator:
    """Serves aggregates and manages per-tool subscriptions"""

    def __init__(
        self,
        review_repository: ReviewRepository,
        stream_factory: StreamFactory,
        initial_backoff: Optional[float] = None,
        max_backoff: Optional[float] = None,
    ):
        self.review_repository = review_repository
        self.stream_factory = stream_factory
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self._entries: Dict[str, _ToolEntry] = {}

    @property
    def observed_tools(self) -> List[str]:
        return list(self._entries)

    def refcount(self, tool_id: str) -> int:
        entry = self._entries.get(tool_id)
        return entry.refcount if entry else 0

    def cache_for(self, tool_id: str) -> Optional[AggregateCache]:
        entry = self._entries.get(tool_id)
        return entry.cache if entry else None

    async def observe_aggregate(self, tool_id: str) -> AggregateObservation:
        """Start observing a tool's aggregate"""
        entry = await self._acquire(tool_id)
        return AggregateObservation(self, entry)

    async def get_aggregate(self, tool_id: str) -> AggregateSnapshot:
        """
        Current aggregate for a tool.

        Observed tools are served from the cache, possibly marked stale.
        Otherwise the aggregate is computed from the store on the spot.
        """
        entry = self._entries.get(tool_id)
        if entry is not None and entry.started:
            return await entry.cache.load()

        reviews = await self.review_repository.list_for_tool(tool_id)
        value = compute_aggregate(review.rating for review in reviews)
        return AggregateSnapshot(tool_id=tool_id, review_count=value.count, mean_rating=value.mean)

    async def get_reviews(self, tool_id: str) -> List[Review]:
        """Review list for a tool, newest first"""
        entry = self._entries.get(tool_id)
        if entry is not None and entry.started:
            await entry.cache.load()
            return entry.cache.reviews()
        return await self.review_repository.list_for_tool(tool_id)

    async def close(self) -> None:
        """Tear down every subscription"""
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            async with entry.lock:
                await self._teardown(entry)
        logger.info(
            "Read coordinator closed",
            metadata={"event": "read_coordinator_closed", "closed_subscriptions": len(entries)}
        )

    async def _acquire(self, tool_id: str) -> _ToolEntry:
        entry = self._entries.get(tool_id)
        if entry is None:
            entry = _ToolEntry(
                cache=AggregateCache(
                    tool_id,
                    self.review_repository.list_for_tool,
                    initial_backoff=self.initial_backoff,
                    max_backoff=self.max_backoff,
                ),
                subscription=ChangeFeedSubscription(
                    tool_id,
                    self.stream_factory,
                    initial_backoff=self.initial_backoff,
                    max_backoff=self.max_backoff,
                ),
            )
            self._entries[tool_id] = entry
        entry.refcount += 1

        try:
            async with entry.lock:
                if not entry.started:
                    # Feed first, then load: nothing committed after the load can be missed
                    await entry.subscription.open()
                    entry.consumer = asyncio.create_task(
                        self._consume(entry), name=f"aggregate-invalidator:{tool_id}"
                    )
                    entry.cache.invalidate(entry.subscription.sequence)
                    entry.started = True
                    logger.info(
                        f"Started observing tool {tool_id}",
                        metadata={"event": "observe_started", "tool_id": tool_id}
                    )
        except BaseException:
            await self._release(entry)
            raise
        return entry

    async def _release(self, entry: _ToolEntry) -> None:
        entry.refcount -= 1
        if entry.refcount > 0:
            return

        tool_id = entry.cache.tool_id
        if self._entries.get(tool_id) is entry:
            del self._entries[tool_id]
        async with entry.lock:
            await self._teardown(entry)
        logger.info(
            f"Stopped observing tool {tool_id}",
            metadata={"event": "observe_stopped", "tool_id": tool_id}
        )

    async def _teardown(self, entry: _ToolEntry) -> None:
        entry.cache.close()
        consumer, entry.consumer = entry.consumer, None
        if consumer is not None:
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
        await entry.subscription.close()
        entry.started = False

    async def _consume(self, entry: _ToolEntry) -> None:
        notifications = entry.subscription.notifications
        while True:
            notification = await notifications.get()
            logger.debug(
                f"Review change for tool {notification.tool_id}: {notification.operation.value}",
                metadata={
                    "event": "review_change_received",
                    "tool_id": notification.tool_id,
                    "operation": notification.operation.value,
                    "sequence": notification.sequence,
                }
            )
            entry.cache.invalidate(notification.sequence)
