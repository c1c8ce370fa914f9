"""
Per-tool cache of the review aggregate with coalesced, version-guarded refetch.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Set

from app.core.config import config
from app.core.errors import ErrorResponse, StoreError
from app.core.logger import logger
from app.models.aggregate import AggregateSnapshot
from app.models.review import Review
from app.services.aggregate import compute_aggregate

ReviewFetcher = Callable[[str], Awaitable[List[Review]]]

# Last item a listener queue receives
CLOSED = object()


class AggregateCache:
    """
    Last fully computed aggregate and review list for one tool.

    invalidate() marks the snapshot stale and schedules a refetch of the full
    review set. At most one refetch runs at a time; invalidations arriving
    during it collapse into a single follow-up. A failed refetch is retried
    with exponential backoff until it succeeds, a new invalidation cutting the
    wait short. A refetch result is installed only if its version is not older
    than the installed one, and never after close().
    """

    def __init__(
        self,
        tool_id: str,
        fetch_reviews: ReviewFetcher,
        initial_backoff: Optional[float] = None,
        max_backoff: Optional[float] = None,
    ):
        self.tool_id = tool_id
        self._fetch_reviews = fetch_reviews
        self.initial_backoff = initial_backoff or config.change_feed_initial_backoff
        self.max_backoff = max_backoff or config.change_feed_max_backoff

        self._snapshot: Optional[AggregateSnapshot] = None
        self._reviews: List[Review] = []
        self._stale = True
        self._requested_version = 0

        self._refetch_task: Optional[asyncio.Task] = None
        self._refetch_again = False
        self._wakeup = asyncio.Event()
        self._attempted = asyncio.Event()
        self._listeners: Set[asyncio.Queue] = set()
        self._closed = False

        self.refetch_count = 0
        self.last_error: Optional[Exception] = None

    @property
    def refetching(self) -> bool:
        return self._refetch_task is not None and not self._refetch_task.done()

    @property
    def closed(self) -> bool:
        return self._closed

    def current(self) -> Optional[AggregateSnapshot]:
        """Last installed snapshot annotated with the current freshness"""
        if self._snapshot is None:
            return None
        return self._snapshot.model_copy(update={"stale": self._stale})

    def reviews(self) -> List[Review]:
        return list(self._reviews)

    def invalidate(self, version: int) -> None:
        """Mark stale and make sure a refetch at least as new as version runs"""
        if self._closed:
            return
        self._stale = True
        self._requested_version = max(self._requested_version, version)

        if self.refetching:
            self._refetch_again = True
            self._wakeup.set()
            return
        self._refetch_task = asyncio.create_task(
            self._refetch_loop(), name=f"aggregate-refetch:{self.tool_id}"
        )

    async def load(self) -> AggregateSnapshot:
        """
        Current snapshot, waiting for the first load if there is none yet.

        Raises the refetch error when the next attempt fails too.
        """
        if self._snapshot is None:
            attempted = self._attempted
            if not self.refetching:
                self.invalidate(self._requested_version)
            if self.refetching:
                await attempted.wait()
            if self._snapshot is None:
                raise self.last_error or StoreError("Aggregate unavailable", details={"tool_id": self.tool_id})
        return self.current()

    def _attempt_finished(self) -> None:
        attempted, self._attempted = self._attempted, asyncio.Event()
        attempted.set()

    async def _refetch_loop(self) -> None:
        delay = self.initial_backoff

        while not self._closed:
            self._refetch_again = False
            self._wakeup.clear()
            version = self._requested_version
            self.refetch_count += 1

            try:
                reviews = await self._fetch_reviews(self.tool_id)
            except ErrorResponse as e:
                self.last_error = e
                self._attempt_finished()
                logger.warning(
                    f"Aggregate refetch failed for tool {self.tool_id}, retrying in {delay:.2f}s",
                    metadata={"event": "aggregate_refetch_failed", "tool_id": self.tool_id, "error": e.message}
                )
                try:
                    await asyncio.wait_for(self._wakeup.wait(), delay)
                except asyncio.TimeoutError:
                    pass
                delay = min(delay * 2, self.max_backoff)
                continue

            value = compute_aggregate(review.rating for review in reviews)
            snapshot = AggregateSnapshot(
                tool_id=self.tool_id,
                review_count=value.count,
                mean_rating=value.mean,
                as_of_version=version,
            )
            self.install(snapshot, reviews)
            self._attempt_finished()
            delay = self.initial_backoff

            if not self._refetch_again:
                return

    def install(self, snapshot: AggregateSnapshot, reviews: List[Review]) -> bool:
        """
        Install a computed snapshot unless it is superseded.

        Returns False (and changes nothing) for a result older than the
        installed one or arriving after close().
        """
        if self._closed:
            logger.debug(
                f"Discarding aggregate for closed tool {self.tool_id}",
                metadata={"event": "aggregate_discarded", "tool_id": self.tool_id}
            )
            return False

        if self._snapshot is not None and snapshot.as_of_version < self._snapshot.as_of_version:
            logger.debug(
                f"Ignoring stale aggregate v{snapshot.as_of_version} for tool {self.tool_id}",
                metadata={
                    "event": "stale_write_ignored",
                    "tool_id": self.tool_id,
                    "version": snapshot.as_of_version,
                    "installed_version": self._snapshot.as_of_version,
                }
            )
            return False

        self._snapshot = snapshot.model_copy(update={"stale": False})
        self._reviews = list(reviews)
        self._stale = snapshot.as_of_version < self._requested_version
        self.last_error = None

        current = self.current()
        for queue in self._listeners:
            queue.put_nowait(current)

        logger.debug(
            f"Installed aggregate v{snapshot.as_of_version} for tool {self.tool_id}",
            metadata={
                "event": "aggregate_installed",
                "tool_id": self.tool_id,
                "review_count": snapshot.review_count,
                "mean_rating": snapshot.mean_rating,
            }
        )
        return True

    def subscribe(self) -> asyncio.Queue:
        """
        Queue receiving every installed snapshot, seeded with the current one.

        CLOSED is put on the queue when the cache closes.
        """
        queue: asyncio.Queue = asyncio.Queue()
        if self._closed:
            queue.put_nowait(CLOSED)
            return queue
        if self._snapshot is not None:
            queue.put_nowait(self.current())
        self._listeners.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._listeners.discard(queue)

    def close(self) -> None:
        """
        Stop accepting results and end every listener. An in-flight refetch
        finishes but is discarded; a pending retry is abandoned.
        """
        if self._closed:
            return
        self._closed = True
        for queue in self._listeners:
            queue.put_nowait(CLOSED)
        self._listeners.clear()
        self._wakeup.set()
        self._attempt_finished()
