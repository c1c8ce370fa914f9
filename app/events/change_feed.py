"""
Change feed subscription for a single tool's reviews.

A subscription owns one long-lived MongoDB change stream filtered to the
tool, and republishes every change as a ChangeNotification on an asyncio
queue. Notifications only say that the review set changed; consumers refetch
the full set themselves.

States:
    closed -> open() -> active
    active -> any stream failure -> reconnecting -> active (+ one resync notification)
    active | reconnecting -> close() -> closed
"""

import asyncio
import contextlib
from enum import Enum
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from app.core.config import config
from app.core.logger import logger
from app.models.aggregate import ChangeNotification, ChangeOperation
from app.repositories.base import to_object_id

StreamFactory = Callable[[str], AsyncContextManager[AsyncIterator[Dict[str, Any]]]]

_OPERATIONS = {
    "insert": ChangeOperation.INSERT,
    "update": ChangeOperation.UPDATE,
    "replace": ChangeOperation.UPDATE,
    "delete": ChangeOperation.DELETE,
}


class SubscriptionState(str, Enum):
    CLOSED = "closed"
    ACTIVE = "active"
    RECONNECTING = "reconnecting"


class StreamEnded(Exception):
    """The server closed the change stream without an error"""


class MongoReviewChangeStream:
    """Opens a change stream on the reviews collection scoped to one tool"""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    def __call__(self, tool_id: str):
        oid = to_object_id(tool_id)
        pipeline = [
            {"$match": {
                "operationType": {"$in": list(_OPERATIONS)},
                "$or": [
                    {"fullDocument.tool_id": oid},
                    {"fullDocumentBeforeChange.tool_id": oid},
                ],
            }},
        ]
        return self.collection.watch(
            pipeline,
            full_document="updateLookup",
            full_document_before_change="whenAvailable",
        )


class ChangeFeedSubscription:
    """Long-lived, self-reconnecting change feed for one tool"""

    def __init__(
        self,
        tool_id: str,
        stream_factory: StreamFactory,
        initial_backoff: Optional[float] = None,
        max_backoff: Optional[float] = None,
    ):
        self.tool_id = tool_id
        self.stream_factory = stream_factory
        self.initial_backoff = initial_backoff or config.change_feed_initial_backoff
        self.max_backoff = max_backoff or config.change_feed_max_backoff

        self.state = SubscriptionState.CLOSED
        self.notifications: asyncio.Queue = asyncio.Queue()
        self.reconnect_count = 0
        self._sequence = 0
        self._task: Optional[asyncio.Task] = None
        self._started: Optional[asyncio.Event] = None

    @property
    def sequence(self) -> int:
        """Highest notification sequence published so far"""
        return self._sequence

    async def open(self) -> None:
        """
        Start the feed.

        Returns once the first connection attempt has either established the
        stream or failed into the reconnecting state. No-op when not closed.
        """
        if self.state is not SubscriptionState.CLOSED:
            return

        self._started = asyncio.Event()
        self.state = SubscriptionState.RECONNECTING
        self._task = asyncio.create_task(self._run(), name=f"change-feed:{self.tool_id}")
        await self._started.wait()

    async def close(self) -> None:
        """Release the feed; safe to call repeatedly and concurrently"""
        if self.state is SubscriptionState.CLOSED:
            return
        self.state = SubscriptionState.CLOSED

        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        logger.info(
            f"Closed change feed for tool {self.tool_id}",
            metadata={"event": "change_feed_closed", "tool_id": self.tool_id}
        )

    def _publish(self, operation: ChangeOperation, row: Optional[dict] = None) -> None:
        self._sequence += 1
        self.notifications.put_nowait(ChangeNotification(
            tool_id=self.tool_id,
            operation=operation,
            sequence=self._sequence,
            row=row,
        ))

    async def _run(self) -> None:
        try:
            await self._consume()
        finally:
            self._started.set()

    async def _consume(self) -> None:
        delay = self.initial_backoff
        connected_before = False

        while self.state is not SubscriptionState.CLOSED:
            try:
                async with self.stream_factory(self.tool_id) as stream:
                    if self.state is SubscriptionState.CLOSED:
                        return
                    self.state = SubscriptionState.ACTIVE
                    self._started.set()
                    delay = self.initial_backoff

                    if connected_before:
                        # Changes made during the gap are unknown
                        self.reconnect_count += 1
                        self._publish(ChangeOperation.RESYNC)
                        logger.info(
                            f"Change feed for tool {self.tool_id} reconnected",
                            metadata={"event": "change_feed_reconnected", "tool_id": self.tool_id}
                        )
                    else:
                        logger.info(
                            f"Change feed for tool {self.tool_id} active",
                            metadata={"event": "change_feed_active", "tool_id": self.tool_id}
                        )
                    connected_before = True

                    async for change in stream:
                        operation = _OPERATIONS.get(change.get("operationType"))
                        if operation is None:
                            continue
                        row = change.get("fullDocument") or change.get("fullDocumentBeforeChange")
                        self._publish(operation, row)

                raise StreamEnded("change stream closed by server")

            except (PyMongoError, OSError, StreamEnded) as e:
                if self.state is SubscriptionState.CLOSED:
                    return
                logger.warning(
                    f"Change feed for tool {self.tool_id} dropped, reconnecting in {delay:.2f}s",
                    metadata={
                        "event": "change_feed_dropped",
                        "tool_id": self.tool_id,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )
            except Exception as e:
                if self.state is SubscriptionState.CLOSED:
                    return
                # Restart from a fresh stream; observers resync on reconnect
                logger.error(
                    f"Change feed for tool {self.tool_id} failed, restarting in {delay:.2f}s",
                    error=e,
                    metadata={"event": "change_feed_failed", "tool_id": self.tool_id},
                    exc_info=True,
                )

            self.state = SubscriptionState.RECONNECTING
            self._started.set()
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.max_backoff)
