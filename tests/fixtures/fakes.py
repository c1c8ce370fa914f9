"""In-memory stand-ins for the repositories and the review change stream"""
import asyncio
import itertools
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from bson import ObjectId
from pymongo.errors import AutoReconnect

from app.core.errors import NotFoundError, TransientStoreError
from app.models.review import Review
from app.models.tool import DownloadEvent, Tool


class FakeChangeStream:
    """Async context manager and iterator fed by the store"""

    def __init__(self, store: "InMemoryReviewStore", tool_id: str):
        self.store = store
        self.tool_id = tool_id
        self.queue: asyncio.Queue = asyncio.Queue()

    async def __aenter__(self):
        if self.store.failing_opens > 0:
            self.store.failing_opens -= 1
            raise AutoReconnect("store unreachable")
        self.store.open_streams.append(self)
        self.store.opened_count += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self in self.store.open_streams:
            self.store.open_streams.remove(self)
        return False

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.queue.get()
        if item is StopAsyncIteration:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class InMemoryReviewStore:
    """Review repository over a list, publishing inserts to open change streams"""

    def __init__(self):
        self.reviews: List[Review] = []
        self.open_streams: List[FakeChangeStream] = []
        self.opened_count = 0
        self.failing_opens = 0
        self.fetch_count = 0
        self.fetch_gate: Optional[asyncio.Event] = None
        self.fetch_error: Optional[Exception] = None
        self._ids = itertools.count(1)
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    # ReviewRepository interface

    async def insert(self, tool_id: str, user_id: str, rating: int, body: str) -> Review:
        self._clock += timedelta(seconds=1)
        review = Review(
            id=str(ObjectId()),
            tool_id=tool_id,
            user_id=user_id,
            rating=rating,
            body=body,
            created_at=self._clock,
        )
        self.reviews.append(review)
        self.push({
            "operationType": "insert",
            "fullDocument": {"tool_id": tool_id, "rating": rating},
        }, tool_id)
        return review

    async def list_for_tool(self, tool_id: str) -> List[Review]:
        self.fetch_count += 1
        # Read happens before the gate so a held fetch returns the state it saw
        rows = [r for r in self.reviews if r.tool_id == tool_id]
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fetch_error is not None:
            raise self.fetch_error
        return sorted(rows, key=lambda r: r.created_at, reverse=True)

    async def ratings_by_tool(self, tool_ids: List[str]) -> Dict[str, List[int]]:
        return {
            tool_id: [r.rating for r in self.reviews if r.tool_id == tool_id]
            for tool_id in tool_ids
        }

    # Change stream side

    def stream_factory(self, tool_id: str) -> FakeChangeStream:
        return FakeChangeStream(self, tool_id)

    def push(self, change: dict, tool_id: str) -> None:
        for stream in list(self.open_streams):
            if stream.tool_id == tool_id:
                stream.queue.put_nowait(change)

    def drop_streams(self, error: Optional[BaseException] = None) -> None:
        for stream in list(self.open_streams):
            stream.queue.put_nowait(error or AutoReconnect("connection reset"))


class InMemoryToolRepository:
    """ToolRepository over a dict; the increment is a single indivisible step"""

    def __init__(self, tools: List[Tool] = ()):
        self.tools: Dict[str, Tool] = {tool.id: tool for tool in tools}
        self.transient_failures = 0
        self.increment_calls = 0

    async def get_by_id(self, tool_id: str) -> Optional[Tool]:
        return self.tools.get(tool_id)

    async def get_by_slug(self, slug: str) -> Optional[Tool]:
        return next((t for t in self.tools.values() if t.slug == slug), None)

    async def list_visible(self) -> List[Tool]:
        visible = [t for t in self.tools.values() if t.visible]
        return sorted(visible, key=lambda t: t.created_at, reverse=True)

    async def increment_downloads(self, tool_id: str) -> int:
        self.increment_calls += 1
        # Let other callers interleave around the round trip
        await asyncio.sleep(0)
        if self.transient_failures > 0:
            self.transient_failures -= 1
            raise TransientStoreError("Store unavailable during download count increment")
        tool = self.tools.get(tool_id)
        if tool is None:
            raise NotFoundError(details={"tool_id": tool_id})
        tool.downloads += 1
        new_count = tool.downloads
        await asyncio.sleep(0)
        return new_count


class InMemoryDownloadLog:
    def __init__(self):
        self.events: List[DownloadEvent] = []
        self.error: Optional[Exception] = None

    async def insert(self, tool_id, user_id, channel) -> DownloadEvent:
        if self.error is not None:
            raise self.error
        event = DownloadEvent(id=str(ObjectId()), tool_id=tool_id, user_id=user_id, channel=channel)
        self.events.append(event)
        return event
