"""
Download audit log repository (append-only)
"""

from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from app.models.tool import DownloadChannel, DownloadEvent
from app.repositories.base import store_error, to_object_id


class DownloadLogRepository:
    """Inserts download events; never updates or deletes them"""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def insert(
        self,
        tool_id: str,
        user_id: Optional[str],
        channel: DownloadChannel,
    ) -> DownloadEvent:
        doc = {
            "tool_id": to_object_id(tool_id),
            "user_id": user_id,
            "channel": channel.value,
            "created_at": datetime.now(timezone.utc),
        }
        try:
            result = await self.collection.insert_one(doc)
        except PyMongoError as e:
            raise store_error(e, "download logging", tool_id=tool_id)

        return DownloadEvent(
            id=str(result.inserted_id),
            tool_id=tool_id,
            user_id=user_id,
            channel=channel,
            created_at=doc["created_at"],
        )
