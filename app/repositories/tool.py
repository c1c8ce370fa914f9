"""
Tool repository: catalog reads and the atomic download counter
"""

from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.core.errors import NotFoundError
from app.models.tool import Tool
from app.repositories.base import store_error, to_object_id


class ToolRepository:
    """Repository for tool data access operations"""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    @staticmethod
    def _doc_to_tool(doc: dict) -> Tool:
        doc = dict(doc)
        doc["id"] = str(doc.pop("_id"))
        return Tool(**doc)

    async def get_by_id(self, tool_id: str) -> Optional[Tool]:
        oid = to_object_id(tool_id)
        if oid is None:
            return None
        try:
            doc = await self.collection.find_one({"_id": oid})
        except PyMongoError as e:
            raise store_error(e, "tool retrieval", tool_id=tool_id)
        return self._doc_to_tool(doc) if doc else None

    async def get_by_slug(self, slug: str) -> Optional[Tool]:
        try:
            doc = await self.collection.find_one({"slug": slug})
        except PyMongoError as e:
            raise store_error(e, "tool retrieval", slug=slug)
        return self._doc_to_tool(doc) if doc else None

    async def list_visible(self) -> List[Tool]:
        """Visible tools, newest first"""
        try:
            cursor = self.collection.find({"visible": True}).sort("created_at", -1)
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise store_error(e, "tool listing")
        return [self._doc_to_tool(doc) for doc in docs]

    async def increment_downloads(self, tool_id: str) -> int:
        """
        Atomically increment the download counter and return the new value.

        A single $inc on the server: concurrent callers never lose updates.
        Raises NotFoundError for unknown ids and TransientStoreError when the
        store is unreachable.
        """
        oid = to_object_id(tool_id)
        if oid is None:
            raise NotFoundError(details={"tool_id": tool_id})
        try:
            doc = await self.collection.find_one_and_update(
                {"_id": oid},
                {"$inc": {"downloads": 1}},
                projection={"downloads": 1},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise store_error(e, "download count increment", tool_id=tool_id)

        if doc is None:
            raise NotFoundError(details={"tool_id": tool_id})
        return doc["downloads"]
