"""
Review repository
"""

from datetime import datetime, timezone
from typing import Dict, List

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from app.db.mongodb import PROFILES_COLLECTION
from app.models.review import Review
from app.repositories.base import store_error, to_object_id


class ReviewRepository:
    """Repository for review data access operations"""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    @staticmethod
    def _doc_to_review(doc: dict) -> Review:
        doc = dict(doc)
        doc["id"] = str(doc.pop("_id"))
        doc["tool_id"] = str(doc["tool_id"])
        if not doc.get("user"):
            doc.pop("user", None)
        return Review(**doc)

    async def insert(self, tool_id: str, user_id: str, rating: int, body: str) -> Review:
        """Persist a review; id and timestamp are assigned here"""
        doc = {
            "tool_id": to_object_id(tool_id),
            "user_id": user_id,
            "rating": rating,
            "body": body,
            "created_at": datetime.now(timezone.utc),
        }
        try:
            result = await self.collection.insert_one(doc)
        except PyMongoError as e:
            raise store_error(e, "review creation", tool_id=tool_id)

        doc["_id"] = result.inserted_id
        return self._doc_to_review(doc)

    async def list_for_tool(self, tool_id: str) -> List[Review]:
        """All reviews of a tool with their author profile, newest first"""
        pipeline = [
            {"$match": {"tool_id": to_object_id(tool_id)}},
            {"$sort": {"created_at": -1}},
            {"$lookup": {
                "from": PROFILES_COLLECTION,
                "localField": "user_id",
                "foreignField": "_id",
                "as": "user",
            }},
            {"$set": {"user": {"$first": "$user"}}},
            {"$project": {"user._id": 0}},
        ]
        try:
            docs = await self.collection.aggregate(pipeline).to_list(length=None)
        except PyMongoError as e:
            raise store_error(e, "review listing", tool_id=tool_id)
        return [self._doc_to_review(doc) for doc in docs]

    async def ratings_by_tool(self, tool_ids: List[str]) -> Dict[str, List[int]]:
        """Full rating set per tool, for every tool id given"""
        object_ids = [oid for oid in map(to_object_id, tool_ids) if oid is not None]
        pipeline = [
            {"$match": {"tool_id": {"$in": object_ids}}},
            {"$group": {"_id": "$tool_id", "ratings": {"$push": "$rating"}}},
        ]
        try:
            docs = await self.collection.aggregate(pipeline).to_list(length=None)
        except PyMongoError as e:
            raise store_error(e, "rating summary")

        ratings = {tool_id: [] for tool_id in tool_ids}
        for doc in docs:
            ratings[str(doc["_id"])] = doc["ratings"]
        return ratings
