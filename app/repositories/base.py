"""
Shared helpers for the MongoDB repositories
"""

from typing import Optional

from bson import ObjectId
from pymongo.errors import ConnectionFailure, PyMongoError

from app.core.errors import StoreError, TransientStoreError
from app.core.logger import logger


def to_object_id(value: str) -> Optional[ObjectId]:
    """Parse a string id, returning None when it is not a valid ObjectId"""
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


def store_error(e: PyMongoError, operation: str, **metadata) -> StoreError:
    """Translate a driver failure into the service error taxonomy"""
    transient = isinstance(e, ConnectionFailure)
    logger.error(
        f"MongoDB error during {operation}",
        error=e,
        metadata={"event": "store_error", "operation": operation, "transient": transient, **metadata}
    )
    if transient:
        return TransientStoreError(f"Store unavailable during {operation}", details={"operation": operation})
    return StoreError(f"Database error during {operation}", details={"operation": operation})
