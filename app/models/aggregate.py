"""
Derived aggregate and change notification models
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


def utc_now():
    return datetime.now(timezone.utc)


class AggregateSnapshot(BaseModel):
    """
    Review aggregate for one tool as of a change-feed version.

    Never persisted. mean_rating is None when review_count is 0.
    """
    tool_id: str
    review_count: int = Field(default=0, ge=0)
    mean_rating: Optional[float] = Field(default=None, ge=1.0, le=5.0)
    as_of_version: int = Field(default=0, ge=0)
    stale: bool = False
    computed_at: datetime = Field(default_factory=utc_now)


class ChangeOperation(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    # Emitted after a reconnect: changes may have been missed
    RESYNC = "resync"


class ChangeNotification(BaseModel):
    """Something changed in a tool's review set; carries no aggregate"""
    tool_id: str
    operation: ChangeOperation
    sequence: int = Field(..., ge=1)
    row: Optional[Dict[str, Any]] = None
    received_at: datetime = Field(default_factory=utc_now)
