"""
Review models
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ReviewAuthor(BaseModel):
    """Public profile fields of the reviewer"""
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    email: Optional[str] = None

    @property
    def name(self) -> str:
        return self.display_name or self.email or "Anonymous"


class Review(BaseModel):
    """A stored review; immutable once created"""
    id: str
    tool_id: str
    user_id: str
    rating: int = Field(..., ge=1, le=5)
    body: str
    created_at: datetime
    user: Optional[ReviewAuthor] = None
