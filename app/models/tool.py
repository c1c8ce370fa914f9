"""
Catalog tool and download audit models
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


def utc_now():
    """Helper function for Pydantic default_factory to get current UTC time"""
    return datetime.now(timezone.utc)


class DownloadChannel(str, Enum):
    """Where the user downloaded the tool from"""
    PRIMARY = "primary"
    MIRROR = "mirror"


class Tool(BaseModel):
    """A published community tool"""
    id: str
    slug: str
    title: str
    short_description: Optional[str] = None
    full_description: Optional[str] = None
    tags: List[str] = []
    images: List[str] = []
    version: str = "1.0.0"

    download_url: str
    mirror_url: Optional[str] = None
    donate_url: Optional[str] = None
    telegram_url: Optional[str] = None

    # Mutated only through the atomic counter
    downloads: int = Field(default=0, ge=0)
    visible: bool = True
    created_at: datetime = Field(default_factory=utc_now)

    def url_for(self, channel: DownloadChannel) -> Optional[str]:
        """Resolve the download link for a channel"""
        if channel == DownloadChannel.MIRROR:
            return self.mirror_url
        return self.download_url


class ToolWithStats(Tool):
    """Catalog list entry with review statistics"""
    average_rating: Optional[float] = None
    review_count: int = Field(default=0, ge=0)


class DownloadEvent(BaseModel):
    """Append-only download audit record"""
    id: str
    tool_id: str
    user_id: Optional[str] = None
    channel: DownloadChannel = DownloadChannel.PRIMARY
    created_at: datetime = Field(default_factory=utc_now)
