"""
API schemas for tool endpoints
"""

from pydantic import BaseModel, Field

from app.models.tool import DownloadChannel


class ReviewCreate(BaseModel):
    """
    Schema for submitting a review.

    Range and emptiness checks are done by ReviewService so that the caller
    gets the specific rejection reason.
    """
    rating: int
    body: str = ""


class DownloadRequest(BaseModel):
    """Schema for confirming a download"""
    channel: DownloadChannel = DownloadChannel.PRIMARY


class DownloadResponse(BaseModel):
    """Where to send the user; tracking happens after the response"""
    tool_id: str
    channel: DownloadChannel
    url: str = Field(..., description="Resolved link for the requested channel")
