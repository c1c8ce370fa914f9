"""
Review service: validated write-through of new reviews
"""

from typing import Optional

from app.core.config import config
from app.core.errors import AuthError, NotFoundError, ValidationError
from app.core.logger import logger
from app.models.review import Review
from app.models.user import User
from app.repositories.review import ReviewRepository
from app.repositories.tool import ToolRepository

MIN_RATING = 1
MAX_RATING = 5


def validate_review(rating, body) -> str:
    """
    Check review input without touching the store.

    Returns the normalized body; raises ValidationError naming the problem.
    """
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError("Rating must be a whole number", field="rating")
    if rating < MIN_RATING or rating > MAX_RATING:
        raise ValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}", field="rating")

    body = (body or "").strip()
    if not body:
        raise ValidationError("Review text is required", field="body")
    if len(body) > config.review_body_max_length:
        raise ValidationError(
            f"Review text can be up to {config.review_body_max_length} characters",
            field="body",
        )
    return body


class ReviewService:
    """Service layer for review submission"""

    def __init__(self, tool_repository: ToolRepository, review_repository: ReviewRepository):
        self.tool_repository = tool_repository
        self.review_repository = review_repository

    async def submit_review(self, tool_id: str, user: Optional[User], rating: int, body: str) -> Review:
        """
        Persist a review and return the stored record.

        Identity and input are checked before any I/O. Uniqueness per user
        and tool is left to the store.
        """
        if user is None or not user.id:
            raise AuthError("Login required to write a review")

        body = validate_review(rating, body)

        tool = await self.tool_repository.get_by_id(tool_id)
        if tool is None:
            raise NotFoundError(details={"tool_id": tool_id})

        review = await self.review_repository.insert(tool.id, user.id, rating, body)

        logger.info(
            f"Review {review.id} submitted for tool {tool.id}",
            metadata={
                "event": "review_submitted",
                "tool_id": tool.id,
                "review_id": review.id,
                "user_id": user.id,
                "rating": rating,
            }
        )
        return review
