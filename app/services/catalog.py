"""
Catalog service: tool listing and lookup
"""

from typing import List

from app.core.errors import NotFoundError
from app.core.logger import logger
from app.models.tool import Tool, ToolWithStats
from app.repositories.review import ReviewRepository
from app.repositories.tool import ToolRepository
from app.services.aggregate import compute_aggregate


class CatalogService:
    """Service layer for browsing the tool catalog"""

    def __init__(self, tool_repository: ToolRepository, review_repository: ReviewRepository):
        self.tool_repository = tool_repository
        self.review_repository = review_repository

    async def list_tools(self) -> List[ToolWithStats]:
        """Visible tools, newest first, with rating statistics"""
        tools = await self.tool_repository.list_visible()
        if not tools:
            return []

        ratings = await self.review_repository.ratings_by_tool([tool.id for tool in tools])

        listing = []
        for tool in tools:
            value = compute_aggregate(ratings.get(tool.id, []))
            listing.append(ToolWithStats(
                **tool.model_dump(),
                average_rating=value.mean,
                review_count=value.count,
            ))

        logger.debug(
            f"Listed {len(listing)} tools",
            metadata={"event": "list_tools", "count": len(listing)}
        )
        return listing

    async def get_tool_by_slug(self, slug: str) -> Tool:
        """Visible tool by slug"""
        tool = await self.tool_repository.get_by_slug(slug)
        if tool is None or not tool.visible:
            raise NotFoundError(details={"slug": slug})
        return tool
