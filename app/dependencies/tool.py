"""
Dependency injection for repositories and services
"""

from fastapi import Depends, Request

from app.db.mongodb import (
    get_downloads_log_collection,
    get_reviews_collection,
    get_tools_collection,
)
from app.repositories.download_log import DownloadLogRepository
from app.repositories.review import ReviewRepository
from app.repositories.tool import ToolRepository
from app.services.catalog import CatalogService
from app.services.download import DownloadCounterWatch, DownloadService
from app.services.read_coordinator import ReadCoordinator
from app.services.review import ReviewService


async def get_tool_repository() -> ToolRepository:
    return ToolRepository(await get_tools_collection())


async def get_review_repository() -> ReviewRepository:
    return ReviewRepository(await get_reviews_collection())


async def get_download_log_repository() -> DownloadLogRepository:
    return DownloadLogRepository(await get_downloads_log_collection())


async def get_catalog_service(
    tools: ToolRepository = Depends(get_tool_repository),
    reviews: ReviewRepository = Depends(get_review_repository),
) -> CatalogService:
    return CatalogService(tools, reviews)


async def get_review_service(
    tools: ToolRepository = Depends(get_tool_repository),
    reviews: ReviewRepository = Depends(get_review_repository),
) -> ReviewService:
    return ReviewService(tools, reviews)


def get_read_coordinator(request: Request) -> ReadCoordinator:
    """The process-wide coordinator created at startup"""
    return request.app.state.read_coordinator


def get_counter_watch(request: Request) -> DownloadCounterWatch:
    return request.app.state.download_counter_watch


async def get_download_service(
    request: Request,
    tools: ToolRepository = Depends(get_tool_repository),
    log: DownloadLogRepository = Depends(get_download_log_repository),
) -> DownloadService:
    return DownloadService(tools, log, get_counter_watch(request))
