"""
Tool catalog API endpoints
"""

import asyncio
import contextlib
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, WebSocket, WebSocketDisconnect, status

from app.core.errors import ErrorResponse, ErrorResponseModel
from app.core.logger import logger
from app.dependencies.auth import get_current_user_optional
from app.dependencies.tool import (
    get_catalog_service,
    get_download_service,
    get_read_coordinator,
    get_review_service,
)
from app.models.aggregate import AggregateSnapshot
from app.models.review import Review
from app.models.tool import Tool, ToolWithStats
from app.models.user import User
from app.schemas.tool import DownloadRequest, DownloadResponse, ReviewCreate
from app.services.catalog import CatalogService
from app.services.download import DownloadService
from app.services.read_coordinator import ReadCoordinator
from app.services.review import ReviewService

router = APIRouter()


@router.get("", response_model=List[ToolWithStats])
async def list_tools(service: CatalogService = Depends(get_catalog_service)):
    """Visible tools, newest first, with average rating and review count"""
    return await service.list_tools()


@router.get(
    "/{slug}",
    response_model=Tool,
    responses={404: {"model": ErrorResponseModel}},
)
async def get_tool(slug: str, service: CatalogService = Depends(get_catalog_service)):
    return await service.get_tool_by_slug(slug)


@router.get(
    "/{slug}/reviews",
    response_model=List[Review],
    responses={404: {"model": ErrorResponseModel}},
)
async def list_reviews(
    slug: str,
    service: CatalogService = Depends(get_catalog_service),
    coordinator: ReadCoordinator = Depends(get_read_coordinator),
):
    """Reviews of a tool with their authors, newest first"""
    tool = await service.get_tool_by_slug(slug)
    return await coordinator.get_reviews(tool.id)


@router.post(
    "/{slug}/reviews",
    response_model=Review,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponseModel},
        401: {"model": ErrorResponseModel},
        404: {"model": ErrorResponseModel},
        503: {"model": ErrorResponseModel},
    },
)
async def submit_review(
    slug: str,
    payload: ReviewCreate,
    user: Optional[User] = Depends(get_current_user_optional),
    catalog: CatalogService = Depends(get_catalog_service),
    service: ReviewService = Depends(get_review_service),
):
    """
    Submit a review. Observers of the tool pick up the new aggregate through
    the change feed, not through this response.
    """
    tool = await catalog.get_tool_by_slug(slug)
    return await service.submit_review(tool.id, user, payload.rating, payload.body)


@router.post(
    "/{slug}/downloads",
    response_model=DownloadResponse,
    responses={400: {"model": ErrorResponseModel}, 404: {"model": ErrorResponseModel}},
)
async def confirm_download(
    slug: str,
    background_tasks: BackgroundTasks,
    payload: DownloadRequest = DownloadRequest(),
    user: Optional[User] = Depends(get_current_user_optional),
    catalog: CatalogService = Depends(get_catalog_service),
    service: DownloadService = Depends(get_download_service),
):
    """
    Resolve the download link and track the download.

    Counting and logging run after the response is sent, so neither a slow
    nor a failing store delays the link.
    """
    tool = await catalog.get_tool_by_slug(slug)
    response = service.resolve_download(tool, payload.channel)
    background_tasks.add_task(
        service.track_download, tool.id, user.id if user else None, payload.channel
    )
    return response


@router.get(
    "/{slug}/aggregate",
    response_model=AggregateSnapshot,
    responses={404: {"model": ErrorResponseModel}},
)
async def get_aggregate(
    slug: str,
    catalog: CatalogService = Depends(get_catalog_service),
    coordinator: ReadCoordinator = Depends(get_read_coordinator),
):
    tool = await catalog.get_tool_by_slug(slug)
    return await coordinator.get_aggregate(tool.id)


@router.websocket("/{slug}/aggregate/ws")
async def observe_aggregate(
    websocket: WebSocket,
    slug: str,
    catalog: CatalogService = Depends(get_catalog_service),
):
    """Push the tool's aggregate on every change until the client leaves"""
    try:
        tool = await catalog.get_tool_by_slug(slug)
    except ErrorResponse as e:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
        return

    coordinator: ReadCoordinator = websocket.app.state.read_coordinator
    await websocket.accept()
    observation = await coordinator.observe_aggregate(tool.id)
    logger.debug(
        f"Aggregate observer for tool {tool.id} joined",
        metadata={"event": "observer_connected", "tool_id": tool.id}
    )

    async def close_on_disconnect():
        # Ends the observation as soon as the client goes away, even when
        # no snapshot is being sent
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        finally:
            await asyncio.shield(observation.close())

    watcher = asyncio.create_task(close_on_disconnect())
    try:
        async for snapshot in observation:
            await websocket.send_json(snapshot.model_dump(mode="json"))
    except WebSocketDisconnect:
        pass
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher
        await observation.close()
        logger.debug(
            f"Aggregate observer for tool {tool.id} left",
            metadata={"event": "observer_disconnected", "tool_id": tool.id}
        )
