"""
Error taxonomy and FastAPI error handlers for the Tool Catalog Service
"""

import traceback
from typing import Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.config import config
from app.core.logger import logger


class ErrorResponse(Exception):
    """Base exception for application errors rendered as JSON responses"""

    def __init__(self, message: str, status_code: int = 400, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(ErrorResponse):
    """Bad review input, rejected before any store round trip"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, status_code=400, details={"field": field} if field else None)


class AuthError(ErrorResponse):
    """Missing or invalid identity on a write"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status_code=401)


class NotFoundError(ErrorResponse):
    """Unknown tool id or slug"""

    def __init__(self, message: str = "Tool not found", details: dict = None):
        super().__init__(message, status_code=404, details=details)


class StoreError(ErrorResponse):
    """Persistence failure in the durable store"""

    def __init__(self, message: str = "Database error", details: dict = None):
        super().__init__(message, status_code=503, details=details)


class TransientStoreError(StoreError):
    """Store unreachable; the operation may be retried"""


class ErrorResponseModel(BaseModel):
    """Pydantic model for error responses"""
    error: str
    details: Optional[dict] = None


async def error_response_handler(request: Request, exc: ErrorResponse):
    """Handler for ErrorResponse and its subclasses"""
    metadata = {
        "event": "error_response",
        "error_type": type(exc).__name__,
        "status_code": exc.status_code,
        "url": str(request.url),
        "method": request.method,
        **exc.details,
    }

    if config.environment == "development" and exc.status_code >= 500:
        metadata["traceback"] = traceback.format_exc()

    if exc.status_code >= 500:
        logger.error(f"Error: {exc.message}", metadata=metadata)
    else:
        logger.warning(f"Error: {exc.message}", metadata=metadata)

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "details": exc.details}
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handler for FastAPI HTTPException"""
    logger.warning(
        f"HTTPException: {exc.detail}",
        metadata={
            "event": "http_exception",
            "status_code": exc.status_code,
            "url": str(request.url),
            "method": request.method,
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )
