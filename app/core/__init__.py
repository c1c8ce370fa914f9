"""
Core module initialization
"""

from .config import config
from .logger import logger
from .errors import (
    ErrorResponse,
    ErrorResponseModel,
    ValidationError,
    AuthError,
    NotFoundError,
    StoreError,
    TransientStoreError,
)

__all__ = [
    "config",
    "logger",
    "ErrorResponse",
    "ErrorResponseModel",
    "ValidationError",
    "AuthError",
    "NotFoundError",
    "StoreError",
    "TransientStoreError",
]
