"""
Dependencies module initialization
"""

from .auth import get_current_user, get_current_user_optional
from .tool import (
    get_catalog_service,
    get_download_service,
    get_read_coordinator,
    get_review_service,
)

__all__ = [
    "get_current_user",
    "get_current_user_optional",
    "get_catalog_service",
    "get_download_service",
    "get_read_coordinator",
    "get_review_service",
]
