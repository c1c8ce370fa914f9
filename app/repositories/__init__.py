"""
Repositories module initialization
"""

from .download_log import DownloadLogRepository
from .review import ReviewRepository
from .tool import ToolRepository

__all__ = [
    "DownloadLogRepository",
    "ReviewRepository",
    "ToolRepository",
]
