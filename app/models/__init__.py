"""
Models module initialization
"""

from .aggregate import AggregateSnapshot, ChangeNotification, ChangeOperation
from .review import Review, ReviewAuthor
from .tool import DownloadChannel, DownloadEvent, Tool, ToolWithStats
from .user import User

__all__ = [
    "AggregateSnapshot",
    "ChangeNotification",
    "ChangeOperation",
    "Review",
    "ReviewAuthor",
    "DownloadChannel",
    "DownloadEvent",
    "Tool",
    "ToolWithStats",
    "User",
]
