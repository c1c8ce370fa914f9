"""
API schemas
"""

from .tool import DownloadRequest, DownloadResponse, ReviewCreate

__all__ = ["DownloadRequest", "DownloadResponse", "ReviewCreate"]
