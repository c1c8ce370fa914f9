"""
Database module initialization
"""

from .mongodb import (
    db,
    connect_to_mongo,
    close_mongo_connection,
    get_database,
    get_tools_collection,
    get_reviews_collection,
    get_downloads_log_collection,
)

__all__ = [
    "db",
    "connect_to_mongo",
    "close_mongo_connection",
    "get_database",
    "get_tools_collection",
    "get_reviews_collection",
    "get_downloads_log_collection",
]
