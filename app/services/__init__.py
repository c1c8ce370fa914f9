"""
Services module initialization
"""

from .aggregate import AggregateValue, compute_aggregate
from .aggregate_cache import AggregateCache
from .catalog import CatalogService
from .download import DownloadCounterWatch, DownloadService
from .read_coordinator import AggregateObservation, ReadCoordinator
from .review import ReviewService, validate_review

__all__ = [
    "AggregateValue",
    "compute_aggregate",
    "AggregateCache",
    "CatalogService",
    "DownloadCounterWatch",
    "DownloadService",
    "AggregateObservation",
    "ReadCoordinator",
    "ReviewService",
    "validate_review",
]
