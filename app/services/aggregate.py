"""
Review aggregate computation
"""

from typing import Iterable, NamedTuple, Optional


class AggregateValue(NamedTuple):
    count: int
    mean: Optional[float]


def compute_aggregate(ratings: Iterable[int]) -> AggregateValue:
    """
    Count and arithmetic mean of a full rating set.

    The mean is None for an empty set: "no reviews" is not a rating of 0.
    """
    ratings = list(ratings)
    if not ratings:
        return AggregateValue(count=0, mean=None)
    return AggregateValue(count=len(ratings), mean=sum(ratings) / len(ratings))
