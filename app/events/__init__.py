"""
Change feed subscriptions
"""

from .change_feed import (
    ChangeFeedSubscription,
    MongoReviewChangeStream,
    StreamEnded,
    SubscriptionState,
)

__all__ = [
    "ChangeFeedSubscription",
    "MongoReviewChangeStream",
    "StreamEnded",
    "SubscriptionState",
]
