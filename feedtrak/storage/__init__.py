"""
FeedTrak Storage Layer
======================

Repository pattern implementations for data access abstraction.
"""

from .feed_repository import FeedRepository
from .entry_repository import EntryRepository
from .category_repository import CategoryRepository
from .subscription_repository import SubscriptionRepository
from .user_state_repository import UserStateRepository

__all__ = [
    "FeedRepository",
    "EntryRepository",
    "CategoryRepository",
    "SubscriptionRepository",
    "UserStateRepository",
]
