from shopwatch.models.product import Product
from shopwatch.models.user import User
from shopwatch.models.offer import Offer
from shopwatch.models.watch_item import WatchItem
from shopwatch.models.notification import PendingNotification

__all__ = [
    "Product",
    "User",
    "Offer",
    "WatchItem",
    "PendingNotification",
]
