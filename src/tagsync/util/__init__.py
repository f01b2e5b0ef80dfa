from .helpers import FileSystem
from .messagebus import MessageBus, Subscription, SubscriptionGroup

__all__ = ["FileSystem", "MessageBus", "Subscription", "SubscriptionGroup"]
