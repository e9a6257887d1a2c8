"""Domain models for the entitlements service."""

from .identity import Identity
from .subscription import Subscription, SubscriptionStatus
from .user import User
from .webhook_event import WebhookEvent

__all__ = [
    "Identity",
    "Subscription",
    "SubscriptionStatus",
    "User",
    "WebhookEvent",
]
