"""Subscription domain model mirroring the billing provider's state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"

    @classmethod
    def from_provider(cls, value: Optional[str]) -> "SubscriptionStatus":
        """Map a billing provider status onto the local state machine."""
        normalized = (value or "").strip().lower()
        if normalized in ("active", "trialing"):
            return cls.ACTIVE
        if normalized in ("past_due", "unpaid", "incomplete", "paused"):
            return cls.PAST_DUE
        if normalized in ("canceled", "cancelled", "incomplete_expired"):
            return cls.CANCELED
        raise ValueError(f"Unknown subscription status: {value!r}")


# Allowed status changes. Leaving CANCELED needs an explicit reactivation.
TRANSITIONS = {
    SubscriptionStatus.ACTIVE: {SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELED},
    SubscriptionStatus.PAST_DUE: {SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELED},
    SubscriptionStatus.CANCELED: {SubscriptionStatus.CANCELED},
}


@dataclass(slots=True)
class Subscription:
    """
    Subscription entity tracking a user's plan with the billing provider.

    Attributes:
        id: Row identifier
        user_id: Token identifier of the owning user
        provider_subscription_id: Billing provider subscription ID
        status: Local status (active, past_due, canceled)
        amount: Price in the smallest currency unit
        currency: ISO currency code
        interval: Billing interval (month, year)
        current_period_start: Start of current billing period
        current_period_end: End of current billing period
        cancel_at_period_end: Whether the subscription stops at period end
        started_at: When the subscription became active
        canceled_at: When cancellation was requested
        ended_at: When the subscription stopped
        price_id: Billing provider price ID
        customer_id: Billing provider customer ID
        metadata: Free-form metadata copied from the provider
    """

    id: int
    user_id: str
    provider_subscription_id: str
    status: SubscriptionStatus
    amount: int
    currency: Optional[str]
    interval: Optional[str]
    current_period_start: Optional[datetime]
    current_period_end: Optional[datetime]
    cancel_at_period_end: bool = False
    started_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    price_id: Optional[str] = None
    customer_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_active(self) -> bool:
        return self.status is SubscriptionStatus.ACTIVE

    def can_transition_to(self, target: SubscriptionStatus) -> bool:
        return target in TRANSITIONS[self.status]
