"""Pydantic schemas for subscription API endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ....domain.models import Subscription


class SubscriptionStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    has_active_subscription: bool = Field(..., alias="hasActiveSubscription")


class SubscriptionResponse(BaseModel):
    """Response schema for subscription data."""

    id: int
    user_id: str
    provider_subscription_id: str
    status: str
    amount: int
    currency: Optional[str]
    interval: Optional[str]
    current_period_start: Optional[datetime]
    current_period_end: Optional[datetime]
    cancel_at_period_end: bool
    started_at: Optional[datetime]
    canceled_at: Optional[datetime]
    ended_at: Optional[datetime]
    price_id: Optional[str]
    is_active: bool

    @classmethod
    def from_domain(cls, subscription: Subscription) -> "SubscriptionResponse":
        return cls(
            id=subscription.id,
            user_id=subscription.user_id,
            provider_subscription_id=subscription.provider_subscription_id,
            status=subscription.status.value,
            amount=subscription.amount,
            currency=subscription.currency,
            interval=subscription.interval,
            current_period_start=subscription.current_period_start,
            current_period_end=subscription.current_period_end,
            cancel_at_period_end=subscription.cancel_at_period_end,
            started_at=subscription.started_at,
            canceled_at=subscription.canceled_at,
            ended_at=subscription.ended_at,
            price_id=subscription.price_id,
            is_active=subscription.is_active(),
        )


class AdminCreateSubscriptionRequest(BaseModel):
    user_id: str = Field(..., min_length=1, description="Token identifier of the user")
    plan_id: str = Field(..., min_length=1, description="Plan or price identifier")
    status: str = Field("active", description="active, past_due or canceled")
