"""Entitlement queries consumed by route guards and the pricing page."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ....core.dependencies import get_status_query
from ....domain.models import Identity
from ....services.status_query import StatusQueryService
from ...api.dependencies import get_optional_identity
from ...api.schemas.subscription_schemas import SubscriptionResponse, SubscriptionStatusResponse

router = APIRouter(prefix="/api/subscription", tags=["Subscription"])


@router.get("/status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    user_id: Optional[str] = Query(None, description="Token identifier to check instead of the caller"),
    identity: Optional[Identity] = Depends(get_optional_identity),
    status_query: StatusQueryService = Depends(get_status_query),
) -> SubscriptionStatusResponse:
    subject = user_id or (identity.subject if identity else None)
    return SubscriptionStatusResponse(has_active_subscription=status_query.has_active_entitlement(subject))


@router.get("/status/legacy/{raw_id}", response_model=SubscriptionStatusResponse)
async def get_subscription_status_by_legacy_id(
    raw_id: str,
    status_query: StatusQueryService = Depends(get_status_query),
) -> SubscriptionStatusResponse:
    """Entitlement check for identifiers that may predate the current format."""
    return SubscriptionStatusResponse(
        has_active_subscription=status_query.has_active_entitlement_by_legacy_id(raw_id)
    )


@router.get("", response_model=Optional[SubscriptionResponse])
async def get_current_subscription(
    identity: Optional[Identity] = Depends(get_optional_identity),
    status_query: StatusQueryService = Depends(get_status_query),
) -> Optional[SubscriptionResponse]:
    """Get the caller's subscription, or null."""
    if identity is None:
        return None
    subscription = status_query.current_subscription(identity.subject)
    if not subscription:
        return None
    return SubscriptionResponse.from_domain(subscription)
