"""Plan catalog, checkout and customer portal endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from ....core.dependencies import get_billing_service
from ....core.exceptions import EntitlementError
from ....domain.models import Identity
from ....services.billing_service import BillingService
from ...api.dependencies import require_identity
from ...api.schemas.billing_schemas import (
    CreateCheckoutSessionRequest,
    PlanCatalogResponse,
    RedirectUrlResponse,
)

router = APIRouter(prefix="/api", tags=["Billing"])


@router.get("/plans", response_model=PlanCatalogResponse)
async def get_plans(
    billing_service: BillingService = Depends(get_billing_service),
) -> PlanCatalogResponse:
    """Get available subscription plans."""
    return PlanCatalogResponse.model_validate(billing_service.list_plans())


@router.post("/checkout", response_model=RedirectUrlResponse)
async def create_checkout_session(
    payload: CreateCheckoutSessionRequest,
    identity: Identity = Depends(require_identity),
    billing_service: BillingService = Depends(get_billing_service),
) -> RedirectUrlResponse:
    """Create a checkout session for the selected price."""
    try:
        url = billing_service.create_checkout_session(identity, payload.price_id)
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return RedirectUrlResponse(url=url)


@router.post("/billing/portal", response_model=RedirectUrlResponse)
async def create_customer_portal(
    identity: Identity = Depends(require_identity),
    billing_service: BillingService = Depends(get_billing_service),
) -> RedirectUrlResponse:
    """Open the billing provider's customer portal for the caller."""
    try:
        url = billing_service.create_customer_portal_url(identity.subject)
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return RedirectUrlResponse(url=url)
