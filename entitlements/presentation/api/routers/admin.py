"""Operator endpoints guarded by the static admin token."""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ....core.dependencies import get_dev_tools
from ....core.exceptions import NotFound
from ....services.dev_tools_service import DevToolsService
from ...api.dependencies import require_admin
from ...api.schemas.subscription_schemas import AdminCreateSubscriptionRequest, SubscriptionResponse
from ...api.schemas.user_schemas import UserResponse

router = APIRouter(prefix="/api/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


@router.get("/users", response_model=List[UserResponse])
async def list_users(dev_tools: DevToolsService = Depends(get_dev_tools)) -> List[UserResponse]:
    return [UserResponse.from_domain(user) for user in dev_tools.list_users()]


@router.post("/subscriptions", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
async def create_subscription(
    payload: AdminCreateSubscriptionRequest,
    dev_tools: DevToolsService = Depends(get_dev_tools),
) -> SubscriptionResponse:
    try:
        subscription = dev_tools.create_admin_subscription(payload.user_id, payload.plan_id, payload.status)
    except NotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return SubscriptionResponse.from_domain(subscription)


@router.get("/webhook-events")
async def list_webhook_events(
    limit: int = Query(50, ge=1, le=500),
    dev_tools: DevToolsService = Depends(get_dev_tools),
) -> Dict[str, Any]:
    """Most recent audit log entries, newest first."""
    events = dev_tools.recent_webhook_events(limit)
    return {"items": events, "count": len(events)}
