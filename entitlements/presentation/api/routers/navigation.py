"""Server-side redirects for the sign-in flow and the protected dashboard."""

from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse

from ....core.dependencies import get_identity_resolver, get_route_guard, get_status_query
from ....domain.models import Identity
from ....services.identity_resolver import IdentityResolver
from ....services.route_guard import RouteGuard
from ....services.status_query import StatusQueryService
from ...api.dependencies import get_optional_identity
from ...api.schemas.subscription_schemas import SubscriptionResponse
from ...api.schemas.user_schemas import UserResponse

router = APIRouter(tags=["Navigation"])


@router.get("/auth/redirect")
async def redirect_after_auth(
    identity: Optional[Identity] = Depends(get_optional_identity),
    route_guard: RouteGuard = Depends(get_route_guard),
) -> RedirectResponse:
    return RedirectResponse(route_guard.post_auth_target(identity), status_code=status.HTTP_302_FOUND)


@router.get("/dashboard", response_model=None)
async def dashboard(
    identity: Optional[Identity] = Depends(get_optional_identity),
    route_guard: RouteGuard = Depends(get_route_guard),
    identity_resolver: IdentityResolver = Depends(get_identity_resolver),
    status_query: StatusQueryService = Depends(get_status_query),
) -> Union[RedirectResponse, Dict[str, Any]]:
    """Dashboard loader: redirects unless the caller is entitled."""
    target = route_guard.dashboard_target(identity)
    if target is not None:
        return RedirectResponse(target, status_code=status.HTTP_302_FOUND)

    user = identity_resolver.resolve(identity.subject, email=identity.email, name=identity.name)
    subscription = status_query.current_subscription(identity.subject)
    return {
        "user": UserResponse.from_domain(user).model_dump(mode="json"),
        "subscription": SubscriptionResponse.from_domain(subscription).model_dump(mode="json")
        if subscription
        else None,
    }
