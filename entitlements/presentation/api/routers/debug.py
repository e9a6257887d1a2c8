"""Developer helpers, mounted only when debug routes are enabled."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ....core.dependencies import get_dev_tools
from ....domain.models import Identity
from ....services.dev_tools_service import DevToolsService
from ...api.dependencies import require_identity

router = APIRouter(prefix="/api/debug", tags=["Debug"])


@router.get("/me")
async def debug_user_and_subscriptions(
    identity: Identity = Depends(require_identity),
    dev_tools: DevToolsService = Depends(get_dev_tools),
) -> Dict[str, Any]:
    return dev_tools.debug_snapshot(identity)


@router.post("/test-subscription")
async def create_test_subscription(
    identity: Identity = Depends(require_identity),
    dev_tools: DevToolsService = Depends(get_dev_tools),
) -> Dict[str, Any]:
    """Give the caller an active subscription without going through checkout."""
    return dev_tools.create_test_subscription(identity)
