from fastapi import APIRouter, Depends

from ....core.dependencies import get_identity_resolver
from ....domain.models import Identity
from ....services.identity_resolver import IdentityResolver
from ...api.dependencies import require_identity
from ...api.schemas.user_schemas import UserResponse

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.post("/me", response_model=UserResponse)
async def upsert_current_user(
    identity: Identity = Depends(require_identity),
    identity_resolver: IdentityResolver = Depends(get_identity_resolver),
) -> UserResponse:
    """Create the caller's user record on first visit and refresh its profile."""
    user = identity_resolver.resolve(identity.subject, email=identity.email, name=identity.name)
    return UserResponse.from_domain(user)
