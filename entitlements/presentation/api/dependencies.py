import secrets
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...core.config import Settings
from ...core.exceptions import AuthenticationMissing
from ...core.dependencies import get_settings, get_token_verifier
from ...domain.models import Identity
from ...services.auth_service import IdentityTokenVerifier

_bearer_scheme = HTTPBearer(auto_error=False)


def get_optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    verifier: IdentityTokenVerifier = Depends(get_token_verifier),
) -> Optional[Identity]:
    """Identity of the caller, or None for anonymous requests and bad tokens."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None
    return verifier.verify(credentials.credentials)


def require_identity(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        error = AuthenticationMissing("Not authenticated - please sign in again")
        raise HTTPException(status_code=error.status_code, detail=error.message)
    return identity


def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.admin_api_token
    if (
        credentials is None
        or not expected
        or not secrets.compare_digest(credentials.credentials.encode(), expected.encode())
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")
