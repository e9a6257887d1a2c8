"""Redirect decisions for the signed-in area of the site."""

from __future__ import annotations

from typing import Optional

from ..domain.models import Identity
from .status_query import StatusQueryService

SIGN_IN_PATH = "/sign-in"
PRICING_PATH = "/pricing"
DASHBOARD_PATH = "/dashboard"
SUBSCRIPTION_REQUIRED_PATH = "/subscription-required"


class RouteGuard:
    def __init__(self, status_query: StatusQueryService) -> None:
        self._status_query = status_query

    def post_auth_target(self, identity: Optional[Identity]) -> str:
        """Where to send a user who just finished signing in."""
        if identity is None:
            return SIGN_IN_PATH
        if self._status_query.has_active_entitlement_by_legacy_id(identity.subject):
            return DASHBOARD_PATH
        return PRICING_PATH

    def dashboard_target(self, identity: Optional[Identity]) -> Optional[str]:
        """Redirect target for the dashboard, or None when it may render."""
        if identity is None:
            return SIGN_IN_PATH
        if not self._status_query.has_active_entitlement(identity.subject):
            return SUBSCRIPTION_REQUIRED_PATH
        return None
