"""Read-only entitlement checks used to gate protected routes."""

from __future__ import annotations

import logging
from typing import Optional

from ..core.logging import mask_identifier
from ..domain.models import Subscription, User
from ..domain.ports.persistence import SubscriptionRepository
from .identity_resolver import IdentityResolver

logger = logging.getLogger(__name__)


class StatusQueryService:
    """Answers whether a subject currently holds an active subscription."""

    def __init__(self, identity_resolver: IdentityResolver, subscriptions: SubscriptionRepository) -> None:
        self._identity_resolver = identity_resolver
        self._subscriptions = subscriptions

    def has_active_entitlement(self, subject: Optional[str]) -> bool:
        """
        Check whether ``subject`` is entitled to protected content.

        Missing subjects, unknown users and users without a subscription all
        yield False. Storage failures are logged and also yield False.
        """
        if not subject:
            return False
        try:
            return self._is_entitled(self._identity_resolver.find(subject))
        except Exception:
            logger.exception("Entitlement check failed for %s", mask_identifier(subject))
            return False

    def has_active_entitlement_by_legacy_id(self, raw_id: Optional[str]) -> bool:
        """Same check, probing every known identifier format for ``raw_id``."""
        if not raw_id:
            return False
        try:
            return self._is_entitled(self._identity_resolver.resolve_by_legacy_formats(raw_id))
        except Exception:
            logger.exception("Legacy entitlement check failed for %s", mask_identifier(raw_id))
            return False

    def current_subscription(self, subject: Optional[str]) -> Optional[Subscription]:
        user = self._identity_resolver.find(subject)
        if not user:
            return None
        return self._subscriptions.find_subscription_by_user(user.token_identifier)

    def _is_entitled(self, user: Optional[User]) -> bool:
        if not user:
            return False
        subscription = self._subscriptions.find_subscription_by_user(user.token_identifier)
        logger.debug(
            "Subscription check for %s: found=%s status=%s",
            mask_identifier(user.token_identifier),
            subscription is not None,
            subscription.status.value if subscription else None,
        )
        return subscription is not None and subscription.is_active()
