"""Debug and admin helpers for inspecting and seeding subscription data."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ..core.exceptions import NotFound
from ..core.logging import mask_identifier
from ..domain.models import Identity, Subscription, SubscriptionStatus, User
from ..domain.ports.persistence import PersistenceGateway
from .identity_resolver import IdentityResolver
from .status_query import StatusQueryService

logger = logging.getLogger(__name__)

TEST_PERIOD = timedelta(days=30)


class DevToolsService:
    """Operations behind the debug and admin routes."""

    def __init__(
        self,
        persistence: PersistenceGateway,
        identity_resolver: IdentityResolver,
        status_query: StatusQueryService,
    ) -> None:
        self._persistence = persistence
        self._identity_resolver = identity_resolver
        self._status_query = status_query

    def debug_snapshot(self, identity: Identity) -> Dict[str, Any]:
        current = self._identity_resolver.find(identity.subject)
        users = self._persistence.list_users()
        subscriptions = self._persistence.list_subscriptions()
        return {
            "identity": {"subject": identity.subject, "email": identity.email, "name": identity.name},
            "currentUser": self._serialize_user(current) if current else None,
            "hasActiveSubscription": self._status_query.has_active_entitlement(identity.subject),
            "allUsersCount": len(users),
            "allUsers": [
                {**self._serialize_user(user), "tokenIdentifier": mask_identifier(user.token_identifier, 10)}
                for user in users
            ],
            "allSubscriptionsCount": len(subscriptions),
            "allSubscriptions": [
                {
                    "id": subscription.id,
                    "userId": mask_identifier(subscription.user_id, 10),
                    "status": subscription.status.value,
                    "providerSubscriptionId": subscription.provider_subscription_id,
                }
                for subscription in subscriptions
            ],
        }

    def create_test_subscription(self, identity: Identity) -> Dict[str, Any]:
        """Give the caller an active 30-day subscription, reusing an existing row if any."""
        user = self._identity_resolver.resolve(identity.subject, email=identity.email, name=identity.name)
        now = datetime.now(timezone.utc).replace(microsecond=0)
        existing = self._persistence.find_subscription_by_user(user.token_identifier)
        if existing:
            self._persistence.patch_subscription(
                existing.id,
                {
                    "status": SubscriptionStatus.ACTIVE,
                    "current_period_start": now,
                    "current_period_end": now + TEST_PERIOD,
                },
            )
            return {"success": True, "message": "Updated existing subscription to active"}

        self._persistence.insert_subscription(
            {
                "user_id": user.token_identifier,
                "provider_subscription_id": f"test_sub_{uuid.uuid4().hex[:12]}",
                "price_id": "test_price_starter",
                "currency": "usd",
                "interval": "month",
                "status": SubscriptionStatus.ACTIVE,
                "current_period_start": now,
                "current_period_end": now + TEST_PERIOD,
                "cancel_at_period_end": False,
                "amount": 900,
                "started_at": now,
                "metadata": {"test": True},
                "customer_id": f"test_customer_{user.token_identifier[:8]}",
            }
        )
        logger.info("Created test subscription for %s", mask_identifier(user.token_identifier))
        return {"success": True, "message": "Test subscription created successfully"}

    def list_users(self) -> List[User]:
        return self._persistence.list_users()

    def create_admin_subscription(self, user_id: str, plan_id: str, status: str) -> Subscription:
        """
        Create a subscription row for an existing user by hand.

        Raises:
            NotFound: No user with that token identifier
            ValueError: Unknown status
        """
        user = self._identity_resolver.find(user_id)
        if not user:
            raise NotFound(f"User not found with ID: {user_id}")
        now = datetime.now(timezone.utc).replace(microsecond=0)
        subscription = self._persistence.insert_subscription(
            {
                "user_id": user.token_identifier,
                "provider_subscription_id": f"sub_{uuid.uuid4().hex}",
                "price_id": plan_id,
                "status": SubscriptionStatus.from_provider(status),
                "amount": 500,
                "currency": "usd",
                "interval": "month",
                "current_period_start": now,
                "current_period_end": now + TEST_PERIOD,
                "started_at": now,
                "metadata": {"createdBy": "admin"},
            }
        )
        logger.info("Admin created subscription %s for %s", subscription.id, mask_identifier(user_id))
        return subscription

    def recent_webhook_events(self, limit: int = 50) -> List[Dict[str, Any]]:
        return [
            {
                "id": event.id,
                "type": event.type,
                "providerEventId": event.provider_event_id,
                "createdAt": event.created_at.isoformat() if event.created_at else None,
                "payload": event.payload,
            }
            for event in self._persistence.list_webhook_events(limit)
        ]

    @staticmethod
    def _serialize_user(user: User) -> Dict[str, Optional[Any]]:
        return {
            "id": user.id,
            "tokenIdentifier": user.token_identifier,
            "email": user.email,
            "name": user.name,
        }
