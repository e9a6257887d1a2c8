from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from ..models import Subscription, User, WebhookEvent


class UserRepository(Protocol):
    """Persistence functions related to identity-provider users."""

    def upsert_user(
        self,
        token_identifier: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> User:
        ...

    def get_user_by_token(self, token_identifier: str) -> Optional[User]:
        ...

    def list_users(self) -> List[User]:
        ...


class SubscriptionRepository(Protocol):
    """Point lookups and partial updates over subscription rows."""

    def find_subscription_by_user(self, user_id: str) -> Optional[Subscription]:
        ...

    def find_subscription_by_provider_id(self, provider_subscription_id: str) -> Optional[Subscription]:
        ...

    def insert_subscription(self, fields: Dict[str, Any]) -> Subscription:
        ...

    def patch_subscription(self, subscription_id: int, fields: Dict[str, Any]) -> Subscription:
        ...

    def list_subscriptions(self) -> List[Subscription]:
        ...

    def reassign_subscription_owner(self, old_user_id: str, new_user_id: str) -> int:
        ...


class WebhookEventRepository(Protocol):
    """Append-only storage for inbound webhook payloads."""

    def record_webhook_event(
        self,
        event_type: str,
        provider_event_id: Optional[str],
        payload: str,
    ) -> WebhookEvent:
        ...

    def list_webhook_events(self, limit: int = 50) -> List[WebhookEvent]:
        ...


class PersistenceGateway(
    UserRepository,
    SubscriptionRepository,
    WebhookEventRepository,
    Protocol,
):
    """Composite gateway combining every persistence concern used by the app."""

    def close(self) -> None:
        ...
