"""Applies billing provider webhook events to local subscription state."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from ..core.exceptions import MalformedEvent
from ..core.logging import mask_identifier
from ..domain.models import Subscription, SubscriptionStatus, WebhookEvent
from ..domain.ports.persistence import SubscriptionRepository, WebhookEventRepository
from .webhook_verifier import WebhookVerifier

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any], Dict[str, Any]], Optional[Subscription]]


class WebhookReconciler:
    """
    Verifies, audit-logs and dispatches billing webhook events.

    Every transition is idempotent: re-delivering an event leaves the store
    in the state the first delivery produced. Events for subscriptions that
    are not stored yet are dropped.
    """

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        events: WebhookEventRepository,
        verifier: WebhookVerifier,
    ) -> None:
        self._subscriptions = subscriptions
        self._events = events
        self._verifier = verifier
        self._handlers: Dict[str, Handler] = {
            "subscription.created": self._on_created,
            "subscription.updated": self._on_updated,
            "subscription.activated": self._on_activated,
            "subscription.cancelled": self._on_cancelled,
            "subscription.canceled": self._on_cancelled,
            "subscription.deleted": self._on_cancelled,
            "subscription.reactivated": self._on_reactivated,
            "invoice.payment_failed": self._on_payment_failed,
            "invoice.payment_succeeded": self._on_payment_succeeded,
        }

    def handle(self, raw_body: bytes, signature_header: Optional[str]) -> WebhookEvent:
        """
        Process one webhook delivery.

        The signature is checked first; nothing is written for a rejected
        delivery. Accepted deliveries are recorded in the audit log before
        dispatch, so malformed events remain available for replay.

        Raises:
            SignatureInvalid: Signature header missing or wrong
            ConfigurationMissing: No webhook secret configured
            MalformedEvent: Body or payload cannot be interpreted
        """
        self._verifier.verify(raw_body, signature_header)

        text = raw_body.decode("utf-8")
        try:
            event = json.loads(text)
        except ValueError:
            event = None
        if not isinstance(event, dict):
            self._events.record_webhook_event("unparseable", None, text)
            raise MalformedEvent("Webhook body is not a JSON object")

        record = self._events.record_webhook_event(
            str(event.get("type") or "unknown"),
            self._provider_event_id(event),
            text,
        )
        self.apply(event)
        return record

    def apply(self, event: Dict[str, Any]) -> Optional[Subscription]:
        """Dispatch an already verified event; returns the affected subscription, if any."""
        event_type = event.get("type")
        if not isinstance(event_type, str):
            raise MalformedEvent("Event has no type")
        kind = self._normalize_kind(event_type)
        handler = self._handlers.get(kind)
        if handler is None:
            logger.info("Ignoring unhandled webhook event %s", event_type)
            return None
        return handler(event, self._payload_object(event))

    # Handlers ---------------------------------------------------------------
    def _on_created(self, event: Dict[str, Any], obj: Dict[str, Any]) -> Subscription:
        provider_id = self._require_id(obj)
        existing = self._subscriptions.find_subscription_by_provider_id(provider_id)
        if existing:
            logger.info("Subscription %s already stored, applying as update", provider_id)
            return self._apply_update(existing, obj)

        metadata = obj.get("metadata") or {}
        user_id = metadata.get("userId") or metadata.get("user_id")
        if not user_id:
            raise MalformedEvent("Subscription payload has no metadata.userId")

        event_time = self._event_time(event)
        item = self._first_item(obj)
        price = item.get("price") or {}
        recurring = price.get("recurring") or {}
        fields = {
            "user_id": user_id,
            "provider_subscription_id": provider_id,
            "status": self._status(obj.get("status")),
            "amount": price.get("unit_amount") or 0,
            "currency": obj.get("currency") or price.get("currency"),
            "interval": recurring.get("interval") or "month",
            "current_period_start": self._period_bound(obj, item, "current_period_start") or event_time,
            "current_period_end": self._period_bound(obj, item, "current_period_end") or event_time,
            "cancel_at_period_end": bool(obj.get("cancel_at_period_end")),
            "started_at": self._timestamp(obj.get("start_date")) or event_time,
            "canceled_at": self._timestamp(obj.get("canceled_at")),
            "ended_at": self._timestamp(obj.get("ended_at")),
            "price_id": price.get("id") or obj.get("price_id"),
            "customer_id": obj.get("customer"),
            "metadata": metadata,
        }
        subscription = self._subscriptions.insert_subscription(fields)
        logger.info(
            "Stored subscription %s for user %s with status %s",
            provider_id,
            mask_identifier(user_id),
            subscription.status.value,
        )
        return subscription

    def _on_updated(self, event: Dict[str, Any], obj: Dict[str, Any]) -> Optional[Subscription]:
        existing = self._find(self._require_id(obj))
        if not existing:
            return None
        return self._apply_update(existing, obj)

    def _on_activated(self, event: Dict[str, Any], obj: Dict[str, Any]) -> Optional[Subscription]:
        existing = self._find(self._require_id(obj))
        if not existing:
            return None
        if not existing.can_transition_to(SubscriptionStatus.ACTIVE):
            logger.info("Ignoring activation of canceled subscription %s", existing.provider_subscription_id)
            return existing
        started_at = self._timestamp(obj.get("start_date")) or self._event_time(event)
        return self._subscriptions.patch_subscription(
            existing.id,
            {"status": SubscriptionStatus.ACTIVE, "started_at": started_at},
        )

    def _on_cancelled(self, event: Dict[str, Any], obj: Dict[str, Any]) -> Optional[Subscription]:
        existing = self._find(self._require_id(obj))
        if not existing:
            return None
        if existing.status is SubscriptionStatus.CANCELED:
            return existing
        event_time = self._event_time(event)
        return self._subscriptions.patch_subscription(
            existing.id,
            {
                "status": SubscriptionStatus.CANCELED,
                "canceled_at": self._timestamp(obj.get("canceled_at")) or event_time,
                "ended_at": self._timestamp(obj.get("ended_at")) or event_time,
            },
        )

    def _on_reactivated(self, event: Dict[str, Any], obj: Dict[str, Any]) -> Optional[Subscription]:
        existing = self._find(self._require_id(obj))
        if not existing:
            return None
        if (
            existing.is_active()
            and not existing.cancel_at_period_end
            and existing.canceled_at is None
            and existing.ended_at is None
        ):
            return existing
        return self._subscriptions.patch_subscription(
            existing.id,
            {
                "status": SubscriptionStatus.ACTIVE,
                "cancel_at_period_end": False,
                "canceled_at": None,
                "ended_at": None,
            },
        )

    def _on_payment_failed(self, event: Dict[str, Any], obj: Dict[str, Any]) -> Optional[Subscription]:
        provider_id = self._invoice_subscription_id(event, obj)
        if not provider_id:
            logger.info("Payment failure without subscription reference, ignoring")
            return None
        existing = self._find(provider_id)
        if not existing:
            return None
        if existing.status is not SubscriptionStatus.ACTIVE:
            return existing
        logger.info("Subscription %s is past due", provider_id)
        return self._subscriptions.patch_subscription(existing.id, {"status": SubscriptionStatus.PAST_DUE})

    def _on_payment_succeeded(self, event: Dict[str, Any], obj: Dict[str, Any]) -> None:
        logger.debug("Payment succeeded event acknowledged")
        return None

    # Helpers ----------------------------------------------------------------
    def _apply_update(self, existing: Subscription, obj: Dict[str, Any]) -> Subscription:
        item = self._first_item(obj)
        price = item.get("price") or {}
        patch: Dict[str, Any] = {}

        if obj.get("cancel_at_period_end") is not None:
            patch["cancel_at_period_end"] = bool(obj["cancel_at_period_end"])
        if price.get("unit_amount") is not None:
            patch["amount"] = price["unit_amount"]
        if obj.get("status") is not None:
            target = self._status(obj["status"])
            if existing.can_transition_to(target):
                patch["status"] = target
            else:
                logger.info(
                    "Ignoring transition %s -> %s for %s",
                    existing.status.value,
                    target.value,
                    existing.provider_subscription_id,
                )
        for bound in ("current_period_start", "current_period_end"):
            value = self._period_bound(obj, item, bound)
            if value is not None:
                patch[bound] = value
        if obj.get("metadata"):
            patch["metadata"] = obj["metadata"]

        return self._subscriptions.patch_subscription(existing.id, patch)

    def _find(self, provider_id: str) -> Optional[Subscription]:
        existing = self._subscriptions.find_subscription_by_provider_id(provider_id)
        if not existing:
            logger.info("Dropping event for unknown subscription %s", provider_id)
        return existing

    @staticmethod
    def _normalize_kind(event_type: str) -> str:
        if event_type.startswith("customer.subscription."):
            return event_type[len("customer."):]
        return event_type

    @staticmethod
    def _payload_object(event: Dict[str, Any]) -> Dict[str, Any]:
        data = event.get("data")
        if not isinstance(data, dict):
            raise MalformedEvent("Event has no data object")
        obj = data.get("object")
        if isinstance(obj, dict):
            return obj
        return data

    @staticmethod
    def _provider_event_id(event: Dict[str, Any]) -> Optional[str]:
        if event.get("id"):
            return str(event["id"])
        data = event.get("data")
        if isinstance(data, dict):
            obj = data.get("object") if isinstance(data.get("object"), dict) else data
            if obj.get("id"):
                return str(obj["id"])
        return None

    @staticmethod
    def _require_id(obj: Dict[str, Any]) -> str:
        provider_id = obj.get("id")
        if not isinstance(provider_id, str) or not provider_id:
            raise MalformedEvent("Subscription payload has no id")
        return provider_id

    @staticmethod
    def _invoice_subscription_id(event: Dict[str, Any], obj: Dict[str, Any]) -> Optional[str]:
        reference = obj.get("subscription") or event["data"].get("subscription")
        if reference is None:
            details = (obj.get("parent") or {}).get("subscription_details") or {}
            reference = details.get("subscription")
        if isinstance(reference, dict):
            reference = reference.get("id")
        return reference or None

    @staticmethod
    def _first_item(obj: Dict[str, Any]) -> Dict[str, Any]:
        items = obj.get("items") or {}
        if isinstance(items, dict):
            items = items.get("data") or []
        if not isinstance(items, list):
            raise MalformedEvent("Subscription items are malformed")
        first = items[0] if items else {}
        if not isinstance(first, dict):
            raise MalformedEvent("Subscription items are malformed")
        return first

    @staticmethod
    def _status(value: Any) -> SubscriptionStatus:
        try:
            return SubscriptionStatus.from_provider(value)
        except ValueError as exc:
            raise MalformedEvent(str(exc)) from exc

    @classmethod
    def _period_bound(cls, obj: Dict[str, Any], item: Dict[str, Any], key: str) -> Optional[datetime]:
        return cls._timestamp(obj.get(key)) or cls._timestamp(item.get(key))

    @classmethod
    def _event_time(cls, event: Dict[str, Any]) -> datetime:
        return cls._timestamp(event.get("created")) or datetime.now(timezone.utc).replace(microsecond=0)

    @staticmethod
    def _timestamp(value: Any) -> Optional[datetime]:
        """Convert a provider epoch-seconds value."""
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MalformedEvent(f"Expected epoch seconds, got {value!r}")
        return datetime.fromtimestamp(value, tz=timezone.utc)
