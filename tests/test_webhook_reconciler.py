import json
import time
from datetime import datetime, timezone

import pytest

from conftest import WEBHOOK_SECRET, sign_payload, subscription_event, subscription_object
from entitlements.core.exceptions import ConfigurationMissing, MalformedEvent, SignatureInvalid
from entitlements.domain.models import SubscriptionStatus
from entitlements.services.webhook_reconciler import WebhookReconciler
from entitlements.services.webhook_verifier import WebhookVerifier


def _snapshot(persistence):
    return [
        (row.provider_subscription_id, row.user_id, row.status, row.canceled_at, row.ended_at)
        for row in persistence.list_subscriptions()
    ]


def test_created_event_maps_payload_fields(deliver, persistence):
    deliver(subscription_event("customer.subscription.created", subscription_object()))

    stored = persistence.find_subscription_by_provider_id("sub_1")
    assert stored is not None
    assert stored.user_id == "user_42"
    assert stored.status is SubscriptionStatus.ACTIVE
    assert stored.amount == 900
    assert stored.currency == "usd"
    assert stored.interval == "month"
    assert stored.price_id == "price_starter"
    assert stored.customer_id == "cus_123"
    assert stored.cancel_at_period_end is False
    assert stored.current_period_start == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
    assert stored.current_period_end == datetime.fromtimestamp(1_702_592_000, tz=timezone.utc)
    assert stored.metadata == {"userId": "user_42"}


def test_bare_data_example_then_payment_failed(deliver, persistence):
    deliver(
        {
            "type": "subscription.created",
            "data": {
                "id": "sub_1",
                "status": "active",
                "metadata": {"userId": "user_42"},
                "items": {"data": [{"price": {"unit_amount": 900}}]},
            },
        }
    )
    rows = persistence.list_subscriptions()
    assert len(rows) == 1
    assert rows[0].user_id == "user_42"
    assert rows[0].status is SubscriptionStatus.ACTIVE
    assert rows[0].amount == 900
    assert rows[0].interval == "month"

    deliver({"type": "invoice.payment_failed", "data": {"subscription": "sub_1"}})

    assert persistence.find_subscription_by_provider_id("sub_1").status is SubscriptionStatus.PAST_DUE


def test_payment_failed_with_stripe_invoice_envelope(deliver, persistence):
    deliver(subscription_event("customer.subscription.created", subscription_object()))
    deliver(subscription_event("invoice.payment_failed", {"id": "in_1", "subscription": "sub_1"}, event_id="evt_2"))

    assert persistence.find_subscription_by_provider_id("sub_1").status is SubscriptionStatus.PAST_DUE


def test_redelivered_created_event_is_applied_as_update(deliver, persistence):
    event = subscription_event("customer.subscription.created", subscription_object())
    deliver(event)
    deliver(event)

    assert len(persistence.list_subscriptions()) == 1


def test_created_without_user_id_is_malformed_but_audited(deliver, persistence):
    obj = subscription_object(metadata={})

    with pytest.raises(MalformedEvent):
        deliver(subscription_event("customer.subscription.created", obj))

    assert persistence.list_subscriptions() == []
    assert persistence.list_webhook_events()[0].type == "customer.subscription.created"


def test_cancelled_twice_gives_identical_state(deliver, persistence):
    deliver(subscription_event("customer.subscription.created", subscription_object()))
    cancel = subscription_event("subscription.cancelled", {"id": "sub_1"}, created=1_701_000_000, event_id="evt_2")

    deliver(cancel)
    first = _snapshot(persistence)
    deliver(cancel)

    assert _snapshot(persistence) == first
    stored = persistence.find_subscription_by_provider_id("sub_1")
    assert stored.status is SubscriptionStatus.CANCELED
    assert stored.canceled_at == datetime.fromtimestamp(1_701_000_000, tz=timezone.utc)
    assert stored.ended_at == datetime.fromtimestamp(1_701_000_000, tz=timezone.utc)


def test_deleted_event_is_treated_as_cancellation(deliver, persistence):
    deliver(subscription_event("customer.subscription.created", subscription_object()))
    deliver(subscription_event("customer.subscription.deleted", subscription_object(status="canceled")))

    assert persistence.find_subscription_by_provider_id("sub_1").status is SubscriptionStatus.CANCELED


def test_reactivated_after_cancelled_restores_active(deliver, persistence):
    deliver(subscription_event("customer.subscription.created", subscription_object()))
    deliver(subscription_event("subscription.cancelled", {"id": "sub_1"}, event_id="evt_2"))
    deliver(subscription_event("subscription.reactivated", {"id": "sub_1"}, event_id="evt_3"))

    stored = persistence.find_subscription_by_provider_id("sub_1")
    assert stored.status is SubscriptionStatus.ACTIVE
    assert stored.canceled_at is None
    assert stored.ended_at is None
    assert stored.cancel_at_period_end is False


def test_updates_cannot_leave_canceled(deliver, persistence):
    deliver(subscription_event("customer.subscription.created", subscription_object()))
    deliver(subscription_event("subscription.cancelled", {"id": "sub_1"}, event_id="evt_2"))
    deliver(subscription_event("customer.subscription.updated", subscription_object(status="active"), event_id="evt_3"))
    deliver(subscription_event("subscription.activated", {"id": "sub_1"}, event_id="evt_4"))

    assert persistence.find_subscription_by_provider_id("sub_1").status is SubscriptionStatus.CANCELED


def test_updated_event_patches_fields(deliver, persistence):
    deliver(subscription_event("customer.subscription.created", subscription_object()))
    updated = subscription_object(status="past_due", amount=1200, cancel_at_period_end=True, current_period_end=1_705_000_000)
    deliver(subscription_event("customer.subscription.updated", updated, event_id="evt_2"))

    stored = persistence.find_subscription_by_provider_id("sub_1")
    assert stored.status is SubscriptionStatus.PAST_DUE
    assert stored.amount == 1200
    assert stored.cancel_at_period_end is True
    assert stored.current_period_end == datetime.fromtimestamp(1_705_000_000, tz=timezone.utc)
    assert stored.customer_id == "cus_123"


@pytest.mark.parametrize(
    ("provider_status", "expected"),
    [
        ("trialing", SubscriptionStatus.ACTIVE),
        ("unpaid", SubscriptionStatus.PAST_DUE),
        ("incomplete", SubscriptionStatus.PAST_DUE),
        ("incomplete_expired", SubscriptionStatus.CANCELED),
    ],
)
def test_provider_statuses_are_normalised(deliver, persistence, provider_status, expected):
    deliver(subscription_event("customer.subscription.created", subscription_object(status=provider_status)))

    assert persistence.find_subscription_by_provider_id("sub_1").status is expected


def test_updated_event_for_unknown_subscription_is_noop(deliver, persistence):
    result = deliver(subscription_event("customer.subscription.updated", subscription_object(provider_id="sub_missing")))

    assert result.type == "customer.subscription.updated"
    assert persistence.list_subscriptions() == []


def test_unknown_event_kind_is_ignored(reconciler, persistence):
    assert reconciler.apply({"type": "charge.refunded", "data": {"object": {"id": "ch_1"}}}) is None
    assert persistence.list_subscriptions() == []


def test_payment_succeeded_is_noop(deliver, persistence):
    deliver(subscription_event("customer.subscription.created", subscription_object()))
    deliver(subscription_event("invoice.payment_succeeded", {"id": "in_1", "subscription": "sub_1"}, event_id="evt_2"))

    assert persistence.find_subscription_by_provider_id("sub_1").status is SubscriptionStatus.ACTIVE


def test_new_active_subscription_supersedes_previous(deliver, persistence):
    deliver(subscription_event("customer.subscription.created", subscription_object(provider_id="sub_old")))
    deliver(
        subscription_event(
            "customer.subscription.created",
            subscription_object(provider_id="sub_new"),
            event_id="evt_2",
        )
    )

    assert persistence.find_subscription_by_provider_id("sub_old").status is SubscriptionStatus.CANCELED
    assert persistence.find_subscription_by_user("user_42").provider_subscription_id == "sub_new"


def test_missing_signature_mutates_nothing(reconciler, persistence):
    body = json.dumps(subscription_event("customer.subscription.created", subscription_object()))

    with pytest.raises(SignatureInvalid):
        reconciler.handle(body.encode("utf-8"), None)

    assert persistence.list_subscriptions() == []
    assert persistence.list_webhook_events() == []


def test_wrong_secret_is_rejected(reconciler, persistence):
    body = json.dumps(subscription_event("customer.subscription.created", subscription_object()))

    with pytest.raises(SignatureInvalid):
        reconciler.handle(body.encode("utf-8"), sign_payload(body, secret="whsec_other"))

    assert persistence.list_webhook_events() == []


def test_stale_signature_is_rejected(reconciler):
    body = json.dumps(subscription_event("customer.subscription.created", subscription_object()))
    header = sign_payload(body, timestamp=int(time.time()) - 3600)

    with pytest.raises(SignatureInvalid):
        reconciler.handle(body.encode("utf-8"), header)


def test_tampered_body_is_rejected(reconciler, persistence):
    body = json.dumps(subscription_event("customer.subscription.created", subscription_object()))
    header = sign_payload(body)
    tampered = body.replace("user_42", "user_43")

    with pytest.raises(SignatureInvalid):
        reconciler.handle(tampered.encode("utf-8"), header)

    assert persistence.list_subscriptions() == []


def test_unparseable_body_is_recorded_then_rejected(reconciler, persistence):
    body = "not json at all"

    with pytest.raises(MalformedEvent):
        reconciler.handle(body.encode("utf-8"), sign_payload(body))

    events = persistence.list_webhook_events()
    assert len(events) == 1
    assert events[0].type == "unparseable"
    assert events[0].payload == body


def test_missing_secret_records_nothing(persistence):
    reconciler = WebhookReconciler(persistence, persistence, WebhookVerifier(None))
    body = json.dumps(subscription_event("customer.subscription.created", subscription_object()))

    with pytest.raises(ConfigurationMissing):
        reconciler.handle(body.encode("utf-8"), sign_payload(body, secret=WEBHOOK_SECRET))

    assert persistence.list_webhook_events() == []


def test_every_delivery_is_audited(deliver, persistence):
    event = subscription_event("customer.subscription.created", subscription_object())
    deliver(event)
    deliver(event)

    events = persistence.list_webhook_events()
    assert [item.provider_event_id for item in events] == ["evt_1", "evt_1"]
    assert json.loads(events[0].payload) == event


def test_activated_recovers_past_due_and_refreshes_started_at(deliver, persistence):
    deliver(subscription_event("customer.subscription.created", subscription_object(), created=1_700_000_000))
    deliver(subscription_event("invoice.payment_failed", {"id": "in_1", "subscription": "sub_1"}, event_id="evt_2"))
    activation = subscription_event("subscription.activated", {"id": "sub_1"}, created=1_710_000_000, event_id="evt_3")

    deliver(activation)
    first = persistence.find_subscription_by_provider_id("sub_1")
    deliver(activation)

    assert first.status is SubscriptionStatus.ACTIVE
    assert first.started_at == datetime.fromtimestamp(1_710_000_000, tz=timezone.utc)
    assert persistence.find_subscription_by_provider_id("sub_1").started_at == first.started_at


def test_activated_prefers_payload_start_date(deliver, persistence):
    deliver(subscription_event("customer.subscription.created", subscription_object(status="past_due")))
    deliver(
        subscription_event(
            "subscription.activated",
            {"id": "sub_1", "start_date": 1_705_000_000},
            created=1_710_000_000,
            event_id="evt_2",
        )
    )

    stored = persistence.find_subscription_by_provider_id("sub_1")
    assert stored.status is SubscriptionStatus.ACTIVE
    assert stored.started_at == datetime.fromtimestamp(1_705_000_000, tz=timezone.utc)


def test_updated_recovers_past_due_to_active(deliver, persistence):
    deliver(subscription_event("customer.subscription.created", subscription_object()))
    deliver(subscription_event("invoice.payment_failed", {"id": "in_1", "subscription": "sub_1"}, event_id="evt_2"))
    deliver(subscription_event("customer.subscription.updated", subscription_object(status="active"), event_id="evt_3"))

    assert persistence.find_subscription_by_provider_id("sub_1").status is SubscriptionStatus.ACTIVE


def test_cancel_from_past_due(deliver, persistence):
    deliver(subscription_event("customer.subscription.created", subscription_object(status="past_due")))
    deliver(subscription_event("subscription.canceled", {"id": "sub_1"}, created=1_701_000_000, event_id="evt_2"))

    stored = persistence.find_subscription_by_provider_id("sub_1")
    assert stored.status is SubscriptionStatus.CANCELED
    assert stored.canceled_at == datetime.fromtimestamp(1_701_000_000, tz=timezone.utc)


def test_updated_without_cancel_flag_keeps_stored_value(deliver, persistence):
    deliver(subscription_event("customer.subscription.created", subscription_object(cancel_at_period_end=True)))
    deliver(subscription_event("customer.subscription.updated", {"id": "sub_1", "status": "active"}, event_id="evt_2"))

    stored = persistence.find_subscription_by_provider_id("sub_1")
    assert stored.cancel_at_period_end is True
    assert stored.amount == 900

    deliver(
        subscription_event(
            "customer.subscription.updated",
            {"id": "sub_1", "cancel_at_period_end": False},
            event_id="evt_3",
        )
    )

    assert persistence.find_subscription_by_provider_id("sub_1").cancel_at_period_end is False
