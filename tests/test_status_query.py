from unittest.mock import Mock

from entitlements.domain.models import SubscriptionStatus
from entitlements.services.status_query import StatusQueryService


def _subscribe(persistence, user_id, status):
    persistence.insert_subscription(
        {"user_id": user_id, "provider_subscription_id": f"sub_{user_id}_{status.value}", "status": status}
    )


def test_no_subject_is_not_entitled(status_query):
    assert status_query.has_active_entitlement(None) is False
    assert status_query.has_active_entitlement("") is False


def test_unknown_user_is_not_entitled(status_query):
    assert status_query.has_active_entitlement("user_ghost") is False


def test_user_without_subscription_is_not_entitled(status_query, identity_resolver):
    identity_resolver.resolve("user_1")

    assert status_query.has_active_entitlement("user_1") is False


def test_only_active_status_is_entitled(status_query, identity_resolver, persistence):
    identity_resolver.resolve("user_active")
    identity_resolver.resolve("user_late")
    identity_resolver.resolve("user_gone")
    _subscribe(persistence, "user_active", SubscriptionStatus.ACTIVE)
    _subscribe(persistence, "user_late", SubscriptionStatus.PAST_DUE)
    _subscribe(persistence, "user_gone", SubscriptionStatus.CANCELED)

    assert status_query.has_active_entitlement("user_active") is True
    assert status_query.has_active_entitlement("user_late") is False
    assert status_query.has_active_entitlement("user_gone") is False


def test_legacy_identifier_check(status_query, persistence):
    persistence.upsert_user("user_77")
    _subscribe(persistence, "user_77", SubscriptionStatus.ACTIVE)

    assert status_query.has_active_entitlement_by_legacy_id("77") is True
    assert status_query.has_active_entitlement("77") is False


def test_store_failure_yields_false(identity_resolver):
    subscriptions = Mock()
    subscriptions.find_subscription_by_user.side_effect = RuntimeError("database is locked")
    identity_resolver.resolve("user_1")
    service = StatusQueryService(identity_resolver, subscriptions)

    assert service.has_active_entitlement("user_1") is False
    assert service.has_active_entitlement_by_legacy_id("user_1") is False


def test_current_subscription(status_query, identity_resolver, persistence):
    assert status_query.current_subscription("user_1") is None

    identity_resolver.resolve("user_1")
    _subscribe(persistence, "user_1", SubscriptionStatus.PAST_DUE)

    assert status_query.current_subscription("user_1").status is SubscriptionStatus.PAST_DUE
