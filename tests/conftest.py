import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from entitlements.core.app_factory import create_application
from entitlements.core.config import Settings
from entitlements.infrastructure.persistence.sqlite import SQLitePersistence
from entitlements.services.identity_resolver import IdentityResolver
from entitlements.services.status_query import StatusQueryService
from entitlements.services.webhook_reconciler import WebhookReconciler
from entitlements.services.webhook_verifier import WebhookVerifier

WEBHOOK_SECRET = "whsec_test_secret_for_signatures"
JWT_SECRET = "test-identity-secret-with-enough-bytes-for-hs256"
ADMIN_TOKEN = "admin-test-token"

ENV_KEYS = (
    "DATABASE_PATH",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "STRIPE_WEBHOOK_TOLERANCE",
    "AUTH_JWT_SECRET",
    "AUTH_JWKS_URL",
    "AUTH_JWT_ISSUER",
    "AUTH_JWT_AUDIENCE",
    "LEGACY_IDENTIFIER_FORMATS",
    "FRONTEND_BASE_URL",
    "ENABLE_DEBUG_ROUTES",
    "ADMIN_API_TOKEN",
    "CORS_ALLOW_ORIGINS",
)


def sign_payload(body: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header for ``body``."""
    timestamp = timestamp if timestamp is not None else int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{body}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_token(subject: str, email: str = None, name: str = None, secret: str = JWT_SECRET) -> str:
    claims = {
        "sub": subject,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
    }
    if email:
        claims["email"] = email
    if name:
        claims["name"] = name
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_header(subject: str, email: str = None, name: str = None) -> dict:
    return {"Authorization": f"Bearer {make_token(subject, email=email, name=name)}"}


def subscription_event(event_type: str, obj: dict, created: int = 1_700_000_000, event_id: str = "evt_1") -> dict:
    return {
        "id": event_id,
        "type": event_type,
        "created": created,
        "data": {"object": obj},
    }


def subscription_object(
    provider_id: str = "sub_1",
    user_id: str = "user_42",
    status: str = "active",
    amount: int = 900,
    **extra,
) -> dict:
    obj = {
        "id": provider_id,
        "status": status,
        "currency": "usd",
        "customer": "cus_123",
        "cancel_at_period_end": False,
        "start_date": 1_700_000_000,
        "current_period_start": 1_700_000_000,
        "current_period_end": 1_702_592_000,
        "metadata": {"userId": user_id},
        "items": {
            "data": [
                {
                    "price": {
                        "id": "price_starter",
                        "unit_amount": amount,
                        "currency": "usd",
                        "recurring": {"interval": "month"},
                    }
                }
            ]
        },
    }
    obj.update(extra)
    return obj


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep a developer's environment out of the tests."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr("entitlements.core.config.load_dotenv", lambda *args, **kwargs: False)


@pytest.fixture
def persistence(tmp_path):
    store = SQLitePersistence(tmp_path / "test.db")
    yield store
    store.close()


@pytest.fixture
def identity_resolver(persistence):
    return IdentityResolver(persistence, persistence)


@pytest.fixture
def status_query(identity_resolver, persistence):
    return StatusQueryService(identity_resolver, persistence)


@pytest.fixture
def reconciler(persistence):
    return WebhookReconciler(persistence, persistence, WebhookVerifier(WEBHOOK_SECRET))


@pytest.fixture
def deliver(reconciler):
    """Sign and hand an event to the reconciler, as the webhook route does."""

    def _deliver(event: dict):
        body = json.dumps(event)
        return reconciler.handle(body.encode("utf-8"), sign_payload(body))

    return _deliver


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "app.db"))
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("AUTH_JWT_SECRET", JWT_SECRET)
    monkeypatch.setenv("ENABLE_DEBUG_ROUTES", "true")
    monkeypatch.setenv("ADMIN_API_TOKEN", ADMIN_TOKEN)
    return Settings()


@pytest.fixture
def client(settings):
    app = create_application(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def container(client):
    return client.app.state.container
