from datetime import datetime, timedelta, timezone

import jwt

from conftest import JWT_SECRET, make_token
from entitlements.services.auth_service import IdentityTokenVerifier


def test_valid_token_yields_identity():
    verifier = IdentityTokenVerifier(secret=JWT_SECRET)

    identity = verifier.verify(make_token("user_1", email="a@example.com", name="Ana"))

    assert identity.subject == "user_1"
    assert identity.email == "a@example.com"
    assert identity.name == "Ana"


def test_primary_email_claim_is_used():
    verifier = IdentityTokenVerifier(secret=JWT_SECRET)
    token = jwt.encode(
        {"sub": "user_1", "primary_email": "p@example.com", "exp": datetime.now(timezone.utc) + timedelta(minutes=1)},
        JWT_SECRET,
        algorithm="HS256",
    )

    assert verifier.verify(token).email == "p@example.com"


def test_wrong_secret_is_rejected():
    verifier = IdentityTokenVerifier(secret=JWT_SECRET)

    assert verifier.verify(make_token("user_1", secret="another-secret-that-is-also-long-enough")) is None


def test_expired_token_is_rejected():
    verifier = IdentityTokenVerifier(secret=JWT_SECRET, leeway=0)
    token = jwt.encode(
        {"sub": "user_1", "exp": datetime.now(timezone.utc) - timedelta(minutes=5)},
        JWT_SECRET,
        algorithm="HS256",
    )

    assert verifier.verify(token) is None


def test_audience_is_checked_when_configured():
    verifier = IdentityTokenVerifier(secret=JWT_SECRET, audience="dashboard")
    token = jwt.encode(
        {"sub": "user_1", "aud": "other", "exp": datetime.now(timezone.utc) + timedelta(minutes=1)},
        JWT_SECRET,
        algorithm="HS256",
    )

    assert verifier.verify(token) is None


def test_unconfigured_verifier_accepts_nothing():
    verifier = IdentityTokenVerifier()

    assert verifier.configured is False
    assert verifier.verify(make_token("user_1")) is None
    assert IdentityTokenVerifier(secret=JWT_SECRET).verify(None) is None
