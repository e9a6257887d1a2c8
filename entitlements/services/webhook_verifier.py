"""Cryptographic verification of billing webhook deliveries."""

from __future__ import annotations

import logging
from typing import Optional

import stripe

from ..core.exceptions import ConfigurationMissing, SignatureInvalid

logger = logging.getLogger(__name__)


class WebhookVerifier:
    """Checks the ``Stripe-Signature`` HMAC over the raw request body."""

    def __init__(self, secret: Optional[str], tolerance: int = 300) -> None:
        self._secret = secret
        self._tolerance = tolerance

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    def verify(self, payload: bytes, signature_header: Optional[str]) -> None:
        """
        Raise unless ``signature_header`` signs ``payload`` with the shared secret.

        Raises:
            ConfigurationMissing: No webhook secret is configured
            SignatureInvalid: Header missing, malformed, stale or not matching
        """
        if not self._secret:
            logger.error("Webhook received but no signing secret is configured")
            raise ConfigurationMissing("Webhook signing secret is not configured")
        if not signature_header:
            logger.warning("Rejected webhook without signature header")
            raise SignatureInvalid()

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature_header,
                self._secret,
                self._tolerance,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as exc:
            logger.warning("Rejected webhook with invalid signature: %s", exc)
            raise SignatureInvalid() from exc
