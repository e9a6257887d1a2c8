"""Verification of identity provider session tokens."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import jwt

from ..domain.models import Identity

logger = logging.getLogger(__name__)


class IdentityTokenVerifier:
    """
    Turns a bearer JWT issued by the identity provider into an Identity.

    Tokens are checked against a JWKS endpoint (RS256) when one is configured,
    otherwise against a shared HS256 secret.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        jwks_url: Optional[str] = None,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        leeway: int = 30,
    ) -> None:
        self._secret = secret
        self._issuer = issuer
        self._audience = audience
        self._leeway = leeway
        self._jwks_client = jwt.PyJWKClient(jwks_url) if jwks_url else None

    @property
    def configured(self) -> bool:
        return bool(self._secret or self._jwks_client)

    def verify(self, token: Optional[str]) -> Optional[Identity]:
        """
        Verify and decode a session token.

        Returns:
            Identity if the token is valid, None otherwise
        """
        if not token or not self.configured:
            return None
        try:
            claims = self._decode(token)
        except jwt.PyJWTError as exc:
            logger.info("Rejected identity token: %s", exc)
            return None

        subject = claims.get("sub")
        if not subject:
            logger.info("Identity token carries no subject")
            return None
        return Identity(
            subject=str(subject),
            email=claims.get("email") or claims.get("primary_email"),
            name=claims.get("name"),
        )

    def _decode(self, token: str) -> Dict[str, Any]:
        options = {"require": ["sub", "exp"], "verify_aud": self._audience is not None}
        kwargs: Dict[str, Any] = {"options": options, "leeway": self._leeway}
        if self._issuer:
            kwargs["issuer"] = self._issuer
        if self._audience:
            kwargs["audience"] = self._audience

        if self._jwks_client is not None:
            signing_key = self._jwks_client.get_signing_key_from_jwt(token)
            return jwt.decode(token, signing_key.key, algorithms=["RS256"], **kwargs)
        return jwt.decode(token, self._secret, algorithms=["HS256"], **kwargs)
