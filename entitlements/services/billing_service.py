"""Stripe billing integration: plan catalog, checkout and customer portal."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import stripe

from ..core.exceptions import CheckoutFailed, ConfigurationMissing, NotFound
from ..core.logging import mask_identifier
from ..core.plans import FallbackPlan
from ..domain.models import Identity
from ..domain.ports.persistence import SubscriptionRepository
from .identity_resolver import IdentityResolver

logger = logging.getLogger(__name__)


class BillingService:
    """Manages Stripe API calls made on behalf of signed-in users."""

    def __init__(
        self,
        secret_key: Optional[str],
        identity_resolver: IdentityResolver,
        subscriptions: SubscriptionRepository,
        fallback_plans: Iterable[FallbackPlan],
        frontend_base_url: str,
    ) -> None:
        self._secret_key = secret_key
        self._identity_resolver = identity_resolver
        self._subscriptions = subscriptions
        self._fallback_plans = tuple(fallback_plans)
        self._frontend_base_url = frontend_base_url.rstrip("/")

    @property
    def is_configured(self) -> bool:
        """Placeholder keys copied from the env template count as unset."""
        return bool(self._secret_key) and not self._secret_key.startswith("your_")

    def fallback_catalog(self) -> Dict[str, Any]:
        items = [plan.to_dict() for plan in self._fallback_plans]
        return self._catalog(items)

    def list_plans(self, limit: int = 10) -> Dict[str, Any]:
        """
        List active products with their prices.

        Never raises: without a secret key, or when Stripe fails, the
        configured fallback catalog is returned instead.
        """
        if not self.is_configured:
            logger.info("Stripe secret key not configured, returning fallback plans")
            return self.fallback_catalog()

        try:
            products = stripe.Product.list(limit=limit, active=True, api_key=self._secret_key)
            items: List[Dict[str, Any]] = []
            for product in products.data:
                prices = stripe.Price.list(product=product.id, active=True, api_key=self._secret_key)
                items.append(
                    {
                        "id": product.id,
                        "name": getattr(product, "name", None) or f"Plan {product.id}",
                        "description": getattr(product, "description", None) or "No description available",
                        "isRecurring": True,
                        "prices": [self._price_to_dict(product.id, price) for price in prices.data],
                    }
                )
            return self._catalog(items)
        except stripe.StripeError as exc:
            logger.warning("Failed to list Stripe products, using fallback plans: %s", exc)
            return self.fallback_catalog()

    def create_checkout_session(self, identity: Identity, price_id: str) -> str:
        """
        Create a Stripe checkout session for a subscription.

        Returns:
            Checkout session URL

        Raises:
            ConfigurationMissing: Stripe secret key not configured
            CheckoutFailed: User-facing failure message
        """
        if not self.is_configured:
            raise ConfigurationMissing("Payment system not configured. Please contact support.")

        user = self._identity_resolver.resolve(identity.subject, email=identity.email, name=identity.name)
        if not user.email:
            raise CheckoutFailed("User email is required for subscription. Please update your profile.")

        existing = self._subscriptions.find_subscription_by_user(user.token_identifier)
        if existing and existing.is_active():
            raise CheckoutFailed("You already have an active subscription. Manage it from the billing portal.")

        metadata = {"userId": user.token_identifier}
        try:
            session = stripe.checkout.Session.create(
                api_key=self._secret_key,
                mode="subscription",
                customer_email=user.email,
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=f"{self._frontend_base_url}/success",
                cancel_url=f"{self._frontend_base_url}/pricing",
                metadata={**metadata, "priceId": price_id},
                subscription_data={"metadata": metadata},
            )
        except stripe.AuthenticationError as exc:
            logger.error("Stripe rejected the secret key: %s", exc)
            raise CheckoutFailed("Payment system authentication error. Please contact support.") from exc
        except stripe.InvalidRequestError as exc:
            if getattr(exc, "code", None) == "resource_missing":
                raise CheckoutFailed("Selected plan is not available. Please refresh and try again.") from exc
            logger.error("Invalid checkout request for %s: %s", mask_identifier(user.token_identifier), exc)
            raise CheckoutFailed() from exc
        except stripe.StripeError as exc:
            logger.error("Failed to create checkout session: %s", exc)
            raise CheckoutFailed() from exc

        url = getattr(session, "url", None)
        if not url:
            raise CheckoutFailed("Failed to create checkout session - no URL returned")
        logger.info("Created checkout session for %s", mask_identifier(user.token_identifier))
        return url

    def create_customer_portal_url(self, subject: str) -> str:
        """
        Open a Stripe customer portal session for the subject's billing account.

        Raises:
            ConfigurationMissing: Stripe secret key not configured
            NotFound: The user has no billing customer yet
            CheckoutFailed: Stripe refused to open the portal
        """
        if not self.is_configured:
            raise ConfigurationMissing("Payment system not configured. Please contact support.")

        subscription = self._subscriptions.find_subscription_by_user(subject)
        if not subscription or not subscription.customer_id:
            raise NotFound("No billing account found for this user")

        try:
            session = stripe.billing_portal.Session.create(
                api_key=self._secret_key,
                customer=subscription.customer_id,
                return_url=f"{self._frontend_base_url}/dashboard/settings",
            )
        except stripe.StripeError as exc:
            logger.error("Failed to create customer portal: %s", exc)
            raise CheckoutFailed("Failed to create customer portal session") from exc
        return session.url

    @staticmethod
    def _price_to_dict(product_id: str, price: Any) -> Dict[str, Any]:
        recurring = getattr(price, "recurring", None)
        return {
            "id": price.id,
            "amount": getattr(price, "unit_amount", None) or 0,
            "currency": getattr(price, "currency", None) or "usd",
            "interval": getattr(recurring, "interval", None) or "month",
            "product_id": product_id,
        }

    @staticmethod
    def _catalog(items: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {"items": items, "pagination": {"totalCount": len(items), "maxPage": 1}}
