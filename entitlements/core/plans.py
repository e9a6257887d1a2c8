"""Static plan catalog served when the billing provider cannot be reached."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple


@dataclass(frozen=True, slots=True)
class FallbackPrice:
    id: str
    amount: int
    currency: str
    interval: str


@dataclass(frozen=True, slots=True)
class FallbackPlan:
    id: str
    name: str
    description: str
    prices: Tuple[FallbackPrice, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "isRecurring": True,
            "prices": [
                {
                    "id": price.id,
                    "amount": price.amount,
                    "currency": price.currency,
                    "interval": price.interval,
                    "product_id": self.id,
                }
                for price in self.prices
            ],
        }


# Amounts are in cents.
DEFAULT_FALLBACK_PLANS: Tuple[FallbackPlan, ...] = (
    FallbackPlan(
        id="personal_plan",
        name="Personal Plan",
        description="Perfect for individuals and small projects",
        prices=(FallbackPrice(id="personal-monthly", amount=500, currency="usd", interval="month"),),
    ),
    FallbackPlan(
        id="business_plan",
        name="Business Plan",
        description="For growing businesses and teams",
        prices=(FallbackPrice(id="business-monthly", amount=5000, currency="usd", interval="month"),),
    ),
)
