"""Pydantic schemas for plan listing, checkout and portal endpoints."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PlanPriceResponse(BaseModel):
    """A price attached to a plan; amounts are in cents."""

    id: str
    amount: int
    currency: str
    interval: Optional[str] = None
    product_id: Optional[str] = None


class PlanResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    description: Optional[str] = None
    is_recurring: bool = Field(True, alias="isRecurring")
    prices: List[PlanPriceResponse]


class PaginationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_count: int = Field(..., alias="totalCount")
    max_page: int = Field(1, alias="maxPage")


class PlanCatalogResponse(BaseModel):
    items: List[PlanResponse]
    pagination: PaginationResponse


class CreateCheckoutSessionRequest(BaseModel):
    """Request schema for creating a checkout session."""

    price_id: str = Field(..., min_length=1)


class RedirectUrlResponse(BaseModel):
    """Hosted page the client should navigate to."""

    url: str
