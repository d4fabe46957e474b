"""Schemas for trust endpoints (/v1/trust)."""

from pydantic import BaseModel, Field


class TrustSummary(BaseModel):
    """Public trust indicators for a shop."""

    shop_id: int = Field(alias="shopId")
    trust_score: int = Field(alias="trustScore", ge=0, le=100)
    trust_level: str = Field(alias="trustLevel")
    seller_tier: str = Field(alias="sellerTier")
    payout_delay_days: int = Field(alias="payoutDelayDays", ge=0)
    indicators: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True, "from_attributes": True}


class TrustBadge(BaseModel):
    """Badge shown on the shop page."""

    badge: str
    score: int = Field(ge=0, le=100)
    description: str
