from pydantic import BaseModel, Field, ConfigDict, computed_field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from deal_redemption.models.deal import AccessTier, DiscountKind, RedemptionFrequency
from deal_redemption.services import policy


class DealCreate(BaseModel):
    vendor_id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., max_length=200)
    description: str = Field(default="")
    fine_print: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    city: Optional[str] = Field(default=None, max_length=100)
    cities: Optional[List[str]] = None
    image_url: Optional[str] = Field(default=None, max_length=500)

    discount_kind: DiscountKind = Field(default=DiscountKind.OTHER)
    discount_value: Optional[Decimal] = Field(default=None, ge=0, description="Meaningful for percent/fixed_amount only")
    tier: AccessTier = Field(default=AccessTier.STANDARD, description="'standard' or 'member'")

    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    max_redemptions_total: Optional[int] = Field(default=None, ge=1, description="Lifetime cap across all users")
    max_redemptions_per_user: int = Field(default=1, ge=1)
    redemption_frequency: RedemptionFrequency = Field(default=RedemptionFrequency.ONCE)
    custom_redemption_days: Optional[int] = Field(default=None, ge=1)


class DealUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    fine_print: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    city: Optional[str] = Field(None, max_length=100)
    cities: Optional[List[str]] = None
    image_url: Optional[str] = Field(None, max_length=500)

    discount_kind: Optional[DiscountKind] = None
    discount_value: Optional[Decimal] = Field(None, ge=0)
    tier: Optional[AccessTier] = None

    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    max_redemptions_total: Optional[int] = Field(None, ge=1)
    max_redemptions_per_user: Optional[int] = Field(None, ge=1)
    redemption_frequency: Optional[RedemptionFrequency] = None
    custom_redemption_days: Optional[int] = Field(None, ge=1)


class DealResponse(BaseModel):
    id: int
    vendor_id: str
    title: str
    description: str
    fine_print: Optional[str] = None
    category: Optional[str] = None
    city: Optional[str] = None
    cities: Optional[List[str]] = None
    image_url: Optional[str] = None
    discount_kind: str
    discount_value: Optional[Decimal] = None
    tier: str
    is_pass_locked: bool
    status: str
    is_active: bool
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    max_redemptions_total: Optional[int] = None
    max_redemptions_per_user: Optional[int] = None
    redemption_frequency: Optional[str] = None
    custom_redemption_days: Optional[int] = None
    cooldown_hours: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def frequency_label(self) -> Optional[str]:
        return policy.frequency_label(self.redemption_frequency, self.custom_redemption_days)
