from pydantic import BaseModel, Field, ConfigDict
from typing import Dict, Optional
from datetime import datetime


class RedeemRequest(BaseModel):
    source: str = Field(default="in_app", max_length=32, description="Channel tag for reporting")


class VoidRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class RedemptionResponse(BaseModel):
    id: int
    deal_id: int
    vendor_id: str
    user_id: str
    redemption_code: str
    status: str
    redeemed_at: datetime
    voided_at: Optional[datetime] = None
    void_reason: Optional[str] = None
    source: str

    model_config = ConfigDict(from_attributes=True)


class DenialResponse(BaseModel):
    reason: str
    message: str
    next_eligible_at: Optional[datetime] = None


class AccessInfoResponse(BaseModel):
    is_locked: bool
    requires_membership: bool
    user_has_membership: bool
    reason: str


class EligibilityResponse(BaseModel):
    deal_id: int
    allowed: bool
    denial: Optional[DenialResponse] = None
    access: AccessInfoResponse


class RedeemResponse(BaseModel):
    redeemed: bool
    redemption: Optional[RedemptionResponse] = None
    denial: Optional[DenialResponse] = None


class VendorRedemptionSummary(BaseModel):
    vendor_id: str
    total: int
    active: int
    voided: int
    active_last_24h: int
    active_last_7d: int
    by_deal: Dict[int, int]
