import enum

from sqlalchemy import Column, Integer, String, Text, Enum, Boolean, JSON, DateTime, Numeric, Index

from deal_redemption.clock import utcnow
from deal_redemption.database import Base


class DealStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    PAUSED = "paused"
    EXPIRED = "expired"


class DiscountKind(str, enum.Enum):
    PERCENT = "percent"
    FIXED_AMOUNT = "fixed_amount"
    BUY_ONE_GET_ONE = "buy_one_get_one"
    FREE_ITEM = "free_item"
    OTHER = "other"


class AccessTier(str, enum.Enum):
    STANDARD = "standard"
    MEMBER = "member"


class RedemptionFrequency(str, enum.Enum):
    ONCE = "once"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    UNLIMITED = "unlimited"
    CUSTOM = "custom"


DealStatuses = tuple(s.value for s in DealStatus)
DiscountKinds = tuple(k.value for k in DiscountKind)


class Deal(Base):
    __tablename__ = "deals"

    id = Column(Integer, primary_key=True, index=True)
    vendor_id = Column(String(64), nullable=False, index=True)

    title = Column(String(200), nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    fine_print = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    cities = Column(JSON, nullable=True)
    image_url = Column(String(500), nullable=True)

    discount_kind = Column(Enum(*DiscountKinds, name="discount_kind"), nullable=False, default=DiscountKind.OTHER.value)
    discount_value = Column(Numeric(10, 2), nullable=True)

    # tier and is_pass_locked are a pair; write them through set_access_tier
    tier = Column(String(20), nullable=False, default=AccessTier.STANDARD.value)
    is_pass_locked = Column(Boolean, nullable=False, default=False)

    status = Column(Enum(*DealStatuses, name="deal_status"), nullable=False, default=DealStatus.DRAFT.value, index=True)
    is_active = Column(Boolean, nullable=False, default=False)

    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)

    max_redemptions_total = Column(Integer, nullable=True)
    max_redemptions_per_user = Column(Integer, nullable=True, default=1)
    # free-form in legacy rows; normalized by services.policy
    redemption_frequency = Column(String(20), nullable=True)
    custom_redemption_days = Column(Integer, nullable=True)
    cooldown_hours = Column(Integer, nullable=True)

    # bumped by every redemption attempt to serialize concurrent redeemers
    lock_version = Column(Integer, nullable=False, default=0)

    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_deals_vendor_status", "vendor_id", "status"),
    )

    def set_access_tier(self, tier: AccessTier) -> None:
        tier = AccessTier(tier)
        self.tier = tier.value
        self.is_pass_locked = tier is AccessTier.MEMBER

    def set_status(self, status: DealStatus) -> None:
        status = DealStatus(status)
        self.status = status.value
        self.is_active = status is DealStatus.PUBLISHED

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
