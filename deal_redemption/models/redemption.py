import enum

from sqlalchemy import Column, Integer, String, Text, Enum, DateTime, ForeignKey, Index, UniqueConstraint

from deal_redemption.clock import utcnow
from deal_redemption.database import Base


class RedemptionStatus(str, enum.Enum):
    REDEEMED = "redeemed"
    VOIDED = "voided"


RedemptionStatuses = tuple(s.value for s in RedemptionStatus)

REDEMPTION_CODE_LENGTH = 6


class Redemption(Base):
    __tablename__ = "deal_redemptions"

    id = Column(Integer, primary_key=True, index=True)
    deal_id = Column(Integer, ForeignKey("deals.id"), nullable=False)
    vendor_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)

    # shown to the vendor at the counter; unique within a deal
    redemption_code = Column(String(REDEMPTION_CODE_LENGTH), nullable=False)

    status = Column(Enum(*RedemptionStatuses, name="redemption_status"), nullable=False, default=RedemptionStatus.REDEEMED.value)
    redeemed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    voided_at = Column(DateTime(timezone=True), nullable=True)
    void_reason = Column(Text, nullable=True)
    voided_by = Column(String(64), nullable=True)

    source = Column(String(32), nullable=False, default="in_app")

    __table_args__ = (
        Index("ix_redemptions_deal_status", "deal_id", "status"),
        Index("ix_redemptions_user_deal_status", "user_id", "deal_id", "status", "redeemed_at"),
        UniqueConstraint("deal_id", "redemption_code", name="uq_redemptions_deal_code"),
    )
