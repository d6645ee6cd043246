from sqlalchemy import Column, String, Boolean, DateTime

from deal_redemption.clock import utcnow
from deal_redemption.database import Base


class UserMembership(Base):
    """Read model of the billing system's pass state. Never written here."""

    __tablename__ = "user_memberships"

    user_id = Column(String(64), primary_key=True)
    is_pass_member = Column(Boolean, nullable=False, default=False)
    pass_expires_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
