import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from deal_redemption.clock import as_utc, utcnow
from deal_redemption.models.membership import UserMembership
from deal_redemption.services.eligibility import MembershipSnapshot

logger = logging.getLogger(__name__)


class MembershipProvider:
    """Read-only view of paid membership. Unknown means not a member."""

    def is_active_member(self, user_id: str) -> bool:
        raise NotImplementedError

    def snapshot(self, user_id: Optional[str]) -> MembershipSnapshot:
        if not user_id:
            return MembershipSnapshot(user_id=None, active=False)
        return MembershipSnapshot(user_id=user_id, active=self.is_active_member(user_id))


class SqlMembershipProvider(MembershipProvider):
    """Reads the billing read model on the caller's session."""

    def __init__(self, db: Session, now: Optional[datetime] = None):
        self.db = db
        self.now = now

    def is_active_member(self, user_id: str) -> bool:
        try:
            row = self.db.query(UserMembership).filter(UserMembership.user_id == user_id).first()
        except SQLAlchemyError:
            logger.warning("Membership lookup failed; treating user as non-member", extra={"user_id": user_id}, exc_info=True)
            return False

        if row is None or row.is_pass_member is not True:
            return False
        # a flag without a valid expiry never grants access
        expires_at = as_utc(row.pass_expires_at)
        if expires_at is None:
            return False
        return expires_at > (self.now or utcnow())


class StaticMembershipProvider(MembershipProvider):
    """Fixed set of members, for previews and tests."""

    def __init__(self, member_ids=()):
        self.member_ids = set(member_ids)

    def is_active_member(self, user_id: str) -> bool:
        return user_id in self.member_ids
