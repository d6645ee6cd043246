import secrets
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from deal_redemption.clock import as_utc, utcnow
from deal_redemption.errors import RedemptionNotFoundError
from deal_redemption.models.redemption import REDEMPTION_CODE_LENGTH, Redemption, RedemptionStatus
from deal_redemption.services.eligibility import RedemptionHistory

_ACTIVE = RedemptionStatus.REDEEMED.value


def new_redemption_code() -> str:
    return "".join(secrets.choice("0123456789") for _ in range(REDEMPTION_CODE_LENGTH))


class RedemptionLedger:
    """
    Append-mostly record of redemptions, and the read path eligibility uses.

    Counts are derived from ledger rows on every call. Queries run on the
    caller's session so the redemption command reads and writes inside one
    transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def count_active_for_deal(self, deal_id: int) -> int:
        return (
            self.db.query(func.count(Redemption.id))
            .filter(Redemption.deal_id == deal_id, Redemption.status == _ACTIVE)
            .scalar()
        )

    def count_active_for_user_and_deal(self, user_id: str, deal_id: int) -> int:
        return (
            self.db.query(func.count(Redemption.id))
            .filter(Redemption.deal_id == deal_id, Redemption.user_id == user_id, Redemption.status == _ACTIVE)
            .scalar()
        )

    def most_recent_active_for_user_and_deal(self, user_id: str, deal_id: int) -> Optional[Redemption]:
        return (
            self.db.query(Redemption)
            .filter(Redemption.deal_id == deal_id, Redemption.user_id == user_id, Redemption.status == _ACTIVE)
            .order_by(Redemption.redeemed_at.desc(), Redemption.id.desc())
            .first()
        )

    def history_for(self, user_id: str, deal_id: int) -> RedemptionHistory:
        last = self.most_recent_active_for_user_and_deal(user_id, deal_id)
        return RedemptionHistory(
            deal_active_count=self.count_active_for_deal(deal_id),
            user_active_count=self.count_active_for_user_and_deal(user_id, deal_id),
            user_last_redeemed_at=as_utc(last.redeemed_at) if last else None,
        )

    def append(self, deal_id: int, user_id: str, vendor_id: str, source: str = "in_app",
               now: Optional[datetime] = None) -> Redemption:
        """
        Stage a ``redeemed`` row; the caller owns the commit.

        Must run under the deal lock so the code picked here stays unique
        within the deal until the row commits.
        """
        record = Redemption(
            deal_id=deal_id,
            user_id=user_id,
            vendor_id=vendor_id,
            redemption_code=self._unused_code(deal_id),
            source=source,
            status=_ACTIVE,
            redeemed_at=now or utcnow(),
        )
        self.db.add(record)
        self.db.flush()
        return record

    def _unused_code(self, deal_id: int) -> str:
        while True:
            code = new_redemption_code()
            taken = (
                self.db.query(Redemption.id)
                .filter(Redemption.deal_id == deal_id, Redemption.redemption_code == code)
                .first()
            )
            if taken is None:
                return code

    def get(self, record_id: int) -> Redemption:
        record = self.db.query(Redemption).filter(Redemption.id == record_id).first()
        if record is None:
            raise RedemptionNotFoundError(record_id)
        return record

    def find_by_code(self, deal_id: int, code: str) -> Redemption:
        record = (
            self.db.query(Redemption)
            .filter(Redemption.deal_id == deal_id, Redemption.redemption_code == code.strip())
            .first()
        )
        if record is None:
            raise RedemptionNotFoundError(detail={"deal_id": deal_id, "redemption_code": code})
        return record

    def void(self, record_id: int, reason: Optional[str], voided_by: Optional[str] = None,
             now: Optional[datetime] = None) -> Redemption:
        # last write wins; voids are rare and vendor-initiated
        record = self.get(record_id)
        if record.status == RedemptionStatus.VOIDED.value:
            return record
        record.status = RedemptionStatus.VOIDED.value
        record.voided_at = now or utcnow()
        record.void_reason = reason
        record.voided_by = voided_by
        self.db.commit()
        self.db.refresh(record)
        return record

    # reporting reads

    def _listing(self, query, status: Optional[str], skip: int, limit: int) -> List[Redemption]:
        limit = min(max(limit, 1), 500)
        if status is not None:
            query = query.filter(Redemption.status == status)
        return query.order_by(Redemption.redeemed_at.desc(), Redemption.id.desc()).offset(skip).limit(limit).all()

    def list_for_deal(self, deal_id: int, status: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[Redemption]:
        return self._listing(self.db.query(Redemption).filter(Redemption.deal_id == deal_id), status, skip, limit)

    def list_for_vendor(self, vendor_id: str, status: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[Redemption]:
        return self._listing(self.db.query(Redemption).filter(Redemption.vendor_id == vendor_id), status, skip, limit)

    def list_for_user(self, user_id: str, status: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[Redemption]:
        return self._listing(self.db.query(Redemption).filter(Redemption.user_id == user_id), status, skip, limit)

    def summary_for_vendor(self, vendor_id: str, now: Optional[datetime] = None) -> Dict:
        now = now or utcnow()
        rows = self.db.query(Redemption).filter(Redemption.vendor_id == vendor_id).all()

        day_ago = now - timedelta(days=1)
        week_ago = now - timedelta(days=7)
        summary = {"total": 0, "active": 0, "voided": 0, "active_last_24h": 0, "active_last_7d": 0, "by_deal": {}}
        for r in rows:
            summary["total"] += 1
            if r.status == RedemptionStatus.VOIDED.value:
                summary["voided"] += 1
                continue
            summary["active"] += 1
            summary["by_deal"][r.deal_id] = summary["by_deal"].get(r.deal_id, 0) + 1
            at = as_utc(r.redeemed_at)
            if at >= day_ago:
                summary["active_last_24h"] += 1
            if at >= week_ago:
                summary["active_last_7d"] += 1
        return summary
