"""
Redemption command: the only write path into the ledger.

Each attempt runs in one transaction on the caller's session:

1. ``UPDATE deals SET lock_version = lock_version + 1 WHERE id = :id``.
   PostgreSQL takes the deal's row lock and SQLite takes the database write
   lock, so concurrent redeemers of one deal queue here.
2. Load the deal, the membership snapshot and the ledger counts.
3. Evaluate. A denial rolls back, which also undoes the version bump.
4. Append the ledger row and commit.

Lock conflicts (``OperationalError``) are retried a bounded number of times.
A retry re-reads everything, so a request whose first attempt already
consumed the last slot is denied rather than redeemed twice.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Set

from sqlalchemy import update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from deal_redemption.clock import utcnow
from deal_redemption.config import settings
from deal_redemption.errors import (
    DealNotFoundError, RedemptionConflictError, StoreUnavailableError, VendorActionNotPermittedError,
)
from deal_redemption.models.deal import Deal
from deal_redemption.models.redemption import Redemption
from deal_redemption.services.eligibility import Decision, Denied, evaluate
from deal_redemption.services.ledger import RedemptionLedger
from deal_redemption.services.membership import MembershipProvider, SqlMembershipProvider

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, lock_not_available
_PG_CONFLICT_STATES = {"40001", "40P01", "55P03"}


def _is_lock_conflict(exc: OperationalError) -> bool:
    if exc.connection_invalidated:
        return False
    orig = exc.orig
    state = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if state is not None:
        return state in _PG_CONFLICT_STATES
    text = str(orig).lower()
    return "database is locked" in text or "database table is locked" in text


@dataclass
class RedeemResult:
    record: Optional[Redemption] = None
    denial: Optional[Denied] = None

    @property
    def ok(self) -> bool:
        return self.record is not None


class RedemptionService:

    @staticmethod
    def preview(db: Session, deal_id: int, user_id: Optional[str],
                membership_provider: Optional[MembershipProvider] = None,
                now: Optional[datetime] = None) -> Decision:
        """Evaluate without locking or writing; for button state only."""
        now = now or utcnow()
        deal = db.query(Deal).filter(Deal.id == deal_id).first()
        if deal is None:
            raise DealNotFoundError(deal_id)
        provider = membership_provider or SqlMembershipProvider(db, now)
        membership = provider.snapshot(user_id)
        history = RedemptionLedger(db).history_for(user_id or "", deal_id)
        return evaluate(deal, user_id, membership, history, now)

    @staticmethod
    def redeem(db: Session, deal_id: int, user_id: str, source: str = "in_app",
               membership_provider: Optional[MembershipProvider] = None,
               now: Optional[datetime] = None,
               max_retries: Optional[int] = None) -> RedeemResult:
        max_retries = settings.redeem_max_retries if max_retries is None else max_retries
        attempt = 0
        while True:
            try:
                return RedemptionService._attempt(db, deal_id, user_id, source, membership_provider, now)
            except OperationalError as exc:
                db.rollback()
                if not _is_lock_conflict(exc):
                    logger.error("Store unavailable during redemption", extra={"deal_id": deal_id}, exc_info=True)
                    raise StoreUnavailableError("Redemption store is unavailable") from exc
                attempt += 1
                if attempt > max_retries:
                    logger.warning(
                        "Redemption conflict persisted after %d retries", max_retries,
                        extra={"deal_id": deal_id, "user_id": user_id},
                    )
                    raise RedemptionConflictError(
                        "Redemption could not be completed, please try again",
                        detail={"deal_id": deal_id},
                    ) from exc
                logger.warning("Lock conflict on redemption, retrying (%d/%d)", attempt, max_retries,
                               extra={"deal_id": deal_id, "user_id": user_id})
                time.sleep(settings.redeem_retry_backoff_ms * attempt / 1000.0)
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("Store failure during redemption", extra={"deal_id": deal_id}, exc_info=True)
                raise StoreUnavailableError("Redemption store is unavailable") from exc

    @staticmethod
    def _attempt(db: Session, deal_id: int, user_id: str, source: str,
                 membership_provider: Optional[MembershipProvider],
                 now: Optional[datetime]) -> RedeemResult:
        locked = db.execute(
            update(Deal)
            .where(Deal.id == deal_id)
            .values(lock_version=Deal.lock_version + 1)
            .execution_options(synchronize_session=False)
        )
        if locked.rowcount == 0:
            db.rollback()
            raise DealNotFoundError(deal_id)

        # timestamps taken under the lock follow commit order
        now = now or utcnow()
        deal = db.query(Deal).filter(Deal.id == deal_id).populate_existing().one()

        provider = membership_provider or SqlMembershipProvider(db, now)
        membership = provider.snapshot(user_id)
        ledger = RedemptionLedger(db)
        history = ledger.history_for(user_id, deal_id)

        decision = evaluate(deal, user_id, membership, history, now)
        if not decision.allowed:
            db.rollback()
            logger.info("Redemption denied: %s", decision.reason.value,
                        extra={"deal_id": deal_id, "user_id": user_id, "reason": decision.reason.value})
            return RedeemResult(denial=decision)

        record = ledger.append(deal_id, user_id, deal.vendor_id, source, now=now)
        db.commit()
        db.refresh(record)
        logger.info("Deal redeemed", extra={"deal_id": deal_id, "user_id": user_id, "redemption_id": record.id})
        return RedeemResult(record=record)

    @staticmethod
    def _authorize_vendor_actor(vendor_id: str, actor_id: str, admin_ids: Optional[Set[str]]) -> None:
        """The vendor account itself, or an admin, may act on a vendor's ledger rows."""
        admin_ids = settings.admin_user_ids if admin_ids is None else admin_ids
        if actor_id != vendor_id and actor_id not in admin_ids:
            raise VendorActionNotPermittedError(
                "Only the owning vendor or an admin may do this", detail={"vendor_id": vendor_id},
            )

    @staticmethod
    def void(db: Session, redemption_id: int, vendor_id: str, actor_id: str,
             reason: Optional[str] = None, now: Optional[datetime] = None,
             admin_ids: Optional[Set[str]] = None) -> Redemption:
        RedemptionService._authorize_vendor_actor(vendor_id, actor_id, admin_ids)
        ledger = RedemptionLedger(db)
        record = ledger.get(redemption_id)
        if record.vendor_id != vendor_id:
            raise VendorActionNotPermittedError("Redemption belongs to another vendor",
                                                detail={"redemption_id": redemption_id})
        if record.user_id == actor_id:
            raise VendorActionNotPermittedError("Redeeming users cannot void their own redemption",
                                                detail={"redemption_id": redemption_id})
        record = ledger.void(redemption_id, reason, voided_by=actor_id, now=now)
        logger.info("Redemption voided", extra={"redemption_id": redemption_id, "vendor_id": vendor_id,
                                                "actor_id": actor_id})
        return record

    @staticmethod
    def lookup_code(db: Session, vendor_id: str, deal_id: int, code: str, actor_id: str,
                    admin_ids: Optional[Set[str]] = None) -> Redemption:
        """Counter check: find the ledger row behind the code a customer shows."""
        RedemptionService._authorize_vendor_actor(vendor_id, actor_id, admin_ids)
        deal = db.query(Deal).filter(Deal.id == deal_id).first()
        if deal is None or deal.vendor_id != vendor_id:
            raise DealNotFoundError(deal_id)
        return RedemptionLedger(db).find_by_code(deal_id, code)
