import enum
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from deal_redemption.clock import as_utc, utcnow
from deal_redemption.errors import DealNotFoundError, DealValidationError
from deal_redemption.models.deal import Deal, DealStatus
from deal_redemption.schemas.deal import DealCreate, DealUpdate
from deal_redemption.services import lifecycle

logger = logging.getLogger(__name__)

# columns that may not be cleared by sending null
_NOT_NULLABLE = {"title", "description", "discount_kind", "tier", "max_redemptions_per_user", "redemption_frequency"}


class DealService:
    """Vendor-facing deal management. Lifecycle moves go through services.lifecycle."""

    @staticmethod
    def create_deal(db: Session, deal_data: DealCreate) -> Deal:
        DealService._validate_window(deal_data.starts_at, deal_data.ends_at)
        db_deal = Deal(
            vendor_id=deal_data.vendor_id,
            title=deal_data.title,
            description=deal_data.description,
            fine_print=deal_data.fine_print,
            category=deal_data.category,
            city=deal_data.city,
            cities=deal_data.cities,
            image_url=deal_data.image_url,
            discount_kind=deal_data.discount_kind.value,
            discount_value=deal_data.discount_value,
            starts_at=as_utc(deal_data.starts_at),
            ends_at=as_utc(deal_data.ends_at),
            max_redemptions_total=deal_data.max_redemptions_total,
            max_redemptions_per_user=deal_data.max_redemptions_per_user,
            redemption_frequency=deal_data.redemption_frequency.value,
            custom_redemption_days=deal_data.custom_redemption_days,
            lock_version=0,
        )
        db_deal.set_access_tier(deal_data.tier)
        db_deal.set_status(DealStatus.DRAFT)
        db.add(db_deal)
        db.commit()
        db.refresh(db_deal)
        logger.info("Deal created", extra={"deal_id": db_deal.id, "vendor_id": db_deal.vendor_id})
        return db_deal

    @staticmethod
    def get_deal(db: Session, deal_id: int, now: Optional[datetime] = None) -> Deal:
        db_deal = db.query(Deal).filter(Deal.id == deal_id, Deal.deleted_at.is_(None)).first()
        if not db_deal:
            raise DealNotFoundError(deal_id)
        if lifecycle.refresh_expiry(db_deal, now):
            db.commit()
            db.refresh(db_deal)
        return db_deal

    @staticmethod
    def get_deals(db: Session, skip: int = 0, limit: int = 100, status: Optional[str] = None,
                  vendor_id: Optional[str] = None, city: Optional[str] = None) -> List[Deal]:
        limit = min(max(limit, 1), 500)
        DealService.expire_lapsed(db)
        q = db.query(Deal).filter(Deal.deleted_at.is_(None))
        if status is not None:
            q = q.filter(Deal.status == status)
        if vendor_id is not None:
            q = q.filter(Deal.vendor_id == vendor_id)
        if city is not None:
            q = q.filter(Deal.city == city)
        return q.order_by(Deal.id).offset(skip).limit(limit).all()

    @staticmethod
    def update_deal(db: Session, deal_id: int, deal_data: DealUpdate) -> Deal:
        db_deal = DealService.get_deal(db, deal_id)
        changes = deal_data.model_dump(exclude_unset=True)

        tier = changes.pop("tier", None)
        for field, value in changes.items():
            if value is None and field in _NOT_NULLABLE:
                continue
            if isinstance(value, enum.Enum):
                value = value.value
            elif field in ("starts_at", "ends_at"):
                value = as_utc(value)
            setattr(db_deal, field, value)
        if tier is not None:
            db_deal.set_access_tier(tier)

        try:
            DealService._validate_window(db_deal.starts_at, db_deal.ends_at)
            # live deals must stay publishable
            if db_deal.status == DealStatus.PUBLISHED.value:
                lifecycle.validate_for_publish(db_deal)
        except Exception:
            db.rollback()
            raise

        db.commit()
        db.refresh(db_deal)
        return db_deal

    @staticmethod
    def delete_deal(db: Session, deal_id: int) -> None:
        """Soft delete. Ledger rows keep pointing at the deal."""
        db_deal = DealService.get_deal(db, deal_id)
        db_deal.deleted_at = utcnow()
        db_deal.is_active = False
        db.commit()
        logger.info("Deal soft-deleted", extra={"deal_id": deal_id})

    @staticmethod
    def publish(db: Session, deal_id: int, now: Optional[datetime] = None) -> Deal:
        return DealService._transition(db, deal_id, lifecycle.PUBLISH, now)

    @staticmethod
    def pause(db: Session, deal_id: int, now: Optional[datetime] = None) -> Deal:
        return DealService._transition(db, deal_id, lifecycle.PAUSE, now)

    @staticmethod
    def expire(db: Session, deal_id: int, now: Optional[datetime] = None) -> Deal:
        return DealService._transition(db, deal_id, lifecycle.EXPIRE, now)

    @staticmethod
    def expire_lapsed(db: Session, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        live = (DealStatus.PUBLISHED.value, DealStatus.PAUSED.value)
        lapsed = db.query(Deal).filter(Deal.status.in_(live), Deal.ends_at.isnot(None), Deal.ends_at < now).all()
        for deal in lapsed:
            deal.set_status(DealStatus.EXPIRED)
        if lapsed:
            db.commit()
            logger.info("Expired %d lapsed deals", len(lapsed))
        return len(lapsed)

    @staticmethod
    def _transition(db: Session, deal_id: int, action: str, now: Optional[datetime]) -> Deal:
        db_deal = DealService.get_deal(db, deal_id, now)
        try:
            changed = lifecycle.transition(db_deal, action, now)
        except Exception:
            db.rollback()
            raise
        if changed:
            db.commit()
            db.refresh(db_deal)
        return db_deal

    @staticmethod
    def _validate_window(starts_at, ends_at) -> None:
        starts_at, ends_at = as_utc(starts_at), as_utc(ends_at)
        if starts_at is not None and ends_at is not None and starts_at >= ends_at:
            raise DealValidationError("ends_at must be after starts_at", detail={"starts_at": str(starts_at), "ends_at": str(ends_at)})
