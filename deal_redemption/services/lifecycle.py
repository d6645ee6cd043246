"""
Deal publication lifecycle.

    draft --publish--> published <--pause/publish--> paused
    published|paused --expire (or ends_at passing)--> expired

``expired`` is terminal and nothing returns to ``draft``. Repeating the
current state is a no-op. Expiry is applied lazily whenever a deal is read
through the service layer; ``DealService.expire_lapsed`` is the optional sweep.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from deal_redemption.clock import as_utc, utcnow
from deal_redemption.errors import DealConfigurationError, InvalidTransitionError
from deal_redemption.models.deal import Deal, DealStatus, DiscountKind
from deal_redemption.services.policy import resolve_policy

logger = logging.getLogger(__name__)

PUBLISH = "publish"
PAUSE = "pause"
EXPIRE = "expire"

_TRANSITIONS = {
    (DealStatus.DRAFT, PUBLISH): DealStatus.PUBLISHED,
    (DealStatus.PUBLISHED, PUBLISH): DealStatus.PUBLISHED,
    (DealStatus.PAUSED, PUBLISH): DealStatus.PUBLISHED,
    (DealStatus.PUBLISHED, PAUSE): DealStatus.PAUSED,
    (DealStatus.PAUSED, PAUSE): DealStatus.PAUSED,
    (DealStatus.PUBLISHED, EXPIRE): DealStatus.EXPIRED,
    (DealStatus.PAUSED, EXPIRE): DealStatus.EXPIRED,
    (DealStatus.EXPIRED, EXPIRE): DealStatus.EXPIRED,
}


def has_lapsed(deal: Deal, now: datetime) -> bool:
    ends_at = as_utc(deal.ends_at)
    return ends_at is not None and ends_at < now


def refresh_expiry(deal: Deal, now: Optional[datetime] = None) -> bool:
    """Move a live deal past its end date to ``expired``. Returns True on change."""
    now = now or utcnow()
    live = (DealStatus.PUBLISHED.value, DealStatus.PAUSED.value)
    if deal.status in live and has_lapsed(deal, now):
        deal.set_status(DealStatus.EXPIRED)
        logger.info("Deal expired at read time", extra={"deal_id": deal.id})
        return True
    return False


def validate_for_publish(deal: Deal, now: Optional[datetime] = None) -> None:
    now = now or utcnow()
    problems = {}

    if not (deal.title or "").strip():
        problems["title"] = "required"
    if not (deal.description or "").strip():
        problems["description"] = "required"

    value = Decimal(str(deal.discount_value)) if deal.discount_value is not None else None
    if deal.discount_kind == DiscountKind.PERCENT.value:
        if value is None or value <= 0 or value > 100:
            problems["discount_value"] = "percent discounts need a value in (0, 100]"
    elif deal.discount_kind == DiscountKind.FIXED_AMOUNT.value:
        if value is None or value <= 0:
            problems["discount_value"] = "fixed-amount discounts need a positive value"

    starts_at, ends_at = as_utc(deal.starts_at), as_utc(deal.ends_at)
    if starts_at is not None and ends_at is not None and starts_at >= ends_at:
        problems["ends_at"] = "must be after starts_at"
    elif has_lapsed(deal, now):
        problems["ends_at"] = "already passed"

    try:
        resolve_policy(deal)
    except DealConfigurationError as exc:
        problems["policy"] = exc.message

    if problems:
        raise DealConfigurationError("Deal cannot be published", detail=problems)


def transition(deal: Deal, action: str, now: Optional[datetime] = None) -> bool:
    """Apply ``action``. Returns True when the status changed."""
    now = now or utcnow()
    refresh_expiry(deal, now)

    current = DealStatus(deal.status)
    target = _TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidTransitionError(current.value, action)
    if target is current:
        return False

    if target is DealStatus.PUBLISHED:
        validate_for_publish(deal, now)

    deal.set_status(target)
    logger.info("Deal %s: %s -> %s", action, current.value, target.value, extra={"deal_id": deal.id})
    return True
