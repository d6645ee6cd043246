"""
Eligibility rule set: a pure decision over a deal, a membership snapshot and
the requesting user's redemption history. No I/O, no locking.

Checks short-circuit in a fixed order: availability, tier, global quota,
per-user quota, cooldown.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Union

from deal_redemption.clock import as_utc
from deal_redemption.errors import DealConfigurationError
from deal_redemption.models.deal import AccessTier, DealStatus
from deal_redemption.models.redemption import RedemptionStatus
from deal_redemption.services.policy import resolve_access_tier, resolve_policy

logger = logging.getLogger(__name__)


class DenialReason(str, enum.Enum):
    DEAL_NOT_PUBLISHED = "deal_not_published"
    OUTSIDE_VALIDITY_WINDOW = "outside_validity_window"
    DEAL_SOFT_DELETED = "deal_soft_deleted"
    MEMBERSHIP_REQUIRED = "membership_required"
    GLOBAL_QUOTA_EXHAUSTED = "global_quota_exhausted"
    USER_QUOTA_EXHAUSTED = "user_quota_exhausted"
    COOLDOWN_ACTIVE = "cooldown_active"
    DEAL_MISCONFIGURED = "deal_misconfigured"


@dataclass(frozen=True)
class Allowed:
    allowed = True


@dataclass(frozen=True)
class Denied:
    reason: DenialReason
    next_eligible_at: Optional[datetime] = None
    allowed = False


Decision = Union[Allowed, Denied]


@dataclass(frozen=True)
class MembershipSnapshot:
    user_id: Optional[str]
    active: bool = False


@dataclass(frozen=True)
class RedemptionHistory:
    """Non-voided counts the rules need. Voided rows never contribute."""

    deal_active_count: int = 0
    user_active_count: int = 0
    user_last_redeemed_at: Optional[datetime] = None

    @classmethod
    def from_records(cls, records: Iterable, user_id: str) -> "RedemptionHistory":
        """Build from raw ledger rows for one deal (all users)."""
        deal_count = 0
        user_count = 0
        last = None
        for r in records:
            if r.status == RedemptionStatus.VOIDED.value:
                continue
            deal_count += 1
            if r.user_id == user_id:
                user_count += 1
                at = as_utc(r.redeemed_at)
                if last is None or at > last:
                    last = at
        return cls(deal_active_count=deal_count, user_active_count=user_count, user_last_redeemed_at=last)


def check_availability(deal, now: datetime) -> Optional[DenialReason]:
    if deal.deleted_at is not None:
        return DenialReason.DEAL_SOFT_DELETED
    if deal.status != DealStatus.PUBLISHED.value:
        return DenialReason.DEAL_NOT_PUBLISHED
    starts_at = as_utc(deal.starts_at)
    ends_at = as_utc(deal.ends_at)
    if starts_at is not None and now < starts_at:
        return DenialReason.OUTSIDE_VALIDITY_WINDOW
    if ends_at is not None and now > ends_at:
        return DenialReason.OUTSIDE_VALIDITY_WINDOW
    return None


def evaluate(
    deal,
    user_id: str,
    membership: MembershipSnapshot,
    history: RedemptionHistory,
    now: datetime,
) -> Decision:
    now = as_utc(now)

    reason = check_availability(deal, now)
    if reason is not None:
        return Denied(reason)

    try:
        policy = resolve_policy(deal)
    except DealConfigurationError as exc:
        logger.warning(
            "Misconfigured deal denied at evaluation: %s",
            exc.message,
            extra={"deal_id": deal.id, "vendor_id": deal.vendor_id, "detail": exc.detail},
        )
        return Denied(DenialReason.DEAL_MISCONFIGURED)

    if policy.tier is AccessTier.MEMBER and not membership.active:
        return Denied(DenialReason.MEMBERSHIP_REQUIRED)

    if policy.max_total is not None and history.deal_active_count >= policy.max_total:
        return Denied(DenialReason.GLOBAL_QUOTA_EXHAUSTED)

    if history.user_active_count >= policy.max_per_user:
        return Denied(DenialReason.USER_QUOTA_EXHAUSTED)

    last = as_utc(history.user_last_redeemed_at)
    if last is not None and policy.cooldown.gap is not None:
        next_eligible_at = last + policy.cooldown.gap
        if now < next_eligible_at:
            return Denied(DenialReason.COOLDOWN_ACTIVE, next_eligible_at=next_eligible_at)

    return Allowed()


@dataclass(frozen=True)
class DealAccessInfo:
    is_locked: bool
    requires_membership: bool
    user_has_membership: bool
    reason: str


def deal_access_info(deal, membership: MembershipSnapshot) -> DealAccessInfo:
    """Lock state for cards and buttons. Misconfigured tiers read as locked."""
    try:
        requires = resolve_access_tier(deal.tier, deal.is_pass_locked) is AccessTier.MEMBER
    except DealConfigurationError:
        requires = True

    if not requires:
        return DealAccessInfo(False, False, membership.active, "public")
    if membership.active:
        return DealAccessInfo(False, True, True, "member_with_pass")
    reason = "locked_no_pass" if membership.user_id else "locked_no_user"
    return DealAccessInfo(True, True, False, reason)
