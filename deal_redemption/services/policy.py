"""
Normalization of a deal's loosely typed policy columns.

Legacy rows carry the tier twice (string ``tier`` and boolean
``is_pass_locked``) and the cooldown twice (named ``redemption_frequency``
and ``cooldown_hours``). Everything downstream works on the closed types
returned here and never branches on the raw columns.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from deal_redemption.errors import DealConfigurationError
from deal_redemption.models.deal import AccessTier, RedemptionFrequency

# tier values older rows were written with
_LEGACY_DEFAULT_TIERS = {"", "free"}
_LEGACY_MEMBER_TIERS = {"premium"}

MONTHLY_GAP = timedelta(days=30)
WEEKLY_GAP = timedelta(days=7)


@dataclass(frozen=True)
class CooldownPolicy:
    gap: Optional[timedelta] = None
    once: bool = False


@dataclass(frozen=True)
class RedemptionPolicy:
    tier: AccessTier
    cooldown: CooldownPolicy
    max_total: Optional[int]
    max_per_user: int


def resolve_access_tier(tier: Optional[str], is_pass_locked: Optional[bool]) -> AccessTier:
    raw = (tier or "").strip().lower()
    locked = bool(is_pass_locked)

    if raw in _LEGACY_DEFAULT_TIERS:
        # pre-tier rows only set the flag
        return AccessTier.MEMBER if locked else AccessTier.STANDARD
    if raw in _LEGACY_MEMBER_TIERS:
        raw = AccessTier.MEMBER.value

    try:
        resolved = AccessTier(raw)
    except ValueError:
        raise DealConfigurationError(f"Unknown access tier '{tier}'", detail={"tier": tier})

    if (resolved is AccessTier.MEMBER) != locked:
        raise DealConfigurationError(
            "Access tier and pass-locked flag disagree",
            detail={"tier": tier, "is_pass_locked": locked},
        )
    return resolved


def resolve_cooldown(
    frequency: Optional[str],
    custom_days: Optional[int] = None,
    cooldown_hours: Optional[int] = None,
) -> CooldownPolicy:
    if frequency:
        try:
            freq = RedemptionFrequency(frequency.strip().lower())
        except ValueError:
            raise DealConfigurationError(
                f"Unknown redemption frequency '{frequency}'", detail={"redemption_frequency": frequency}
            )

        if freq is RedemptionFrequency.ONCE:
            return CooldownPolicy(once=True)
        if freq is RedemptionFrequency.WEEKLY:
            return CooldownPolicy(gap=WEEKLY_GAP)
        # fixed 30 days, not calendar months
        if freq is RedemptionFrequency.MONTHLY:
            return CooldownPolicy(gap=MONTHLY_GAP)
        if freq is RedemptionFrequency.CUSTOM:
            if custom_days is None or custom_days < 1:
                raise DealConfigurationError(
                    "Custom redemption frequency requires custom_redemption_days >= 1",
                    detail={"custom_redemption_days": custom_days},
                )
            return CooldownPolicy(gap=timedelta(days=custom_days))
        return CooldownPolicy()

    if cooldown_hours is not None:
        if cooldown_hours < 1:
            raise DealConfigurationError(
                "cooldown_hours must be positive", detail={"cooldown_hours": cooldown_hours}
            )
        return CooldownPolicy(gap=timedelta(hours=cooldown_hours))

    return CooldownPolicy()


def effective_per_user_cap(deal, cooldown: CooldownPolicy) -> int:
    """``max_redemptions_per_user``, tightened to 1 for ``once`` deals."""
    max_per_user = 1 if deal.max_redemptions_per_user is None else deal.max_redemptions_per_user
    if max_per_user < 1:
        raise DealConfigurationError(
            "max_redemptions_per_user must be at least 1", detail={"max_redemptions_per_user": max_per_user}
        )
    if cooldown.once:
        return 1
    return max_per_user


def resolve_policy(deal) -> RedemptionPolicy:
    """Single entry point used by evaluation and by publish validation."""
    tier = resolve_access_tier(deal.tier, deal.is_pass_locked)
    cooldown = resolve_cooldown(deal.redemption_frequency, deal.custom_redemption_days, deal.cooldown_hours)

    max_total = deal.max_redemptions_total
    if max_total is not None and max_total < 1:
        raise DealConfigurationError("max_redemptions_total must be at least 1", detail={"max_redemptions_total": max_total})

    return RedemptionPolicy(tier=tier, cooldown=cooldown, max_total=max_total,
                            max_per_user=effective_per_user_cap(deal, cooldown))


def frequency_label(frequency: Optional[str], custom_days: Optional[int] = None) -> Optional[str]:
    if frequency == RedemptionFrequency.ONCE.value:
        return "1x only"
    if frequency == RedemptionFrequency.WEEKLY.value:
        return "1x/week"
    if frequency == RedemptionFrequency.MONTHLY.value:
        return "1x/month"
    if frequency == RedemptionFrequency.CUSTOM.value:
        return f"1x/{custom_days}d" if custom_days else None
    return None
