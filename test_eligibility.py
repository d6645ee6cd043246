from datetime import datetime, timedelta, timezone

import pytest

from deal_redemption.errors import DealConfigurationError
from deal_redemption.models.deal import AccessTier, Deal
from deal_redemption.models.redemption import Redemption
from deal_redemption.services import lifecycle
from deal_redemption.services.eligibility import (
    Allowed, Denied, DenialReason, MembershipSnapshot, RedemptionHistory, deal_access_info, evaluate,
)
from deal_redemption.services.messages import denial_message
from deal_redemption.services.policy import (
    CooldownPolicy, effective_per_user_cap, frequency_label, resolve_access_tier, resolve_cooldown, resolve_policy,
)

T = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)
USER = "user-1"
NOBODY = MembershipSnapshot(user_id=USER, active=False)
MEMBER = MembershipSnapshot(user_id=USER, active=True)
EMPTY = RedemptionHistory()


def build_deal(**overrides):
    fields = dict(
        id=1,
        vendor_id="vendor-1",
        title="Half-price latte",
        description="Any size",
        discount_kind="percent",
        discount_value=50,
        tier="standard",
        is_pass_locked=False,
        status="published",
        starts_at=None,
        ends_at=None,
        deleted_at=None,
        max_redemptions_total=None,
        max_redemptions_per_user=1,
        redemption_frequency="unlimited",
        custom_redemption_days=None,
        cooldown_hours=None,
    )
    fields.update(overrides)
    return Deal(**fields)


def used(user_count, at=None, deal_count=None):
    return RedemptionHistory(
        deal_active_count=user_count if deal_count is None else deal_count,
        user_active_count=user_count,
        user_last_redeemed_at=at,
    )


def test_published_deal_with_no_history_is_allowed():
    assert evaluate(build_deal(), USER, NOBODY, EMPTY, T) == Allowed()


@pytest.mark.parametrize("status", ["draft", "paused", "expired"])
def test_unpublished_statuses_are_denied_regardless_of_quota(status):
    decision = evaluate(build_deal(status=status, max_redemptions_per_user=99), USER, MEMBER, EMPTY, T)
    assert decision == Denied(DenialReason.DEAL_NOT_PUBLISHED)


def test_soft_deleted_deal_is_denied_first():
    decision = evaluate(build_deal(status="draft", deleted_at=T), USER, NOBODY, EMPTY, T)
    assert decision.reason is DenialReason.DEAL_SOFT_DELETED


def test_validity_window_bounds():
    deal = build_deal(starts_at=T + timedelta(hours=1), ends_at=T + timedelta(days=1))
    assert evaluate(deal, USER, NOBODY, EMPTY, T).reason is DenialReason.OUTSIDE_VALIDITY_WINDOW
    assert evaluate(deal, USER, NOBODY, EMPTY, T + timedelta(hours=2)).allowed
    assert evaluate(deal, USER, NOBODY, EMPTY, T + timedelta(days=1, seconds=1)).reason is DenialReason.OUTSIDE_VALIDITY_WINDOW


def test_last_instant_is_redeemable_and_not_yet_lapsed():
    deal = build_deal(ends_at=T)
    assert evaluate(deal, USER, NOBODY, EMPTY, T).allowed
    assert lifecycle.has_lapsed(deal, T) is False

    later = T + timedelta(microseconds=1)
    assert evaluate(deal, USER, NOBODY, EMPTY, later).reason is DenialReason.OUTSIDE_VALIDITY_WINDOW
    assert lifecycle.has_lapsed(deal, later) is True


def test_open_ended_window_on_one_side():
    deal = build_deal(ends_at=T + timedelta(days=1))
    assert evaluate(deal, USER, NOBODY, EMPTY, T - timedelta(days=365)).allowed


def test_naive_stored_timestamps_are_read_as_utc():
    deal = build_deal(ends_at=datetime(2026, 5, 1, 8, 0))
    assert evaluate(deal, USER, NOBODY, EMPTY, T).reason is DenialReason.OUTSIDE_VALIDITY_WINDOW


def test_member_deal_requires_active_membership():
    deal = build_deal(tier="member", is_pass_locked=True)
    assert evaluate(deal, USER, NOBODY, EMPTY, T) == Denied(DenialReason.MEMBERSHIP_REQUIRED)
    assert evaluate(deal, USER, MEMBER, EMPTY, T).allowed


def test_global_quota_counts_all_users():
    deal = build_deal(max_redemptions_total=3, max_redemptions_per_user=5)
    assert evaluate(deal, USER, NOBODY, used(0, deal_count=2), T).allowed
    assert evaluate(deal, USER, NOBODY, used(0, deal_count=3), T).reason is DenialReason.GLOBAL_QUOTA_EXHAUSTED


def test_tier_is_checked_before_quota():
    deal = build_deal(tier="member", is_pass_locked=True, max_redemptions_total=1)
    assert evaluate(deal, USER, NOBODY, used(0, deal_count=1), T).reason is DenialReason.MEMBERSHIP_REQUIRED


def test_per_user_quota():
    deal = build_deal(max_redemptions_per_user=2)
    assert evaluate(deal, USER, NOBODY, used(1, at=T - timedelta(days=1)), T).allowed
    assert evaluate(deal, USER, NOBODY, used(2, at=T - timedelta(days=1)), T) == Denied(DenialReason.USER_QUOTA_EXHAUSTED)


def test_once_is_the_stricter_of_the_two_caps():
    deal = build_deal(redemption_frequency="once", max_redemptions_per_user=5)
    assert evaluate(deal, USER, NOBODY, used(1, at=T - timedelta(days=400)), T).reason is DenialReason.USER_QUOTA_EXHAUSTED


def test_weekly_cooldown_boundary():
    deal = build_deal(redemption_frequency="weekly", max_redemptions_per_user=10)
    history = used(1, at=T)

    decision = evaluate(deal, USER, NOBODY, history, T + timedelta(days=6, hours=23))
    assert decision == Denied(DenialReason.COOLDOWN_ACTIVE, next_eligible_at=T + timedelta(days=7))
    assert evaluate(deal, USER, NOBODY, history, T + timedelta(days=7)).allowed


def test_monthly_is_a_fixed_thirty_days():
    deal = build_deal(redemption_frequency="monthly", max_redemptions_per_user=10)
    jan_31 = datetime(2026, 1, 31, tzinfo=timezone.utc)
    decision = evaluate(deal, USER, NOBODY, used(1, at=jan_31), datetime(2026, 2, 28, tzinfo=timezone.utc))
    assert decision.next_eligible_at == datetime(2026, 3, 2, tzinfo=timezone.utc)
    assert evaluate(deal, USER, NOBODY, used(1, at=jan_31), datetime(2026, 3, 1, tzinfo=timezone.utc)).reason is DenialReason.COOLDOWN_ACTIVE
    assert evaluate(deal, USER, NOBODY, used(1, at=jan_31), datetime(2026, 3, 2, tzinfo=timezone.utc)).allowed


def test_custom_frequency_uses_days():
    deal = build_deal(redemption_frequency="custom", custom_redemption_days=3, max_redemptions_per_user=10)
    assert evaluate(deal, USER, NOBODY, used(1, at=T), T + timedelta(days=2)).next_eligible_at == T + timedelta(days=3)
    assert evaluate(deal, USER, NOBODY, used(1, at=T), T + timedelta(days=3)).allowed


def test_legacy_cooldown_hours_apply_when_frequency_missing():
    deal = build_deal(redemption_frequency=None, cooldown_hours=12, max_redemptions_per_user=10)
    assert evaluate(deal, USER, NOBODY, used(1, at=T), T + timedelta(hours=11)).reason is DenialReason.COOLDOWN_ACTIVE
    assert evaluate(deal, USER, NOBODY, used(1, at=T), T + timedelta(hours=12)).allowed


def test_named_frequency_wins_over_cooldown_hours():
    deal = build_deal(redemption_frequency="unlimited", cooldown_hours=48, max_redemptions_per_user=10)
    assert evaluate(deal, USER, NOBODY, used(1, at=T), T + timedelta(hours=1)).allowed


def test_custom_without_days_fails_closed():
    deal = build_deal(redemption_frequency="custom", custom_redemption_days=None)
    assert evaluate(deal, USER, NOBODY, EMPTY, T) == Denied(DenialReason.DEAL_MISCONFIGURED)


def test_desynchronized_tier_fails_closed(caplog):
    deal = build_deal(tier="member", is_pass_locked=False)
    with caplog.at_level("WARNING"):
        decision = evaluate(deal, USER, MEMBER, EMPTY, T)
    assert decision.reason is DenialReason.DEAL_MISCONFIGURED
    assert "Misconfigured deal" in caplog.text


def test_voided_rows_do_not_count_and_next_most_recent_governs_cooldown():
    rows = [
        Redemption(user_id=USER, status="redeemed", redeemed_at=T - timedelta(days=10)),
        Redemption(user_id=USER, status="voided", redeemed_at=T - timedelta(days=1)),
        Redemption(user_id="someone-else", status="redeemed", redeemed_at=T - timedelta(hours=1)),
    ]
    history = RedemptionHistory.from_records(rows, USER)
    assert history == RedemptionHistory(deal_active_count=2, user_active_count=1, user_last_redeemed_at=T - timedelta(days=10))

    deal = build_deal(redemption_frequency="weekly", max_redemptions_per_user=5)
    assert evaluate(deal, USER, NOBODY, history, T).allowed


class TestPolicy:

    def test_legacy_flag_only_rows_become_members(self):
        assert resolve_access_tier("free", True) is AccessTier.MEMBER
        assert resolve_access_tier(None, False) is AccessTier.STANDARD
        assert resolve_access_tier("premium", True) is AccessTier.MEMBER

    @pytest.mark.parametrize("tier,locked", [("member", False), ("standard", True), ("gold", True)])
    def test_disagreeing_or_unknown_tiers_raise(self, tier, locked):
        with pytest.raises(DealConfigurationError):
            resolve_access_tier(tier, locked)

    def test_unknown_frequency_raises(self):
        with pytest.raises(DealConfigurationError):
            resolve_cooldown("fortnightly")

    def test_non_positive_legacy_hours_raise(self):
        with pytest.raises(DealConfigurationError):
            resolve_cooldown(None, cooldown_hours=0)

    def test_policy_defaults_per_user_cap_to_one(self):
        policy = resolve_policy(build_deal(max_redemptions_per_user=None))
        assert policy.max_per_user == 1
        assert policy.max_total is None

    def test_effective_per_user_cap(self):
        deal = build_deal(max_redemptions_per_user=4)
        assert effective_per_user_cap(deal, CooldownPolicy()) == 4
        assert effective_per_user_cap(deal, CooldownPolicy(once=True)) == 1
        assert effective_per_user_cap(build_deal(max_redemptions_per_user=None), CooldownPolicy()) == 1
        with pytest.raises(DealConfigurationError):
            effective_per_user_cap(build_deal(max_redemptions_per_user=0), CooldownPolicy())

    def test_frequency_labels(self):
        assert frequency_label("once") == "1x only"
        assert frequency_label("weekly") == "1x/week"
        assert frequency_label("custom", 10) == "1x/10d"
        assert frequency_label("custom") is None
        assert frequency_label("unlimited") is None


def test_access_info_states():
    public = build_deal()
    locked = build_deal(tier="member", is_pass_locked=True)

    assert deal_access_info(public, NOBODY).reason == "public"
    assert deal_access_info(locked, MEMBER).reason == "member_with_pass"
    assert deal_access_info(locked, NOBODY).reason == "locked_no_pass"
    anonymous = deal_access_info(locked, MembershipSnapshot(user_id=None))
    assert anonymous.is_locked and anonymous.reason == "locked_no_user"


def test_every_denial_reason_has_copy():
    for reason in DenialReason:
        assert denial_message(reason)
    message = denial_message(DenialReason.COOLDOWN_ACTIVE, datetime(2026, 5, 8, tzinfo=timezone.utc))
    assert message == "You can redeem this again on May 08, 2026."
