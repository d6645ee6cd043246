from datetime import datetime
from typing import Optional

from deal_redemption.services.eligibility import DenialReason

TRY_AGAIN = "Something went wrong on our side. Please try again in a moment."

_COPY = {
    DenialReason.DEAL_NOT_PUBLISHED: "This deal isn't available right now.",
    DenialReason.OUTSIDE_VALIDITY_WINDOW: "This deal can't be redeemed at this time.",
    DenialReason.DEAL_SOFT_DELETED: "This deal is no longer available.",
    DenialReason.MEMBERSHIP_REQUIRED: "This deal is for members. Get a pass to unlock it.",
    DenialReason.GLOBAL_QUOTA_EXHAUSTED: "This deal has been fully claimed.",
    DenialReason.USER_QUOTA_EXHAUSTED: "You've already redeemed this deal the maximum number of times.",
    DenialReason.DEAL_MISCONFIGURED: "This deal is temporarily unavailable. The business has been notified.",
}


def denial_message(reason: DenialReason, next_eligible_at: Optional[datetime] = None) -> str:
    if reason is DenialReason.COOLDOWN_ACTIVE:
        if next_eligible_at is None:
            return "You've redeemed this deal recently. Please check back later."
        return f"You can redeem this again on {next_eligible_at.strftime('%b %d, %Y')}."
    return _COPY[reason]
