from dataclasses import asdict

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

from deal_redemption.database import get_db
from deal_redemption.errors import DealNotFoundError
from deal_redemption.models.deal import Deal
from deal_redemption.schemas.redemption import (
    AccessInfoResponse, DenialResponse, EligibilityResponse, RedeemRequest, RedeemResponse,
    RedemptionResponse, VendorRedemptionSummary, VoidRequest,
)
from deal_redemption.services.eligibility import deal_access_info
from deal_redemption.services.ledger import RedemptionLedger
from deal_redemption.services.membership import SqlMembershipProvider
from deal_redemption.services.messages import denial_message
from deal_redemption.services.redemption_service import RedemptionService

router = APIRouter(prefix="", tags=["redemptions"])


# Session handling lives upstream; the gateway forwards the authenticated id.
def current_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_user_id or None


def require_user_id(user_id: Optional[str] = Depends(current_user_id)) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id


def _denial(decision) -> DenialResponse:
    return DenialResponse(
        reason=decision.reason.value,
        message=denial_message(decision.reason, decision.next_eligible_at),
        next_eligible_at=decision.next_eligible_at,
    )


@router.get("/deals/{deal_id}/eligibility", response_model=EligibilityResponse)
def check_eligibility(deal_id: int, user_id: Optional[str] = Depends(current_user_id),
                      db: Session = Depends(get_db)):
    provider = SqlMembershipProvider(db)
    decision = RedemptionService.preview(db, deal_id, user_id, membership_provider=provider)
    deal = db.query(Deal).filter(Deal.id == deal_id).one()
    access = deal_access_info(deal, provider.snapshot(user_id))
    return EligibilityResponse(
        deal_id=deal_id,
        allowed=decision.allowed,
        denial=None if decision.allowed else _denial(decision),
        access=AccessInfoResponse(**asdict(access)),
    )


@router.post("/deals/{deal_id}/redeem", response_model=RedeemResponse)
def redeem_deal(deal_id: int, payload: Optional[RedeemRequest] = None,
                user_id: str = Depends(require_user_id), db: Session = Depends(get_db)):
    source = payload.source if payload is not None else "in_app"
    result = RedemptionService.redeem(db, deal_id, user_id, source)
    if not result.ok:
        return RedeemResponse(redeemed=False, denial=_denial(result.denial))
    return RedeemResponse(redeemed=True, redemption=RedemptionResponse.model_validate(result.record))


@router.get("/deals/{deal_id}/redemptions", response_model=List[RedemptionResponse])
def deal_redemptions(deal_id: int, status: Optional[str] = None, skip: int = 0, limit: int = 100,
                     db: Session = Depends(get_db)):
    # soft-deleted deals keep their history
    if db.query(Deal.id).filter(Deal.id == deal_id).first() is None:
        raise DealNotFoundError(deal_id)
    return RedemptionLedger(db).list_for_deal(deal_id, status=status, skip=skip, limit=limit)


@router.get("/users/{user_id}/redemptions", response_model=List[RedemptionResponse])
def user_redemptions(user_id: str, status: Optional[str] = None, skip: int = 0, limit: int = 100,
                     db: Session = Depends(get_db)):
    return RedemptionLedger(db).list_for_user(user_id, status=status, skip=skip, limit=limit)


@router.get("/vendors/{vendor_id}/redemptions", response_model=List[RedemptionResponse])
def vendor_redemptions(vendor_id: str, status: Optional[str] = None, skip: int = 0, limit: int = 100,
                       db: Session = Depends(get_db)):
    return RedemptionLedger(db).list_for_vendor(vendor_id, status=status, skip=skip, limit=limit)


@router.get("/vendors/{vendor_id}/redemptions/summary", response_model=VendorRedemptionSummary)
def vendor_redemption_summary(vendor_id: str, db: Session = Depends(get_db)):
    return VendorRedemptionSummary(vendor_id=vendor_id, **RedemptionLedger(db).summary_for_vendor(vendor_id))


@router.post("/vendors/{vendor_id}/redemptions/{redemption_id}/void", response_model=RedemptionResponse)
def void_redemption(vendor_id: str, redemption_id: int, payload: VoidRequest,
                    actor_id: str = Depends(require_user_id), db: Session = Depends(get_db)):
    return RedemptionService.void(db, redemption_id, vendor_id, actor_id, reason=payload.reason)


@router.get("/vendors/{vendor_id}/deals/{deal_id}/redemptions/by-code/{code}", response_model=RedemptionResponse)
def lookup_redemption_code(vendor_id: str, deal_id: int, code: str,
                           actor_id: str = Depends(require_user_id), db: Session = Depends(get_db)):
    return RedemptionService.lookup_code(db, vendor_id, deal_id, code, actor_id)
