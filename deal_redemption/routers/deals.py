from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from deal_redemption.database import get_db
from deal_redemption.schemas.deal import DealCreate, DealUpdate, DealResponse
from deal_redemption.services.deal_service import DealService

router = APIRouter(prefix="", tags=["deals"])


@router.post("/deals", response_model=DealResponse, status_code=201)
def create_deal(deal: DealCreate, db: Session = Depends(get_db)):
    return DealService.create_deal(db, deal)


@router.get("/deals", response_model=List[DealResponse])
def list_deals(skip: int = 0, limit: int = 100, status: Optional[str] = None,
               vendor_id: Optional[str] = None, city: Optional[str] = None,
               db: Session = Depends(get_db)):
    return DealService.get_deals(db, skip, limit, status=status, vendor_id=vendor_id, city=city)


@router.get("/deals/{deal_id}", response_model=DealResponse)
def get_deal(deal_id: int, db: Session = Depends(get_db)):
    return DealService.get_deal(db, deal_id)


@router.put("/deals/{deal_id}", response_model=DealResponse)
def update_deal(deal_id: int, payload: DealUpdate, db: Session = Depends(get_db)):
    return DealService.update_deal(db, deal_id, payload)


@router.delete("/deals/{deal_id}", status_code=204)
def delete_deal(deal_id: int, db: Session = Depends(get_db)):
    DealService.delete_deal(db, deal_id)
    return


@router.post("/deals/{deal_id}/publish", response_model=DealResponse)
def publish_deal(deal_id: int, db: Session = Depends(get_db)):
    return DealService.publish(db, deal_id)


@router.post("/deals/{deal_id}/pause", response_model=DealResponse)
def pause_deal(deal_id: int, db: Session = Depends(get_db)):
    return DealService.pause(db, deal_id)


@router.post("/deals/{deal_id}/expire", response_model=DealResponse)
def expire_deal(deal_id: int, db: Session = Depends(get_db)):
    return DealService.expire(db, deal_id)
