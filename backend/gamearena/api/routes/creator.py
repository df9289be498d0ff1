from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from gamearena.api.deps import CreatorUser, get_db
from gamearena.models import ReferralCodePublic
from gamearena.services import referrals

router = APIRouter(prefix="/creator", tags=["creator"])


class ReferralCodeRequest(BaseModel):
    code: str = Field(min_length=1, max_length=10)


@router.post("/referral-code", response_model=ReferralCodePublic)
def create_referral_code(
    *, session: Session = Depends(get_db), creator: CreatorUser, body: ReferralCodeRequest
) -> Any:
    return referrals.create_referral_code(session=session, creator=creator, code=body.code)


@router.get("/referral-code", response_model=ReferralCodePublic)
def read_referral_code(session: Session = Depends(get_db), creator: CreatorUser = None) -> Any:
    referral = referrals.get_referral_code(session, creator.id)
    if referral is None:
        raise HTTPException(status_code=404, detail="Referral code not found")
    return referral


@router.get("/stats", response_model=referrals.CreatorStats)
def read_creator_stats(session: Session = Depends(get_db), creator: CreatorUser = None) -> Any:
    """
    Referral counts and earnings, limited to the creator's region.
    """
    return referrals.creator_stats(
        session=session, creator=creator, region_id=creator.region_id
    )
