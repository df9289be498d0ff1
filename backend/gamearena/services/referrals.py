import logging
import uuid
from collections import Counter
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from gamearena.models import (
    AppRole,
    Participation,
    ReferralCode,
    Tournament,
    TournamentTemplate,
    Transaction,
    TransactionPublic,
    TransactionType,
    User,
    check_referral_code,
    ensure_utc,
)
from gamearena.services.errors import ConflictError, InvalidRequestError, PermissionDeniedError

logger = logging.getLogger(__name__)

RECENT_EARNINGS_LIMIT = 10


class DailySignups(BaseModel):
    date: str
    signups: int


class CreatorStats(BaseModel):
    code: str | None = None
    total_referrals: int = 0
    total_earnings: float = 0
    daily_signups: list[DailySignups] = []
    recent_earnings: list[TransactionPublic] = []


def ensure_creator(user: User) -> None:
    if user.app_role != AppRole.CREATOR and not user.is_superuser:
        raise PermissionDeniedError("Only content creators have referral codes")


def get_referral_code(session: Session, creator_id: uuid.UUID) -> ReferralCode | None:
    return session.exec(
        select(ReferralCode).where(ReferralCode.creator_id == creator_id)
    ).first()


def create_referral_code(*, session: Session, creator: User, code: str) -> ReferralCode:
    ensure_creator(creator)
    code = (code or "").strip()
    try:
        check_referral_code(code)
    except ValueError as exc:
        raise InvalidRequestError(str(exc)) from exc

    if get_referral_code(session, creator.id) is not None:
        raise ConflictError("You already have a referral code")
    if session.exec(select(ReferralCode).where(ReferralCode.code == code)).first():
        raise ConflictError("This code is already taken. Please choose another.")

    referral = ReferralCode(creator_id=creator.id, code=code)
    session.add(referral)
    try:
        session.commit()
    except IntegrityError as exc:
        # Lost a race with another request claiming the same code
        session.rollback()
        raise ConflictError("This code is already taken. Please choose another.") from exc
    session.refresh(referral)
    logger.info("Creator %s claimed referral code %s", creator.id, code)
    return referral


def _in_region(
    session: Session, participation: Participation, region_id: uuid.UUID
) -> bool:
    if participation.tournament_id is not None:
        tournament = session.get(Tournament, participation.tournament_id)
        return tournament is not None and tournament.region_id == region_id
    if participation.template_id is not None:
        template = session.get(TournamentTemplate, participation.template_id)
        return template is not None and template.region_id == region_id
    return False


def creator_stats(
    *, session: Session, creator: User, region_id: uuid.UUID | None = None
) -> CreatorStats:
    """Referral activity for a creator's code.

    ``region_id`` narrows referrals to events in that region. Earnings are the
    creator's referral commission transactions.
    """
    ensure_creator(creator)
    referral = get_referral_code(session, creator.id)
    if referral is None:
        return CreatorStats()

    participations = session.exec(
        select(Participation).where(Participation.used_referral_code == referral.code)
    ).all()
    if region_id is not None:
        participations = [p for p in participations if _in_region(session, p, region_id)]

    per_day: Counter[str] = Counter()
    for participation in participations:
        registered: datetime | None = ensure_utc(
            participation.registration_date or participation.created_date
        )
        if registered is not None:
            per_day[registered.date().isoformat()] += 1

    total_earnings = session.exec(
        select(func.coalesce(func.sum(Transaction.amount), 0))
        .where(Transaction.user_id == creator.id)
        .where(Transaction.type == TransactionType.REFERRAL_COMMISSION)
    ).one()
    recent = session.exec(
        select(Transaction)
        .where(Transaction.user_id == creator.id)
        .where(Transaction.type == TransactionType.REFERRAL_COMMISSION)
        .order_by(col(Transaction.created_date).desc(), col(Transaction.id))
        .limit(RECENT_EARNINGS_LIMIT)
    ).all()

    return CreatorStats(
        code=referral.code,
        total_referrals=len(participations),
        total_earnings=round(float(total_earnings), 2),
        daily_signups=[
            DailySignups(date=day, signups=count) for day, count in sorted(per_day.items())
        ],
        recent_earnings=[TransactionPublic.model_validate(t) for t in recent],
    )
