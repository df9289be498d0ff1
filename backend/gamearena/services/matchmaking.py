"""Queue processing for automated tournaments.

Players register against a :class:`TournamentTemplate` and wait in its queue.
Once ``participants_to_start`` distinct players are waiting, a tournament is
spun up from the template and those players are moved into it. Players who
wait longer than ``waiting_time_minutes`` without a match get their entry
fee back.
"""

import logging
import uuid
from datetime import datetime, timedelta

from pydantic import BaseModel
from sqlmodel import Session, select

from gamearena import crud
from gamearena.models import (
    Participation,
    ParticipationStatus,
    QueueStatus,
    ReferralCode,
    Tournament,
    TournamentQueue,
    TournamentStatus,
    TournamentTemplate,
    TournamentType,
    TransactionType,
    ensure_utc,
    get_datetime_utc,
)
from gamearena.services import catalog
from gamearena.services.errors import ConflictError, NotFoundError
from gamearena.services.wallet import apply_wallet_change

logger = logging.getLogger(__name__)


class QueueProcessResult(BaseModel):
    template_id: uuid.UUID
    tournaments_created: list[uuid.UUID] = []
    expired: int = 0
    waiting: int = 0


def waiting_entries(session: Session, template_id: uuid.UUID) -> list[TournamentQueue]:
    """Waiting queue entries for a template, oldest first."""
    statement = (
        select(TournamentQueue)
        .where(TournamentQueue.template_id == template_id)
        .where(TournamentQueue.status == QueueStatus.WAITING)
        .order_by(TournamentQueue.created_date.asc(), TournamentQueue.id.asc())  # type: ignore[union-attr]
    )
    return list(session.exec(statement).all())


def refund_queue_entry(
    *,
    session: Session,
    entry: TournamentQueue,
    status: QueueStatus,
    reason: str,
    currency_symbol: str = "$",
) -> None:
    """Take an entry out of the queue and give the player their fee back."""
    entry.status = status
    session.add(entry)

    participation = session.get(Participation, entry.participation_id)
    if participation is None:
        return
    participation.status = ParticipationStatus.REFUNDED
    session.add(participation)
    refund = participation.entry_fee_paid or 0
    if refund > 0:
        apply_wallet_change(
            session=session,
            user_id=entry.player_id,
            amount=refund,
            type=TransactionType.REFUND,
            description=reason,
            currency_symbol=currency_symbol,
        )
    reverse_referral_commission(session=session, participation=participation)


def reverse_referral_commission(*, session: Session, participation: Participation) -> float:
    """Take back the commission a refunded registration earned its creator.

    Capped at the creator's current balance; any shortfall is logged.
    Returns the amount taken back.
    """
    paid = participation.referral_commission_paid or 0
    if paid <= 0 or not participation.used_referral_code:
        return 0
    referral = session.exec(
        select(ReferralCode).where(ReferralCode.code == participation.used_referral_code)
    ).first()
    creator = crud.lock_user(session=session, user_id=referral.creator_id) if referral else None
    if creator is None:
        logger.warning(
            "Cannot reverse %.2f commission for participation %s: code %s has no creator",
            paid,
            participation.id,
            participation.used_referral_code,
        )
        return 0

    reversed_amount = round(min(paid, creator.wallet_balance or 0), 2)
    if reversed_amount < paid:
        logger.warning(
            "Creator %s can only cover %.2f of the %.2f commission for participation %s",
            creator.id,
            reversed_amount,
            paid,
            participation.id,
        )
    if reversed_amount > 0:
        apply_wallet_change(
            session=session,
            user_id=creator.id,
            amount=-reversed_amount,
            type=TransactionType.REFERRAL_COMMISSION,
            description=f"Commission reversed: {participation.in_game_name} was refunded",
        )
    participation.referral_commission_paid = round(paid - reversed_amount, 2)
    session.add(participation)
    return reversed_amount


def expire_stale_entries(
    *, session: Session, template: TournamentTemplate, now: datetime | None = None
) -> int:
    """Expire entries that waited past the template's waiting time.

    Nothing expires while the queue can still fill a tournament.
    A waiting time of 0 disables expiry.
    """
    if not template.waiting_time_minutes:
        return 0
    entries = waiting_entries(session, template.id)
    if len({entry.player_id for entry in entries}) >= template.participants_to_start:
        return 0

    now = now or get_datetime_utc()
    cutoff = now - timedelta(minutes=template.waiting_time_minutes)
    symbol = catalog.currency_symbol_for(session, template.region_id)
    expired = 0
    for entry in entries:
        joined = ensure_utc(entry.created_date)
        if joined is None or joined > cutoff:
            continue
        refund_queue_entry(
            session=session,
            entry=entry,
            status=QueueStatus.EXPIRED,
            reason=f"Refund: no match found for {template.name}",
            currency_symbol=symbol,
        )
        crud.create_notification(
            session=session,
            user_id=entry.player_id,
            title="Queue expired",
            message=(
                f"Not enough players joined {template.name} in time. "
                "Your entry fee has been refunded."
            ),
        )
        expired += 1
    if expired:
        logger.info("Expired %d queue entries for template %s", expired, template.id)
    return expired


def _next_batch(
    entries: list[TournamentQueue], size: int
) -> list[TournamentQueue] | None:
    batch: list[TournamentQueue] = []
    players: set[uuid.UUID] = set()
    for entry in entries:
        if entry.player_id in players:
            continue
        batch.append(entry)
        players.add(entry.player_id)
        if len(batch) == size:
            return batch
    return None


def _start_tournament(
    session: Session,
    template: TournamentTemplate,
    batch: list[TournamentQueue],
    now: datetime,
) -> Tournament:
    _, game = catalog.game_for_mode(session, template.game_mode_id)
    tournament = Tournament(
        title=template.name,
        game_mode_id=template.game_mode_id,
        region_id=template.region_id,
        start_date=now,
        prize_pool=template.prize_pool,
        entry_fee=template.entry_fee,
        max_participants=template.participants_to_start,
        current_participants=len(batch),
        tournament_type=TournamentType.AUTOMATED,
        status=TournamentStatus.PREPARING,
        rules=template.rules,
        template_id=template.id,
        tournament_id_custom=catalog.next_tournament_custom_id(session, game),
    )
    session.add(tournament)
    session.flush()

    for entry in batch:
        entry.status = QueueStatus.MATCHED
        entry.tournament_id = tournament.id
        entry.matched_date = now
        session.add(entry)
        participation = session.get(Participation, entry.participation_id)
        if participation is not None:
            participation.tournament_id = tournament.id
            session.add(participation)
        crud.create_notification(
            session=session,
            user_id=entry.player_id,
            title="Match found",
            message=(
                f"Your match for {template.name} is ready "
                f"(ID {tournament.tournament_id_custom}). "
                "Room details will appear once a moderator hosts it."
            ),
        )
    logger.info(
        "Started tournament %s from template %s with %d players",
        tournament.tournament_id_custom,
        template.id,
        len(batch),
    )
    return tournament


def process_tournament_queue(
    *, session: Session, template_id: uuid.UUID, now: datetime | None = None
) -> QueueProcessResult:
    """Expire stale entries, then start as many tournaments as the queue fills.

    Changes are staged on ``session``; the caller commits.
    """
    template = session.get(TournamentTemplate, template_id)
    if template is None:
        raise NotFoundError("Tournament template not found")
    if not template.is_active:
        raise ConflictError("Tournament template is not active")

    now = now or get_datetime_utc()
    result = QueueProcessResult(template_id=template.id)
    result.expired = expire_stale_entries(session=session, template=template, now=now)

    while True:
        batch = _next_batch(
            waiting_entries(session, template.id), template.participants_to_start
        )
        if batch is None:
            break
        tournament = _start_tournament(session, template, batch, now)
        result.tournaments_created.append(tournament.id)

    result.waiting = len(waiting_entries(session, template.id))
    return result


def run_tournament_queue(
    *, session: Session, template_id: uuid.UUID, now: datetime | None = None
) -> QueueProcessResult:
    """:func:`process_tournament_queue` as its own unit of work."""
    try:
        result = process_tournament_queue(session=session, template_id=template_id, now=now)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return result
