import logging
import uuid
from datetime import datetime

from pydantic import BaseModel
from sqlmodel import Session

from gamearena import crud
from gamearena.models import (
    ParticipationStatus,
    TournamentPublic,
    TournamentStatus,
    TransactionType,
    User,
    get_datetime_utc,
)
from gamearena.services import catalog
from gamearena.services.errors import ConflictError, InvalidRequestError
from gamearena.services.moderation import (
    ensure_can_moderate,
    lock_tournament,
    tournament_participants,
)
from gamearena.services.wallet import apply_wallet_change

logger = logging.getLogger(__name__)


class SettlementResult(BaseModel):
    tournament: TournamentPublic
    winner_id: uuid.UUID
    prize_won: float
    participants_notified: int


def process_winner_selection(
    *,
    session: Session,
    actor: User,
    tournament_id: uuid.UUID,
    winner_id: uuid.UUID,
    now: datetime | None = None,
) -> SettlementResult:
    """Close an ongoing tournament and pay its prize pool to the winner."""
    now = now or get_datetime_utc()
    try:
        tournament = lock_tournament(session, tournament_id)
        ensure_can_moderate(session, actor, tournament)
        if tournament.status == TournamentStatus.COMPLETED:
            raise ConflictError("A winner has already been selected for this tournament")
        if tournament.status != TournamentStatus.ONGOING:
            raise ConflictError("Winners can only be selected for ongoing tournaments")

        participations = tournament_participants(session, tournament.id)
        if not any(p.player_id == winner_id for p in participations):
            raise InvalidRequestError("Winner must be a participant of this tournament")

        prize = tournament.prize_pool or 0
        tournament.status = TournamentStatus.COMPLETED
        tournament.winner_id = winner_id
        tournament.completed_date = now
        session.add(tournament)

        for participation in participations:
            if participation.player_id == winner_id:
                participation.status = ParticipationStatus.WINNER
                participation.placement = 1
                participation.prize_won = prize
                title, message = (
                    "You won!",
                    f"Congratulations, you won {tournament.title}.",
                )
            else:
                participation.status = ParticipationStatus.ELIMINATED
                title, message = (
                    "Tournament finished",
                    f"{tournament.title} has finished. Better luck next time!",
                )
            session.add(participation)
            crud.create_notification(
                session=session, user_id=participation.player_id, title=title, message=message
            )

        if prize > 0:
            apply_wallet_change(
                session=session,
                user_id=winner_id,
                amount=prize,
                type=TransactionType.PRIZE_WON,
                description=f"Prize for winning {tournament.title}",
                related_tournament_id=tournament.id,
                currency_symbol=catalog.currency_symbol_for(session, tournament.region_id),
            )
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(tournament)
    logger.info(
        "Tournament %s completed, winner %s, prize %.2f", tournament.id, winner_id, prize
    )
    return SettlementResult(
        tournament=TournamentPublic.model_validate(tournament),
        winner_id=winner_id,
        prize_won=prize,
        participants_notified=len(participations),
    )
