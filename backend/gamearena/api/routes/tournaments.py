import uuid
from typing import Any

from fastapi import APIRouter, Depends
from sqlmodel import Session

from gamearena.api.deps import CurrentUser, get_db
from gamearena.models import TournamentRoom
from gamearena.services import moderation, stats

router = APIRouter(tags=["tournaments"])


@router.get("/tournaments/{tournament_id}/room", response_model=TournamentRoom)
def read_tournament_room(
    tournament_id: uuid.UUID,
    session: Session = Depends(get_db),
    current_user: CurrentUser = None,
) -> Any:
    """
    Room code and password, for participants, the host and admins.
    """
    return moderation.get_tournament_room(
        session=session, user=current_user, tournament_id=tournament_id
    )


@router.get("/games/", response_model=list[stats.GameSummary])
def read_games(session: Session = Depends(get_db), current_user: CurrentUser = None) -> Any:
    return stats.games_for_region(session=session, region_id=current_user.region_id)


@router.get("/game-modes/{game_mode_id}/events", response_model=stats.GameModeEvents)
def read_game_mode_events(
    game_mode_id: uuid.UUID,
    session: Session = Depends(get_db),
    current_user: CurrentUser = None,
) -> Any:
    return stats.game_mode_events(
        session=session, game_mode_id=game_mode_id, region_id=current_user.region_id
    )
