import uuid
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from gamearena.api.deps import ModeratorUser, get_db
from gamearena.models import ParticipationPublic, TournamentPublic
from gamearena.services import moderation

router = APIRouter(prefix="/moderator", tags=["moderator"])


class HostRequest(BaseModel):
    room_code: str = Field(max_length=64)
    room_password: str | None = Field(default=None, max_length=64)


@router.get("/tournaments", response_model=list[moderation.ModeratedTournament])
def read_moderated_tournaments(
    session: Session = Depends(get_db), moderator: ModeratorUser = None
) -> Any:
    """
    Tournaments in the moderator's region for their assigned games that are
    being prepared, running or finished, and not hosted by someone else.
    """
    return moderation.list_moderator_tournaments(session=session, moderator=moderator)


@router.post("/tournaments/{tournament_id}/host", response_model=TournamentPublic)
def host_tournament(
    *,
    session: Session = Depends(get_db),
    moderator: ModeratorUser,
    tournament_id: uuid.UUID,
    body: HostRequest,
) -> Any:
    return moderation.host_tournament(
        session=session,
        moderator=moderator,
        tournament_id=tournament_id,
        room_code=body.room_code,
        room_password=body.room_password,
    )


@router.get(
    "/tournaments/{tournament_id}/participants",
    response_model=list[ParticipationPublic],
)
def read_participants(
    tournament_id: uuid.UUID,
    session: Session = Depends(get_db),
    moderator: ModeratorUser = None,
) -> Any:
    tournament = moderation.get_tournament(session, tournament_id)
    moderation.ensure_can_moderate(session, moderator, tournament)
    return moderation.tournament_participants(session, tournament.id)
