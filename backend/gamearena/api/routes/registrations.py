import uuid
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from gamearena.api.deps import CurrentUser, get_db
from gamearena.models import ParticipationPublic
from gamearena.services import registration

router = APIRouter(prefix="/registrations", tags=["registrations"])


class RegistrationRequest(BaseModel):
    tournament_id: uuid.UUID | None = None
    template_id: uuid.UUID | None = None
    in_game_name: str | None = Field(default=None, max_length=255)
    in_game_uid: str | None = Field(default=None, max_length=255)
    referral_code: str | None = Field(default=None, max_length=10)


@router.post("/", response_model=registration.RegistrationResult)
def register(
    *, session: Session = Depends(get_db), current_user: CurrentUser, body: RegistrationRequest
) -> Any:
    """
    Register for a tournament, or join the queue of an automated event.

    The entry fee is taken from the wallet in the same transaction that
    records the participation.
    """
    return registration.register_player(
        session=session,
        player=current_user,
        tournament_id=body.tournament_id,
        template_id=body.template_id,
        in_game_name=body.in_game_name,
        in_game_uid=body.in_game_uid,
        referral_code=body.referral_code,
    )


@router.get("/me", response_model=list[registration.MyRegistration])
def read_my_registrations(
    session: Session = Depends(get_db), current_user: CurrentUser = None
) -> Any:
    return registration.list_my_registrations(
        session=session, player=current_user, region_id=current_user.region_id
    )


@router.delete("/{participation_id}", response_model=ParticipationPublic)
def leave_queue(
    participation_id: uuid.UUID,
    session: Session = Depends(get_db),
    current_user: CurrentUser = None,
) -> Any:
    """
    Leave an automated event's queue before a match is found; the fee is refunded.
    """
    return registration.leave_queue(
        session=session, player=current_user, participation_id=participation_id
    )
