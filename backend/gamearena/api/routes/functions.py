"""Server-side functions the client invokes by name."""

import uuid
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from gamearena.api.deps import CurrentUser, ModeratorUser, get_db
from gamearena.services import matchmaking, settlement

router = APIRouter(prefix="/functions", tags=["functions"])


class ProcessQueueRequest(BaseModel):
    template_id: uuid.UUID


class WinnerSelectionRequest(BaseModel):
    tournament_id: uuid.UUID
    winner_id: uuid.UUID


@router.post("/processTournamentQueue", response_model=matchmaking.QueueProcessResult)
def process_tournament_queue(
    *, session: Session = Depends(get_db), current_user: CurrentUser, body: ProcessQueueRequest
) -> Any:
    """
    Expire stale queue entries and start tournaments for a template whose
    queue has filled up.
    """
    return matchmaking.run_tournament_queue(session=session, template_id=body.template_id)


@router.post("/processWinnerSelection", response_model=settlement.SettlementResult)
def process_winner_selection(
    *, session: Session = Depends(get_db), moderator: ModeratorUser, body: WinnerSelectionRequest
) -> Any:
    """
    Complete an ongoing tournament and pay the prize pool to the winner.
    """
    return settlement.process_winner_selection(
        session=session,
        actor=moderator,
        tournament_id=body.tournament_id,
        winner_id=body.winner_id,
    )
