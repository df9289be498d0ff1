"""Identifier generation and lookups shared by the catalog entities."""

import logging
import uuid

from sqlmodel import Session, select

from gamearena.core.config import settings
from gamearena.models import Game, GameMode, Region, Tournament
from gamearena.services.errors import ConflictError, InvalidRequestError

logger = logging.getLogger(__name__)

GAME_CODE_RANGE = range(101, 1000)
TOURNAMENT_SEQUENCE_WIDTH = 7


def next_game_code(session: Session) -> str:
    """Lowest unused three-digit game code."""
    existing = set(
        session.exec(select(Game.game_code).where(Game.game_code.is_not(None))).all()  # type: ignore[union-attr]
    )
    for number in GAME_CODE_RANGE:
        code = f"{number:03d}"
        if code not in existing:
            return code
    raise ConflictError("No available game codes")


def _sequence_part(custom_id: str) -> int:
    tail = custom_id[3:]
    return int(tail) if tail.isdigit() else 0


def next_tournament_custom_id(session: Session, game: Game | None) -> str:
    """``<game code><7-digit sequence>``; the sequence is global across games."""
    existing = session.exec(
        select(Tournament.tournament_id_custom).where(
            Tournament.tournament_id_custom.is_not(None)  # type: ignore[union-attr]
        )
    ).all()
    last = max((_sequence_part(custom_id) for custom_id in existing), default=0)
    game_code = game.game_code if game is not None and game.game_code else "000"
    return f"{game_code}{last + 1:0{TOURNAMENT_SEQUENCE_WIDTH}d}"


def game_for_mode(session: Session, game_mode_id: uuid.UUID) -> tuple[GameMode, Game | None]:
    mode = session.get(GameMode, game_mode_id)
    if mode is None:
        raise InvalidRequestError("Game mode not found")
    return mode, session.get(Game, mode.game_id)


def prepare_game(session: Session, values: dict) -> dict:
    if not values.get("game_code"):
        values["game_code"] = next_game_code(session)
    return values


def prepare_tournament(session: Session, values: dict) -> dict:
    _, game = game_for_mode(session, values["game_mode_id"])
    if values.get("region_id") is None and game is not None:
        values["region_id"] = game.region_id
    if not values.get("tournament_id_custom"):
        values["tournament_id_custom"] = next_tournament_custom_id(session, game)
    return values


def prepare_template(session: Session, values: dict) -> dict:
    mode, game = game_for_mode(session, values["game_mode_id"])
    if mode.game_id != values["game_id"]:
        raise InvalidRequestError("Game mode does not belong to the template's game")
    if values.get("region_id") is None and game is not None:
        values["region_id"] = game.region_id
    return values


def currency_symbol_for(session: Session, region_id: uuid.UUID | None) -> str:
    if region_id is None:
        return settings.DEFAULT_CURRENCY_SYMBOL
    region = session.get(Region, region_id)
    return region.currency_symbol if region else settings.DEFAULT_CURRENCY_SYMBOL
