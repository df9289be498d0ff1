import logging
import uuid

from sqlalchemy import or_
from sqlmodel import Session, col, select

from gamearena import crud
from gamearena.models import (
    AppRole,
    Game,
    GameMode,
    Participation,
    ParticipationStatus,
    Tournament,
    TournamentPublic,
    TournamentRoom,
    TournamentStatus,
    User,
)
from gamearena.services.errors import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
)

logger = logging.getLogger(__name__)

MODERATED_STATUSES = (
    TournamentStatus.PREPARING,
    TournamentStatus.ONGOING,
    TournamentStatus.COMPLETED,
)


class ModeratedTournament(TournamentPublic):
    game_id: uuid.UUID | None = None
    game_name: str | None = None
    game_mode_name: str | None = None
    winner_name: str | None = None


def get_tournament(session: Session, tournament_id: uuid.UUID) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if tournament is None:
        raise NotFoundError("Tournament not found")
    return tournament


def lock_tournament(session: Session, tournament_id: uuid.UUID) -> Tournament:
    statement = (
        select(Tournament)
        .where(Tournament.id == tournament_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    tournament = session.exec(statement).first()
    if tournament is None:
        raise NotFoundError("Tournament not found")
    return tournament


def tournament_game_id(session: Session, tournament: Tournament) -> uuid.UUID | None:
    mode = session.get(GameMode, tournament.game_mode_id)
    return mode.game_id if mode else None


def can_moderate(session: Session, user: User, tournament: Tournament) -> bool:
    """Admins moderate everything; moderators their assigned games, unless
    another moderator already hosts the tournament."""
    if user.is_superuser:
        return True
    if user.app_role != AppRole.MODERATOR:
        return False
    if tournament.hosted_by is not None and tournament.hosted_by != user.id:
        return False
    return str(tournament_game_id(session, tournament)) in (user.assigned_games or [])


def ensure_can_moderate(session: Session, user: User, tournament: Tournament) -> None:
    if not can_moderate(session, user, tournament):
        raise PermissionDeniedError("You cannot moderate this tournament")


def tournament_participants(session: Session, tournament_id: uuid.UUID) -> list[Participation]:
    statement = (
        select(Participation)
        .where(Participation.tournament_id == tournament_id)
        .where(Participation.status != ParticipationStatus.REFUNDED)
        .order_by(col(Participation.registration_date), col(Participation.id))
    )
    return list(session.exec(statement).all())


def list_moderator_tournaments(
    *, session: Session, moderator: User
) -> list[ModeratedTournament]:
    game_ids = [uuid.UUID(game_id) for game_id in moderator.assigned_games or []]
    if not game_ids:
        return []

    statement = (
        select(Tournament, GameMode, Game)
        .join(GameMode, col(GameMode.id) == Tournament.game_mode_id)
        .join(Game, col(Game.id) == GameMode.game_id)
        .where(col(Game.id).in_(game_ids))
        .where(col(Tournament.status).in_(MODERATED_STATUSES))
        .where(
            or_(
                col(Tournament.hosted_by) == moderator.id,
                col(Tournament.hosted_by).is_(None),
            )
        )
        .order_by(col(Tournament.created_date).desc(), col(Tournament.id))
    )
    if moderator.region_id is not None:
        statement = statement.where(Tournament.region_id == moderator.region_id)

    tournaments = []
    for tournament, mode, game in session.exec(statement).all():
        winner = session.get(User, tournament.winner_id) if tournament.winner_id else None
        tournaments.append(
            ModeratedTournament.model_validate(
                tournament,
                update={
                    "game_id": game.id,
                    "game_name": game.name,
                    "game_mode_name": mode.name,
                    "winner_name": (winner.full_name or winner.email) if winner else None,
                },
            )
        )
    return tournaments


def host_tournament(
    *,
    session: Session,
    moderator: User,
    tournament_id: uuid.UUID,
    room_code: str,
    room_password: str | None = None,
) -> Tournament:
    """Publish the room details and start the tournament."""
    room_code = (room_code or "").strip()
    if not room_code:
        raise InvalidRequestError("Room code is required")
    try:
        tournament = lock_tournament(session, tournament_id)
        ensure_can_moderate(session, moderator, tournament)
        if tournament.status != TournamentStatus.PREPARING:
            raise ConflictError("Only tournaments being prepared can be hosted")

        tournament.room_code = room_code
        tournament.room_password = (room_password or "").strip() or None
        tournament.hosted_by = moderator.id
        tournament.status = TournamentStatus.ONGOING
        session.add(tournament)
        for participation in tournament_participants(session, tournament.id):
            crud.create_notification(
                session=session,
                user_id=participation.player_id,
                title="Room is ready",
                message=(
                    f"{tournament.title} is starting. "
                    "Open the tournament to see the room code."
                ),
            )
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(tournament)
    logger.info("Moderator %s is hosting tournament %s", moderator.id, tournament.id)
    return tournament


def get_tournament_room(
    *, session: Session, user: User, tournament_id: uuid.UUID
) -> TournamentRoom:
    tournament = get_tournament(session, tournament_id)
    allowed = user.is_superuser or tournament.hosted_by == user.id
    if not allowed:
        allowed = any(
            participation.player_id == user.id
            for participation in tournament_participants(session, tournament.id)
        )
    if not allowed:
        raise PermissionDeniedError("Room details are only shared with participants")
    if tournament.status != TournamentStatus.ONGOING:
        raise ConflictError("Room details are available once the tournament is ongoing")
    return TournamentRoom(
        tournament_id=tournament.id,
        status=tournament.status,
        room_code=tournament.room_code,
        room_password=tournament.room_password,
    )
