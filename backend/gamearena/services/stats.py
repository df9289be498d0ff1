"""Read-only aggregates for player, admin and catalog screens."""

import uuid

from pydantic import BaseModel
from sqlalchemy import func
from sqlmodel import Session, col, select

from gamearena.models import (
    Game,
    GameMode,
    GamePublic,
    GameModePublic,
    Participation,
    ParticipationStatus,
    Tournament,
    TournamentPublic,
    TournamentStatus,
    TournamentTemplate,
    TournamentTemplatePublic,
    TournamentType,
    Transaction,
    TransactionType,
    User,
    UserPublic,
)
from gamearena.services.errors import NotFoundError, PermissionDeniedError

ACTIVE_STATUSES = (TournamentStatus.REGISTRATION_OPEN, TournamentStatus.ONGOING)
RECENT_LIMIT = 3


class PlayerStats(BaseModel):
    tournaments_played: int
    wins: int
    total_prize_won: float


class AdminDashboard(BaseModel):
    total_tournaments: int
    total_prize_pool: float
    active_tournaments: int
    total_participants: int
    total_users: int
    total_wallet_balance: float
    recent_tournaments: list[TournamentPublic]
    recent_players: list[UserPublic]


class UserBalance(BaseModel):
    user_id: uuid.UUID
    full_name: str | None = None
    email: str
    wallet_balance: float


class PaymentsOverview(BaseModel):
    total_wallet_balance: float
    total_entry_fees: float
    total_prizes_paid: float
    total_refunds: float
    total_referral_commissions: float
    balances: list[UserBalance]


class GameSummary(GamePublic):
    mode_count: int = 0
    open_tournaments: int = 0


class GameModeEvents(BaseModel):
    game: GamePublic
    game_mode: GameModePublic
    template: TournamentTemplatePublic | None = None
    tournaments: list[TournamentPublic] = []


def _money(value) -> float:
    return round(float(value or 0), 2)


def player_stats(*, session: Session, user: User) -> PlayerStats:
    counted = col(Participation.status) != ParticipationStatus.REFUNDED
    played = session.exec(
        select(func.count())
        .select_from(Participation)
        .where(Participation.player_id == user.id)
        .where(counted)
    ).one()
    wins, prize = session.exec(
        select(func.count(), func.coalesce(func.sum(Participation.prize_won), 0))
        .where(Participation.player_id == user.id)
        .where(Participation.status == ParticipationStatus.WINNER)
    ).one()
    return PlayerStats(tournaments_played=played, wins=wins, total_prize_won=_money(prize))


def admin_dashboard(*, session: Session, region_id: uuid.UUID | None = None) -> AdminDashboard:
    in_tournament_region = [Tournament.region_id == region_id] if region_id else []
    in_user_region = [User.region_id == region_id] if region_id else []

    total_tournaments, total_prize_pool = session.exec(
        select(
            func.count(col(Tournament.id)),
            func.coalesce(func.sum(Tournament.prize_pool), 0),
        ).where(*in_tournament_region)
    ).one()
    active = session.exec(
        select(func.count(col(Tournament.id)))
        .where(*in_tournament_region)
        .where(col(Tournament.status).in_(ACTIVE_STATUSES))
    ).one()
    participants = session.exec(
        select(func.count(col(Participation.id)))
        .where(
            col(Participation.tournament_id).in_(
                select(Tournament.id).where(*in_tournament_region)
            )
        )
        .where(col(Participation.status) != ParticipationStatus.REFUNDED)
    ).one()
    total_users, total_balance = session.exec(
        select(
            func.count(col(User.id)),
            func.coalesce(func.sum(User.wallet_balance), 0),
        ).where(*in_user_region)
    ).one()
    recent_tournaments = session.exec(
        select(Tournament)
        .where(*in_tournament_region)
        .order_by(col(Tournament.created_date).desc(), col(Tournament.id))
        .limit(RECENT_LIMIT)
    ).all()
    recent_players = session.exec(
        select(User)
        .where(*in_user_region)
        .order_by(col(User.created_date).desc(), col(User.id))
        .limit(RECENT_LIMIT)
    ).all()

    return AdminDashboard(
        total_tournaments=total_tournaments,
        total_prize_pool=_money(total_prize_pool),
        active_tournaments=active,
        total_participants=participants,
        total_users=total_users,
        total_wallet_balance=_money(total_balance),
        recent_tournaments=[TournamentPublic.model_validate(t) for t in recent_tournaments],
        recent_players=[UserPublic.model_validate(u) for u in recent_players],
    )


def payments_overview(
    *, session: Session, region_id: uuid.UUID | None = None
) -> PaymentsOverview:
    in_user_region = [User.region_id == region_id] if region_id else []

    totals = dict(
        session.exec(
            select(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0))
            .where(col(Transaction.user_id).in_(select(User.id).where(*in_user_region)))
            .group_by(Transaction.type)
        ).all()
    )
    db_users = session.exec(
        select(User)
        .where(*in_user_region)
        .order_by(col(User.wallet_balance).desc(), col(User.email))
    ).all()

    return PaymentsOverview(
        total_wallet_balance=_money(sum(u.wallet_balance or 0 for u in db_users)),
        # Debits are stored negative
        total_entry_fees=_money(-totals.get(TransactionType.ENTRY_FEE, 0)),
        total_prizes_paid=_money(totals.get(TransactionType.PRIZE_WON, 0)),
        total_refunds=_money(totals.get(TransactionType.REFUND, 0)),
        total_referral_commissions=_money(totals.get(TransactionType.REFERRAL_COMMISSION, 0)),
        balances=[
            UserBalance(
                user_id=u.id,
                full_name=u.full_name,
                email=u.email,
                wallet_balance=_money(u.wallet_balance),
            )
            for u in db_users
        ],
    )


def games_for_region(*, session: Session, region_id: uuid.UUID | None) -> list[GameSummary]:
    """Active games, limited to ``region_id`` when the caller has one."""
    statement = select(Game).where(Game.is_active == True)  # noqa: E712
    if region_id is not None:
        statement = statement.where(Game.region_id == region_id)
    games = session.exec(statement.order_by(col(Game.name), col(Game.id))).all()

    summaries = []
    for game in games:
        mode_ids = select(GameMode.id).where(GameMode.game_id == game.id)
        mode_count = session.exec(
            select(func.count()).select_from(GameMode).where(GameMode.game_id == game.id)
        ).one()
        open_count = session.exec(
            select(func.count())
            .select_from(Tournament)
            .where(col(Tournament.game_mode_id).in_(mode_ids))
            .where(Tournament.status == TournamentStatus.REGISTRATION_OPEN)
        ).one()
        summaries.append(
            GameSummary.model_validate(
                game, update={"mode_count": mode_count, "open_tournaments": open_count}
            )
        )
    return summaries


def game_mode_events(
    *, session: Session, game_mode_id: uuid.UUID, region_id: uuid.UUID | None
) -> GameModeEvents:
    """What a player can join for a mode: the active template and manual tournaments."""
    mode = session.get(GameMode, game_mode_id)
    if mode is None:
        raise NotFoundError("Game mode not found")
    game = session.get(Game, mode.game_id)
    if game is None:
        raise NotFoundError("Game not found")
    if region_id is not None and game.region_id not in (None, region_id):
        raise PermissionDeniedError("This game is not available in your region")

    template_statement = (
        select(TournamentTemplate)
        .where(TournamentTemplate.game_mode_id == mode.id)
        .where(TournamentTemplate.is_active == True)  # noqa: E712
        .order_by(col(TournamentTemplate.created_date).desc())
    )
    tournament_statement = (
        select(Tournament)
        .where(Tournament.game_mode_id == mode.id)
        .where(Tournament.tournament_type != TournamentType.AUTOMATED)
        .order_by(col(Tournament.start_date), col(Tournament.id))
    )
    if region_id is not None:
        template_statement = template_statement.where(
            TournamentTemplate.region_id == region_id
        )
        tournament_statement = tournament_statement.where(Tournament.region_id == region_id)

    template = session.exec(template_statement).first()
    tournaments = session.exec(tournament_statement).all()
    return GameModeEvents(
        game=GamePublic.model_validate(game),
        game_mode=GameModePublic.model_validate(mode),
        template=TournamentTemplatePublic.model_validate(template) if template else None,
        tournaments=[TournamentPublic.model_validate(t) for t in tournaments],
    )
