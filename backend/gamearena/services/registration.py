"""Player registration for tournaments and automated-tournament queues.

Every step of a registration (fee debit, referral commission, participation,
queue entry, matchmaking) runs in the caller's session and is committed
once. Any failure rolls the whole registration back.
"""

import logging
import uuid
from datetime import datetime

from pydantic import BaseModel
from sqlmodel import Session, col, select

from gamearena.core.config import settings
from gamearena.models import (
    Game,
    GameMode,
    Participation,
    ParticipationPublic,
    ParticipationStatus,
    QueueStatus,
    ReferralCode,
    Tournament,
    TournamentQueue,
    TournamentStatus,
    TournamentTemplate,
    TransactionType,
    User,
    ensure_utc,
    get_datetime_utc,
)
from gamearena.services import catalog
from gamearena.services.errors import (
    ArenaError,
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
)
from gamearena.services.matchmaking import (
    QueueProcessResult,
    process_tournament_queue,
    refund_queue_entry,
)
from gamearena.services.wallet import apply_wallet_change

logger = logging.getLogger(__name__)

OPEN_STATUSES = (TournamentStatus.UPCOMING, TournamentStatus.REGISTRATION_OPEN)


class RegistrationResult(BaseModel):
    participation: ParticipationPublic
    wallet_balance: float
    queue: QueueProcessResult | None = None


class MyRegistration(BaseModel):
    participation: ParticipationPublic
    type: str
    title: str
    status: str
    tournament_id: uuid.UUID | None = None
    template_id: uuid.UUID | None = None
    tournament_id_custom: str | None = None
    game_name: str | None = None
    game_mode_name: str | None = None
    start_date: datetime | None = None
    prize_pool: float = 0


def _lock_tournament(session: Session, tournament_id: uuid.UUID) -> Tournament | None:
    statement = (
        select(Tournament)
        .where(Tournament.id == tournament_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return session.exec(statement).first()


def _open_tournament(
    session: Session, tournament_id: uuid.UUID, now: datetime
) -> Tournament:
    tournament = _lock_tournament(session, tournament_id)
    if tournament is None:
        raise NotFoundError("Tournament not found")
    if tournament.status not in OPEN_STATUSES:
        raise ConflictError("Registration is not open for this tournament")
    deadline = ensure_utc(tournament.registration_deadline)
    if deadline is not None and now > deadline:
        raise ConflictError("Registration deadline has passed")
    if tournament.max_participants and (
        tournament.current_participants >= tournament.max_participants
    ):
        raise ConflictError("Tournament is full")
    return tournament


def _open_template(session: Session, template_id: uuid.UUID) -> TournamentTemplate:
    template = session.get(TournamentTemplate, template_id)
    if template is None:
        raise NotFoundError("Tournament template not found")
    if not template.is_active:
        raise ConflictError("This event is not accepting players")
    return template


def _ensure_not_registered(
    session: Session,
    player: User,
    tournament: Tournament | None,
    template: TournamentTemplate | None,
) -> None:
    if tournament is not None:
        statement = (
            select(Participation.id)
            .where(Participation.player_id == player.id)
            .where(Participation.tournament_id == tournament.id)
            .where(Participation.status != ParticipationStatus.REFUNDED)
        )
        if session.exec(statement).first() is not None:
            raise ConflictError("You are already registered for this tournament")
    if template is not None:
        statement = (
            select(TournamentQueue.id)
            .where(TournamentQueue.player_id == player.id)
            .where(TournamentQueue.template_id == template.id)
            .where(TournamentQueue.status == QueueStatus.WAITING)
        )
        if session.exec(statement).first() is not None:
            raise ConflictError("You are already waiting in this event's queue")


def _resolve_referral(
    session: Session, player: User, code: str | None
) -> ReferralCode | None:
    code = (code or "").strip()
    if not code:
        return None
    referral = session.exec(select(ReferralCode).where(ReferralCode.code == code)).first()
    if referral is None:
        raise InvalidRequestError("Referral code not found")
    if referral.creator_id == player.id:
        raise InvalidRequestError("You cannot use your own referral code")
    return referral


def register_player(
    *,
    session: Session,
    player: User,
    in_game_name: str | None,
    tournament_id: uuid.UUID | None = None,
    template_id: uuid.UUID | None = None,
    in_game_uid: str | None = None,
    referral_code: str | None = None,
    now: datetime | None = None,
) -> RegistrationResult:
    if (tournament_id is None) == (template_id is None):
        raise InvalidRequestError("Provide exactly one of tournament_id or template_id")
    in_game_name = (in_game_name or "").strip()
    if not in_game_name:
        raise InvalidRequestError("In-game name is required")

    now = now or get_datetime_utc()
    player_id = player.id
    try:
        tournament = template = None
        if tournament_id is not None:
            tournament = _open_tournament(session, tournament_id, now)
            title, fee, region_id = tournament.title, tournament.entry_fee, tournament.region_id
        else:
            template = _open_template(session, template_id)  # type: ignore[arg-type]
            title, fee, region_id = template.name, template.entry_fee, template.region_id

        _ensure_not_registered(session, player, tournament, template)
        referral = _resolve_referral(session, player, referral_code)
        symbol = catalog.currency_symbol_for(session, region_id)

        if fee > 0:
            apply_wallet_change(
                session=session,
                user_id=player.id,
                amount=-fee,
                type=TransactionType.ENTRY_FEE,
                description=f"Entry fee for {title}",
                related_tournament_id=tournament.id if tournament else None,
                currency_symbol=symbol,
            )
        commission = 0.0
        if referral is not None and fee > 0:
            commission = round(fee * settings.REFERRAL_COMMISSION_RATE, 2)
            if commission > 0:
                apply_wallet_change(
                    session=session,
                    user_id=referral.creator_id,
                    amount=commission,
                    type=TransactionType.REFERRAL_COMMISSION,
                    description=f"Referral commission: {player.full_name or player.email} joined {title}",
                    related_tournament_id=tournament.id if tournament else None,
                    currency_symbol=symbol,
                )

        participation = Participation(
            player_id=player.id,
            player_name=player.full_name,
            player_email=player.email,
            tournament_id=tournament.id if tournament else None,
            template_id=template.id if template else None,
            registration_date=now,
            in_game_name=in_game_name,
            in_game_uid=in_game_uid,
            used_referral_code=referral.code if referral else None,
            entry_fee_paid=fee,
            referral_commission_paid=commission,
        )
        session.add(participation)
        # The queue entry references it
        session.flush()

        queue_result = None
        if tournament is not None:
            tournament.current_participants += 1
            session.add(tournament)
        else:
            session.add(
                TournamentQueue(
                    template_id=template.id,  # type: ignore[union-attr]
                    participation_id=participation.id,
                    player_id=player.id,
                    created_date=now,
                )
            )
            queue_result = process_tournament_queue(
                session=session, template_id=template.id, now=now  # type: ignore[union-attr]
            )
        session.commit()
    except ArenaError as exc:
        session.rollback()
        logger.info("Registration refused for %s: %s", player_id, exc.detail)
        raise
    except Exception:
        session.rollback()
        logger.exception("Registration failed for %s", player_id)
        raise

    session.refresh(participation)
    session.refresh(player)
    logger.info(
        "Registered %s for %s (fee %.2f, referral %s)",
        player.id,
        title,
        fee,
        referral.code if referral else None,
    )
    return RegistrationResult(
        participation=ParticipationPublic.model_validate(participation),
        wallet_balance=player.wallet_balance,
        queue=queue_result,
    )


def leave_queue(*, session: Session, player: User, participation_id: uuid.UUID) -> Participation:
    """Withdraw a still-waiting queue registration and refund its fee."""
    participation = session.get(Participation, participation_id)
    if participation is None:
        raise NotFoundError("Registration not found")
    if participation.player_id != player.id:
        raise PermissionDeniedError("Not your registration")
    entry = session.exec(
        select(TournamentQueue).where(TournamentQueue.participation_id == participation.id)
    ).first()
    if entry is None or entry.status != QueueStatus.WAITING:
        raise ConflictError("Only registrations still waiting for players can be withdrawn")

    template = session.get(TournamentTemplate, entry.template_id)
    name = template.name if template else "event"
    try:
        refund_queue_entry(
            session=session,
            entry=entry,
            status=QueueStatus.CANCELLED,
            reason=f"Refund: left the queue for {name}",
            currency_symbol=catalog.currency_symbol_for(
                session, template.region_id if template else None
            ),
        )
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(participation)
    logger.info("Player %s left the queue for template %s", player.id, entry.template_id)
    return participation


def _display_status(
    participation: Participation,
    tournament: Tournament | None,
    queue_entry: TournamentQueue | None,
) -> str:
    if participation.status != ParticipationStatus.REGISTERED:
        return participation.status.value
    if tournament is not None:
        return tournament.status.value
    if queue_entry is not None and queue_entry.status == QueueStatus.WAITING:
        return "waiting_for_players"
    return participation.status.value


def list_my_registrations(
    *, session: Session, player: User, region_id: uuid.UUID | None = None
) -> list[MyRegistration]:
    """The player's participations, newest first, with their event's details.

    With ``region_id`` set, entries whose event belongs to another region are
    left out.
    """
    participations = session.exec(
        select(Participation)
        .where(Participation.player_id == player.id)
        .order_by(col(Participation.registration_date).desc(), col(Participation.id))
    ).all()

    registrations: list[MyRegistration] = []
    for participation in participations:
        tournament = (
            session.get(Tournament, participation.tournament_id)
            if participation.tournament_id
            else None
        )
        template = (
            session.get(TournamentTemplate, participation.template_id)
            if participation.template_id
            else None
        )
        if tournament is None and template is None:
            continue
        event_region = tournament.region_id if tournament else template.region_id  # type: ignore[union-attr]
        if region_id is not None and event_region is not None and event_region != region_id:
            continue

        queue_entry = session.exec(
            select(TournamentQueue).where(
                TournamentQueue.participation_id == participation.id
            )
        ).first()
        mode_id = tournament.game_mode_id if tournament else template.game_mode_id  # type: ignore[union-attr]
        mode = session.get(GameMode, mode_id)
        game = session.get(Game, mode.game_id) if mode else None

        registrations.append(
            MyRegistration(
                participation=ParticipationPublic.model_validate(participation),
                type="template" if template is not None and tournament is None else "tournament",
                title=tournament.title if tournament else template.name,  # type: ignore[union-attr]
                status=_display_status(participation, tournament, queue_entry),
                tournament_id=tournament.id if tournament else None,
                template_id=participation.template_id,
                tournament_id_custom=tournament.tournament_id_custom if tournament else None,
                game_name=game.name if game else None,
                game_mode_name=mode.name if mode else None,
                start_date=ensure_utc(tournament.start_date) if tournament else None,
                prize_pool=tournament.prize_pool if tournament else template.prize_pool,  # type: ignore[union-attr]
            )
        )
    return registrations
