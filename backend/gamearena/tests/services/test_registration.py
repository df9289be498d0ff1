import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlmodel import Session, select

from gamearena.models import (
    Participation,
    ParticipationStatus,
    QueueStatus,
    TournamentQueue,
    TournamentStatus,
    Transaction,
    TransactionType,
    User,
    get_datetime_utc,
)
from gamearena.services.errors import (
    ConflictError,
    InsufficientFundsError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
)
from gamearena.services.registration import (
    leave_queue,
    list_my_registrations,
    register_player,
)
from gamearena.tests.utils.factories import (
    create_game,
    create_game_mode,
    create_referral_code,
    create_region,
    create_template,
    create_tournament,
    create_user,
)


@pytest.fixture
def mode(session: Session):
    game = create_game(session, game_code="101")
    return create_game_mode(session, game)


def _transactions(session: Session, user: User) -> list[Transaction]:
    return list(session.exec(select(Transaction).where(Transaction.user_id == user.id)).all())


def test_register_for_tournament_debits_fee(session: Session, mode, player: User) -> None:
    tournament = create_tournament(session, mode, entry_fee=25, max_participants=10)

    result = register_player(
        session=session, player=player, tournament_id=tournament.id, in_game_name="Sniper"
    )

    assert result.wallet_balance == 75
    assert result.participation.tournament_id == tournament.id
    assert result.participation.entry_fee_paid == 25
    assert result.queue is None
    session.refresh(tournament)
    assert tournament.current_participants == 1
    [fee] = _transactions(session, player)
    assert fee.type == TransactionType.ENTRY_FEE
    assert fee.amount == -25
    assert fee.balance_after == 75
    assert fee.related_tournament_id == tournament.id


def test_insufficient_balance_leaves_no_trace(session: Session, mode) -> None:
    poor = create_user(session, wallet_balance=5)
    tournament = create_tournament(session, mode, entry_fee=25)

    with pytest.raises(InsufficientFundsError) as excinfo:
        register_player(
            session=session, player=poor, tournament_id=tournament.id, in_game_name="Sniper"
        )

    assert excinfo.value.status_code == 402
    assert "Required: $25.00" in excinfo.value.detail
    assert "Current: $5.00" in excinfo.value.detail
    session.refresh(poor)
    session.refresh(tournament)
    assert poor.wallet_balance == 5
    assert tournament.current_participants == 0
    assert session.exec(select(Participation)).all() == []
    assert _transactions(session, poor) == []


def test_failure_after_debit_rolls_back_everything(session: Session, mode, player: User) -> None:
    template = create_template(session, mode, entry_fee=20)

    with patch(
        "gamearena.services.registration.process_tournament_queue",
        side_effect=RuntimeError("matchmaking down"),
    ):
        with pytest.raises(RuntimeError):
            register_player(
                session=session, player=player, template_id=template.id, in_game_name="Sniper"
            )

    session.refresh(player)
    assert player.wallet_balance == 100
    assert _transactions(session, player) == []
    assert session.exec(select(Participation)).all() == []
    assert session.exec(select(TournamentQueue)).all() == []


def test_currency_symbol_comes_from_region(session: Session) -> None:
    region = create_region(session, currency_symbol="₵")
    game = create_game(session, region=region)
    mode = create_game_mode(session, game)
    tournament = create_tournament(session, mode, entry_fee=10)
    poor = create_user(session, region=region)

    with pytest.raises(InsufficientFundsError) as excinfo:
        register_player(
            session=session, player=poor, tournament_id=tournament.id, in_game_name="x"
        )

    assert "Required: ₵10.00" in excinfo.value.detail


def test_registration_requires_in_game_name(session: Session, mode, player: User) -> None:
    tournament = create_tournament(session, mode)

    with pytest.raises(InvalidRequestError):
        register_player(
            session=session, player=player, tournament_id=tournament.id, in_game_name="  "
        )


def test_registration_requires_exactly_one_target(session: Session, mode, player: User) -> None:
    tournament = create_tournament(session, mode)
    template = create_template(session, mode)

    with pytest.raises(InvalidRequestError):
        register_player(session=session, player=player, in_game_name="x")
    with pytest.raises(InvalidRequestError):
        register_player(
            session=session,
            player=player,
            tournament_id=tournament.id,
            template_id=template.id,
            in_game_name="x",
        )


def test_duplicate_registration_is_rejected(session: Session, mode, player: User) -> None:
    tournament = create_tournament(session, mode, entry_fee=10)
    register_player(session=session, player=player, tournament_id=tournament.id, in_game_name="x")

    with pytest.raises(ConflictError):
        register_player(
            session=session, player=player, tournament_id=tournament.id, in_game_name="x"
        )

    session.refresh(player)
    assert player.wallet_balance == 90


def test_closed_full_and_late_tournaments_are_rejected(session: Session, mode, player: User) -> None:
    ongoing = create_tournament(session, mode, status=TournamentStatus.ONGOING)
    late = create_tournament(
        session, mode, registration_deadline=get_datetime_utc() - timedelta(hours=1)
    )
    full = create_tournament(session, mode, max_participants=1)
    register_player(
        session=session, player=create_user(session), tournament_id=full.id, in_game_name="a"
    )

    for tournament in (ongoing, late, full):
        with pytest.raises(ConflictError):
            register_player(
                session=session, player=player, tournament_id=tournament.id, in_game_name="b"
            )


def test_unknown_tournament_is_not_found(session: Session, player: User) -> None:
    with pytest.raises(NotFoundError):
        register_player(
            session=session, player=player, tournament_id=uuid.uuid4(), in_game_name="x"
        )


def test_referral_code_credits_creator(session: Session, mode, player: User, creator: User) -> None:
    create_referral_code(session, creator, code="STREAM1")
    tournament = create_tournament(session, mode, entry_fee=40)

    result = register_player(
        session=session,
        player=player,
        tournament_id=tournament.id,
        in_game_name="x",
        referral_code="STREAM1",
    )

    assert result.participation.used_referral_code == "STREAM1"
    session.refresh(creator)
    assert creator.wallet_balance == 2
    [commission] = _transactions(session, creator)
    assert commission.type == TransactionType.REFERRAL_COMMISSION
    assert commission.amount == 2


def test_unknown_or_own_referral_code_is_rejected(
    session: Session, mode, player: User, creator: User
) -> None:
    create_referral_code(session, creator, code="OWN1")
    tournament = create_tournament(session, mode, entry_fee=10)

    with pytest.raises(InvalidRequestError):
        register_player(
            session=session,
            player=player,
            tournament_id=tournament.id,
            in_game_name="x",
            referral_code="NOPE",
        )
    session.refresh(creator)
    creator.wallet_balance = 50
    session.add(creator)
    session.commit()
    with pytest.raises(InvalidRequestError):
        register_player(
            session=session,
            player=creator,
            tournament_id=tournament.id,
            in_game_name="x",
            referral_code="OWN1",
        )
    session.refresh(player)
    assert player.wallet_balance == 100


def test_template_registration_waits_then_matches(session: Session, mode) -> None:
    template = create_template(session, mode, entry_fee=10, participants_to_start=2)
    first = create_user(session, wallet_balance=10)
    second = create_user(session, wallet_balance=10)

    waiting = register_player(
        session=session, player=first, template_id=template.id, in_game_name="one"
    )
    assert waiting.queue.tournaments_created == []
    assert waiting.queue.waiting == 1
    [mine] = list_my_registrations(session=session, player=first)
    assert mine.status == "waiting_for_players"
    assert mine.type == "template"

    matched = register_player(
        session=session, player=second, template_id=template.id, in_game_name="two"
    )
    assert len(matched.queue.tournaments_created) == 1
    [mine] = list_my_registrations(session=session, player=first)
    assert mine.status == TournamentStatus.PREPARING.value
    assert mine.tournament_id == matched.queue.tournaments_created[0]


def test_template_duplicate_queue_entry_is_rejected(session: Session, mode, player: User) -> None:
    template = create_template(session, mode, participants_to_start=3)
    register_player(session=session, player=player, template_id=template.id, in_game_name="x")

    with pytest.raises(ConflictError):
        register_player(
            session=session, player=player, template_id=template.id, in_game_name="x"
        )


def test_leave_queue_refunds_fee(session: Session, mode, player: User) -> None:
    template = create_template(session, mode, entry_fee=15, participants_to_start=3)
    result = register_player(
        session=session, player=player, template_id=template.id, in_game_name="x"
    )

    participation = leave_queue(
        session=session, player=player, participation_id=result.participation.id
    )

    assert participation.status == ParticipationStatus.REFUNDED
    session.refresh(player)
    assert player.wallet_balance == 100
    entry = session.exec(select(TournamentQueue)).one()
    assert entry.status == QueueStatus.CANCELLED
    assert [t.type for t in _transactions(session, player)].count(TransactionType.REFUND) == 1

    with pytest.raises(ConflictError):
        leave_queue(session=session, player=player, participation_id=result.participation.id)


def test_leave_queue_of_someone_else_is_denied(session: Session, mode, player: User) -> None:
    template = create_template(session, mode, participants_to_start=3)
    result = register_player(
        session=session, player=player, template_id=template.id, in_game_name="x"
    )

    with pytest.raises(PermissionDeniedError):
        leave_queue(
            session=session,
            player=create_user(session),
            participation_id=result.participation.id,
        )


def test_my_registrations_skip_other_regions(session: Session, player: User) -> None:
    home = create_region(session, name="Home")
    away = create_region(session, name="Away")
    home_mode = create_game_mode(session, create_game(session, region=home))
    away_mode = create_game_mode(session, create_game(session, region=away))
    home_cup = create_tournament(session, home_mode, title="Home Cup")
    away_cup = create_tournament(session, away_mode, title="Away Cup")
    for tournament in (home_cup, away_cup):
        register_player(
            session=session, player=player, tournament_id=tournament.id, in_game_name="x"
        )

    registrations = list_my_registrations(session=session, player=player, region_id=home.id)

    assert [r.title for r in registrations] == ["Home Cup"]
    assert registrations[0].status == TournamentStatus.REGISTRATION_OPEN.value


def test_leave_queue_reverses_referral_commission(
    session: Session, mode, player: User, creator: User
) -> None:
    create_referral_code(session, creator, code="STREAM1")
    template = create_template(session, mode, entry_fee=40, participants_to_start=3)
    result = register_player(
        session=session,
        player=player,
        template_id=template.id,
        in_game_name="x",
        referral_code="STREAM1",
    )
    assert result.participation.referral_commission_paid == 2

    participation = leave_queue(
        session=session, player=player, participation_id=result.participation.id
    )

    session.refresh(player)
    session.refresh(creator)
    assert player.wallet_balance == 100
    assert creator.wallet_balance == 0
    assert participation.referral_commission_paid == 0
    ledger = session.exec(select(Transaction.amount)).all()
    assert sum(ledger) == 0


def test_commission_reversal_is_capped_by_creator_balance(
    session: Session, mode, player: User, creator: User
) -> None:
    create_referral_code(session, creator, code="STREAM1")
    template = create_template(session, mode, entry_fee=40, participants_to_start=3)
    result = register_player(
        session=session,
        player=player,
        template_id=template.id,
        in_game_name="x",
        referral_code="STREAM1",
    )
    session.refresh(creator)
    creator.wallet_balance = 0.5
    session.add(creator)
    session.commit()

    participation = leave_queue(
        session=session, player=player, participation_id=result.participation.id
    )

    session.refresh(player)
    session.refresh(creator)
    assert player.wallet_balance == 100
    assert creator.wallet_balance == 0
    assert participation.referral_commission_paid == 1.5
