import uuid
from datetime import timedelta

import pytest
from sqlmodel import Session, select

from gamearena.models import (
    Notification,
    Participation,
    ParticipationStatus,
    QueueStatus,
    Tournament,
    TournamentStatus,
    TournamentType,
    Transaction,
    TransactionType,
    User,
    get_datetime_utc,
)
from gamearena.services.errors import ConflictError, NotFoundError
from gamearena.services.matchmaking import process_tournament_queue, run_tournament_queue
from gamearena.services.registration import register_player
from gamearena.tests.utils.factories import (
    create_game,
    create_game_mode,
    create_referral_code,
    create_template,
    create_user,
    enqueue,
)


@pytest.fixture
def mode(session: Session):
    game = create_game(session, game_code="205")
    return create_game_mode(session, game)


def test_full_queue_starts_an_automated_tournament(session: Session, mode) -> None:
    template = create_template(session, mode, prize_pool=50, participants_to_start=2)
    now = get_datetime_utc()
    first = create_user(session)
    second = create_user(session)
    enqueue(session, template, first, joined=now - timedelta(seconds=30))
    enqueue(session, template, second, joined=now - timedelta(seconds=10))

    result = run_tournament_queue(session=session, template_id=template.id, now=now)

    assert len(result.tournaments_created) == 1
    assert result.waiting == 0
    assert result.expired == 0
    tournament = session.get(Tournament, result.tournaments_created[0])
    assert tournament.tournament_type == TournamentType.AUTOMATED
    assert tournament.status == TournamentStatus.PREPARING
    assert tournament.template_id == template.id
    assert tournament.current_participants == 2
    assert tournament.max_participants == 2
    assert tournament.prize_pool == 50
    assert tournament.tournament_id_custom == "2050000001"

    participations = session.exec(
        select(Participation).where(Participation.template_id == template.id)
    ).all()
    assert {p.tournament_id for p in participations} == {tournament.id}
    notified = session.exec(select(Notification.user_id)).all()
    assert set(notified) == {first.id, second.id}


def test_queue_matches_first_come_first_served(session: Session, mode) -> None:
    template = create_template(session, mode, participants_to_start=2)
    now = get_datetime_utc()
    players = [create_user(session) for _ in range(3)]
    entries = [
        enqueue(session, template, player, joined=now - timedelta(seconds=60 - i))
        for i, player in enumerate(players)
    ]

    result = process_tournament_queue(session=session, template_id=template.id, now=now)
    session.commit()

    assert len(result.tournaments_created) == 1
    assert result.waiting == 1
    for entry in entries:
        session.refresh(entry)
    assert [e.status for e in entries] == [
        QueueStatus.MATCHED,
        QueueStatus.MATCHED,
        QueueStatus.WAITING,
    ]
    assert entries[0].matched_date is not None


def test_queue_below_threshold_waits(session: Session, mode) -> None:
    template = create_template(session, mode, participants_to_start=3)
    enqueue(session, template, create_user(session))
    enqueue(session, template, create_user(session))

    result = run_tournament_queue(session=session, template_id=template.id)

    assert result.tournaments_created == []
    assert result.waiting == 2


def test_stale_entries_are_expired_and_refunded(session: Session, mode) -> None:
    template = create_template(
        session, mode, entry_fee=10, participants_to_start=3, waiting_time_minutes=5
    )
    now = get_datetime_utc()
    stale_player = create_user(session, wallet_balance=0)
    fresh_player = create_user(session)
    stale = enqueue(
        session, template, stale_player, joined=now - timedelta(minutes=6), fee_paid=10
    )
    fresh = enqueue(session, template, fresh_player, joined=now - timedelta(minutes=1))

    result = run_tournament_queue(session=session, template_id=template.id, now=now)

    assert result.expired == 1
    assert result.waiting == 1
    session.refresh(stale)
    session.refresh(fresh)
    session.refresh(stale_player)
    assert stale.status == QueueStatus.EXPIRED
    assert fresh.status == QueueStatus.WAITING
    assert stale_player.wallet_balance == 10
    participation = session.get(Participation, stale.participation_id)
    assert participation.status == ParticipationStatus.REFUNDED
    refund = session.exec(
        select(Transaction).where(Transaction.user_id == stale_player.id)
    ).one()
    assert refund.type == TransactionType.REFUND
    assert refund.amount == 10


def test_stale_entries_do_not_expire_when_queue_can_start(session: Session, mode) -> None:
    template = create_template(session, mode, participants_to_start=2, waiting_time_minutes=1)
    now = get_datetime_utc()
    enqueue(session, template, create_user(session), joined=now - timedelta(minutes=30))
    enqueue(session, template, create_user(session), joined=now - timedelta(minutes=20))

    result = run_tournament_queue(session=session, template_id=template.id, now=now)

    assert result.expired == 0
    assert len(result.tournaments_created) == 1


def test_same_player_is_never_matched_against_themselves(session: Session, mode) -> None:
    template = create_template(session, mode, participants_to_start=2)
    now = get_datetime_utc()
    player = create_user(session)
    enqueue(session, template, player, joined=now - timedelta(seconds=20))
    enqueue(session, template, player, joined=now - timedelta(seconds=10))

    result = run_tournament_queue(session=session, template_id=template.id, now=now)

    assert result.tournaments_created == []
    assert result.waiting == 2


def test_missing_and_inactive_templates_are_rejected(session: Session, mode) -> None:
    with pytest.raises(NotFoundError):
        run_tournament_queue(session=session, template_id=uuid.uuid4())

    template = create_template(session, mode, is_active=False)
    with pytest.raises(ConflictError):
        run_tournament_queue(session=session, template_id=template.id)


def test_expiry_reverses_referral_commission(
    session: Session, mode, player: User, creator: User
) -> None:
    create_referral_code(session, creator, code="STREAM1")
    template = create_template(
        session, mode, entry_fee=40, participants_to_start=3, waiting_time_minutes=5
    )
    now = get_datetime_utc()
    register_player(
        session=session,
        player=player,
        template_id=template.id,
        in_game_name="x",
        referral_code="STREAM1",
        now=now - timedelta(minutes=10),
    )
    session.refresh(creator)
    assert creator.wallet_balance == 2

    result = run_tournament_queue(session=session, template_id=template.id, now=now)

    assert result.expired == 1
    session.refresh(player)
    session.refresh(creator)
    assert player.wallet_balance == 100
    assert creator.wallet_balance == 0
    amounts = session.exec(
        select(Transaction.amount).where(Transaction.user_id == creator.id)
    ).all()
    assert sorted(amounts) == [-2, 2]
