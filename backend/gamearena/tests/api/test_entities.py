from fastapi.testclient import TestClient
from sqlmodel import Session

from gamearena.core.config import settings
from gamearena.models import Notification, Transaction, TransactionType, User
from gamearena.tests.utils.factories import (
    create_game,
    create_game_mode,
    create_region,
    create_tournament,
    create_user,
)
from gamearena.tests.utils.utils import auth_headers

ENTITIES = f"{settings.API_V1_STR}/entities"


def test_entities_require_authentication(client: TestClient) -> None:
    r = client.get(f"{ENTITIES}/Region/")
    assert r.status_code == 401


def test_admin_creates_game_with_generated_code(client: TestClient, superuser: User) -> None:
    r = client.post(
        f"{ENTITIES}/Game/",
        headers=auth_headers(superuser),
        json={"name": "Free Fire", "category": "Battle Royale"},
    )
    assert r.status_code == 200
    assert r.json()["game_code"] == "101"

    r = client.post(
        f"{ENTITIES}/Game/",
        headers=auth_headers(superuser),
        json={"name": "PUBG"},
    )
    assert r.json()["game_code"] == "102"


def test_game_code_must_be_three_digits(client: TestClient, superuser: User) -> None:
    r = client.post(
        f"{ENTITIES}/Game/",
        headers=auth_headers(superuser),
        json={"name": "Bad", "game_code": "12a"},
    )
    assert r.status_code == 422


def test_duplicate_game_code_is_a_conflict(
    client: TestClient, session: Session, superuser: User
) -> None:
    create_game(session, game_code="777")
    r = client.post(
        f"{ENTITIES}/Game/",
        headers=auth_headers(superuser),
        json={"name": "Copy", "game_code": "777"},
    )
    assert r.status_code == 409


def test_players_cannot_write_catalog(client: TestClient, player: User) -> None:
    r = client.post(
        f"{ENTITIES}/Region/",
        headers=auth_headers(player),
        json={"name": "Ghana", "currency_code": "GHS", "currency_symbol": "₵"},
    )
    assert r.status_code == 403


def test_tournament_create_fills_custom_id_and_region(
    client: TestClient, session: Session, superuser: User
) -> None:
    region = create_region(session)
    mode = create_game_mode(session, create_game(session, region=region, game_code="412"))
    r = client.post(
        f"{ENTITIES}/Tournament/",
        headers=auth_headers(superuser),
        json={
            "title": "Friday Night",
            "game_mode_id": str(mode.id),
            "entry_fee": 5,
            "prize_pool": 100,
            "start_date": "2026-11-01T18:00:00Z",
        },
    )
    assert r.status_code == 200
    body = r.json()
    assert body["tournament_id_custom"] == "4120000001"
    assert body["region_id"] == str(region.id)
    assert body["current_participants"] == 0
    assert "room_password" not in body


def test_list_get_update_delete(client: TestClient, session: Session, superuser: User) -> None:
    headers = auth_headers(superuser)
    ids = []
    for name in ("Asia", "Africa", "Europe"):
        r = client.post(
            f"{ENTITIES}/Region/",
            headers=headers,
            json={"name": name, "currency_code": "USD"},
        )
        ids.append(r.json()["id"])

    r = client.get(f"{ENTITIES}/Region/", headers=headers, params={"sort": "name", "limit": 2})
    assert [region["name"] for region in r.json()] == ["Africa", "Asia"]

    r = client.patch(f"{ENTITIES}/Region/{ids[0]}", headers=headers, json={"currency_symbol": "¥"})
    assert r.status_code == 200
    assert r.json()["currency_symbol"] == "¥"
    assert r.json()["name"] == "Asia"

    r = client.put(f"{ENTITIES}/Region/{ids[0]}", headers=headers, json={"name": "East Asia"})
    assert r.json()["name"] == "East Asia"

    r = client.delete(f"{ENTITIES}/Region/{ids[2]}", headers=headers)
    assert r.status_code == 200
    r = client.get(f"{ENTITIES}/Region/{ids[2]}", headers=headers)
    assert r.status_code == 404


def test_filter_endpoint(client: TestClient, session: Session, superuser: User) -> None:
    mode = create_game_mode(session, create_game(session))
    create_tournament(session, mode, title="Cheap", entry_fee=1)
    create_tournament(session, mode, title="Pricey", entry_fee=50)

    r = client.post(
        f"{ENTITIES}/Tournament/filter",
        headers=auth_headers(superuser),
        json={"query": {"entry_fee": {"$gt": 10}}, "sort": "-created_date"},
    )
    assert r.status_code == 200
    assert [t["title"] for t in r.json()] == ["Pricey"]

    r = client.post(
        f"{ENTITIES}/Tournament/filter",
        headers=auth_headers(superuser),
        json={"query": {"room_secret": "x"}},
    )
    assert r.status_code == 400


def test_bulk_create_is_atomic(client: TestClient, session: Session, superuser: User) -> None:
    headers = auth_headers(superuser)
    r = client.post(
        f"{ENTITIES}/Game/bulk",
        headers=headers,
        json=[{"name": "One", "game_code": "900"}, {"name": "Two", "game_code": "900"}],
    )
    assert r.status_code == 409
    r = client.get(f"{ENTITIES}/Game/", headers=headers)
    assert r.json() == []

    r = client.post(f"{ENTITIES}/Game/bulk", headers=headers, json=[{"name": "A"}, {"name": "B"}])
    assert r.status_code == 200
    assert len(r.json()) == 2


def test_linked_accounts_are_owner_scoped(
    client: TestClient, session: Session, player: User
) -> None:
    game = create_game(session)
    other = create_user(session)
    r = client.post(
        f"{ENTITIES}/LinkedAccount/",
        headers=auth_headers(player),
        json={"game_id": str(game.id), "in_game_name": "Sniper", "user_id": str(other.id)},
    )
    assert r.status_code == 200
    account = r.json()
    assert account["user_id"] == str(player.id)

    r = client.get(f"{ENTITIES}/LinkedAccount/", headers=auth_headers(other))
    assert r.json() == []
    r = client.get(f"{ENTITIES}/LinkedAccount/{account['id']}", headers=auth_headers(other))
    assert r.status_code == 404

    r = client.patch(
        f"{ENTITIES}/LinkedAccount/{account['id']}",
        headers=auth_headers(player),
        json={"in_game_uid": "123456"},
    )
    assert r.json()["in_game_uid"] == "123456"


def test_notifications_owner_may_only_mark_read(
    client: TestClient, session: Session, player: User
) -> None:
    notification = Notification(user_id=player.id, title="Hi", message="Welcome")
    session.add(notification)
    session.commit()
    url = f"{ENTITIES}/Notification/{notification.id}"

    r = client.patch(url, headers=auth_headers(player), json={"title": "Changed"})
    assert r.status_code == 403
    r = client.patch(url, headers=auth_headers(player), json={"is_read": True})
    assert r.status_code == 200
    assert r.json()["is_read"] is True


def test_transactions_are_read_only_for_players(
    client: TestClient, session: Session, player: User
) -> None:
    session.add(Transaction(user_id=player.id, amount=5, type=TransactionType.DEPOSIT))
    session.commit()

    r = client.get(f"{ENTITIES}/Transaction/", headers=auth_headers(player))
    assert len(r.json()) == 1
    r = client.post(
        f"{ENTITIES}/Transaction/",
        headers=auth_headers(player),
        json={"user_id": str(player.id), "amount": 1000, "type": "deposit"},
    )
    assert r.status_code == 403


def test_queue_is_admin_only(client: TestClient, player: User, superuser: User) -> None:
    r = client.get(f"{ENTITIES}/TournamentQueue/", headers=auth_headers(player))
    assert r.status_code == 403
    r = client.get(f"{ENTITIES}/TournamentQueue/", headers=auth_headers(superuser))
    assert r.status_code == 200


def test_list_limit_is_bounded(client: TestClient, superuser: User) -> None:
    headers = auth_headers(superuser)
    for params in ({"limit": -1}, {"limit": 0}, {"limit": 1001}, {"skip": -1}):
        r = client.get(f"{ENTITIES}/Region/", headers=headers, params=params)
        assert r.status_code == 422
