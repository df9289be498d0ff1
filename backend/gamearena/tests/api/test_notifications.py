import json

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from gamearena.api.routes.notifications import unread_count_events
from gamearena.core.config import settings
from gamearena.models import Notification, User
from gamearena.tests.utils.factories import create_user
from gamearena.tests.utils.utils import auth_headers

API = settings.API_V1_STR


def _notify(session: Session, user: User, title: str) -> Notification:
    notification = Notification(user_id=user.id, title=title, message=f"{title} body")
    session.add(notification)
    session.commit()
    session.refresh(notification)
    return notification


def test_list_and_mark_read(client: TestClient, session: Session, player: User) -> None:
    first = _notify(session, player, "Match found")
    _notify(session, player, "Room is ready")
    _notify(session, create_user(session), "Not yours")

    r = client.get(f"{API}/notifications/", headers=auth_headers(player))
    assert r.json()["unread_count"] == 2
    assert len(r.json()["data"]) == 2

    r = client.post(f"{API}/notifications/{first.id}/read", headers=auth_headers(player))
    assert r.status_code == 200
    assert r.json()["is_read"] is True

    r = client.post(f"{API}/notifications/read-all", headers=auth_headers(player))
    assert r.json()["message"] == "1 notifications marked as read"

    r = client.get(f"{API}/notifications/", headers=auth_headers(player))
    assert r.json()["unread_count"] == 0


def test_cannot_read_someone_elses_notification(
    client: TestClient, session: Session, player: User
) -> None:
    theirs = _notify(session, create_user(session), "Private")

    r = client.post(f"{API}/notifications/{theirs.id}/read", headers=auth_headers(player))
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_unread_count_stream(engine, session: Session, player: User) -> None:
    _notify(session, player, "Match found")

    events = [
        event
        async for event in unread_count_events(
            bind=engine, user_id=player.id, interval=0, limit=2
        )
    ]

    assert [e["event"] for e in events] == ["unread_count", "unread_count"]
    assert json.loads(events[0]["data"]) == {"unread_count": 1}
