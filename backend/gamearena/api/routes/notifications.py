import asyncio
import json
import uuid
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.engine import Engine
from sqlmodel import Session
from sse_starlette.sse import EventSourceResponse

from gamearena.api.deps import CurrentUser, get_db
from gamearena.core.config import settings
from gamearena.models import Message, NotificationPublic
from gamearena.services import notifications

router = APIRouter(prefix="/notifications", tags=["notifications"])


async def unread_count_events(
    *, bind: Engine, user_id: uuid.UUID, interval: float, limit: int | None = None
) -> AsyncIterator[dict[str, str]]:
    """Unread count for the notification bell, re-read every ``interval`` seconds.

    Each poll uses its own short-lived session; the request's session is gone
    once the response starts streaming.
    """
    sent = 0
    while limit is None or sent < limit:
        with Session(bind) as session:
            count = notifications.unread_count(session, user_id)
        yield {"event": "unread_count", "data": json.dumps({"unread_count": count})}
        sent += 1
        if limit is not None and sent >= limit:
            break
        await asyncio.sleep(interval)


@router.get("/", response_model=notifications.NotificationsPublic)
def read_notifications(
    session: Session = Depends(get_db), current_user: CurrentUser = None
) -> Any:
    return notifications.recent_notifications(session=session, user=current_user)


@router.get("/stream")
async def stream_notifications(
    session: Session = Depends(get_db), current_user: CurrentUser = None
):
    """Stream the unread count via SSE."""
    return EventSourceResponse(
        unread_count_events(
            bind=session.get_bind(),
            user_id=current_user.id,
            interval=settings.NOTIFICATION_STREAM_INTERVAL_SECONDS,
        )
    )


@router.post("/read-all", response_model=Message)
def read_all_notifications(
    session: Session = Depends(get_db), current_user: CurrentUser = None
) -> Any:
    updated = notifications.mark_all_read(session=session, user=current_user)
    return Message(message=f"{updated} notifications marked as read")


@router.post("/{notification_id}/read", response_model=NotificationPublic)
def read_notification(
    notification_id: uuid.UUID,
    session: Session = Depends(get_db),
    current_user: CurrentUser = None,
) -> Any:
    return notifications.mark_read(
        session=session, user=current_user, notification_id=notification_id
    )
