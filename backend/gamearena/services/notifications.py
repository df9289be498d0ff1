import uuid

from pydantic import BaseModel
from sqlalchemy import func, update
from sqlmodel import Session, col, select

from gamearena.models import Notification, NotificationPublic, User
from gamearena.services.errors import NotFoundError

RECENT_NOTIFICATIONS = 10


class NotificationsPublic(BaseModel):
    data: list[NotificationPublic]
    unread_count: int


def unread_count(session: Session, user_id: uuid.UUID) -> int:
    return session.exec(
        select(func.count(col(Notification.id)))
        .where(Notification.user_id == user_id)
        .where(Notification.is_read == False)  # noqa: E712
    ).one()


def recent_notifications(
    *, session: Session, user: User, limit: int = RECENT_NOTIFICATIONS
) -> NotificationsPublic:
    notifications = session.exec(
        select(Notification)
        .where(Notification.user_id == user.id)
        .order_by(col(Notification.created_date).desc(), col(Notification.id))
        .limit(limit)
    ).all()
    return NotificationsPublic(
        data=[NotificationPublic.model_validate(n) for n in notifications],
        unread_count=unread_count(session, user.id),
    )


def mark_read(*, session: Session, user: User, notification_id: uuid.UUID) -> Notification:
    notification = session.get(Notification, notification_id)
    # Someone else's notification is reported as missing
    if notification is None or notification.user_id != user.id:
        raise NotFoundError("Notification not found")
    notification.is_read = True
    session.add(notification)
    session.commit()
    session.refresh(notification)
    return notification


def mark_all_read(*, session: Session, user: User) -> int:
    result = session.exec(  # type: ignore[call-overload]
        update(Notification)
        .where(col(Notification.user_id) == user.id)
        .where(col(Notification.is_read) == False)  # noqa: E712
        .values(is_read=True)
    )
    session.commit()
    return result.rowcount
