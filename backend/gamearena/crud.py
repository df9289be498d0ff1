import uuid
from collections.abc import Callable, Iterable, Sequence
from typing import Any, TypeVar

from sqlalchemy import ColumnElement, func
from sqlmodel import Session, SQLModel, select

from gamearena.core.security import get_password_hash, verify_password
from gamearena.models import AppRole, Notification, User, UserCreate, UserUpdate
from gamearena.query import build_conditions, build_order_by

ModelT = TypeVar("ModelT", bound=SQLModel)

# Fills derived values (generated codes, inherited region) before validation
Preparer = Callable[[Session, dict[str, Any]], dict[str, Any]]


# ---------------------------------------------------------------------------
# Generic entity access
# ---------------------------------------------------------------------------


def list_records(
    *,
    session: Session,
    model: type[ModelT],
    query: dict[str, Any] | None = None,
    sort: str | None = None,
    limit: int | None = None,
    skip: int = 0,
    extra_conditions: Sequence[ColumnElement[bool]] = (),
) -> list[ModelT]:
    statement = select(model)
    for condition in [*build_conditions(model, query), *extra_conditions]:
        statement = statement.where(condition)
    statement = statement.order_by(*build_order_by(model, sort))
    if skip:
        statement = statement.offset(skip)
    if limit is not None:
        statement = statement.limit(limit)
    return list(session.exec(statement).all())


def count_records(
    *,
    session: Session,
    model: type[SQLModel],
    query: dict[str, Any] | None = None,
    extra_conditions: Sequence[ColumnElement[bool]] = (),
) -> int:
    statement = select(func.count()).select_from(model)
    for condition in [*build_conditions(model, query), *extra_conditions]:
        statement = statement.where(condition)
    return session.exec(statement).one()


def _commit(session: Session) -> None:
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise


def get_record(
    *, session: Session, model: type[ModelT], record_id: uuid.UUID
) -> ModelT | None:
    return session.get(model, record_id)


def _record_values(
    session: Session,
    record_in: SQLModel | dict[str, Any],
    update: dict[str, Any] | None,
    prepare: Preparer | None,
) -> dict[str, Any]:
    if isinstance(record_in, SQLModel):
        values = record_in.model_dump()
    else:
        values = dict(record_in)
    if update:
        values.update(update)
    if prepare is not None:
        values = prepare(session, values)
    return values


def create_record(
    *,
    session: Session,
    model: type[ModelT],
    record_in: SQLModel | dict[str, Any],
    update: dict[str, Any] | None = None,
    prepare: Preparer | None = None,
    commit: bool = True,
) -> ModelT:
    db_obj = model.model_validate(_record_values(session, record_in, update, prepare))
    session.add(db_obj)
    if commit:
        _commit(session)
        session.refresh(db_obj)
    return db_obj


def bulk_create_records(
    *,
    session: Session,
    model: type[ModelT],
    records_in: Iterable[SQLModel | dict[str, Any]],
    update: dict[str, Any] | None = None,
    prepare: Preparer | None = None,
) -> list[ModelT]:
    """Create every record in one commit; nothing is stored if any insert fails.

    Records are added one by one so a ``prepare`` hook that queries the table
    (sequence numbers, unique codes) sees the earlier records of the batch.
    """
    db_objs: list[ModelT] = []
    try:
        for record_in in records_in:
            db_obj = model.model_validate(_record_values(session, record_in, update, prepare))
            session.add(db_obj)
            db_objs.append(db_obj)
        session.commit()
    except Exception:
        session.rollback()
        raise
    for db_obj in db_objs:
        session.refresh(db_obj)
    return db_objs


def update_record(
    *,
    session: Session,
    db_obj: ModelT,
    record_in: SQLModel | dict[str, Any],
    commit: bool = True,
) -> ModelT:
    if isinstance(record_in, SQLModel):
        data = record_in.model_dump(exclude_unset=True)
    else:
        data = dict(record_in)
    db_obj.sqlmodel_update(data)
    session.add(db_obj)
    if commit:
        _commit(session)
        session.refresh(db_obj)
    return db_obj


def delete_record(*, session: Session, db_obj: SQLModel) -> None:
    session.delete(db_obj)
    _commit(session)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def create_user(*, session: Session, user_create: UserCreate) -> User:
    db_obj = User.model_validate(
        user_create, update={"hashed_password": get_password_hash(user_create.password)}
    )
    session.add(db_obj)
    session.commit()
    session.refresh(db_obj)
    return db_obj


def role_assignment(
    app_role: AppRole, assigned_game_id: uuid.UUID | None
) -> dict[str, Any]:
    """Game assignment lists for a role; the other role's list is cleared."""
    games = [str(assigned_game_id)] if assigned_game_id else []
    if app_role == AppRole.MODERATOR:
        return {"app_role": app_role, "assigned_games": games, "assigned_games_creator": []}
    if app_role == AppRole.CREATOR:
        return {"app_role": app_role, "assigned_games": [], "assigned_games_creator": games}
    return {"app_role": app_role, "assigned_games": [], "assigned_games_creator": []}


def update_user(*, session: Session, db_user: User, user_in: UserUpdate) -> Any:
    user_data = user_in.model_dump(exclude_unset=True)
    extra_data = {}
    if "password" in user_data:
        password = user_data.pop("password")
        hashed_password = get_password_hash(password)
        extra_data["hashed_password"] = hashed_password
    previous_role = db_user.app_role
    app_role = user_data.pop("app_role", None)
    assigned_game_id = user_data.pop("assigned_game_id", None)
    if app_role is not None or assigned_game_id is not None:
        # Without a new role the assignment applies to the current one
        extra_data.update(role_assignment(app_role or previous_role, assigned_game_id))
    db_user.sqlmodel_update(user_data, update=extra_data)
    session.add(db_user)
    if app_role is not None and app_role != previous_role:
        create_notification(
            session=session,
            user_id=db_user.id,
            title="Role updated",
            message=f"Your role has been changed to {app_role.value}.",
        )
    _commit(session)
    session.refresh(db_user)
    return db_user


def get_user_by_email(*, session: Session, email: str) -> User | None:
    statement = select(User).where(User.email == email)
    session_user = session.exec(statement).first()
    return session_user


# Dummy hash to use for timing attack prevention when user is not found
# This is an Argon2 hash of a random password, used to ensure constant-time comparison
DUMMY_HASH = "$argon2id$v=19$m=65536,t=3,p=4$MjQyZWE1MzBjYjJlZTI0Yw$YTU4NGM5ZTZmYjE2NzZlZjY0ZWY3ZGRkY2U2OWFjNjk"


def authenticate(*, session: Session, email: str, password: str) -> User | None:
    db_user = get_user_by_email(session=session, email=email)
    if not db_user:
        # Prevent timing attacks by running password verification even when user doesn't exist
        # This ensures the response time is similar whether or not the email exists
        verify_password(password, DUMMY_HASH)
        return None
    verified, updated_password_hash = verify_password(password, db_user.hashed_password)
    if not verified:
        return None
    if updated_password_hash:
        db_user.hashed_password = updated_password_hash
        session.add(db_user)
        session.commit()
        session.refresh(db_user)
    return db_user


def lock_user(*, session: Session, user_id: uuid.UUID) -> User | None:
    """Re-read a user row for a balance change, row-locked where the backend supports it."""
    statement = (
        select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return session.exec(statement).first()


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


def create_notification(
    *, session: Session, user_id: uuid.UUID, title: str, message: str
) -> Notification:
    """Stage a notification; the caller's commit persists it."""
    notification = Notification(user_id=user_id, title=title, message=message)
    session.add(notification)
    return notification
