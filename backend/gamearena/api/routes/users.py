import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, col, func, select

from gamearena import crud
from gamearena.api.deps import AdminUser, CurrentUser, get_db
from gamearena.core.security import get_password_hash, verify_password
from gamearena.models import (
    AppRole,
    Game,
    Message,
    Region,
    RegionPublic,
    UpdatePassword,
    User,
    UserCreate,
    UserOnboarding,
    UserPublic,
    UserRegister,
    UsersPublic,
    UserUpdate,
    UserUpdateMe,
)
from gamearena.services import catalog, stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


class MyRegion(BaseModel):
    region: RegionPublic | None = None
    currency_symbol: str


@router.get("/", response_model=UsersPublic)
def read_users(
    admin: AdminUser,
    session: Session = Depends(get_db),
    app_role: AppRole | None = None,
    region_id: uuid.UUID | None = None,
    skip: int = 0,
    limit: int = 100,
) -> Any:
    """
    Retrieve users.
    """
    statement = select(User)
    count_statement = select(func.count()).select_from(User)
    if app_role is not None:
        statement = statement.where(User.app_role == app_role)
        count_statement = count_statement.where(User.app_role == app_role)
    if region_id is not None:
        statement = statement.where(User.region_id == region_id)
        count_statement = count_statement.where(User.region_id == region_id)
    count = session.exec(count_statement).one()
    users = session.exec(
        statement.order_by(col(User.created_date).desc(), col(User.id)).offset(skip).limit(limit)
    ).all()
    return UsersPublic(data=users, count=count)


@router.post("/", response_model=UserPublic)
def create_user(
    *, session: Session = Depends(get_db), admin: AdminUser, user_in: UserCreate
) -> Any:
    """
    Create new user.
    """
    user = crud.get_user_by_email(session=session, email=user_in.email)
    if user:
        raise HTTPException(
            status_code=400,
            detail="The user with this email already exists in the system.",
        )
    user = crud.create_user(session=session, user_create=user_in)
    logger.info("Admin %s created user %s", admin.id, user.id)
    return user


@router.get("/me", response_model=UserPublic)
def read_user_me(current_user: CurrentUser) -> Any:
    """
    Get current user.
    """
    return current_user


@router.patch("/me", response_model=UserPublic)
def update_user_me(
    *, session: Session = Depends(get_db), user_in: UserUpdateMe, current_user: CurrentUser
) -> Any:
    """
    Update own profile. Balance and role are not editable here.
    """
    if user_in.email:
        existing_user = crud.get_user_by_email(session=session, email=user_in.email)
        if existing_user and existing_user.id != current_user.id:
            raise HTTPException(
                status_code=409, detail="User with this email already exists"
            )
    if user_in.region_id and not session.get(Region, user_in.region_id):
        raise HTTPException(status_code=404, detail="Region not found")
    user_data = user_in.model_dump(exclude_unset=True)
    current_user.sqlmodel_update(user_data)
    session.add(current_user)
    session.commit()
    session.refresh(current_user)
    return current_user


@router.patch("/me/password", response_model=Message)
def update_password_me(
    *, session: Session = Depends(get_db), body: UpdatePassword, current_user: CurrentUser
) -> Any:
    """
    Update own password.
    """
    verified, _ = verify_password(body.current_password, current_user.hashed_password)
    if not verified:
        raise HTTPException(status_code=400, detail="Incorrect password")
    if body.current_password == body.new_password:
        raise HTTPException(
            status_code=400, detail="New password cannot be the same as the current one"
        )
    current_user.hashed_password = get_password_hash(body.new_password)
    session.add(current_user)
    session.commit()
    return Message(message="Password updated successfully")


@router.get("/me/region", response_model=MyRegion)
def read_my_region(session: Session = Depends(get_db), current_user: CurrentUser = None) -> Any:
    region = session.get(Region, current_user.region_id) if current_user.region_id else None
    return MyRegion(
        region=RegionPublic.model_validate(region) if region else None,
        currency_symbol=catalog.currency_symbol_for(session, current_user.region_id),
    )


@router.get("/me/stats", response_model=stats.PlayerStats)
def read_my_stats(session: Session = Depends(get_db), current_user: CurrentUser = None) -> Any:
    return stats.player_stats(session=session, user=current_user)


@router.post("/me/onboarding", response_model=UserPublic)
def complete_onboarding(
    *, session: Session = Depends(get_db), body: UserOnboarding, current_user: CurrentUser
) -> Any:
    """
    Profile details moderators and creators must give before using their dashboards.
    """
    if current_user.app_role not in (AppRole.MODERATOR, AppRole.CREATOR):
        raise HTTPException(
            status_code=400, detail="Onboarding is only required for moderators and creators"
        )
    current_user.full_name = body.full_name.strip()
    current_user.phone_number = body.phone_number.strip()
    current_user.onboarding_completed = True
    session.add(current_user)
    session.commit()
    session.refresh(current_user)
    return current_user


@router.post("/signup", response_model=UserPublic)
def register_user(*, session: Session = Depends(get_db), user_in: UserRegister) -> Any:
    """
    Create new user without the need to be logged in.
    """
    user = crud.get_user_by_email(session=session, email=user_in.email)
    if user:
        raise HTTPException(
            status_code=400,
            detail="The user with this email already exists in the system",
        )
    if user_in.region_id and not session.get(Region, user_in.region_id):
        raise HTTPException(status_code=404, detail="Region not found")
    user_create = UserCreate.model_validate(user_in)
    user = crud.create_user(session=session, user_create=user_create)
    logger.info("New player signed up: %s", user.id)
    return user


@router.get("/{user_id}", response_model=UserPublic)
def read_user_by_id(
    user_id: uuid.UUID, session: Session = Depends(get_db), current_user: CurrentUser = None
) -> Any:
    """
    Get a specific user by id.
    """
    user = session.get(User, user_id)
    if user == current_user:
        return user
    if not current_user.is_superuser:
        raise HTTPException(
            status_code=403,
            detail="The user doesn't have enough privileges",
        )
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.patch("/{user_id}", response_model=UserPublic)
def update_user(
    *,
    session: Session = Depends(get_db),
    admin: AdminUser,
    user_id: uuid.UUID,
    user_in: UserUpdate,
) -> Any:
    """
    Update a user. Changing ``app_role`` also resets the game assignments.
    """
    db_user = session.get(User, user_id)
    if not db_user:
        raise HTTPException(
            status_code=404,
            detail="The user with this id does not exist in the system",
        )
    if user_in.email:
        existing_user = crud.get_user_by_email(session=session, email=user_in.email)
        if existing_user and existing_user.id != user_id:
            raise HTTPException(
                status_code=409, detail="User with this email already exists"
            )
    if user_in.assigned_game_id is not None:
        if not session.get(Game, user_in.assigned_game_id):
            raise HTTPException(status_code=404, detail="Game not found")
        if (user_in.app_role or db_user.app_role) == AppRole.PLAYER:
            raise HTTPException(
                status_code=400, detail="Only moderators and creators are assigned games"
            )
    previous_role = db_user.app_role
    db_user = crud.update_user(session=session, db_user=db_user, user_in=user_in)
    if user_in.app_role is not None and user_in.app_role != previous_role:
        logger.info(
            "Admin %s changed role of %s from %s to %s",
            admin.id,
            db_user.id,
            previous_role.value,
            user_in.app_role.value,
        )
    return db_user


@router.delete("/{user_id}")
def delete_user(
    *, session: Session = Depends(get_db), admin: AdminUser, user_id: uuid.UUID
) -> Message:
    """
    Delete a user.
    """
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user == admin:
        raise HTTPException(
            status_code=403, detail="Super users are not allowed to delete themselves"
        )
    session.delete(user)
    session.commit()
    return Message(message="User deleted successfully")
