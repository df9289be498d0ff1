"""
Generic CRUD endpoints for the stored entities.

Every entity in ``ENTITIES`` is mounted at ``/entities/{name}`` with the same
set of operations: list, filter, get, create, bulk create, update and delete.
What a caller may see or change is decided by the entity's access policy.
"""

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlmodel import Session, SQLModel

from gamearena import crud
from gamearena.api.deps import CurrentUser, get_db
from gamearena.crud import Preparer
from gamearena.models import (
    Game,
    GameCreate,
    GameMode,
    GameModeCreate,
    GameModePublic,
    GameModeUpdate,
    GamePublic,
    GameUpdate,
    LinkedAccount,
    LinkedAccountCreate,
    LinkedAccountPublic,
    LinkedAccountUpdate,
    Message,
    Notification,
    NotificationCreate,
    NotificationPublic,
    NotificationUpdate,
    Participation,
    ParticipationCreate,
    ParticipationPublic,
    ParticipationUpdate,
    ReferralCode,
    ReferralCodeCreate,
    ReferralCodePublic,
    ReferralCodeUpdate,
    Region,
    RegionCreate,
    RegionPublic,
    RegionUpdate,
    Tournament,
    TournamentCreate,
    TournamentPublic,
    TournamentQueue,
    TournamentQueueCreate,
    TournamentQueuePublic,
    TournamentQueueUpdate,
    TournamentTemplate,
    TournamentTemplateCreate,
    TournamentTemplatePublic,
    TournamentTemplateUpdate,
    TournamentUpdate,
    Transaction,
    TransactionCreate,
    TransactionPublic,
    TransactionUpdate,
    User,
)
from gamearena.services import catalog

logger = logging.getLogger(__name__)


class ReadScope(str, Enum):
    # Any signed-in user sees every row
    ALL = "all"
    # Non-admins see only rows they own
    OWNER = "owner"
    ADMIN = "admin"


@dataclass(frozen=True)
class EntitySpec:
    name: str
    model: type[SQLModel]
    create_schema: type[SQLModel]
    update_schema: type[SQLModel]
    public_schema: type[SQLModel]
    read_scope: ReadScope = ReadScope.ALL
    owner_field: str | None = None
    # Owners may create, update and delete their own rows
    owner_writable: bool = False
    # Fields owners may update when the entity is not owner writable
    owner_update_fields: frozenset[str] = frozenset()
    prepare: Preparer | None = None


ENTITIES: dict[str, EntitySpec] = {
    spec.name: spec
    for spec in (
        EntitySpec("Region", Region, RegionCreate, RegionUpdate, RegionPublic),
        EntitySpec(
            "Game", Game, GameCreate, GameUpdate, GamePublic, prepare=catalog.prepare_game
        ),
        EntitySpec("GameMode", GameMode, GameModeCreate, GameModeUpdate, GameModePublic),
        EntitySpec(
            "Tournament",
            Tournament,
            TournamentCreate,
            TournamentUpdate,
            TournamentPublic,
            prepare=catalog.prepare_tournament,
        ),
        EntitySpec(
            "TournamentTemplate",
            TournamentTemplate,
            TournamentTemplateCreate,
            TournamentTemplateUpdate,
            TournamentTemplatePublic,
            prepare=catalog.prepare_template,
        ),
        EntitySpec(
            "TournamentQueue",
            TournamentQueue,
            TournamentQueueCreate,
            TournamentQueueUpdate,
            TournamentQueuePublic,
            read_scope=ReadScope.ADMIN,
        ),
        EntitySpec(
            "Participation",
            Participation,
            ParticipationCreate,
            ParticipationUpdate,
            ParticipationPublic,
        ),
        EntitySpec(
            "Transaction",
            Transaction,
            TransactionCreate,
            TransactionUpdate,
            TransactionPublic,
            read_scope=ReadScope.OWNER,
            owner_field="user_id",
        ),
        EntitySpec(
            "LinkedAccount",
            LinkedAccount,
            LinkedAccountCreate,
            LinkedAccountUpdate,
            LinkedAccountPublic,
            read_scope=ReadScope.OWNER,
            owner_field="user_id",
            owner_writable=True,
        ),
        EntitySpec(
            "Notification",
            Notification,
            NotificationCreate,
            NotificationUpdate,
            NotificationPublic,
            read_scope=ReadScope.OWNER,
            owner_field="user_id",
            owner_update_fields=frozenset({"is_read"}),
        ),
        EntitySpec(
            "ReferralCode",
            ReferralCode,
            ReferralCodeCreate,
            ReferralCodeUpdate,
            ReferralCodePublic,
        ),
    )
}


class EntityFilter(BaseModel):
    query: dict[str, Any] = {}
    sort: str | None = None
    limit: int | None = Field(default=None, ge=1, le=1000)
    skip: int = Field(default=0, ge=0)


def _not_found(spec: EntitySpec) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{spec.name} not found")


def _forbidden() -> HTTPException:
    return HTTPException(status_code=403, detail="Not enough permissions")


def _owner_conditions(spec: EntitySpec, user: User) -> list:
    if user.is_superuser:
        return []
    if spec.read_scope == ReadScope.ADMIN:
        raise _forbidden()
    if spec.read_scope == ReadScope.OWNER:
        return [getattr(spec.model, spec.owner_field) == user.id]  # type: ignore[arg-type]
    return []


def _owns(spec: EntitySpec, user: User, db_obj: SQLModel) -> bool:
    return spec.owner_field is not None and getattr(db_obj, spec.owner_field) == user.id


def _readable(spec: EntitySpec, user: User, db_obj: SQLModel) -> bool:
    if user.is_superuser or spec.read_scope == ReadScope.ALL:
        return True
    if spec.read_scope == ReadScope.OWNER:
        return _owns(spec, user, db_obj)
    return False


def _create_overrides(spec: EntitySpec, user: User, record_in: SQLModel) -> dict[str, Any]:
    """Fields forced on a new record; raises when the caller may not create it."""
    if user.is_superuser:
        if spec.owner_field and getattr(record_in, spec.owner_field, None) is None:
            return {spec.owner_field: user.id}
        return {}
    if spec.owner_writable and spec.owner_field:
        return {spec.owner_field: user.id}
    raise _forbidden()


def _load(spec: EntitySpec, session: Session, user: User, record_id: uuid.UUID) -> SQLModel:
    db_obj = crud.get_record(session=session, model=spec.model, record_id=record_id)
    # Rows the caller may not read are reported as missing
    if db_obj is None or not _readable(spec, user, db_obj):
        raise _not_found(spec)
    return db_obj


def build_entity_router(spec: EntitySpec) -> APIRouter:
    router = APIRouter(prefix=f"/entities/{spec.name}", tags=["entities"])
    Create = spec.create_schema
    Update = spec.update_schema
    Public = spec.public_schema

    @router.get("/", response_model=list[Public], name=f"list_{spec.name}")
    def list_entities(
        session: Session = Depends(get_db),
        current_user: CurrentUser = None,
        sort: str | None = None,
        limit: int | None = Query(default=None, ge=1, le=1000),
        skip: int = Query(default=0, ge=0),
    ) -> Any:
        return crud.list_records(
            session=session,
            model=spec.model,
            sort=sort,
            limit=limit,
            skip=skip,
            extra_conditions=_owner_conditions(spec, current_user),
        )

    @router.post("/filter", response_model=list[Public], name=f"filter_{spec.name}")
    def filter_entities(
        *, session: Session = Depends(get_db), current_user: CurrentUser, body: EntityFilter
    ) -> Any:
        return crud.list_records(
            session=session,
            model=spec.model,
            query=body.query,
            sort=body.sort,
            limit=body.limit,
            skip=body.skip,
            extra_conditions=_owner_conditions(spec, current_user),
        )

    @router.get("/{record_id}", response_model=Public, name=f"get_{spec.name}")
    def read_entity(
        record_id: uuid.UUID,
        session: Session = Depends(get_db),
        current_user: CurrentUser = None,
    ) -> Any:
        return _load(spec, session, current_user, record_id)

    @router.post("/", response_model=Public, name=f"create_{spec.name}")
    def create_entity(
        *, session: Session = Depends(get_db), current_user: CurrentUser, record_in: Create  # type: ignore[valid-type]
    ) -> Any:
        db_obj = crud.create_record(
            session=session,
            model=spec.model,
            record_in=record_in,
            update=_create_overrides(spec, current_user, record_in),
            prepare=spec.prepare,
        )
        logger.info("%s %s created by %s", spec.name, db_obj.id, current_user.id)  # type: ignore[attr-defined]
        return db_obj

    @router.post("/bulk", response_model=list[Public], name=f"bulk_create_{spec.name}")
    def bulk_create_entities(
        *,
        session: Session = Depends(get_db),
        current_user: CurrentUser,
        records_in: list[Create],  # type: ignore[valid-type]
    ) -> Any:
        if not records_in:
            raise HTTPException(status_code=400, detail="Nothing to create")
        overrides = [_create_overrides(spec, current_user, r) for r in records_in]
        db_objs = crud.bulk_create_records(
            session=session,
            model=spec.model,
            records_in=[
                record_in.model_dump() | override
                for record_in, override in zip(records_in, overrides)
            ],
            prepare=spec.prepare,
        )
        logger.info("%d %s records created by %s", len(db_objs), spec.name, current_user.id)
        return db_objs

    def _update(
        session: Session, current_user: User, record_id: uuid.UUID, record_in: SQLModel
    ) -> Any:
        db_obj = _load(spec, session, current_user, record_id)
        data = record_in.model_dump(exclude_unset=True)
        if not current_user.is_superuser:
            owner = _owns(spec, current_user, db_obj)
            allowed = spec.owner_writable or (
                spec.owner_update_fields and set(data) <= spec.owner_update_fields
            )
            if not (owner and allowed):
                raise _forbidden()
            data.pop(spec.owner_field, None)  # type: ignore[arg-type]
        return crud.update_record(session=session, db_obj=db_obj, record_in=data)

    @router.patch("/{record_id}", response_model=Public, name=f"update_{spec.name}")
    def update_entity(
        *,
        session: Session = Depends(get_db),
        current_user: CurrentUser,
        record_id: uuid.UUID,
        record_in: Update,  # type: ignore[valid-type]
    ) -> Any:
        return _update(session, current_user, record_id, record_in)

    @router.put("/{record_id}", response_model=Public, include_in_schema=False)
    def replace_entity(
        *,
        session: Session = Depends(get_db),
        current_user: CurrentUser,
        record_id: uuid.UUID,
        record_in: Update,  # type: ignore[valid-type]
    ) -> Any:
        return _update(session, current_user, record_id, record_in)

    @router.delete("/{record_id}", name=f"delete_{spec.name}")
    def delete_entity(
        record_id: uuid.UUID,
        session: Session = Depends(get_db),
        current_user: CurrentUser = None,
    ) -> Message:
        db_obj = _load(spec, session, current_user, record_id)
        if not current_user.is_superuser and not (
            spec.owner_writable and _owns(spec, current_user, db_obj)
        ):
            raise _forbidden()
        crud.delete_record(session=session, db_obj=db_obj)
        logger.info("%s %s deleted by %s", spec.name, record_id, current_user.id)
        return Message(message=f"{spec.name} deleted successfully")

    return router


router = APIRouter()
for _spec in ENTITIES.values():
    router.include_router(build_entity_router(_spec))
