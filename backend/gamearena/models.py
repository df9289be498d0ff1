import re
import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import EmailStr, field_validator
from sqlalchemy import JSON, DateTime
from sqlmodel import Field, SQLModel


def get_datetime_utc() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored here is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AppRole(str, Enum):
    PLAYER = "player"
    MODERATOR = "moderator"
    CREATOR = "creator"


class TournamentType(str, Enum):
    SINGLE_ELIMINATION = "single_elimination"
    AUTOMATED = "automated"


class TournamentStatus(str, Enum):
    UPCOMING = "upcoming"
    REGISTRATION_OPEN = "registration_open"
    REGISTRATION_CLOSED = "registration_closed"
    PREPARING = "preparing"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ParticipationStatus(str, Enum):
    REGISTERED = "registered"
    WINNER = "winner"
    ELIMINATED = "eliminated"
    REFUNDED = "refunded"


class QueueStatus(str, Enum):
    WAITING = "waiting"
    MATCHED = "matched"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    ENTRY_FEE = "entry_fee"
    PRIZE_WON = "prize_won"
    REFUND = "refund"
    REFERRAL_COMMISSION = "referral_commission"


# Shared columns for every stored entity
class EntityTimestamps(SQLModel):
    created_date: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
        index=True,
    )
    updated_date: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
        sa_column_kwargs={"onupdate": get_datetime_utc},
    )


class EntityPublic(SQLModel):
    id: uuid.UUID
    created_date: datetime | None = None
    updated_date: datetime | None = None


# Generic message
class Message(SQLModel):
    message: str


# JSON payload containing access token
class Token(SQLModel):
    access_token: str
    token_type: str = "bearer"


# Contents of JWT token
class TokenPayload(SQLModel):
    sub: str | None = None


# ---------------------------------------------------------------------------
# Region
# ---------------------------------------------------------------------------


class RegionBase(SQLModel):
    name: str = Field(min_length=1, max_length=100)
    currency_code: str = Field(max_length=10)
    currency_symbol: str = Field(default="$", max_length=10)


class RegionCreate(RegionBase):
    pass


class RegionUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    currency_code: str | None = Field(default=None, max_length=10)
    currency_symbol: str | None = Field(default=None, max_length=10)


class Region(RegionBase, EntityTimestamps, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)


class RegionPublic(RegionBase, EntityPublic):
    pass


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------


# Shared properties
class UserBase(SQLModel):
    email: EmailStr = Field(unique=True, index=True, max_length=255)
    is_active: bool = True
    is_superuser: bool = False
    full_name: str | None = Field(default=None, max_length=255)
    phone_number: str | None = Field(default=None, max_length=32)


# Properties to receive via API on creation
class UserCreate(UserBase):
    password: str = Field(min_length=8, max_length=128)
    app_role: AppRole = AppRole.PLAYER
    region_id: uuid.UUID | None = None


class UserRegister(SQLModel):
    email: EmailStr = Field(max_length=255)
    password: str = Field(min_length=8, max_length=128)
    full_name: str | None = Field(default=None, max_length=255)
    region_id: uuid.UUID | None = None


# Properties an admin may change; app_role and assigned_game_id go through
# the role assignment rules in crud.update_user
class UserUpdate(SQLModel):
    email: EmailStr | None = Field(default=None, max_length=255)
    password: str | None = Field(default=None, min_length=8, max_length=128)
    full_name: str | None = Field(default=None, max_length=255)
    is_active: bool | None = None
    is_superuser: bool | None = None
    region_id: uuid.UUID | None = None
    app_role: AppRole | None = None
    assigned_game_id: uuid.UUID | None = None


# What a user may change about themselves. Wallet balance and role are not here.
class UserUpdateMe(SQLModel):
    full_name: str | None = Field(default=None, max_length=255)
    email: EmailStr | None = Field(default=None, max_length=255)
    phone_number: str | None = Field(default=None, max_length=32)
    region_id: uuid.UUID | None = None
    onboarding_completed: bool | None = None


class UserOnboarding(SQLModel):
    full_name: str = Field(min_length=1, max_length=255)
    phone_number: str = Field(min_length=1, max_length=32)


class UpdatePassword(SQLModel):
    current_password: str = Field(min_length=8, max_length=128)
    new_password: str = Field(min_length=8, max_length=128)


# Database model, database table inferred from class name
class User(UserBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    hashed_password: str
    app_role: AppRole = Field(default=AppRole.PLAYER, index=True)
    region_id: uuid.UUID | None = Field(
        default=None, foreign_key="region.id", ondelete="SET NULL", index=True
    )
    wallet_balance: float = Field(default=0, ge=0)
    onboarding_completed: bool = False
    assigned_games: list[str] = Field(default_factory=list, sa_type=JSON)
    assigned_games_creator: list[str] = Field(default_factory=list, sa_type=JSON)
    created_date: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


# Properties to return via API, id is always required
class UserPublic(UserBase):
    id: uuid.UUID
    app_role: AppRole
    region_id: uuid.UUID | None = None
    wallet_balance: float = 0
    onboarding_completed: bool = False
    assigned_games: list[str] = []
    assigned_games_creator: list[str] = []
    created_date: datetime | None = None


class UsersPublic(SQLModel):
    data: list[UserPublic]
    count: int


# ---------------------------------------------------------------------------
# Game / GameMode
# ---------------------------------------------------------------------------


class GameBase(SQLModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    logo_url: str | None = Field(default=None, max_length=1024)
    banner_url: str | None = Field(default=None, max_length=1024)
    category: str | None = Field(default=None, max_length=100)
    region_id: uuid.UUID | None = Field(
        default=None, foreign_key="region.id", ondelete="SET NULL", index=True
    )
    is_active: bool = True


class GameCreate(GameBase):
    # Generated when omitted
    game_code: str | None = Field(default=None, max_length=3)

    @field_validator("game_code")
    @classmethod
    def _three_digits(cls, value: str | None) -> str | None:
        if value is not None and not re.fullmatch(r"\d{3}", value):
            raise ValueError("game_code must be three digits")
        return value


class GameUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    logo_url: str | None = Field(default=None, max_length=1024)
    banner_url: str | None = Field(default=None, max_length=1024)
    category: str | None = Field(default=None, max_length=100)
    region_id: uuid.UUID | None = None
    is_active: bool | None = None


class Game(GameBase, EntityTimestamps, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    game_code: str | None = Field(default=None, unique=True, max_length=3)


class GamePublic(GameBase, EntityPublic):
    game_code: str | None = None


class GameModeBase(SQLModel):
    game_id: uuid.UUID = Field(foreign_key="game.id", ondelete="CASCADE", index=True)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    icon_url: str | None = Field(default=None, max_length=1024)


class GameModeCreate(GameModeBase):
    pass


class GameModeUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    icon_url: str | None = Field(default=None, max_length=1024)


class GameMode(GameModeBase, EntityTimestamps, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)


class GameModePublic(GameModeBase, EntityPublic):
    pass


# ---------------------------------------------------------------------------
# Tournament
# ---------------------------------------------------------------------------


class TournamentBase(SQLModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    game_mode_id: uuid.UUID = Field(
        foreign_key="gamemode.id", ondelete="CASCADE", index=True
    )
    region_id: uuid.UUID | None = Field(
        default=None, foreign_key="region.id", ondelete="SET NULL", index=True
    )
    image_url: str | None = Field(default=None, max_length=1024)
    start_date: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    end_date: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # type: ignore
    registration_deadline: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)  # type: ignore
    )
    prize_pool: float = Field(default=0, ge=0)
    entry_fee: float = Field(default=0, ge=0)
    # 0 means no cap
    max_participants: int = Field(default=0, ge=0)
    tournament_type: TournamentType = TournamentType.SINGLE_ELIMINATION
    status: TournamentStatus = Field(default=TournamentStatus.REGISTRATION_OPEN, index=True)
    rules: str | None = None
    is_featured: bool = False
    template_id: uuid.UUID | None = Field(
        default=None, foreign_key="tournamenttemplate.id", ondelete="SET NULL"
    )

    @field_validator("start_date", "end_date", "registration_deadline")
    @classmethod
    def _dates_to_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class TournamentCreate(TournamentBase):
    # Generated from the game code when omitted
    tournament_id_custom: str | None = Field(default=None, max_length=20)


class TournamentUpdate(SQLModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    image_url: str | None = Field(default=None, max_length=1024)
    start_date: datetime | None = None
    end_date: datetime | None = None
    registration_deadline: datetime | None = None
    prize_pool: float | None = Field(default=None, ge=0)
    entry_fee: float | None = Field(default=None, ge=0)
    max_participants: int | None = Field(default=None, ge=0)
    status: TournamentStatus | None = None
    rules: str | None = None
    is_featured: bool | None = None
    room_code: str | None = Field(default=None, max_length=64)
    room_password: str | None = Field(default=None, max_length=64)
    hosted_by: uuid.UUID | None = None

    @field_validator("start_date", "end_date", "registration_deadline")
    @classmethod
    def _dates_to_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class Tournament(TournamentBase, EntityTimestamps, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    tournament_id_custom: str | None = Field(default=None, unique=True, max_length=20)
    current_participants: int = Field(default=0, ge=0)
    room_code: str | None = Field(default=None, max_length=64)
    room_password: str | None = Field(default=None, max_length=64)
    hosted_by: uuid.UUID | None = Field(
        default=None, foreign_key="user.id", ondelete="SET NULL", index=True
    )
    winner_id: uuid.UUID | None = Field(
        default=None, foreign_key="user.id", ondelete="SET NULL"
    )
    completed_date: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)  # type: ignore
    )


# Room credentials are left out; see TournamentRoom
class TournamentPublic(TournamentBase, EntityPublic):
    tournament_id_custom: str | None = None
    current_participants: int = 0
    hosted_by: uuid.UUID | None = None
    winner_id: uuid.UUID | None = None
    completed_date: datetime | None = None


class TournamentRoom(SQLModel):
    tournament_id: uuid.UUID
    status: TournamentStatus
    room_code: str | None = None
    room_password: str | None = None


# ---------------------------------------------------------------------------
# TournamentTemplate / TournamentQueue
# ---------------------------------------------------------------------------


class TournamentTemplateBase(SQLModel):
    name: str = Field(min_length=1, max_length=255)
    game_id: uuid.UUID = Field(foreign_key="game.id", ondelete="CASCADE", index=True)
    game_mode_id: uuid.UUID = Field(
        foreign_key="gamemode.id", ondelete="CASCADE", index=True
    )
    region_id: uuid.UUID | None = Field(
        default=None, foreign_key="region.id", ondelete="SET NULL", index=True
    )
    rules: str | None = None
    prize_pool: float = Field(default=0, ge=0)
    entry_fee: float = Field(default=0, ge=0)
    team_size: int = Field(default=1, ge=1)
    participants_to_start: int = Field(default=2, ge=2)
    waiting_time_minutes: int = Field(default=5, ge=0)
    is_active: bool = True


class TournamentTemplateCreate(TournamentTemplateBase):
    pass


class TournamentTemplateUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    game_mode_id: uuid.UUID | None = None
    region_id: uuid.UUID | None = None
    rules: str | None = None
    prize_pool: float | None = Field(default=None, ge=0)
    entry_fee: float | None = Field(default=None, ge=0)
    team_size: int | None = Field(default=None, ge=1)
    participants_to_start: int | None = Field(default=None, ge=2)
    waiting_time_minutes: int | None = Field(default=None, ge=0)
    is_active: bool | None = None


class TournamentTemplate(TournamentTemplateBase, EntityTimestamps, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)


class TournamentTemplatePublic(TournamentTemplateBase, EntityPublic):
    pass


class TournamentQueueBase(SQLModel):
    template_id: uuid.UUID = Field(
        foreign_key="tournamenttemplate.id", ondelete="CASCADE", index=True
    )
    participation_id: uuid.UUID = Field(
        foreign_key="participation.id", ondelete="CASCADE"
    )
    player_id: uuid.UUID = Field(foreign_key="user.id", ondelete="CASCADE", index=True)
    status: QueueStatus = Field(default=QueueStatus.WAITING, index=True)
    tournament_id: uuid.UUID | None = Field(
        default=None, foreign_key="tournament.id", ondelete="SET NULL"
    )
    matched_date: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)  # type: ignore
    )


class TournamentQueueCreate(TournamentQueueBase):
    pass


class TournamentQueueUpdate(SQLModel):
    status: QueueStatus | None = None
    tournament_id: uuid.UUID | None = None


class TournamentQueue(TournamentQueueBase, EntityTimestamps, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)


class TournamentQueuePublic(TournamentQueueBase, EntityPublic):
    pass


# ---------------------------------------------------------------------------
# Participation
# ---------------------------------------------------------------------------


class ParticipationBase(SQLModel):
    player_id: uuid.UUID = Field(foreign_key="user.id", ondelete="CASCADE", index=True)
    player_name: str | None = Field(default=None, max_length=255)
    player_email: str | None = Field(default=None, max_length=255)
    tournament_id: uuid.UUID | None = Field(
        default=None, foreign_key="tournament.id", ondelete="CASCADE", index=True
    )
    template_id: uuid.UUID | None = Field(
        default=None, foreign_key="tournamenttemplate.id", ondelete="SET NULL", index=True
    )
    registration_date: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )
    status: ParticipationStatus = Field(default=ParticipationStatus.REGISTERED, index=True)
    in_game_name: str = Field(min_length=1, max_length=255)
    in_game_uid: str | None = Field(default=None, max_length=255)
    used_referral_code: str | None = Field(default=None, max_length=10, index=True)
    placement: int | None = Field(default=None, ge=1)
    prize_won: float = Field(default=0, ge=0)
    entry_fee_paid: float = Field(default=0, ge=0)
    referral_commission_paid: float = Field(default=0, ge=0)


class ParticipationCreate(ParticipationBase):
    pass


class ParticipationUpdate(SQLModel):
    status: ParticipationStatus | None = None
    in_game_name: str | None = Field(default=None, min_length=1, max_length=255)
    in_game_uid: str | None = Field(default=None, max_length=255)
    placement: int | None = Field(default=None, ge=1)


class Participation(ParticipationBase, EntityTimestamps, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)


class ParticipationPublic(ParticipationBase, EntityPublic):
    pass


# ---------------------------------------------------------------------------
# Wallet transactions
# ---------------------------------------------------------------------------


class TransactionBase(SQLModel):
    user_id: uuid.UUID = Field(foreign_key="user.id", ondelete="CASCADE", index=True)
    # Signed: debits are negative
    amount: float
    type: TransactionType = Field(index=True)
    description: str | None = Field(default=None, max_length=500)
    related_tournament_id: uuid.UUID | None = Field(
        default=None, foreign_key="tournament.id", ondelete="SET NULL"
    )


class TransactionCreate(TransactionBase):
    pass


class TransactionUpdate(SQLModel):
    description: str | None = Field(default=None, max_length=500)


class Transaction(TransactionBase, EntityTimestamps, table=True):
    __tablename__ = "wallet_transaction"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    balance_after: float | None = None


class TransactionPublic(TransactionBase, EntityPublic):
    balance_after: float | None = None


# ---------------------------------------------------------------------------
# LinkedAccount / Notification / ReferralCode
# ---------------------------------------------------------------------------


class LinkedAccountBase(SQLModel):
    game_id: uuid.UUID = Field(foreign_key="game.id", ondelete="CASCADE", index=True)
    in_game_name: str = Field(min_length=1, max_length=255)
    in_game_uid: str | None = Field(default=None, max_length=255)


class LinkedAccountCreate(LinkedAccountBase):
    # Forced to the caller unless an admin creates it
    user_id: uuid.UUID | None = None


class LinkedAccountUpdate(SQLModel):
    game_id: uuid.UUID | None = None
    in_game_name: str | None = Field(default=None, min_length=1, max_length=255)
    in_game_uid: str | None = Field(default=None, max_length=255)


class LinkedAccount(LinkedAccountBase, EntityTimestamps, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", ondelete="CASCADE", index=True)


class LinkedAccountPublic(LinkedAccountBase, EntityPublic):
    user_id: uuid.UUID


class NotificationBase(SQLModel):
    user_id: uuid.UUID = Field(foreign_key="user.id", ondelete="CASCADE", index=True)
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(max_length=2000)
    is_read: bool = False


class NotificationCreate(NotificationBase):
    pass


class NotificationUpdate(SQLModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    message: str | None = Field(default=None, max_length=2000)
    is_read: bool | None = None


class Notification(NotificationBase, EntityTimestamps, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)


class NotificationPublic(NotificationBase, EntityPublic):
    pass


REFERRAL_CODE_PATTERN = re.compile(r"[A-Za-z0-9]{1,10}")


def check_referral_code(value: str | None) -> str | None:
    if value is not None and not REFERRAL_CODE_PATTERN.fullmatch(value):
        raise ValueError("Code must be 1-10 alphanumeric characters.")
    return value


class ReferralCodeBase(SQLModel):
    creator_id: uuid.UUID = Field(
        foreign_key="user.id", ondelete="CASCADE", unique=True, index=True
    )
    code: str = Field(unique=True, index=True, max_length=10)

    @field_validator("code")
    @classmethod
    def _check_code(cls, value):
        return check_referral_code(value)


class ReferralCodeCreate(ReferralCodeBase):
    pass


class ReferralCodeUpdate(SQLModel):
    code: str | None = Field(default=None, max_length=10)

    @field_validator("code")
    @classmethod
    def _check_code(cls, value):
        return check_referral_code(value)


class ReferralCode(ReferralCodeBase, EntityTimestamps, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)


class ReferralCodePublic(ReferralCodeBase, EntityPublic):
    pass


# ---------------------------------------------------------------------------
# Uploaded files
# ---------------------------------------------------------------------------


class StoredFileBase(SQLModel):
    filename: str = Field(max_length=255)
    content_type: str = Field(max_length=100)
    size_bytes: int = Field(ge=0)


class StoredFile(StoredFileBase, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    storage_name: str = Field(unique=True, max_length=100)
    owner_id: uuid.UUID | None = Field(
        default=None, foreign_key="user.id", ondelete="SET NULL"
    )
    created_date: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


class FileUploadPublic(SQLModel):
    file_url: str
    filename: str
    content_type: str
    size_bytes: int
