import logging
import uuid

from sqlmodel import Session

from gamearena import crud
from gamearena.models import Transaction, TransactionType, User
from gamearena.services.errors import InsufficientFundsError, InvalidRequestError, NotFoundError

logger = logging.getLogger(__name__)


def _round_money(value: float) -> float:
    return round(value, 2)


def apply_wallet_change(
    *,
    session: Session,
    user_id: uuid.UUID,
    amount: float,
    type: TransactionType,
    description: str | None = None,
    related_tournament_id: uuid.UUID | None = None,
    currency_symbol: str = "$",
) -> Transaction:
    """Move ``amount`` (signed) in or out of a wallet and record the transaction.

    Nothing is committed here. The caller owns the surrounding unit of work,
    so a failure later in the same flow rolls the balance change back too.
    """
    if amount == 0:
        raise InvalidRequestError("Wallet change amount must be non-zero")

    user = crud.lock_user(session=session, user_id=user_id)
    if user is None:
        raise NotFoundError("User not found")

    current = user.wallet_balance or 0
    new_balance = _round_money(current + amount)
    if new_balance < 0:
        raise InsufficientFundsError(
            f"Insufficient wallet balance. Required: {currency_symbol}{-amount:.2f}. "
            f"Current: {currency_symbol}{current:.2f}"
        )

    user.wallet_balance = new_balance
    session.add(user)
    transaction = Transaction(
        user_id=user.id,
        amount=_round_money(amount),
        type=type,
        description=description,
        related_tournament_id=related_tournament_id,
        balance_after=new_balance,
    )
    session.add(transaction)
    logger.info(
        "Wallet %s %s %.2f (balance %.2f -> %.2f)",
        user.id,
        type.value,
        amount,
        current,
        new_balance,
    )
    return transaction


def deposit(
    *, session: Session, user_id: uuid.UUID, amount: float, description: str | None = None
) -> Transaction:
    if amount <= 0:
        raise InvalidRequestError("Deposit amount must be positive")
    try:
        transaction = apply_wallet_change(
            session=session,
            user_id=user_id,
            amount=amount,
            type=TransactionType.DEPOSIT,
            description=description or "Wallet deposit",
        )
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(transaction)
    return transaction


def withdraw(
    *,
    session: Session,
    user: User,
    amount: float,
    description: str | None = None,
    currency_symbol: str = "$",
) -> Transaction:
    if amount <= 0:
        raise InvalidRequestError("Withdrawal amount must be positive")
    try:
        transaction = apply_wallet_change(
            session=session,
            user_id=user.id,
            amount=-amount,
            type=TransactionType.WITHDRAWAL,
            description=description or "Wallet withdrawal",
            currency_symbol=currency_symbol,
        )
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(transaction)
    return transaction
