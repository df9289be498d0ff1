import uuid
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session, col, select

from gamearena.api.deps import AdminUser, CurrentUser, get_db
from gamearena.models import Transaction, TransactionPublic
from gamearena.services import catalog, wallet

router = APIRouter(prefix="/wallet", tags=["wallet"])

RECENT_TRANSACTIONS = 50


class WalletPublic(BaseModel):
    balance: float
    currency_symbol: str
    transactions: list[TransactionPublic]


class WalletAmount(BaseModel):
    amount: float = Field(gt=0)
    description: str | None = Field(default=None, max_length=500)


@router.get("/", response_model=WalletPublic)
def read_wallet(session: Session = Depends(get_db), current_user: CurrentUser = None) -> Any:
    transactions = session.exec(
        select(Transaction)
        .where(Transaction.user_id == current_user.id)
        .order_by(col(Transaction.created_date).desc(), col(Transaction.id))
        .limit(RECENT_TRANSACTIONS)
    ).all()
    return WalletPublic(
        balance=current_user.wallet_balance,
        currency_symbol=catalog.currency_symbol_for(session, current_user.region_id),
        transactions=[TransactionPublic.model_validate(t) for t in transactions],
    )


@router.post("/withdraw", response_model=TransactionPublic)
def withdraw(
    *, session: Session = Depends(get_db), current_user: CurrentUser, body: WalletAmount
) -> Any:
    return wallet.withdraw(
        session=session,
        user=current_user,
        amount=body.amount,
        description=body.description,
        currency_symbol=catalog.currency_symbol_for(session, current_user.region_id),
    )


@router.post("/{user_id}/deposit", response_model=TransactionPublic)
def deposit(
    *, session: Session = Depends(get_db), admin: AdminUser, user_id: uuid.UUID, body: WalletAmount
) -> Any:
    """
    Credit a user's wallet. There is no payment gateway; admins record deposits.
    """
    return wallet.deposit(
        session=session, user_id=user_id, amount=body.amount, description=body.description
    )
