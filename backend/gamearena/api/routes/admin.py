import uuid
from typing import Any

from fastapi import APIRouter, Depends
from sqlmodel import Session

from gamearena.api.deps import AdminUser, get_db
from gamearena.services import stats

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/dashboard", response_model=stats.AdminDashboard)
def read_dashboard(
    session: Session = Depends(get_db),
    admin: AdminUser = None,
    region_id: uuid.UUID | None = None,
) -> Any:
    """
    Platform totals, optionally for a single region.
    """
    return stats.admin_dashboard(session=session, region_id=region_id)


@router.get("/payments", response_model=stats.PaymentsOverview)
def read_payments(
    session: Session = Depends(get_db),
    admin: AdminUser = None,
    region_id: uuid.UUID | None = None,
) -> Any:
    """
    Wallet totals and money movement, optionally for a single region.
    """
    return stats.payments_overview(session=session, region_id=region_id)
