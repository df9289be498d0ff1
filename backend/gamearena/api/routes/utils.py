from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlmodel import Session

from gamearena.api.deps import get_db

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/health-check/")
def health_check(session: Session = Depends(get_db)) -> bool:
    session.connection().execute(text("SELECT 1"))
    return True
