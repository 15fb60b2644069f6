from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from boxoffice.database import SessionLocal, get_db
from boxoffice.services.auth import require_cron
from boxoffice.services.sweeper import ExpirationSweeper

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron)])


def get_session_factory():
    return SessionLocal


@router.post("/sweep")
def run_sweep(session_factory=Depends(get_session_factory)):
    """Scheduler-triggered sweep. Safe to call repeatedly."""
    result = ExpirationSweeper.run(session_factory)
    return {
        "success": not result.errors,
        "data": result.as_dict(),
        "message": f"Expired {result.reservations_expired} reservations and {result.orders_expired} orders"
    }


@router.get("/sweep")
def sweep_preview(db: Session = Depends(get_db)):
    return {"success": True, "data": ExpirationSweeper.preview(db)}
