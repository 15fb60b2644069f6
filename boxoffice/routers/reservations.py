from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from slowapi import Limiter
from slowapi.util import get_remote_address

from boxoffice.config import get_settings
from boxoffice.database import get_db
from boxoffice.schemas.order import OrderResponse, PurchaseRequest
from boxoffice.schemas.reservation import (
    BulkReservationCreate,
    CancelAllResponse,
    ReservationCreate,
    ReservationExtend,
    ReservationListResponse,
    ReservationResponse,
    ReservationTimerResponse,
)
from boxoffice.services.auth import get_session_id
from boxoffice.services.purchase import PurchaseService
from boxoffice.services.reservation import ReservationService

settings = get_settings()
router = APIRouter(prefix="/reservations", tags=["reservations"])
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.reservation_rate_limit)
def create_reservation(
    request: Request,
    payload: ReservationCreate,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db)
):
    return ReservationService.create(
        db,
        session_id=session_id,
        ticket_type_id=payload.ticket_type_id,
        quantity=payload.quantity,
        ttl_minutes=payload.expiration_minutes
    )


@router.post("/bulk", response_model=ReservationListResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.reservation_rate_limit)
def create_bulk_reservation(
    request: Request,
    payload: BulkReservationCreate,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db)
):
    reservations = ReservationService.create_bulk(
        db,
        session_id=session_id,
        items=[(item.ticket_type_id, item.quantity) for item in payload.reservations],
        ttl_minutes=payload.expiration_minutes
    )
    return {"reservations": reservations}


@router.get("", response_model=ReservationListResponse)
def list_active_reservations(
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db)
):
    return {"reservations": ReservationService.list_active(db, session_id)}


@router.delete("", response_model=CancelAllResponse)
def cancel_all_reservations(
    reservation_ids: Optional[list[str]] = Query(None),
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db)
):
    return {"cancelled": ReservationService.cancel_all(db, session_id, reservation_ids)}


@router.get("/{reservation_id}", response_model=ReservationTimerResponse)
def get_reservation(
    reservation_id: str,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db)
):
    return ReservationService.get(db, reservation_id, session_id)


@router.post("/{reservation_id}/extend", response_model=ReservationResponse)
def extend_reservation(
    reservation_id: str,
    payload: ReservationExtend,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db)
):
    return ReservationService.extend(db, reservation_id, session_id, payload.additional_minutes)


@router.delete("/{reservation_id}", response_model=ReservationResponse)
def cancel_reservation(
    reservation_id: str,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db)
):
    return ReservationService.cancel(db, reservation_id, session_id)


@router.post("/{reservation_id}/purchase", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def purchase_from_reservation(
    reservation_id: str,
    payload: PurchaseRequest,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db)
):
    return PurchaseService.convert(
        db,
        reservation_id,
        session_id,
        buyer=payload.buyer,
        holders=payload.ticket_holders,
        payment_method=payload.payment_method
    )
