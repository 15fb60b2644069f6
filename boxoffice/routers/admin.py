from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from boxoffice.database import atomic, get_db
from boxoffice.exceptions import InvalidStateError
from boxoffice.schemas.order import OrderResponse, SettleRequest
from boxoffice.services.auth import require_admin
from boxoffice.services.settlement import SettlementOutcome, SettlementService

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/orders/{order_id}", response_model=OrderResponse)
def view_order(order_id: str, db: Session = Depends(get_db)):
    with atomic(db):
        return SettlementService.get_order(db, order_id)


@router.post("/orders/{order_id}/settle", response_model=OrderResponse)
def settle_order(order_id: str, payload: SettleRequest, db: Session = Depends(get_db)):
    """Apply a payment outcome by hand, e.g. after verifying a bank transfer."""
    return SettlementService.settle(
        db,
        order_id,
        SettlementOutcome(payload.outcome),
        reference=payload.reference
    )


@router.post("/orders/{order_id}/refund", response_model=OrderResponse)
def refund_order(order_id: str, db: Session = Depends(get_db)):
    return SettlementService.refund(db, order_id)


@router.post("/orders/{order_id}/expire", response_model=OrderResponse)
def expire_order(order_id: str, db: Session = Depends(get_db)):
    expired = SettlementService.expire_order(db, order_id, force=True)
    with atomic(db):
        order = SettlementService.get_order(db, order_id)
    if not expired:
        raise InvalidStateError(f"Order is {order.status.value} and cannot be expired")
    return order
