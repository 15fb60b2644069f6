from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from boxoffice.config import get_settings
from boxoffice.database import get_db
from boxoffice.schemas.order import (
    BulkPurchaseRequest,
    CheckoutResponse,
    ManualPaymentRequest,
    OrderResponse,
)
from boxoffice.services.auth import get_session_id
from boxoffice.services.payment import PaymentError, PaymentService
from boxoffice.services.purchase import PurchaseService
from boxoffice.services.settlement import SettlementService

router = APIRouter(prefix="/orders", tags=["orders"])
settings = get_settings()


@router.post("", response_model=OrderResponse, status_code=201)
def purchase_from_reservations(
    payload: BulkPurchaseRequest,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db)
):
    """Convert several holds of the same session into one order."""
    return PurchaseService.convert_bulk(
        db,
        payload.reservation_ids,
        session_id,
        buyer=payload.buyer,
        holders=payload.ticket_holders,
        payment_method=payload.payment_method
    )


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: str,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db)
):
    return PurchaseService.get_order(db, order_id, session_id)


@router.post("/{order_id}/checkout", response_model=CheckoutResponse)
def create_checkout(
    order_id: str,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db)
):
    order = PurchaseService.get_order(db, order_id, session_id)

    success_url = f"{settings.frontend_url}/orders/{order_id}/success?session_id={{CHECKOUT_SESSION_ID}}"
    cancel_url = f"{settings.frontend_url}/orders/{order_id}"

    try:
        checkout_url = PaymentService.create_checkout_session(
            db,
            order,
            success_url=success_url,
            cancel_url=cancel_url
        )
    except PaymentError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"order_id": order_id, "checkout_url": checkout_url}


@router.post("/{order_id}/manual-payment", response_model=OrderResponse)
def submit_manual_payment(
    order_id: str,
    payload: ManualPaymentRequest,
    session_id: str = Depends(get_session_id),
    db: Session = Depends(get_db)
):
    return SettlementService.mark_awaiting_verification(db, order_id, session_id, payload.reference)
