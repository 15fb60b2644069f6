import logging
from fastapi import APIRouter, Depends, HTTPException, Request, Header
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from boxoffice.database import get_db
from boxoffice.exceptions import DomainError
from boxoffice.services.payment import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])
logger = logging.getLogger(__name__)


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="stripe-signature"),
    db: Session = Depends(get_db)
):
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="Missing signature")

    payload = await request.body()

    try:
        event = PaymentService.verify_webhook_signature(payload, stripe_signature)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid signature")

    try:
        order = await run_in_threadpool(PaymentService.handle_event, db, event)
    except DomainError as e:
        # A late outcome for an order that already ended; retrying cannot help
        logger.warning(f"Stripe event {event['type']} not applied: {e}")
        return {"status": "ignored", "reason": e.message}

    if order is None:
        return {"status": "ignored"}
    return {"status": "success", "order_id": order.id, "order_status": order.status.value}
