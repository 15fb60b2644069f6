import stripe
import logging
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session

from boxoffice.config import get_settings
from boxoffice.database import atomic
from boxoffice.exceptions import InvalidStateError
from boxoffice.models.order import Order, OrderStatus
from boxoffice.services.settlement import SettlementOutcome, SettlementService

settings = get_settings()
stripe.api_key = settings.stripe_secret_key
logger = logging.getLogger(__name__)

SUCCESS_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
FAILURE_EVENTS = {"checkout.session.expired", "checkout.session.async_payment_failed"}


class PaymentError(Exception):
    pass


class PaymentService:
    @staticmethod
    def _to_minor_units(amount) -> int:
        return int((Decimal(amount) * 100).to_integral_value())

    @staticmethod
    def create_checkout_session(
        db: Session,
        order: Order,
        success_url: str,
        cancel_url: str
    ) -> str:
        """
        Create a Stripe checkout session for a PENDING order.
        Returns the checkout session URL. The order id travels in the
        session metadata so the webhook can settle it.
        """
        if order.status != OrderStatus.PENDING:
            raise InvalidStateError(f"Order is {order.status.value}, checkout not available")

        line_items = []
        for item in order.items:
            line_items.append({
                "price_data": {
                    "currency": settings.currency,
                    "product_data": {
                        "name": f"Tickets: {item.ticket_type.name}",
                        "description": f"{item.quantity} ticket(s) for {item.ticket_type.event.title}"
                    },
                    "unit_amount": PaymentService._to_minor_units(item.unit_price)
                },
                "quantity": item.quantity
            })

        # No transaction is held across the Stripe call
        db.commit()

        try:
            session = stripe.checkout.Session.create(
                payment_method_types=["card"],
                line_items=line_items,
                mode="payment",
                customer_email=order.buyer_email,
                success_url=success_url,
                cancel_url=cancel_url,
                client_reference_id=order.id,
                metadata={"order_id": order.id}
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout creation failed for order {order.id}: {e}")
            raise PaymentError(f"Stripe error: {str(e)}")

        with atomic(db):
            order.payment_reference = session.id

        return session.url

    @staticmethod
    def verify_webhook_signature(payload: bytes, signature: str) -> dict:
        """Verify Stripe webhook signature and return the event."""
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                settings.stripe_webhook_secret
            )
            return event
        except stripe.SignatureVerificationError:
            raise ValueError("Invalid signature")

    @staticmethod
    def outcome_for_event(event: dict) -> Optional[SettlementOutcome]:
        event_type = event["type"]
        session = event["data"]["object"]

        if event_type in SUCCESS_EVENTS:
            # Delayed payment methods complete the session before the money arrives
            if session.get("payment_status") not in (None, "paid", "no_payment_required"):
                return None
            return SettlementOutcome.SUCCESS
        if event_type in FAILURE_EVENTS:
            return SettlementOutcome.FAILED
        return None

    @staticmethod
    def handle_event(db: Session, event: dict) -> Optional[Order]:
        """
        Translate a verified Stripe event into a settlement.
        Unknown events and events without an order id are ignored.
        """
        outcome = PaymentService.outcome_for_event(event)
        if outcome is None:
            logger.info(f"Ignoring Stripe event {event['type']}")
            return None

        session = event["data"]["object"]
        metadata = session.get("metadata") or {}
        order_id = metadata.get("order_id") or session.get("client_reference_id")
        if not order_id:
            logger.warning(f"Stripe event {event['type']} carries no order id")
            return None

        reference = session.get("payment_intent") or session.get("id")
        return SettlementService.settle(db, order_id, outcome, reference=reference)
