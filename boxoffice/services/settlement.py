from datetime import datetime, timedelta
from typing import Optional
import enum
import logging
from sqlalchemy import update
from sqlalchemy.orm import Session

from boxoffice.config import get_settings
from boxoffice.database import atomic
from boxoffice.exceptions import ForbiddenError, InvalidStateError, NotFoundError
from boxoffice.models.order import Order, OrderStatus, PaymentMethod, HOLDING_ORDER_STATUSES
from boxoffice.models.ticket import Ticket, TicketStatus
from boxoffice.services import clock
from boxoffice.services.inventory import InventoryLedger

settings = get_settings()
logger = logging.getLogger(__name__)


class SettlementOutcome(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"


class SettlementService:
    """Terminal transitions of orders and their tickets.

    This is the only place that writes TicketType.sold: it grows when an
    order settles SUCCESS and shrinks only when a settled order is refunded.
    """

    @staticmethod
    def get_order(db: Session, order_id: str, lock: bool = False) -> Order:
        query = db.query(Order).filter(Order.id == order_id)
        if lock:
            query = query.with_for_update().populate_existing()
        order = query.first()
        if not order:
            raise NotFoundError("Order", order_id)
        return order

    @staticmethod
    def transition(
        db: Session,
        order_id: str,
        expected: tuple,
        target: OrderStatus,
        **values
    ) -> bool:
        """Status-guarded update; False when the order already left `expected`."""
        result = db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status.in_(expected)
            )
            .values(status=target, **values)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    @staticmethod
    def _move_tickets(db: Session, order_id: str, expected: tuple, target: TicketStatus) -> int:
        result = db.execute(
            update(Ticket)
            .where(
                Ticket.order_id == order_id,
                Ticket.status.in_(expected)
            )
            .values(status=target)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount

    @staticmethod
    def settle(
        db: Session,
        order_id: str,
        outcome: SettlementOutcome,
        reference: Optional[str] = None
    ) -> Order:
        """
        Apply a payment outcome. Re-applying the outcome an order already
        has is a no-op; any other change to a settled order is rejected.
        """
        outcome = SettlementOutcome(outcome)
        target = OrderStatus.SUCCESS if outcome == SettlementOutcome.SUCCESS else OrderStatus.FAILED

        with atomic(db):
            order = SettlementService.get_order(db, order_id, lock=True)

            if order.status == target:
                logger.info(f"Order {order_id} already {target.value}, ignoring repeated outcome")
                return order

            if order.status not in HOLDING_ORDER_STATUSES:
                raise InvalidStateError(
                    f"Order is already {order.status.value} and cannot become {target.value}"
                )

            now = clock.now(db)
            values = {"settled_at": now}
            if reference:
                values["payment_reference"] = reference

            if outcome == SettlementOutcome.SUCCESS:
                for item in sorted(order.items, key=lambda i: i.ticket_type_id):
                    ticket_type = InventoryLedger.lock_ticket_type(db, item.ticket_type_id)
                    if ticket_type.sold + item.quantity > ticket_type.capacity:
                        raise InvalidStateError(
                            f"Settling order {order_id} would oversell ticket type {ticket_type.id}"
                        )
                    ticket_type.sold += item.quantity

                if not SettlementService.transition(db, order_id, HOLDING_ORDER_STATUSES, target, **values):
                    raise InvalidStateError(f"Order {order_id} changed state during settlement")
                SettlementService._move_tickets(db, order_id, (TicketStatus.PENDING,), TicketStatus.ACTIVE)
            else:
                if not SettlementService.transition(db, order_id, HOLDING_ORDER_STATUSES, target, **values):
                    raise InvalidStateError(f"Order {order_id} changed state during settlement")
                SettlementService._move_tickets(db, order_id, (TicketStatus.PENDING,), TicketStatus.CANCELLED)

            db.flush()
            db.refresh(order)

        logger.info(f"Order {order_id} settled as {target.value}")
        return order

    @staticmethod
    def mark_awaiting_verification(
        db: Session,
        order_id: str,
        session_id: str,
        reference: Optional[str] = None
    ) -> Order:
        """Manual transfer proof submitted: park the order until an admin settles it."""
        with atomic(db):
            order = SettlementService.get_order(db, order_id, lock=True)
            if order.session_id != session_id:
                raise ForbiddenError("Order")

            if order.status == OrderStatus.AWAITING_VERIFICATION:
                return order
            if order.status != OrderStatus.PENDING:
                raise InvalidStateError(f"Order is {order.status.value}, payment proof not accepted")

            SettlementService.transition(
                db,
                order_id,
                (OrderStatus.PENDING,),
                OrderStatus.AWAITING_VERIFICATION,
                payment_method=PaymentMethod.MANUAL_TRANSFER,
                payment_reference=reference
            )
            db.flush()
            db.refresh(order)

        logger.info(f"Order {order_id} awaiting manual payment verification")
        return order

    @staticmethod
    def refund(db: Session, order_id: str) -> Order:
        """Administrative correction of a paid order; gives its units back to capacity."""
        with atomic(db):
            order = SettlementService.get_order(db, order_id, lock=True)

            if order.status == OrderStatus.CANCELLED:
                return order
            if order.status != OrderStatus.SUCCESS:
                raise InvalidStateError(f"Only paid orders can be refunded (status: {order.status.value})")
            if any(ticket.status == TicketStatus.USED for ticket in order.tickets):
                raise InvalidStateError("Order has tickets that were already used")

            returned = order.ticket_count
            for item in sorted(order.items, key=lambda i: i.ticket_type_id):
                ticket_type = InventoryLedger.lock_ticket_type(db, item.ticket_type_id)
                ticket_type.sold = max(0, ticket_type.sold - item.quantity)

            SettlementService.transition(db, order_id, (OrderStatus.SUCCESS,), OrderStatus.CANCELLED)
            SettlementService._move_tickets(db, order_id, (TicketStatus.ACTIVE,), TicketStatus.CANCELLED)
            db.flush()
            db.refresh(order)

        logger.info(f"Order {order_id} refunded, {returned} tickets returned to inventory")
        return order

    @staticmethod
    def expire_order(
        db: Session,
        order_id: str,
        now: Optional[datetime] = None,
        force: bool = False
    ) -> bool:
        """
        Expire one unpaid order in its own transaction.

        Without `force` only a PENDING order older than the expiry age
        qualifies, so orders awaiting manual verification are left alone.
        `force` (admin) also expires those, regardless of age. Returns False
        when the order no longer qualifies, which makes repeated runs no-ops.
        """
        with atomic(db):
            if now is None:
                now = clock.now(db)

            if force:
                expected = HOLDING_ORDER_STATUSES
                criteria = ()
            else:
                expected = (OrderStatus.PENDING,)
                cutoff = now - timedelta(hours=settings.order_expiry_hours)
                criteria = (Order.created_at < cutoff,)

            result = db.execute(
                update(Order)
                .where(
                    Order.id == order_id,
                    Order.status.in_(expected),
                    *criteria
                )
                .values(status=OrderStatus.EXPIRED)
                .execution_options(synchronize_session="evaluate")
            )
            if result.rowcount != 1:
                return False

            # Unpaid orders never reached `sold`; leaving HOLDING statuses frees their units
            SettlementService._move_tickets(db, order_id, (TicketStatus.PENDING,), TicketStatus.CANCELLED)

        logger.info(f"Order {order_id} expired")
        return True
