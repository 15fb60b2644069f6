from decimal import Decimal
import logging
from sqlalchemy.orm import Session

from boxoffice.database import atomic
from boxoffice.exceptions import ExpiredHoldError, ForbiddenError, NotFoundError, QuantityOutOfRangeError
from boxoffice.models.order import Order, OrderItem, OrderStatus, PaymentMethod
from boxoffice.models.reservation import Reservation, ReservationStatus
from boxoffice.models.ticket import Ticket, TicketStatus
from boxoffice.schemas.order import BuyerInfo, TicketHolder
from boxoffice.services import clock
from boxoffice.services.inventory import InventoryLedger
from boxoffice.services.reservation import ReservationService

logger = logging.getLogger(__name__)


class PurchaseService:
    @staticmethod
    def _check_reservation(db: Session, reservation_id: str, session_id: str, now) -> Reservation:
        reservation = ReservationService._get_owned(db, reservation_id, session_id, lock=True)

        if reservation.status == ReservationStatus.EXPIRED:
            raise ExpiredHoldError(reservation_id)
        if reservation.status != ReservationStatus.ACTIVE:
            raise ReservationService._not_active_error(reservation)

        if reservation.expires_at < now:
            raise ExpiredHoldError(reservation_id)

        return reservation

    @staticmethod
    def convert(
        db: Session,
        reservation_id: str,
        session_id: str,
        buyer: BuyerInfo,
        holders: list[TicketHolder],
        payment_method: PaymentMethod = PaymentMethod.CARD
    ) -> Order:
        """Turn an active hold into a PENDING order with PENDING tickets."""
        return PurchaseService.convert_bulk(
            db, [reservation_id], session_id, buyer, holders, payment_method
        )

    @staticmethod
    def convert_bulk(
        db: Session,
        reservation_ids: list[str],
        session_id: str,
        buyer: BuyerInfo,
        holders: list[TicketHolder],
        payment_method: PaymentMethod = PaymentMethod.CARD
    ) -> Order:
        """
        Convert one or more holds of the same session into a single order,
        one line item per reservation. Holders are assigned to tickets in
        reservation order.

        `sold` is not touched here: the order's quantity keeps counting as
        held until settlement moves it into `sold` or releases it.
        """
        if not reservation_ids:
            raise QuantityOutOfRangeError("At least one reservation is required")
        if len(set(reservation_ids)) != len(reservation_ids):
            raise QuantityOutOfRangeError("Each reservation may appear only once")

        with atomic(db):
            now = clock.now(db)

            reservations = [
                PurchaseService._check_reservation(db, reservation_id, session_id, now)
                for reservation_id in reservation_ids
            ]
            # Serialise with reserves and settlements touching the same types
            for ticket_type_id in sorted({r.ticket_type_id for r in reservations}):
                InventoryLedger.lock_ticket_type(db, ticket_type_id)

            expected = sum(r.quantity for r in reservations)
            if len(holders) != expected:
                raise QuantityOutOfRangeError(
                    f"Expected {expected} ticket holders, got {len(holders)}"
                )

            amount = sum(
                (Decimal(r.unit_price) * r.quantity for r in reservations),
                Decimal("0")
            )
            order = Order(
                session_id=session_id,
                status=OrderStatus.PENDING,
                amount=amount,
                buyer_name=buyer.full_name,
                buyer_email=buyer.email,
                buyer_phone=buyer.phone,
                payment_method=payment_method,
                created_at=now
            )
            db.add(order)
            db.flush()

            holder_iter = iter(holders)
            for reservation in reservations:
                db.add(OrderItem(
                    order_id=order.id,
                    ticket_type_id=reservation.ticket_type_id,
                    reservation_id=reservation.id,
                    quantity=reservation.quantity,
                    unit_price=reservation.unit_price
                ))
                for _ in range(reservation.quantity):
                    holder = next(holder_iter)
                    db.add(Ticket(
                        order_id=order.id,
                        ticket_type_id=reservation.ticket_type_id,
                        holder_name=holder.full_name,
                        holder_email=holder.email,
                        holder_phone=holder.phone,
                        status=TicketStatus.PENDING
                    ))

                if not ReservationService.transition(
                    db,
                    reservation.id,
                    ReservationStatus.ACTIVE,
                    ReservationStatus.CONVERTED,
                    order_id=order.id
                ):
                    db.refresh(reservation)
                    raise ReservationService._not_active_error(reservation)

            db.flush()
            db.refresh(order)

        logger.info(
            f"Order {order.id} created from reservations {', '.join(reservation_ids)} "
            f"({expected} tickets, amount {amount})"
        )
        return order

    @staticmethod
    def get_order(db: Session, order_id: str, session_id: str) -> Order:
        with atomic(db):
            order = db.query(Order).filter(Order.id == order_id).first()
            if not order:
                raise NotFoundError("Order", order_id)
            if order.session_id != session_id:
                raise ForbiddenError("Order")
        return order
