from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from boxoffice.exceptions import (
    ErrorCode,
    InsufficientInventoryError,
    InvalidStateError,
    TicketTypeNotFoundError,
)
from boxoffice.models.event import TicketType
from boxoffice.models.order import Order, OrderItem, HOLDING_ORDER_STATUSES
from boxoffice.models.reservation import Reservation, ReservationStatus


class InventoryLedger:
    """Availability arithmetic for ticket types.

    available = capacity - sold - held, where held is the quantity of
    unexpired ACTIVE reservations plus the line items of unpaid orders.
    """

    @staticmethod
    def lock_ticket_type(db: Session, ticket_type_id: int) -> TicketType:
        """Load a ticket type with a row lock held until the transaction ends."""
        ticket_type = db.query(TicketType).filter(
            TicketType.id == ticket_type_id
        ).with_for_update().populate_existing().first()

        if not ticket_type:
            raise TicketTypeNotFoundError(ticket_type_id)
        return ticket_type

    @staticmethod
    def reserved_quantity(db: Session, ticket_type_id: int, now: datetime) -> int:
        """Units held by ACTIVE reservations whose expires_at has not passed."""
        total = db.query(func.coalesce(func.sum(Reservation.quantity), 0)).filter(
            Reservation.ticket_type_id == ticket_type_id,
            Reservation.status == ReservationStatus.ACTIVE,
            Reservation.expires_at >= now
        ).scalar()
        return int(total or 0)

    @staticmethod
    def pending_order_quantity(db: Session, ticket_type_id: int) -> int:
        """Units held by orders that are converted but not yet paid."""
        total = db.query(func.coalesce(func.sum(OrderItem.quantity), 0)).join(
            Order, Order.id == OrderItem.order_id
        ).filter(
            OrderItem.ticket_type_id == ticket_type_id,
            Order.status.in_(HOLDING_ORDER_STATUSES)
        ).scalar()
        return int(total or 0)

    @staticmethod
    def available_quantity(db: Session, ticket_type: TicketType, now: datetime) -> int:
        held = (
            InventoryLedger.reserved_quantity(db, ticket_type.id, now)
            + InventoryLedger.pending_order_quantity(db, ticket_type.id)
        )
        return ticket_type.capacity - ticket_type.sold - held

    @staticmethod
    def try_reserve(
        db: Session,
        ticket_type_id: int,
        quantity: int,
        session_id: str,
        ttl: timedelta,
        now: datetime,
        ticket_type: Optional[TicketType] = None
    ) -> Reservation:
        """
        Check availability and insert the hold in the caller's transaction.
        The ticket type row is locked first, so no other reserve, conversion
        or settlement for the same type can interleave between the check and
        the insert. Nothing is written when the check fails.

        A session keeps at most one live hold per ticket type. That rule is
        checked after capacity, so a sold-out type always reports
        InsufficientInventoryError.
        """
        if ticket_type is None:
            ticket_type = InventoryLedger.lock_ticket_type(db, ticket_type_id)

        available = InventoryLedger.available_quantity(db, ticket_type, now)
        if quantity > available:
            raise InsufficientInventoryError(available)

        existing = db.query(Reservation.id).filter(
            Reservation.session_id == session_id,
            Reservation.ticket_type_id == ticket_type.id,
            Reservation.status == ReservationStatus.ACTIVE,
            Reservation.expires_at >= now
        ).first()
        if existing:
            raise InvalidStateError(
                "You already have a reservation for this ticket type",
                code=ErrorCode.DUPLICATE_RESERVATION
            )

        reservation = Reservation(
            session_id=session_id,
            ticket_type_id=ticket_type.id,
            quantity=quantity,
            unit_price=ticket_type.price,
            status=ReservationStatus.ACTIVE,
            created_at=now,
            expires_at=now + ttl
        )
        db.add(reservation)
        db.flush()
        return reservation

    @staticmethod
    def summary(db: Session, ticket_type_id: int, now: datetime) -> dict:
        """Display-only counters. Never base a write on these numbers."""
        ticket_type = db.query(TicketType).filter(TicketType.id == ticket_type_id).first()
        if not ticket_type:
            raise TicketTypeNotFoundError(ticket_type_id)
        return InventoryLedger._summarize(db, ticket_type, now)

    @staticmethod
    def summary_for_event(db: Session, event_id: int, now: datetime) -> list[dict]:
        ticket_types = db.query(TicketType).filter(
            TicketType.event_id == event_id
        ).order_by(TicketType.price.asc(), TicketType.id.asc()).all()
        return [InventoryLedger._summarize(db, tt, now) for tt in ticket_types]

    @staticmethod
    def _summarize(db: Session, ticket_type: TicketType, now: datetime) -> dict:
        reserved = InventoryLedger.reserved_quantity(db, ticket_type.id, now)
        pending = InventoryLedger.pending_order_quantity(db, ticket_type.id)
        available = ticket_type.capacity - ticket_type.sold - reserved - pending
        return {
            "ticket_type_id": ticket_type.id,
            "event_id": ticket_type.event_id,
            "name": ticket_type.name,
            "price": ticket_type.price,
            "capacity": ticket_type.capacity,
            "sold": ticket_type.sold,
            "reserved": reserved,
            "pending": pending,
            "available": max(0, available)
        }
