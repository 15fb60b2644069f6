from datetime import datetime, timedelta
from typing import Optional
import logging
from sqlalchemy import update
from sqlalchemy.orm import Session

from boxoffice.config import get_settings
from boxoffice.database import atomic
from boxoffice.exceptions import (
    ErrorCode,
    ExpiredHoldError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    QuantityOutOfRangeError,
)
from boxoffice.models.event import EventStatus
from boxoffice.models.reservation import Reservation, ReservationStatus
from boxoffice.services import clock
from boxoffice.services.inventory import InventoryLedger

settings = get_settings()
logger = logging.getLogger(__name__)


class ReservationService:
    @staticmethod
    def validate_quantity(quantity: int, max_per_order: Optional[int] = None):
        limit = settings.max_reservation_quantity
        if max_per_order:
            limit = min(limit, max_per_order)
        if quantity < 1:
            raise QuantityOutOfRangeError("Quantity must be at least 1")
        if quantity > limit:
            raise QuantityOutOfRangeError(f"Maximum {limit} tickets can be reserved at once")

    @staticmethod
    def validate_ttl(ttl_minutes: int):
        if ttl_minutes < 1 or ttl_minutes > settings.max_ttl_minutes:
            raise QuantityOutOfRangeError(
                f"Expiration time must be between 1 and {settings.max_ttl_minutes} minutes"
            )

    @staticmethod
    def _reserve_locked(
        db: Session,
        session_id: str,
        ticket_type_id: int,
        quantity: int,
        ttl_minutes: int,
        now: datetime
    ) -> Reservation:
        ticket_type = InventoryLedger.lock_ticket_type(db, ticket_type_id)

        if ticket_type.event.status != EventStatus.PUBLISHED:
            raise InvalidStateError(
                "Event is not available for booking",
                code=ErrorCode.EVENT_NOT_AVAILABLE
            )

        ReservationService.validate_quantity(quantity, ticket_type.max_per_order)

        return InventoryLedger.try_reserve(
            db,
            ticket_type_id,
            quantity,
            session_id,
            timedelta(minutes=ttl_minutes),
            now,
            ticket_type=ticket_type
        )

    @staticmethod
    def create(
        db: Session,
        session_id: str,
        ticket_type_id: int,
        quantity: int,
        ttl_minutes: Optional[int] = None
    ) -> Reservation:
        """Place a time-boxed hold on `quantity` units of a ticket type."""
        if ttl_minutes is None:
            ttl_minutes = settings.default_ttl_minutes
        ReservationService.validate_quantity(quantity)
        ReservationService.validate_ttl(ttl_minutes)

        with atomic(db):
            now = clock.now(db)
            reservation = ReservationService._reserve_locked(
                db, session_id, ticket_type_id, quantity, ttl_minutes, now
            )

        logger.info(
            f"Reservation {reservation.id} created: {quantity} x ticket type {ticket_type_id}, "
            f"expires {reservation.expires_at}"
        )
        return reservation

    @staticmethod
    def create_bulk(
        db: Session,
        session_id: str,
        items: list[tuple[int, int]],
        ttl_minutes: Optional[int] = None
    ) -> list[Reservation]:
        """
        Hold several ticket types as one unit: either every entry gets a
        reservation or none does. Rows are locked in ticket type id order so
        two overlapping bulk requests cannot deadlock.
        """
        if ttl_minutes is None:
            ttl_minutes = settings.default_ttl_minutes
        if not items:
            raise QuantityOutOfRangeError("At least one reservation is required")
        if len(items) > settings.max_bulk_items:
            raise QuantityOutOfRangeError(
                f"Maximum {settings.max_bulk_items} different ticket types can be reserved at once"
            )
        ticket_type_ids = [ticket_type_id for ticket_type_id, _ in items]
        if len(set(ticket_type_ids)) != len(ticket_type_ids):
            raise QuantityOutOfRangeError("Each ticket type may appear only once")
        for _, quantity in items:
            ReservationService.validate_quantity(quantity)
        ReservationService.validate_ttl(ttl_minutes)

        with atomic(db):
            now = clock.now(db)
            created = {}
            for ticket_type_id, quantity in sorted(items):
                created[ticket_type_id] = ReservationService._reserve_locked(
                    db, session_id, ticket_type_id, quantity, ttl_minutes, now
                )

        logger.info(f"Bulk reservation for session {session_id}: {len(created)} ticket types held")
        return [created[ticket_type_id] for ticket_type_id in ticket_type_ids]

    @staticmethod
    def _get_owned(db: Session, reservation_id: str, session_id: str, lock: bool = False) -> Reservation:
        query = db.query(Reservation).filter(Reservation.id == reservation_id)
        if lock:
            query = query.with_for_update().populate_existing()
        reservation = query.first()

        if not reservation:
            raise NotFoundError("Reservation", reservation_id)
        if reservation.session_id != session_id:
            raise ForbiddenError("Reservation")
        return reservation

    @staticmethod
    def get(db: Session, reservation_id: str, session_id: str) -> dict:
        """Return the reservation with its countdown timer."""
        with atomic(db):
            reservation = ReservationService._get_owned(db, reservation_id, session_id)
            now = clock.now(db)
        return ReservationService.timer_view(reservation, now)

    @staticmethod
    def timer_view(reservation: Reservation, now: datetime) -> dict:
        remaining = (reservation.expires_at - now).total_seconds()
        return {
            "reservation": reservation,
            "remaining_seconds": max(0, int(remaining)),
            "is_expired": remaining < 0 or reservation.status == ReservationStatus.EXPIRED
        }

    @staticmethod
    def list_active(db: Session, session_id: str) -> list[Reservation]:
        with atomic(db):
            now = clock.now(db)
            return db.query(Reservation).filter(
                Reservation.session_id == session_id,
                Reservation.status == ReservationStatus.ACTIVE,
                Reservation.expires_at >= now
            ).order_by(Reservation.created_at.desc()).all()

    @staticmethod
    def transition(
        db: Session,
        reservation_id: str,
        expected: ReservationStatus,
        target: ReservationStatus,
        **values
    ) -> bool:
        """
        Move a reservation from `expected` to `target` only if it is still in
        `expected`. Returns False when another actor already moved it.
        """
        result = db.execute(
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.status == expected
            )
            .values(status=target, **values)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    @staticmethod
    def _not_active_error(reservation: Reservation) -> InvalidStateError:
        codes = {
            ReservationStatus.CONVERTED: ErrorCode.ALREADY_CONVERTED,
            ReservationStatus.CANCELLED: ErrorCode.ALREADY_CANCELLED,
            ReservationStatus.EXPIRED: ErrorCode.RESERVATION_EXPIRED,
        }
        return InvalidStateError(
            f"Reservation is not active (status: {reservation.status.value})",
            code=codes.get(reservation.status, ErrorCode.NOT_ACTIVE)
        )

    @staticmethod
    def cancel(db: Session, reservation_id: str, session_id: str) -> Reservation:
        """Release a hold. `sold` is untouched since nothing was sold."""
        with atomic(db):
            reservation = ReservationService._get_owned(db, reservation_id, session_id, lock=True)

            if reservation.status != ReservationStatus.ACTIVE:
                raise ReservationService._not_active_error(reservation)

            if not ReservationService.transition(
                db, reservation_id, ReservationStatus.ACTIVE, ReservationStatus.CANCELLED
            ):
                db.refresh(reservation)
                raise ReservationService._not_active_error(reservation)

        logger.info(f"Reservation {reservation_id} cancelled by holder")
        return reservation

    @staticmethod
    def cancel_all(db: Session, session_id: str, reservation_ids: Optional[list[str]] = None) -> int:
        """Cancel every ACTIVE reservation a session holds (checkout abandoned)."""
        with atomic(db):
            query = db.query(Reservation.id).filter(
                Reservation.session_id == session_id,
                Reservation.status == ReservationStatus.ACTIVE
            )
            if reservation_ids:
                query = query.filter(Reservation.id.in_(reservation_ids))

            cancelled = 0
            for (reservation_id,) in query.all():
                if ReservationService.transition(
                    db, reservation_id, ReservationStatus.ACTIVE, ReservationStatus.CANCELLED
                ):
                    cancelled += 1

        if cancelled:
            logger.info(f"Cancelled {cancelled} reservations for session {session_id}")
        return cancelled

    @staticmethod
    def extend(db: Session, reservation_id: str, session_id: str, additional_minutes: int) -> Reservation:
        """Push expires_at back. Only an ACTIVE, unexpired hold can be extended."""
        if additional_minutes < 1 or additional_minutes > settings.max_extension_minutes:
            raise QuantityOutOfRangeError(
                f"Additional time must be between 1 and {settings.max_extension_minutes} minutes"
            )

        with atomic(db):
            reservation = ReservationService._get_owned(db, reservation_id, session_id, lock=True)

            if reservation.status == ReservationStatus.EXPIRED:
                raise ExpiredHoldError(reservation_id)
            if reservation.status != ReservationStatus.ACTIVE:
                raise ReservationService._not_active_error(reservation)

            now = clock.now(db)
            if reservation.expires_at < now:
                raise ExpiredHoldError(reservation_id)

            new_expires_at = reservation.expires_at + timedelta(minutes=additional_minutes)
            max_expires_at = reservation.created_at + timedelta(minutes=settings.max_total_hold_minutes)
            if new_expires_at > max_expires_at:
                raise QuantityOutOfRangeError(
                    f"A reservation cannot be held for more than {settings.max_total_hold_minutes} minutes"
                )

            if not ReservationService.transition(
                db,
                reservation_id,
                ReservationStatus.ACTIVE,
                ReservationStatus.ACTIVE,
                expires_at=new_expires_at
            ):
                db.refresh(reservation)
                raise ReservationService._not_active_error(reservation)

        logger.info(f"Reservation {reservation_id} extended to {reservation.expires_at}")
        return reservation
