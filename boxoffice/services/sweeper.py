from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional
import logging
from sqlalchemy import update
from sqlalchemy.orm import Session

from boxoffice.config import get_settings
from boxoffice.database import atomic
from boxoffice.models.order import Order, OrderStatus
from boxoffice.models.reservation import Reservation, ReservationStatus
from boxoffice.services import clock
from boxoffice.services.settlement import SettlementService

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    reservations_expired: int = 0
    orders_expired: int = 0
    errors: list[str] = field(default_factory=list)
    started_at: Optional[datetime] = None

    def as_dict(self) -> dict:
        return {
            "reservations_expired": self.reservations_expired,
            "orders_expired": self.orders_expired,
            "errors": self.errors,
            "started_at": self.started_at
        }


class ExpirationSweeper:
    """
    Reclaims inventory from abandoned holds and unpaid orders.

    Every record is expired in its own short transaction with an update
    guarded on the record's current status, so overlapping runs, retries and
    concurrent user actions can only ever apply one transition. A failure on
    one record is logged and the rest of the batch is still processed.
    """

    @staticmethod
    def expired_reservation_ids(db: Session, now: datetime, limit: Optional[int] = None) -> list[str]:
        query = db.query(Reservation.id).filter(
            Reservation.status == ReservationStatus.ACTIVE,
            Reservation.expires_at < now
        ).order_by(Reservation.expires_at.asc())
        if limit:
            query = query.limit(limit)
        return [row.id for row in query.all()]

    @staticmethod
    def overdue_order_ids(db: Session, now: datetime, limit: Optional[int] = None) -> list[str]:
        cutoff = now - timedelta(hours=settings.order_expiry_hours)
        query = db.query(Order.id).filter(
            Order.status == OrderStatus.PENDING,
            Order.created_at < cutoff
        ).order_by(Order.created_at.asc())
        if limit:
            query = query.limit(limit)
        return [row.id for row in query.all()]

    @staticmethod
    def expire_reservation(db: Session, reservation_id: str, now: datetime) -> bool:
        """ACTIVE -> EXPIRED if the hold is still active and past its expiry."""
        with atomic(db):
            result = db.execute(
                update(Reservation)
                .where(
                    Reservation.id == reservation_id,
                    Reservation.status == ReservationStatus.ACTIVE,
                    Reservation.expires_at < now
                )
                .values(status=ReservationStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    @staticmethod
    def preview(db: Session, now: Optional[datetime] = None) -> dict:
        """Counts of records the next run would pick up."""
        with atomic(db):
            if now is None:
                now = clock.now(db)
            return {
                "reservations_pending_expiration": len(ExpirationSweeper.expired_reservation_ids(db, now)),
                "orders_pending_expiration": len(ExpirationSweeper.overdue_order_ids(db, now)),
                "checked_at": now
            }

    @staticmethod
    def run(
        session_factory: Callable[[], Session],
        now: Optional[datetime] = None,
        batch_size: Optional[int] = None
    ) -> SweepResult:
        batch_size = batch_size or settings.sweep_batch_size
        db = session_factory()
        try:
            if now is None:
                with atomic(db):
                    now = clock.now(db)
            result = SweepResult(started_at=now)

            with atomic(db):
                reservation_ids = ExpirationSweeper.expired_reservation_ids(db, now, batch_size)
                order_ids = ExpirationSweeper.overdue_order_ids(db, now, batch_size)

            for reservation_id in reservation_ids:
                try:
                    if ExpirationSweeper.expire_reservation(db, reservation_id, now):
                        result.reservations_expired += 1
                except Exception as e:
                    logger.error(f"Failed to expire reservation {reservation_id}: {e}")
                    result.errors.append(f"Reservation {reservation_id}: {e}")

            for order_id in order_ids:
                try:
                    if SettlementService.expire_order(db, order_id, now=now):
                        result.orders_expired += 1
                except Exception as e:
                    logger.error(f"Failed to expire order {order_id}: {e}")
                    result.errors.append(f"Order {order_id}: {e}")
        finally:
            db.close()

        logger.info(
            f"Sweep finished: {result.reservations_expired} reservations and "
            f"{result.orders_expired} orders expired, {len(result.errors)} errors"
        )
        return result
