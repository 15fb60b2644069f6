from sqlalchemy.orm import Session

from boxoffice.models import Order, Reservation, TicketType
from boxoffice.schemas.order import BuyerInfo, TicketHolder
from boxoffice.services import clock
from boxoffice.services.inventory import InventoryLedger

SESSION_A = "session-a"
SESSION_B = "session-b"


def buyer() -> BuyerInfo:
    return BuyerInfo(full_name="Dana Buyer", email="dana@example.com", phone="+15550100")


def holders(count: int) -> list[TicketHolder]:
    return [
        TicketHolder(full_name=f"Holder {i}", email=f"holder{i}@example.com")
        for i in range(count)
    ]


def load_ticket_type(session_factory, ticket_type_id: int) -> TicketType:
    db: Session = session_factory()
    try:
        return db.query(TicketType).filter(TicketType.id == ticket_type_id).one()
    finally:
        db.close()


def load_reservation(session_factory, reservation_id: str) -> Reservation:
    db: Session = session_factory()
    try:
        return db.query(Reservation).filter(Reservation.id == reservation_id).one()
    finally:
        db.close()


def load_order(session_factory, order_id: str) -> Order:
    db: Session = session_factory()
    try:
        order = db.query(Order).filter(Order.id == order_id).one()
        # Touch relationships while the session is open
        list(order.items)
        list(order.tickets)
        return order
    finally:
        db.close()


def inventory(session_factory, ticket_type_id: int) -> dict:
    db: Session = session_factory()
    try:
        return InventoryLedger.summary(db, ticket_type_id, clock.now())
    finally:
        db.close()


def assert_capacity_respected(session_factory, ticket_type_id: int):
    """sold + held never exceeds capacity, and sold never goes negative."""
    summary = inventory(session_factory, ticket_type_id)
    assert summary["sold"] >= 0
    assert summary["sold"] + summary["reserved"] + summary["pending"] <= summary["capacity"]
