"""Read-only endpoints must end their transaction before returning.

On SQLite every transaction starts with BEGIN IMMEDIATE, so a read left
open keeps the writer lock until the request session closes.
"""
from boxoffice.models import OrderStatus, TicketStatus
from boxoffice.routers import admin, inventory as inventory_routes, orders
from boxoffice.services.purchase import PurchaseService
from boxoffice.services.reservation import ReservationService
from tests.helpers import SESSION_A, SESSION_B, buyer, holders


def place_order(db, ticket_type_id, quantity=2):
    reservation = ReservationService.create(db, SESSION_A, ticket_type_id, quantity)
    return PurchaseService.convert(db, reservation.id, SESSION_A, buyer(), holders(quantity))


def test_ticket_type_inventory_releases_lock(db, session_factory, ticket_type):
    summary = inventory_routes.ticket_type_inventory(ticket_type.id, db=db)

    assert summary["capacity"] == 10
    assert not db.in_transaction()

    other = session_factory()
    try:
        ReservationService.create(other, SESSION_B, ticket_type.id, 1)
    finally:
        other.close()


def test_event_inventory_releases_lock(db, make_ticket_type):
    general = make_ticket_type(name="General")
    make_ticket_type(name="VIP", event_id=general.event_id)

    body = inventory_routes.event_inventory(general.event_id, db=db)

    assert [t["name"] for t in body["ticket_types"]] == ["General", "VIP"]
    assert not db.in_transaction()


def test_admin_view_loads_lines_inside_transaction(db, session_factory, ticket_type):
    order_id = place_order(db, ticket_type.id).id
    reader = session_factory()
    try:
        order = admin.view_order(order_id, db=reader)

        assert not reader.in_transaction()
        assert [i.quantity for i in order.items] == [2]
        assert [t.status for t in order.tickets] == [TicketStatus.PENDING] * 2
        # Reading the lines must not have opened a new transaction
        assert not reader.in_transaction()
    finally:
        reader.close()


def test_admin_expire_returns_committed_order(db, session_factory, ticket_type):
    order_id = place_order(db, ticket_type.id).id
    admin_db = session_factory()
    try:
        order = admin.expire_order(order_id, db=admin_db)

        assert order.status == OrderStatus.EXPIRED
        assert [t.status for t in order.tickets] == [TicketStatus.CANCELLED] * 2
        assert not admin_db.in_transaction()
    finally:
        admin_db.close()


def test_buyer_order_view_releases_lock(db, session_factory, ticket_type):
    order_id = place_order(db, ticket_type.id).id
    reader = session_factory()
    try:
        order = orders.get_order(order_id, session_id=SESSION_A, db=reader)

        assert len(order.tickets) == 2
        assert not reader.in_transaction()
    finally:
        reader.close()
