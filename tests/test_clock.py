from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import event, func, select

from boxoffice.database import atomic
from boxoffice.models import Reservation, ReservationStatus
from boxoffice.services import clock
from boxoffice.services.reservation import ReservationService
from tests.helpers import SESSION_A


@pytest.fixture
def database_clock(monkeypatch):
    monkeypatch.setattr(clock.settings, "use_database_clock", True)


@pytest.fixture
def statements(engine):
    seen = []

    def record(conn, cursor, statement, parameters, context, executemany):
        seen.append(statement)

    event.listen(engine, "before_cursor_execute", record)
    yield seen
    event.remove(engine, "before_cursor_execute", record)


@pytest.fixture
def recorded_now(monkeypatch):
    """Wrap ``clock.now`` so tests can see the value each caller was given."""
    values = []
    real_now = clock.now

    def _now(db=None):
        value = real_now(db)
        values.append(value)
        return value

    monkeypatch.setattr(clock, "now", _now)
    return values


def database_time(session_factory) -> datetime:
    db = session_factory()
    try:
        with atomic(db):
            return db.scalar(select(func.current_timestamp()))
    finally:
        db.close()


def insert_hold(session_factory, ticket_type_id: int, expires_at: datetime) -> str:
    db = session_factory()
    try:
        with atomic(db):
            reservation = Reservation(
                session_id=SESSION_A,
                ticket_type_id=ticket_type_id,
                quantity=1,
                unit_price=Decimal("50.00"),
                status=ReservationStatus.ACTIVE,
                created_at=expires_at - timedelta(minutes=10),
                expires_at=expires_at
            )
            db.add(reservation)
            db.flush()
            return reservation.id
    finally:
        db.close()


def test_process_clock_is_naive_utc(session_factory):
    db = session_factory()
    try:
        value = clock.now(db)
    finally:
        db.close()

    assert value.tzinfo is None
    assert abs(value - datetime.now(timezone.utc).replace(tzinfo=None)) < timedelta(seconds=5)


def test_database_clock_reads_current_timestamp(database_clock, session_factory, statements):
    db = session_factory()
    try:
        with atomic(db):
            value = clock.now(db)
            reference = db.scalar(select(func.current_timestamp()))
    finally:
        db.close()

    assert any("CURRENT_TIMESTAMP" in s for s in statements)
    assert isinstance(value, datetime)
    assert value.tzinfo is None
    # SQLite reports whole seconds
    assert value.microsecond == 0
    assert abs(reference - value) <= timedelta(seconds=1)


def test_database_clock_without_session_uses_process_clock(database_clock, statements):
    value = clock.now()

    assert value.tzinfo is None
    assert statements == []


def test_countdown_uses_database_time(database_clock, session_factory, statements, recorded_now, ticket_type):
    expires_at = database_time(session_factory) + timedelta(minutes=5)
    reservation_id = insert_hold(session_factory, ticket_type.id, expires_at)
    statements.clear()

    db = session_factory()
    try:
        view = ReservationService.get(db, reservation_id, SESSION_A)
    finally:
        db.close()

    assert any("CURRENT_TIMESTAMP" in s for s in statements)
    decided_at = recorded_now[-1]
    assert decided_at.microsecond == 0
    assert view["is_expired"] is False
    assert view["remaining_seconds"] == int((expires_at - decided_at).total_seconds())


def test_lapse_is_judged_by_database_time(database_clock, session_factory, recorded_now, ticket_type):
    expires_at = database_time(session_factory) - timedelta(seconds=30)
    reservation_id = insert_hold(session_factory, ticket_type.id, expires_at)

    db = session_factory()
    try:
        view = ReservationService.get(db, reservation_id, SESSION_A)
    finally:
        db.close()

    assert recorded_now[-1] > expires_at
    assert view["is_expired"] is True
    assert view["remaining_seconds"] == 0
    assert view["reservation"].status == ReservationStatus.ACTIVE
