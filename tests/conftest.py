import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["USE_DATABASE_CLOCK"] = "false"
os.environ["ADMIN_TOKEN"] = "admin-secret"
os.environ["CRON_SECRET"] = "cron-secret"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from boxoffice.database import build_engine, get_db, init_db
from boxoffice.main import app
from boxoffice.models import Event, EventStatus, TicketType
from boxoffice.routers.cron import get_session_factory
from boxoffice.services import clock


class FrozenClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self, db=None) -> datetime:
        return self.current

    def advance(self, seconds: float = 0, minutes: float = 0, hours: float = 0):
        self.current += timedelta(seconds=seconds, minutes=minutes, hours=hours)


@pytest.fixture
def frozen_clock(monkeypatch):
    frozen = FrozenClock(datetime(2026, 10, 18, 12, 0, 0))
    monkeypatch.setattr(clock, "now", frozen)
    return frozen


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'boxoffice.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory, frozen_clock):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_ticket_type(session_factory):
    def _make(
        capacity: int = 10,
        price: Decimal = Decimal("50.00"),
        name: str = "General Admission",
        event_status: EventStatus = EventStatus.PUBLISHED,
        max_per_order: int = 10,
        event_id: int = None
    ) -> TicketType:
        session = session_factory()
        try:
            if event_id is None:
                event = Event(title="Summer Festival", status=event_status)
                session.add(event)
                session.flush()
                event_id = event.id
            ticket_type = TicketType(
                event_id=event_id,
                name=name,
                price=price,
                capacity=capacity,
                sold=0,
                max_per_order=max_per_order
            )
            session.add(ticket_type)
            session.commit()
            return ticket_type
        finally:
            session.close()

    return _make


@pytest.fixture
def ticket_type(make_ticket_type):
    return make_ticket_type()


@pytest.fixture
def client(session_factory, frozen_clock):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
