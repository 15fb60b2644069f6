from datetime import timedelta

import pytest

from boxoffice.models import OrderStatus, ReservationStatus, TicketStatus
from boxoffice.services.purchase import PurchaseService
from boxoffice.services.reservation import ReservationService
from boxoffice.services.settlement import SettlementService
from boxoffice.services.sweeper import ExpirationSweeper
from tests.helpers import (
    SESSION_A,
    SESSION_B,
    assert_capacity_respected,
    buyer,
    holders,
    inventory,
    load_order,
    load_reservation,
)


def test_lapsed_holds_are_expired(db, session_factory, frozen_clock, make_ticket_type):
    first = make_ticket_type()
    second = make_ticket_type()
    lapsed = ReservationService.create(db, SESSION_A, first.id, 2, ttl_minutes=5)
    live = ReservationService.create(db, SESSION_A, second.id, 1, ttl_minutes=20)

    frozen_clock.advance(minutes=6)
    result = ExpirationSweeper.run(session_factory)

    assert result.reservations_expired == 1
    assert result.orders_expired == 0
    assert result.errors == []
    assert result.started_at == frozen_clock.current
    assert load_reservation(session_factory, lapsed.id).status == ReservationStatus.EXPIRED
    assert load_reservation(session_factory, live.id).status == ReservationStatus.ACTIVE
    assert inventory(session_factory, first.id)["available"] == 10
    assert inventory(session_factory, first.id)["sold"] == 0


def test_hold_at_its_expiry_instant_is_kept(db, session_factory, frozen_clock, ticket_type):
    reservation = ReservationService.create(db, SESSION_A, ticket_type.id, 1)

    frozen_clock.advance(minutes=10)
    assert ExpirationSweeper.run(session_factory).reservations_expired == 0
    assert load_reservation(session_factory, reservation.id).status == ReservationStatus.ACTIVE


def test_repeated_runs_are_noops(db, session_factory, frozen_clock, ticket_type):
    ReservationService.create(db, SESSION_A, ticket_type.id, 1)
    frozen_clock.advance(minutes=11)

    assert ExpirationSweeper.run(session_factory).reservations_expired == 1
    second = ExpirationSweeper.run(session_factory)
    assert second.reservations_expired == 0
    assert second.orders_expired == 0


def test_terminal_holds_are_untouched(db, session_factory, frozen_clock, make_ticket_type):
    first = make_ticket_type()
    second = make_ticket_type()
    converted = ReservationService.create(db, SESSION_A, first.id, 1)
    PurchaseService.convert(db, converted.id, SESSION_A, buyer(), holders(1))
    cancelled = ReservationService.create(db, SESSION_A, second.id, 1)
    ReservationService.cancel(db, cancelled.id, SESSION_A)

    frozen_clock.advance(minutes=11)
    assert ExpirationSweeper.run(session_factory).reservations_expired == 0
    assert load_reservation(session_factory, converted.id).status == ReservationStatus.CONVERTED
    assert load_reservation(session_factory, cancelled.id).status == ReservationStatus.CANCELLED


def test_overdue_orders_are_expired(db, session_factory, frozen_clock, ticket_type):
    old = ReservationService.create(db, SESSION_A, ticket_type.id, 2)
    old_order = PurchaseService.convert(db, old.id, SESSION_A, buyer(), holders(2))
    frozen_clock.advance(hours=12)
    recent = ReservationService.create(db, SESSION_B, ticket_type.id, 1)
    recent_order = PurchaseService.convert(db, recent.id, SESSION_B, buyer(), holders(1))

    frozen_clock.advance(hours=12, seconds=1)
    result = ExpirationSweeper.run(session_factory)

    assert result.orders_expired == 1
    expired = load_order(session_factory, old_order.id)
    assert expired.status == OrderStatus.EXPIRED
    assert [t.status for t in expired.tickets] == [TicketStatus.CANCELLED] * 2
    still_pending = load_order(session_factory, recent_order.id)
    assert still_pending.status == OrderStatus.PENDING
    assert [t.status for t in still_pending.tickets] == [TicketStatus.PENDING]
    summary = inventory(session_factory, ticket_type.id)
    assert summary["pending"] == 1
    assert summary["sold"] == 0
    assert_capacity_respected(session_factory, ticket_type.id)


def test_orders_awaiting_verification_are_skipped(db, session_factory, frozen_clock, ticket_type):
    reservation = ReservationService.create(db, SESSION_A, ticket_type.id, 1)
    order = PurchaseService.convert(db, reservation.id, SESSION_A, buyer(), holders(1))
    SettlementService.mark_awaiting_verification(db, order.id, SESSION_A, "TRX-1")

    frozen_clock.advance(hours=48)
    assert ExpirationSweeper.run(session_factory).orders_expired == 0
    assert load_order(session_factory, order.id).status == OrderStatus.AWAITING_VERIFICATION


def test_preview_counts_without_writing(db, session_factory, frozen_clock, make_ticket_type):
    first = make_ticket_type()
    second = make_ticket_type()
    ReservationService.create(db, SESSION_A, first.id, 1)
    converted = ReservationService.create(db, SESSION_A, second.id, 1)
    PurchaseService.convert(db, converted.id, SESSION_A, buyer(), holders(1))

    frozen_clock.advance(hours=25)
    preview = ExpirationSweeper.preview(db)

    assert preview == {
        "reservations_pending_expiration": 1,
        "orders_pending_expiration": 1,
        "checked_at": frozen_clock.current
    }
    assert ExpirationSweeper.preview(db)["reservations_pending_expiration"] == 1


def test_batch_size_limits_one_run(db, session_factory, frozen_clock, make_ticket_type):
    for _ in range(3):
        ReservationService.create(db, SESSION_A, make_ticket_type().id, 1)
    frozen_clock.advance(minutes=11)

    assert ExpirationSweeper.run(session_factory, batch_size=2).reservations_expired == 2
    assert ExpirationSweeper.run(session_factory, batch_size=2).reservations_expired == 1


def test_failure_on_one_record_does_not_stop_the_batch(
    db, session_factory, frozen_clock, make_ticket_type, monkeypatch
):
    broken = ReservationService.create(db, SESSION_A, make_ticket_type().id, 1)
    healthy = ReservationService.create(db, SESSION_A, make_ticket_type().id, 1)
    frozen_clock.advance(minutes=11)

    original = ExpirationSweeper.expire_reservation

    def flaky_expire(session, reservation_id, now):
        if reservation_id == broken.id:
            raise RuntimeError("disk on fire")
        return original(session, reservation_id, now)

    monkeypatch.setattr(ExpirationSweeper, "expire_reservation", staticmethod(flaky_expire))
    result = ExpirationSweeper.run(session_factory)

    assert result.reservations_expired == 1
    assert len(result.errors) == 1
    assert broken.id in result.errors[0]
    assert load_reservation(session_factory, healthy.id).status == ReservationStatus.EXPIRED
    assert load_reservation(session_factory, broken.id).status == ReservationStatus.ACTIVE


def test_sweep_uses_one_instant_for_the_whole_run(db, session_factory, frozen_clock, ticket_type):
    ReservationService.create(db, SESSION_A, ticket_type.id, 1)
    later = frozen_clock.current + timedelta(hours=1)

    result = ExpirationSweeper.run(session_factory, now=later)

    assert result.reservations_expired == 1
    assert result.as_dict()["started_at"] == later


@pytest.mark.parametrize("minutes_late", [0, 30])
def test_converted_before_expiry_is_never_swept(
    db, session_factory, frozen_clock, ticket_type, minutes_late
):
    reservation = ReservationService.create(db, SESSION_A, ticket_type.id, 1)
    frozen_clock.advance(minutes=9)
    PurchaseService.convert(db, reservation.id, SESSION_A, buyer(), holders(1))

    frozen_clock.advance(minutes=2 + minutes_late)
    ExpirationSweeper.run(session_factory)

    assert load_reservation(session_factory, reservation.id).status == ReservationStatus.CONVERTED
