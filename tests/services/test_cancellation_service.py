"""
Tests for booking_engine/services/cancellation_service.py
"""
import pytest

from booking_engine.engine.event_bus import BookingEventType, event_bus
from booking_engine.exceptions import BookingNotFound, InvalidStatusTransition
from booking_engine.models.ontology import BookingStatus, DiscountType, PromoCode
from booking_engine.models.schemas import ConfirmRequest
from booking_engine.services.booking_status_service import BookingStatusService
from booking_engine.services.cancellation_service import CancellationService
from booking_engine.services.inventory_store import InventoryStore
from booking_engine.services.reservation_service import ReservationService

from conftest import night, read_inventory

GUEST = {"guest_ref": "G-2002", "name": "Grace Hopper", "email": "grace@example.com"}


# ── helpers ──────────────────────────────────────────────────────────

def _book(session_factory, catalog, check_in=1, check_out=4, **kwargs):
    request = ConfirmRequest(hotel_id=catalog.hotel_id, room_type_id=catalog.room_type_id,
                             check_in_date=night(check_in), check_out_date=night(check_out), **kwargs)
    return ReservationService(session_factory).confirm_request(request, GUEST)


def _capacities(session_factory, catalog, offsets=(1, 2, 3)):
    return [read_inventory(session_factory, catalog.room_type_id, o).available_rooms for o in offsets]


class _BrokenStore(InventoryStore):
    """回补第二晚时失败"""

    def increment_nights(self, db, room_type_id, nights):
        nights = sorted(nights)
        self._increment(db, room_type_id, nights[0])
        raise RuntimeError("disk I/O error")


# ── tests ────────────────────────────────────────────────────────────

class TestCancel:

    def test_cancel_restores_every_night(self, session_factory, catalog):
        booking = _book(session_factory, catalog)
        assert _capacities(session_factory, catalog) == [4, 4, 4]

        cancelled = CancellationService(session_factory).cancel(booking.id, reason="change of plans")

        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.cancelled_at is not None
        assert cancelled.cancellation_reason == "change of plans"
        assert _capacities(session_factory, catalog) == [5, 5, 5]

    def test_idempotent(self, session_factory, catalog):
        booking = _book(session_factory, catalog)
        svc = CancellationService(session_factory)
        svc.cancel(booking.id)
        again = svc.cancel(booking.id, reason="second click")

        assert again.status == BookingStatus.CANCELLED
        assert again.cancellation_reason is None
        assert _capacities(session_factory, catalog) == [5, 5, 5]

    def test_not_found(self, session_factory, catalog):
        with pytest.raises(BookingNotFound):
            CancellationService(session_factory).cancel(999)

    def test_checked_in_cannot_cancel(self, session_factory, catalog):
        booking = _book(session_factory, catalog)
        BookingStatusService(session_factory).check_in(booking.id)

        with pytest.raises(InvalidStatusTransition):
            CancellationService(session_factory).cancel(booking.id)
        assert _capacities(session_factory, catalog) == [4, 4, 4]

    def test_partial_credit_rolls_back(self, session_factory, catalog):
        booking = _book(session_factory, catalog)
        svc = CancellationService(session_factory, inventory_store=_BrokenStore(session_factory))

        with pytest.raises(RuntimeError):
            svc.cancel(booking.id)

        assert _capacities(session_factory, catalog) == [4, 4, 4]
        assert ReservationService(session_factory).get_booking(booking.id).status == BookingStatus.CONFIRMED

    def test_promo_usage_not_released(self, db_session, session_factory, catalog):
        promo = PromoCode(hotel_id=catalog.hotel_id, code="ONCE", type=DiscountType.FIXED,
                          value=1000, usage_limit=1)
        db_session.add(promo)
        db_session.commit()
        booking = _book(session_factory, catalog, promo_code="ONCE")

        CancellationService(session_factory).cancel(booking.id)

        with session_factory() as db:
            assert db.get(PromoCode, promo.id).usage_count == 1

    def test_publishes_cancelled_event(self, session_factory, catalog):
        received = []
        event_bus.subscribe(BookingEventType.BOOKING_CANCELLED, received.append)
        booking = _book(session_factory, catalog)

        CancellationService(session_factory).cancel(booking.id, reason="weather")
        CancellationService(session_factory).cancel(booking.id)

        assert len(received) == 1
        assert received[0].data["cancellation_reason"] == "weather"
