"""
Tests for booking_engine/services/inventory_store.py
Covers: stay_nights, get_inventory, get_rates, decrement_one_room,
        increment_one_room, increment_nights
"""
import pytest

from booking_engine.exceptions import ValidationError
from booking_engine.models.ontology import Hotel, InventoryRow, RateRow
from booking_engine.services.inventory_store import InventoryStore, stay_nights

from conftest import night, read_inventory, seed_room_type


# ── helpers ──────────────────────────────────────────────────────────

def _make_row(db, rooms=1, overbook=0, closed=False, offset=1):
    hotel = Hotel(name="Inn")
    db.add(hotel)
    db.flush()
    rt = seed_room_type(db, hotel, rooms=rooms, overbook=overbook, days=1, start=offset)
    if closed:
        db.get(InventoryRow, (rt.id, night(offset))).closed = True
    db.commit()
    return rt.id


# ── tests ────────────────────────────────────────────────────────────

class TestStayNights:

    def test_half_open_range(self):
        assert stay_nights(night(1), night(4)) == [night(1), night(2), night(3)]

    @pytest.mark.parametrize("check_out", [1, 0])
    def test_empty_range_rejected(self, check_out):
        with pytest.raises(ValidationError):
            stay_nights(night(1), night(check_out))


class TestQueries:

    def test_get_inventory_orders_by_date(self, session_factory, catalog):
        rows = InventoryStore(session_factory).get_inventory(catalog.room_type_id, night(1), night(4))
        assert [r.date for r in rows] == [night(1), night(2), night(3)]
        assert all(r.effective_capacity == 5 for r in rows)

    def test_get_rates_filters_rate_plan(self, db_session, session_factory, catalog):
        db_session.add(RateRow(room_type_id=catalog.room_type_id, date=night(1),
                               rate_plan_id=7, price_cents=8000))
        db_session.commit()
        store = InventoryStore(session_factory)

        base = store.get_rates(catalog.room_type_id, night(1), night(2))
        plan = store.get_rates(catalog.room_type_id, night(1), night(2), rate_plan_id=7)

        assert [r.price_cents for r in base] == [10000]
        assert [r.price_cents for r in plan] == [8000]


class TestDecrement:

    def test_consumes_rooms_first(self, db_session, session_factory):
        rt_id = _make_row(db_session, rooms=1, overbook=1)
        store = InventoryStore(session_factory)

        assert store.decrement_one_room(rt_id, night(1)) is True
        row = read_inventory(session_factory, rt_id, 1)
        assert (row.available_rooms, row.overbook_limit) == (0, 1)

    def test_then_overbook_allowance(self, db_session, session_factory):
        rt_id = _make_row(db_session, rooms=1, overbook=1)
        store = InventoryStore(session_factory)

        assert store.decrement_one_room(rt_id, night(1))
        assert store.decrement_one_room(rt_id, night(1))
        assert store.decrement_one_room(rt_id, night(1)) is False

        row = read_inventory(session_factory, rt_id, 1)
        assert (row.available_rooms, row.overbook_limit) == (0, 0)

    def test_never_negative(self, db_session, session_factory):
        rt_id = _make_row(db_session, rooms=0)
        assert InventoryStore(session_factory).decrement_one_room(rt_id, night(1)) is False
        assert read_inventory(session_factory, rt_id, 1).available_rooms == 0

    def test_closed_night_rejected(self, db_session, session_factory):
        rt_id = _make_row(db_session, rooms=3, closed=True)
        assert InventoryStore(session_factory).decrement_one_room(rt_id, night(1)) is False
        assert read_inventory(session_factory, rt_id, 1).available_rooms == 3

    def test_missing_row_rejected(self, session_factory, catalog):
        assert InventoryStore(session_factory).decrement_one_room(catalog.room_type_id, night(30)) is False


class TestIncrement:

    def test_restores_overbook_before_rooms(self, db_session, session_factory):
        rt_id = _make_row(db_session, rooms=1, overbook=1)
        store = InventoryStore(session_factory)
        store.decrement_one_room(rt_id, night(1))
        store.decrement_one_room(rt_id, night(1))

        store.increment_one_room(rt_id, night(1))
        row = read_inventory(session_factory, rt_id, 1)
        assert (row.available_rooms, row.overbook_limit) == (0, 1)

        store.increment_one_room(rt_id, night(1))
        row = read_inventory(session_factory, rt_id, 1)
        assert (row.available_rooms, row.overbook_limit) == (1, 1)

    def test_capped_at_allotment(self, db_session, session_factory):
        rt_id = _make_row(db_session, rooms=2)
        InventoryStore(session_factory).increment_one_room(rt_id, night(1))
        assert read_inventory(session_factory, rt_id, 1).available_rooms == 2

    def test_increment_nights_in_caller_transaction(self, session_factory, catalog):
        store = InventoryStore(session_factory)
        for offset in (1, 2):
            store.decrement_one_room(catalog.room_type_id, night(offset))

        with session_factory() as db:
            store.increment_nights(db, catalog.room_type_id, [night(2), night(1)])
            db.rollback()
        assert read_inventory(session_factory, catalog.room_type_id, 1).available_rooms == 4

        with session_factory() as db:
            store.increment_nights(db, catalog.room_type_id, [night(2), night(1)])
            db.commit()
        assert read_inventory(session_factory, catalog.room_type_id, 1).available_rooms == 5
        assert read_inventory(session_factory, catalog.room_type_id, 2).available_rooms == 5
