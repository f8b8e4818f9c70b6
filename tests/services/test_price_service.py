"""
Tests for booking_engine/services/price_service.py
Covers: quote, get_promo, add-on and tax rule loading
"""
import pytest

from booking_engine.exceptions import (
    InvalidPromoCode, PromoCodeExpired, RateMissingForNight, ValidationError,
)
from booking_engine.models.ontology import (
    AddOn, DiscountType, PromoCode, RateRow, RoomTypeAddOn, TaxFeeCategory, TaxFeeRule, TaxFeeScope,
)
from booking_engine.models.schemas import AddOnSelection, StayRequest
from booking_engine.services.price_service import PriceService

from conftest import TODAY, night


# ── helpers ──────────────────────────────────────────────────────────

def _request(catalog, check_in=1, check_out=4, **kwargs):
    return StayRequest(hotel_id=catalog.hotel_id, room_type_id=catalog.room_type_id,
                       check_in_date=night(check_in), check_out_date=night(check_out), **kwargs)


def _make_promo(db, hotel_id, code="SUMMER25", type=DiscountType.FIXED, value=2500, **kwargs):
    promo = PromoCode(hotel_id=hotel_id, code=code, type=type, value=value, **kwargs)
    db.add(promo)
    db.commit()
    return promo


def _make_addon(db, room_type_id, name="Breakfast", price_cents=1500, **kwargs):
    addon = AddOn(name=name)
    db.add(addon)
    db.flush()
    db.add(RoomTypeAddOn(room_type_id=room_type_id, addon_id=addon.id, price_cents=price_cents, **kwargs))
    db.commit()
    return addon.id


def _make_tax(db, hotel_id, name="City Tax", type=DiscountType.PERCENT, value=10, **kwargs):
    rule = TaxFeeRule(hotel_id=hotel_id, name=name, type=type, value=value, **kwargs)
    db.add(rule)
    db.commit()
    return rule


# ── tests ────────────────────────────────────────────────────────────

class TestQuote:

    def test_base_only(self, session_factory, catalog):
        bd = PriceService(session_factory).quote(_request(catalog))
        assert bd.nights == 3
        assert bd.base_amount_cents == 30000
        assert bd.total_amount_cents == 30000
        assert bd.currency_code == "USD"

    def test_rate_plan_prices(self, db_session, session_factory, catalog):
        for offset in (1, 2):
            db_session.add(RateRow(room_type_id=catalog.room_type_id, date=night(offset),
                                   rate_plan_id=3, price_cents=9000))
        db_session.commit()
        bd = PriceService(session_factory).quote(_request(catalog, 1, 3, rate_plan_id=3))
        assert bd.base_amount_cents == 18000

    def test_missing_rate(self, session_factory, catalog):
        with pytest.raises(RateMissingForNight):
            PriceService(session_factory).quote(_request(catalog, 9, 12))

    def test_unknown_room_type(self, session_factory, catalog):
        req = StayRequest(hotel_id=catalog.hotel_id, room_type_id=999,
                          check_in_date=night(1), check_out_date=night(2))
        with pytest.raises(ValidationError):
            PriceService(session_factory).quote(req)

    def test_full_breakdown(self, db_session, session_factory, catalog):
        addon_id = _make_addon(db_session, catalog.room_type_id, max_quantity=4)
        _make_promo(db_session, catalog.hotel_id, code="SPRING10",
                    type=DiscountType.PERCENT, value=10)
        _make_tax(db_session, catalog.hotel_id)
        _make_tax(db_session, catalog.hotel_id, name="Resort Fee", type=DiscountType.FIXED,
                  value=500, scope=TaxFeeScope.PER_NIGHT, category=TaxFeeCategory.FEE)

        bd = PriceService(session_factory).quote(_request(
            catalog, add_ons=[AddOnSelection(addon_id=addon_id, quantity=2)], promo_code="spring10",
        ))

        assert bd.add_ons_amount_cents == 3000
        assert bd.discount_amount_cents == 3300           # 10% of 33000
        assert bd.tax_amount_cents == 2970                # 10% of 29700
        assert bd.fee_amount_cents == 1500
        assert bd.total_amount_cents == 30000 + 3000 - 3300 + 2970 + 1500
        assert bd.promo_code == "SPRING10"


class TestPromoLookup:

    def test_unknown_code(self, session_factory, catalog):
        with pytest.raises(InvalidPromoCode):
            PriceService(session_factory).quote(_request(catalog, promo_code="NOPE"))

    def test_other_hotel_code(self, db_session, session_factory, catalog):
        from booking_engine.models.ontology import Hotel
        other = Hotel(name="Other")
        db_session.add(other)
        db_session.commit()
        _make_promo(db_session, other.id)
        with pytest.raises(InvalidPromoCode):
            PriceService(session_factory).quote(_request(catalog, promo_code="SUMMER25"))

    def test_expired_code(self, db_session, session_factory, catalog):
        from datetime import timedelta
        _make_promo(db_session, catalog.hotel_id, end_date=TODAY - timedelta(days=1))
        with pytest.raises(PromoCodeExpired):
            PriceService(session_factory).quote(_request(catalog, promo_code="SUMMER25"))


class TestAddOnLoading:

    def test_not_offered_for_room_type(self, db_session, session_factory, catalog):
        addon = AddOn(name="Spa")
        db_session.add(addon)
        db_session.commit()
        with pytest.raises(ValidationError):
            PriceService(session_factory).quote(
                _request(catalog, add_ons=[AddOnSelection(addon_id=addon.id)])
            )

    def test_unavailable_link(self, db_session, session_factory, catalog):
        addon_id = _make_addon(db_session, catalog.room_type_id, is_available=False)
        with pytest.raises(ValidationError):
            PriceService(session_factory).quote(
                _request(catalog, add_ons=[AddOnSelection(addon_id=addon_id)])
            )

    def test_duplicate_selection(self, db_session, session_factory, catalog):
        addon_id = _make_addon(db_session, catalog.room_type_id)
        with pytest.raises(ValidationError):
            PriceService(session_factory).quote(_request(
                catalog, add_ons=[AddOnSelection(addon_id=addon_id), AddOnSelection(addon_id=addon_id)],
            ))
