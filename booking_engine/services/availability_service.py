"""
可用性查询服务
按日期区间与筛选条件返回整段可订的房型

只有每一晚都恰好有一行未关闭的库存与一行适用且未关闭的房价时，
房型才算可订；任何一晚缺失或关闭都会排除整段入住。
"""
from typing import Callable, Dict, List, Optional, Sequence
from collections import defaultdict
from datetime import date
import logging

from sqlalchemy.orm import Session, sessionmaker

from booking_engine.config import settings
from booking_engine.database import SessionLocal
from booking_engine.exceptions import ValidationError
from booking_engine.models.ontology import (
    Amenity, Hotel, InventoryRow, RateRow, RoomType, RoomTypeAmenity,
)
from booking_engine.models.schemas import AvailabilityQuery, AvailabilityResult, NightlyPrice
from booking_engine.services.inventory_store import InventoryStore, stay_nights

logger = logging.getLogger(__name__)


class AvailabilityService:
    """可用性查询服务"""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory: sessionmaker = session_factory or SessionLocal

    def search(self, query: AvailabilityQuery) -> List[AvailabilityResult]:
        """
        查询可用房型

        Raises:
            ValidationError: check_in >= check_out
        """
        nights = stay_nights(query.check_in_date, query.check_out_date)
        if (query.min_price_cents is not None and query.max_price_cents is not None
                and query.min_price_cents > query.max_price_cents):
            raise ValidationError("最低价格不能高于最高价格")

        with self._session_factory() as db:
            candidates = self._candidate_room_types(db, query)
            if not candidates:
                return []

            ids = [rt.id for rt in candidates]
            inventory = _group(InventoryStore.load_inventory(db, ids, query.check_in_date, query.check_out_date))
            rates = _group(InventoryStore.load_rates(
                db, ids, query.check_in_date, query.check_out_date, query.rate_plan_id
            ))
            hotels = {h.id: h for h in db.query(Hotel).filter(
                Hotel.id.in_({rt.hotel_id for rt in candidates})
            ).all()}

            results = []
            for room_type in candidates:
                result = evaluate_stay(
                    room_type, nights,
                    inventory.get(room_type.id, []), rates.get(room_type.id, []),
                    hotel=hotels.get(room_type.hotel_id),
                )
                if result is None:
                    continue
                if not _within_price_band(result, query.min_price_cents, query.max_price_cents):
                    continue
                results.append(result)

        logger.info(
            f"Availability search {query.check_in_date}..{query.check_out_date}: "
            f"{len(results)}/{len(candidates)} room types eligible"
        )
        return results

    def check_stay(self, room_type_id: int, check_in: date, check_out: date,
                   rate_plan_id: Optional[int] = None,
                   party_size: Optional[int] = None) -> Optional[AvailabilityResult]:
        """
        单个房型的整段可订校验（草稿与确认时使用）

        Returns:
            可订时返回 AvailabilityResult，否则返回 None
        """
        nights = stay_nights(check_in, check_out)
        with self._session_factory() as db:
            room_type = db.get(RoomType, room_type_id)
            if room_type is None or not room_type.is_active:
                return None
            if party_size is not None and party_size > (room_type.max_occupancy or 0):
                return None
            return evaluate_stay(
                room_type, nights,
                InventoryStore.load_inventory(db, [room_type_id], check_in, check_out),
                InventoryStore.load_rates(db, [room_type_id], check_in, check_out, rate_plan_id),
                hotel=db.get(Hotel, room_type.hotel_id),
            )

    @staticmethod
    def _candidate_room_types(db: Session, query: AvailabilityQuery) -> List[RoomType]:
        """按酒店 / 房型 / 入住人数 / 设施筛选候选房型"""
        q = db.query(RoomType).filter(
            RoomType.is_active == True,
            RoomType.max_occupancy >= query.party_size,
        )
        if query.hotel_id is not None:
            q = q.filter(RoomType.hotel_id == query.hotel_id)
        if query.room_type_id is not None:
            q = q.filter(RoomType.id == query.room_type_id)
        candidates = q.order_by(RoomType.id).all()

        required = {code.strip().lower() for code in query.amenity_codes if code.strip()}
        if not required or not candidates:
            return candidates

        # 必须具备全部要求的设施
        rows = db.query(RoomTypeAmenity.room_type_id, Amenity.code).join(
            Amenity, Amenity.id == RoomTypeAmenity.amenity_id
        ).filter(
            RoomTypeAmenity.room_type_id.in_([rt.id for rt in candidates]),
        ).all()
        codes_by_room_type: Dict[int, set] = defaultdict(set)
        for room_type_id, code in rows:
            codes_by_room_type[room_type_id].add(code.lower())
        return [rt for rt in candidates if required <= codes_by_room_type[rt.id]]


def _group(rows: Sequence) -> Dict[int, list]:
    grouped: Dict[int, list] = defaultdict(list)
    for row in rows:
        grouped[row.room_type_id].append(row)
    return grouped


def _rate_admits_stay(rate: RateRow, night_count: int) -> bool:
    if rate.min_stay is not None and night_count < rate.min_stay:
        return False
    if rate.max_stay is not None and night_count > rate.max_stay:
        return False
    return True


def evaluate_stay(room_type: RoomType, nights: Sequence[date],
                  inventory_rows: Sequence[InventoryRow], rate_rows: Sequence[RateRow],
                  hotel: Optional[Hotel] = None) -> Optional[AvailabilityResult]:
    """
    整段覆盖校验

    每晚恰好一行未关闭库存、恰好一行适用且未关闭的房价，且有效容量 > 0。
    available_count = 各晚 (available_rooms + overbook_limit) 的最小值。
    """
    inventory_by_date: Dict[date, List[InventoryRow]] = defaultdict(list)
    for row in inventory_rows:
        inventory_by_date[row.date].append(row)
    rates_by_date: Dict[date, List[RateRow]] = defaultdict(list)
    for row in rate_rows:
        rates_by_date[row.date].append(row)

    available_count = None
    nightly_prices = []
    for night in nights:
        inv = inventory_by_date.get(night, [])
        rate = rates_by_date.get(night, [])
        if len(inv) != 1 or len(rate) != 1:
            return None
        if inv[0].closed or rate[0].closed:
            return None
        if not _rate_admits_stay(rate[0], len(nights)):
            return None
        capacity = inv[0].available_rooms + inv[0].overbook_limit
        available_count = capacity if available_count is None else min(available_count, capacity)
        nightly_prices.append(NightlyPrice(date=night, price_cents=rate[0].price_cents))

    if not available_count or available_count <= 0:
        return None

    return AvailabilityResult(
        room_type_id=room_type.id,
        hotel_id=room_type.hotel_id,
        hotel_name=hotel.name if hotel else None,
        name=room_type.name,
        max_occupancy=room_type.max_occupancy or 0,
        currency_code=room_type.currency_code or settings.DEFAULT_CURRENCY,
        available_count=available_count,
        nightly_prices=nightly_prices,
        total_price_cents=sum(p.price_cents for p in nightly_prices),
        amenities=sorted(a.name for a in room_type.amenities),
    )


def _within_price_band(result: AvailabilityResult, min_price: Optional[int], max_price: Optional[int]) -> bool:
    """价格区间按每晚价格判断，每一晚都必须落在区间内"""
    for night in result.nightly_prices:
        if min_price is not None and night.price_cents < min_price:
            return False
        if max_price is not None and night.price_cents > max_price:
            return False
    return True
