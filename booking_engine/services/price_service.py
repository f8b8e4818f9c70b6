"""
价格服务
从存储中读取房价、附加项、促销码与税费规则，交给纯函数定价引擎计算
"""
from typing import Callable, Dict, List, Optional
from datetime import date
import logging

from sqlalchemy.orm import Session, sessionmaker

from booking_engine.config import settings
from booking_engine.database import SessionLocal
from booking_engine.domain.pricing import (
    AddOnCharge, PromoTerms, TaxFeeTerms, calculate_price,
)
from booking_engine.exceptions import InvalidPromoCode, RateMissingForNight, ValidationError
from booking_engine.models.ontology import (
    Hotel, PromoCode, RoomType, RoomTypeAddOn, TaxFeeRule,
)
from booking_engine.models.schemas import NightlyPrice, PriceBreakdown, StayRequest
from booking_engine.services.inventory_store import InventoryStore, stay_nights

logger = logging.getLogger(__name__)


class PriceService:
    """价格服务"""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory: sessionmaker = session_factory or SessionLocal

    def quote(self, request: StayRequest, as_of: Optional[date] = None,
              amount_paid_cents: int = 0) -> PriceBreakdown:
        """计算一次入住的价格明细（只读）"""
        with self._session_factory() as db:
            return self.quote_in(db, request, as_of=as_of, amount_paid_cents=amount_paid_cents)

    def quote_in(self, db: Session, request: StayRequest, as_of: Optional[date] = None,
                 amount_paid_cents: int = 0) -> PriceBreakdown:
        """
        在调用方会话中计算价格明细（使用当前房价与当前促销码状态）

        Raises:
            ValidationError: 房型 / 附加项不存在
            RateMissingForNight: 区间内某晚没有房价
            InvalidPromoCode: 促销码不存在或不满足条件
        """
        room_type = self.get_room_type(db, request.hotel_id, request.room_type_id)
        hotel = db.get(Hotel, request.hotel_id)
        nights = stay_nights(request.check_in_date, request.check_out_date)

        nightly_prices = self._nightly_prices(db, request)
        add_ons = self._add_on_charges(db, request)
        promo = None
        if request.promo_code:
            promo = PromoTerms.from_orm(self.get_promo(db, request.hotel_id, request.promo_code))
        tax_rules = [TaxFeeTerms.from_orm(r) for r in self._tax_rules(db, request.hotel_id)]
        currency_code = (
            (hotel.currency_code if hotel else None) or room_type.currency_code or settings.DEFAULT_CURRENCY
        )

        try:
            return calculate_price(
                nights=nights,
                nightly_prices=nightly_prices,
                add_ons=add_ons,
                promo=promo,
                tax_rules=tax_rules,
                party_size=request.party_size,
                as_of=as_of,
                amount_paid_cents=amount_paid_cents,
                currency_code=currency_code,
            )
        except RateMissingForNight as e:
            logger.error(
                f"Rate missing for night {e.details.get('night')}: hotel={request.hotel_id} "
                f"room_type={request.room_type_id} rate_plan={request.rate_plan_id} "
                f"stay={request.check_in_date}..{request.check_out_date}"
            )
            raise

    # ============== 数据加载 ==============

    @staticmethod
    def get_room_type(db: Session, hotel_id: int, room_type_id: int) -> RoomType:
        room_type = db.get(RoomType, room_type_id)
        if not room_type or room_type.hotel_id != hotel_id or not room_type.is_active:
            raise ValidationError("房型不存在", hotel_id=hotel_id, room_type_id=room_type_id)
        return room_type

    @staticmethod
    def get_promo(db: Session, hotel_id: int, code: str) -> PromoCode:
        """按酒店与编码查找促销码（编码不区分大小写）"""
        promo = db.query(PromoCode).filter(
            PromoCode.hotel_id == hotel_id,
            PromoCode.code == code.strip().upper(),
        ).first()
        if not promo:
            raise InvalidPromoCode(f"促销码 {code} 不存在", code=code)
        return promo

    @staticmethod
    def _nightly_prices(db: Session, request: StayRequest) -> List[NightlyPrice]:
        rates = InventoryStore.load_rates(
            db, [request.room_type_id], request.check_in_date,
            request.check_out_date, request.rate_plan_id,
        )
        by_date: Dict[date, NightlyPrice] = {}
        for rate in rates:
            # 同一晚存在多行时取最早录入的一行
            by_date.setdefault(rate.date, NightlyPrice(date=rate.date, price_cents=rate.price_cents))
        return list(by_date.values())

    @staticmethod
    def _add_on_charges(db: Session, request: StayRequest) -> List[AddOnCharge]:
        if not request.add_ons:
            return []
        addon_ids = [s.addon_id for s in request.add_ons]
        if len(set(addon_ids)) != len(addon_ids):
            raise ValidationError("附加项不能重复选择", addon_ids=addon_ids)

        links = db.query(RoomTypeAddOn).filter(
            RoomTypeAddOn.room_type_id == request.room_type_id,
            RoomTypeAddOn.addon_id.in_(addon_ids),
        ).all()
        links_by_addon = {link.addon_id: link for link in links}

        charges = []
        for selection in request.add_ons:
            link = links_by_addon.get(selection.addon_id)
            if not link or not link.is_available or not link.addon.is_active:
                raise ValidationError(
                    f"附加项 {selection.addon_id} 不适用于该房型",
                    addon_id=selection.addon_id, room_type_id=request.room_type_id,
                )
            charges.append(AddOnCharge(
                addon_id=selection.addon_id,
                quantity=selection.quantity,
                unit_price_cents=link.price_cents,
                min_quantity=link.min_quantity or 0,
                max_quantity=link.max_quantity,
                name=link.addon.name,
            ))
        return charges

    @staticmethod
    def _tax_rules(db: Session, hotel_id: int) -> List[TaxFeeRule]:
        return db.query(TaxFeeRule).filter(
            TaxFeeRule.hotel_id == hotel_id,
            TaxFeeRule.is_active == True,
        ).order_by(TaxFeeRule.id).all()
