"""
预订草稿服务
按会话 / 账户标识维护已定价但不占用库存的预订意向
"""
from typing import Callable, Optional
from datetime import date, datetime, timedelta
import json
import logging
import uuid

from sqlalchemy import delete
from sqlalchemy.orm import Session, sessionmaker

from booking_engine.config import settings
from booking_engine.database import SessionLocal
from booking_engine.exceptions import (
    DraftExpired, DraftNotFound, InsufficientInventory, ValidationError,
)
from booking_engine.models.ontology import BookingDraft, BookingStatus
from booking_engine.models.schemas import AddOnSelection, ConfirmRequest, DraftRequest, StayRequest
from booking_engine.services.availability_service import AvailabilityService
from booking_engine.services.inventory_store import stay_nights
from booking_engine.services.price_service import PriceService

logger = logging.getLogger(__name__)


def generate_reference_code(prefix: str, now: Optional[datetime] = None) -> str:
    """生成参考号：前缀-年月日-6位随机"""
    return f"{prefix}-{(now or datetime.utcnow()).strftime('%y%m%d')}-{uuid.uuid4().hex[:6].upper()}"


def validate_stay_request(request: StayRequest, today: date) -> None:
    """校验入住日期"""
    stay_nights(request.check_in_date, request.check_out_date)
    if request.check_in_date < today:
        raise ValidationError("入住日期不能早于今天", check_in_date=request.check_in_date.isoformat())


class DraftService:
    """预订草稿服务"""

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        availability_service: Optional[AvailabilityService] = None,
        price_service: Optional[PriceService] = None,
        clock: Optional[Callable[[], datetime]] = None,
        ttl_minutes: Optional[int] = None,
    ):
        self._session_factory: sessionmaker = session_factory or SessionLocal
        self.availability_service = availability_service or AvailabilityService(self._session_factory)
        self.price_service = price_service or PriceService(self._session_factory)
        self._clock = clock or datetime.utcnow
        self._ttl = timedelta(minutes=ttl_minutes if ttl_minutes is not None else settings.DRAFT_TTL_MINUTES)

    def create_or_update_draft(self, session_key: str, request: DraftRequest) -> BookingDraft:
        """
        创建或更新草稿

        同步重新校验可用性并定价；不修改库存。相同 session_key 原地更新。

        Raises:
            ValidationError: 参数无效
            InsufficientInventory: 区间内无可订房量
            InvalidPromoCode: 促销码不可用
        """
        if not session_key or not session_key.strip():
            raise ValidationError("缺少会话标识")
        now = self._clock()
        validate_stay_request(request, now.date())

        stay = self.availability_service.check_stay(
            request.room_type_id, request.check_in_date, request.check_out_date,
            rate_plan_id=request.rate_plan_id, party_size=request.party_size,
        )
        if stay is None or stay.hotel_id != request.hotel_id:
            raise InsufficientInventory(
                room_type_id=request.room_type_id,
                check_in_date=request.check_in_date.isoformat(),
                check_out_date=request.check_out_date.isoformat(),
            )

        with self._session_factory() as db:
            try:
                breakdown = self.price_service.quote_in(db, request, as_of=now.date())
                draft = db.query(BookingDraft).filter(BookingDraft.session_key == session_key).first()
                if draft is None:
                    draft = BookingDraft(
                        session_key=session_key,
                        reference_code=generate_reference_code(settings.DRAFT_CODE_PREFIX, now),
                        created_at=now,
                    )
                    db.add(draft)

                draft.hotel_id = request.hotel_id
                draft.room_type_id = request.room_type_id
                draft.rate_plan_id = request.rate_plan_id
                draft.status = BookingStatus.DRAFT
                draft.check_in_date = request.check_in_date
                draft.check_out_date = request.check_out_date
                draft.num_adults = request.num_adults
                draft.num_children = request.num_children
                draft.add_ons_json = json.dumps([s.model_dump() for s in request.add_ons])
                draft.promo_code = request.promo_code
                draft.contact_email = request.contact_email
                draft.contact_phone = request.contact_phone
                draft.base_amount_cents = breakdown.base_amount_cents
                draft.add_ons_amount_cents = breakdown.add_ons_amount_cents
                draft.tax_amount_cents = breakdown.tax_amount_cents
                draft.fee_amount_cents = breakdown.fee_amount_cents
                draft.discount_amount_cents = breakdown.discount_amount_cents
                draft.total_amount_cents = breakdown.total_amount_cents
                draft.balance_due_cents = breakdown.balance_due_cents
                draft.price_breakdown_json = breakdown.model_dump_json()
                draft.currency_code = breakdown.currency_code
                draft.expires_at = now + self._ttl
                draft.updated_at = now
                db.commit()
            except Exception:
                db.rollback()
                raise

        logger.info(f"Draft {draft.reference_code} saved for session {session_key}, total={draft.total_amount_cents}")
        return draft

    def get_draft(self, session_key: str) -> BookingDraft:
        """
        获取未过期的草稿

        Raises:
            DraftNotFound: 草稿不存在
            DraftExpired: 草稿已过期
        """
        with self._session_factory() as db:
            draft = db.query(BookingDraft).filter(BookingDraft.session_key == session_key).first()
        return self._ensure_active(draft, session_key)

    def get_latest_draft_by_email(self, email: str) -> BookingDraft:
        """会话丢失时按联系邮箱找回最近的草稿"""
        with self._session_factory() as db:
            draft = db.query(BookingDraft).filter(
                BookingDraft.contact_email == email.strip().lower()
            ).order_by(BookingDraft.updated_at.desc(), BookingDraft.id.desc()).first()
        return self._ensure_active(draft, email)

    def delete_draft(self, session_key: str) -> bool:
        """删除草稿，返回是否存在"""
        with self._session_factory() as db:
            try:
                result = db.execute(delete(BookingDraft).where(BookingDraft.session_key == session_key))
                db.commit()
            except Exception:
                db.rollback()
                raise
        return result.rowcount > 0

    def _ensure_active(self, draft: Optional[BookingDraft], key: str) -> BookingDraft:
        if draft is None:
            raise DraftNotFound(key=key)
        if draft.is_expired(self._clock()):
            logger.info(f"Draft {draft.reference_code} expired at {draft.expires_at}")
            raise DraftExpired(key=key, expires_at=draft.expires_at.isoformat())
        return draft

    @staticmethod
    def to_confirm_request(draft: BookingDraft) -> ConfirmRequest:
        """把草稿还原为确认请求"""
        add_ons = [AddOnSelection(**item) for item in json.loads(draft.add_ons_json or "[]")]
        return ConfirmRequest(
            hotel_id=draft.hotel_id,
            room_type_id=draft.room_type_id,
            rate_plan_id=draft.rate_plan_id,
            check_in_date=draft.check_in_date,
            check_out_date=draft.check_out_date,
            num_adults=draft.num_adults,
            num_children=draft.num_children,
            add_ons=add_ons,
            promo_code=draft.promo_code,
        )
