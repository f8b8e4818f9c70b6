"""
预订确认服务 - 草稿 / 直接请求 -> 已确认预订

确认流程（全部成功或全部不留痕迹）：
1. 确认时重新校验整段可用性
2. 按日期升序逐晚扣减库存，每次成功压入一条回补动作
3. 用当前房价与当前促销码状态重新定价
4. 写入 Booking / BookingItem / BookingAddOn
5. 条件递增促销码使用次数（与预订同一事务）
6. 删除来源草稿（与预订同一事务）
7. 提交后发布 booking.confirmed
第 2 步之后任何失败（包括超时）都会先回滚事务、执行全部回补，再把异常抛给调用方。
"""
from functools import partial
from typing import Any, Callable, Dict, Optional, Union
from datetime import datetime
import logging
import time

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, or_, update
from sqlalchemy.orm import Session, sessionmaker

from booking_engine.config import settings
from booking_engine.database import SessionLocal
from booking_engine.domain.lifecycle import BookingTrigger, next_status
from booking_engine.domain.pricing import allocate_per_night
from booking_engine.engine.compensation import CompensationStack
from booking_engine.engine.event_bus import BookingEventType, Event, EventBus, event_bus
from booking_engine.exceptions import (
    BookingNotFound, ConfirmationTimeout, DraftNotFound, InsufficientInventory,
    PromoCodeUsageLimitReached, ValidationError,
)
from booking_engine.models.ontology import (
    Booking, BookingAddOn, BookingDraft, BookingItem, BookingStatus, Payment, PromoCode,
)
from booking_engine.models.schemas import ConfirmRequest, GuestInfo, PaymentIntent, StayRequest
from booking_engine.services.availability_service import AvailabilityService
from booking_engine.services.draft_service import (
    DraftService, generate_reference_code, validate_stay_request,
)
from booking_engine.services.inventory_store import InventoryStore, stay_nights
from booking_engine.services.price_service import PriceService

logger = logging.getLogger(__name__)


class ReservationService:
    """预订确认服务"""

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        inventory_store: Optional[InventoryStore] = None,
        availability_service: Optional[AvailabilityService] = None,
        price_service: Optional[PriceService] = None,
        draft_service: Optional[DraftService] = None,
        bus: Optional[EventBus] = None,
        clock: Optional[Callable[[], datetime]] = None,
        timeout_seconds: Optional[float] = None,
        confirm_on_reserve: Optional[bool] = None,
    ):
        self._session_factory: sessionmaker = session_factory or SessionLocal
        self._clock = clock or datetime.utcnow
        self.inventory_store = inventory_store or InventoryStore(self._session_factory)
        self.availability_service = availability_service or AvailabilityService(self._session_factory)
        self.price_service = price_service or PriceService(self._session_factory)
        self.draft_service = draft_service or DraftService(
            self._session_factory, self.availability_service, self.price_service, clock=self._clock
        )
        self._bus = bus or event_bus
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.CONFIRMATION_TIMEOUT_SECONDS
        self._confirm_on_reserve = (
            confirm_on_reserve if confirm_on_reserve is not None else settings.CONFIRM_ON_RESERVE
        )

    # ============== 查询 ==============

    def get_booking(self, booking_id: int) -> Booking:
        with self._session_factory() as db:
            booking = db.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFound(booking_id=booking_id)
        return booking

    def get_booking_by_reference(self, reference_code: str) -> Booking:
        with self._session_factory() as db:
            booking = db.query(Booking).filter(Booking.reference_code == reference_code).first()
        if booking is None:
            raise BookingNotFound(reference_code=reference_code)
        return booking

    # ============== 确认 ==============

    def confirm_draft(self, session_key: str, guest: Union[GuestInfo, Dict[str, Any]],
                      payment_intent: Optional[PaymentIntent] = None) -> Booking:
        """
        确认草稿

        Raises:
            DraftNotFound / DraftExpired: 草稿不存在或已过期（含重复确认）
        """
        guest = self._validate_guest(guest)
        draft = self.draft_service.get_draft(session_key)
        request = DraftService.to_confirm_request(draft)
        return self._confirm(request, guest, payment_intent, draft_id=draft.id)

    def confirm_request(self, request: ConfirmRequest, guest: Union[GuestInfo, Dict[str, Any]],
                        payment_intent: Optional[PaymentIntent] = None) -> Booking:
        """不经过草稿直接确认"""
        guest = self._validate_guest(guest)
        return self._confirm(request, guest, payment_intent)

    def _confirm(self, request: StayRequest, guest: GuestInfo,
                 payment_intent: Optional[PaymentIntent], draft_id: Optional[int] = None) -> Booking:
        deadline = time.monotonic() + self._timeout
        now = self._clock()
        validate_stay_request(request, now.date())
        nights = stay_nights(request.check_in_date, request.check_out_date)

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

        reference_code = generate_reference_code(settings.REFERENCE_CODE_PREFIX, now)
        compensation = CompensationStack(f"confirm {reference_code}")
        try:
            # 升序扣减，所有调用方使用同一全序
            for night in nights:
                self._check_deadline(deadline, reference_code)
                if not self.inventory_store.decrement_one_room(request.room_type_id, night):
                    raise InsufficientInventory(
                        room_type_id=request.room_type_id, night=night.isoformat(),
                    )
                compensation.push(
                    f"credit room_type={request.room_type_id} night={night}",
                    partial(self.inventory_store.increment_one_room, request.room_type_id, night),
                )

            booking = self._persist(request, guest, payment_intent, draft_id,
                                    reference_code, now, deadline)
        except Exception as e:
            failures = compensation.unwind()
            if failures:
                logger.error(
                    f"Confirmation {reference_code} left {len(failures)} night(s) uncompensated "
                    f"after {type(e).__name__}"
                )
            logger.info(f"Confirmation {reference_code} failed: {type(e).__name__}: {e}")
            raise
        compensation.discard()

        logger.info(
            f"Booking {booking.reference_code} {booking.status.value}: room_type={booking.room_type_id} "
            f"{booking.check_in_date}..{booking.check_out_date} total={booking.total_amount_cents}"
        )
        self._publish(BookingEventType.BOOKING_CONFIRMED, booking)
        return booking

    def _persist(self, request: StayRequest, guest: GuestInfo, payment_intent: Optional[PaymentIntent],
                 draft_id: Optional[int], reference_code: str, now: datetime, deadline: float) -> Booking:
        """定价并在单一事务中写入预订、促销码用量与草稿删除"""
        paid = payment_intent.amount_cents if payment_intent else 0
        with self._session_factory() as db:
            try:
                breakdown = self.price_service.quote_in(
                    db, request, as_of=now.date(), amount_paid_cents=paid
                )
                promo = (self.price_service.get_promo(db, request.hotel_id, request.promo_code)
                         if request.promo_code else None)

                balance_due = max(0, breakdown.total_amount_cents - paid)
                status = next_status(BookingStatus.DRAFT, BookingTrigger.RESERVE)
                if self._confirm_on_reserve or (payment_intent is not None and balance_due == 0):
                    status = next_status(status, BookingTrigger.CONFIRM)

                booking = Booking(
                    reference_code=reference_code,
                    hotel_id=request.hotel_id,
                    room_type_id=request.room_type_id,
                    rate_plan_id=request.rate_plan_id,
                    guest_ref=guest.guest_ref,
                    guest_name=guest.name,
                    guest_email=guest.email,
                    guest_phone=guest.phone,
                    status=status,
                    check_in_date=request.check_in_date,
                    check_out_date=request.check_out_date,
                    num_adults=request.num_adults,
                    num_children=request.num_children,
                    base_amount_cents=breakdown.base_amount_cents,
                    add_ons_amount_cents=breakdown.add_ons_amount_cents,
                    tax_amount_cents=breakdown.tax_amount_cents,
                    fee_amount_cents=breakdown.fee_amount_cents,
                    discount_amount_cents=breakdown.discount_amount_cents,
                    total_amount_cents=breakdown.total_amount_cents,
                    paid_amount_cents=paid,
                    balance_due_cents=balance_due,
                    currency_code=breakdown.currency_code,
                    promo_code_id=promo.id if promo else None,
                    notes=getattr(request, "notes", None),
                    created_at=now,
                    updated_at=now,
                )
                booking.items = [
                    BookingItem(room_type_id=request.room_type_id, rate_plan_id=request.rate_plan_id, **item)
                    for item in allocate_per_night(breakdown)
                ]
                booking.payments = []
                booking.add_ons = [
                    BookingAddOn(
                        room_type_id=request.room_type_id,
                        addon_id=line.addon_id,
                        quantity=line.quantity,
                        unit_price_cents=line.unit_price_cents,
                        total_price_cents=line.total_price_cents,
                    )
                    for line in breakdown.add_on_lines
                ]
                db.add(booking)

                if payment_intent is not None:
                    payment = Payment(
                        amount_cents=payment_intent.amount_cents,
                        currency_code=payment_intent.currency_code or breakdown.currency_code,
                        method=payment_intent.method,
                        processor=payment_intent.processor,
                        processor_payment_id=payment_intent.processor_payment_id,
                    )
                    booking.payments.append(payment)
                    booking.payment_ref = payment_intent.processor_payment_id

                if promo is not None:
                    self._claim_promo_usage(db, promo)
                if draft_id is not None:
                    self._consume_draft(db, draft_id)

                self._check_deadline(deadline, reference_code)
                db.commit()
            except Exception:
                db.rollback()
                raise
        return booking

    # ============== 内部步骤 ==============

    @staticmethod
    def _claim_promo_usage(db: Session, promo: PromoCode) -> None:
        """条件递增促销码使用次数；并发用满时拒绝"""
        result = db.execute(
            update(PromoCode)
            .where(
                PromoCode.id == promo.id,
                or_(PromoCode.usage_limit.is_(None), PromoCode.usage_count < PromoCode.usage_limit),
            )
            .values(usage_count=PromoCode.usage_count + 1, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise PromoCodeUsageLimitReached(
                f"促销码 {promo.code} 使用次数已满", code=promo.code, usage_limit=promo.usage_limit
            )

    @staticmethod
    def _consume_draft(db: Session, draft_id: int) -> None:
        """删除来源草稿；已被其他确认删除时视为重复确认"""
        result = db.execute(
            delete(BookingDraft)
            .where(BookingDraft.id == draft_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise DraftNotFound("预订草稿已被确认或删除", draft_id=draft_id)

    def _check_deadline(self, deadline: float, reference_code: str) -> None:
        if time.monotonic() > deadline:
            logger.warning(f"Confirmation {reference_code} exceeded {self._timeout}s")
            raise ConfirmationTimeout(reference_code=reference_code, timeout_seconds=self._timeout)

    @staticmethod
    def _validate_guest(guest: Union[GuestInfo, Dict[str, Any], None]) -> GuestInfo:
        """客人联系信息必须存在且格式正确"""
        if guest is None:
            raise ValidationError("缺少客人信息")
        if isinstance(guest, GuestInfo):
            return guest
        try:
            return GuestInfo.model_validate(guest)
        except PydanticValidationError as e:
            raise ValidationError(
                "客人信息无效",
                errors=[{"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                        for err in e.errors()],
            ) from e

    def _publish(self, event_type: str, booking: Booking) -> None:
        """提交后发布事件，通知失败只记录日志"""
        try:
            self._bus.publish(Event(
                event_type=event_type,
                data=booking_event_data(booking),
                source="reservation_service",
            ))
        except Exception as e:
            logger.error(f"Failed to publish {event_type} for {booking.reference_code}: {e}", exc_info=True)


def booking_event_data(booking: Booking) -> Dict[str, Any]:
    """预订事件载荷"""
    return {
        "booking_id": booking.id,
        "reference_code": booking.reference_code,
        "status": booking.status.value,
        "hotel_id": booking.hotel_id,
        "room_type_id": booking.room_type_id,
        "guest_ref": booking.guest_ref,
        "guest_name": booking.guest_name,
        "guest_email": booking.guest_email,
        "check_in_date": booking.check_in_date.isoformat(),
        "check_out_date": booking.check_out_date.isoformat(),
        "total_amount_cents": booking.total_amount_cents,
        "balance_due_cents": booking.balance_due_cents,
        "cancellation_reason": booking.cancellation_reason,
    }
