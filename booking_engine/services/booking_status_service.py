"""
预订状态服务
入住 / 离店 / 未到店 / 支付登记，全部经过预订生命周期状态机
"""
from typing import Callable, Optional
from datetime import datetime
import logging

from sqlalchemy import case, update
from sqlalchemy.orm import Session, sessionmaker

from booking_engine.database import SessionLocal
from booking_engine.domain.lifecycle import BookingTrigger, TERMINAL_STATUSES, next_status
from booking_engine.engine.event_bus import BookingEventType, Event, EventBus, event_bus
from booking_engine.exceptions import BookingNotFound, InvalidStatusTransition, ValidationError
from booking_engine.models.ontology import Booking, BookingStatus, Payment
from booking_engine.models.schemas import PaymentIntent
from booking_engine.services.reservation_service import booking_event_data

logger = logging.getLogger(__name__)


class BookingStatusService:
    """预订状态服务"""

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        bus: Optional[EventBus] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._session_factory: sessionmaker = session_factory or SessionLocal
        self._bus = bus or event_bus
        self._clock = clock or datetime.utcnow

    def check_in(self, booking_id: int) -> Booking:
        """办理入住（仅 confirmed）"""
        return self._transition(booking_id, BookingTrigger.CHECK_IN)

    def check_out(self, booking_id: int) -> Booking:
        """办理离店（仅 checked_in）"""
        return self._transition(booking_id, BookingTrigger.CHECK_OUT)

    def mark_no_show(self, booking_id: int) -> Booking:
        """标记未到店（仅 reserved）；房晚不回补"""
        return self._transition(booking_id, BookingTrigger.MARK_NO_SHOW)

    def _transition(self, booking_id: int, trigger: str) -> Booking:
        now = self._clock()
        with self._session_factory() as db:
            try:
                booking = self._get(db, booking_id)
                old_status = booking.status
                new_status = next_status(old_status, trigger)

                result = db.execute(
                    update(Booking)
                    .where(Booking.id == booking_id, Booking.status == old_status)
                    .values(status=new_status, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise InvalidStatusTransition(
                        "预订状态已被并发修改", booking_id=booking_id, trigger=trigger,
                    )
                db.commit()
                db.refresh(booking)
            except Exception:
                db.rollback()
                raise

        logger.info(
            f"Booking {booking.reference_code}: {old_status.value} -> {new_status.value} ({trigger})"
        )
        self._publish(BookingEventType.BOOKING_STATUS_CHANGED, booking, previous_status=old_status.value)
        return booking

    def record_payment(self, booking_id: int, payment: PaymentIntent) -> Booking:
        """
        登记支付

        保存 Payment 记录，冲减应付余额（不低于 0）并关联支付号；
        reserved 状态的预订在余额结清后转为 confirmed。
        金额与状态都用单条条件 UPDATE 在数据库内累加，并发登记不会互相覆盖。

        Raises:
            BookingNotFound: 预订不存在
            ValidationError: 金额非正数或币种不一致
            InvalidStatusTransition: 预订已处于终态
        """
        if payment.amount_cents <= 0:
            raise ValidationError("支付金额必须大于 0", amount_cents=payment.amount_cents)

        now = self._clock()
        confirmed = next_status(BookingStatus.RESERVED, BookingTrigger.CONFIRM)
        with self._session_factory() as db:
            try:
                booking = self._get(db, booking_id)
                if payment.currency_code and payment.currency_code != booking.currency_code:
                    raise ValidationError(
                        "支付币种与预订不一致",
                        currency_code=payment.currency_code, booking_currency=booking.currency_code,
                    )

                paid_after = Booking.paid_amount_cents + payment.amount_cents
                values = {
                    "paid_amount_cents": paid_after,
                    "balance_due_cents": case(
                        (Booking.total_amount_cents > paid_after, Booking.total_amount_cents - paid_after),
                        else_=0,
                    ),
                    "updated_at": now,
                }
                if payment.processor_payment_id:
                    values["payment_ref"] = payment.processor_payment_id
                result = db.execute(
                    update(Booking)
                    .where(Booking.id == booking_id, Booking.status.notin_(TERMINAL_STATUSES))
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    db.refresh(booking)
                    raise InvalidStatusTransition(
                        f"状态为 {booking.status.value} 的预订不能登记支付",
                        status=booking.status.value,
                    )

                db.add(Payment(
                    booking_id=booking_id,
                    amount_cents=payment.amount_cents,
                    currency_code=booking.currency_code,
                    method=payment.method,
                    processor=payment.processor,
                    processor_payment_id=payment.processor_payment_id,
                ))

                # 只有真正完成 reserved -> confirmed 的那次登记负责发布确认事件
                settled = db.execute(
                    update(Booking)
                    .where(
                        Booking.id == booking_id,
                        Booking.status == BookingStatus.RESERVED,
                        Booking.balance_due_cents == 0,
                    )
                    .values(status=confirmed)
                    .execution_options(synchronize_session=False)
                ).rowcount == 1
                db.commit()
                db.refresh(booking)
                db.refresh(booking, attribute_names=["payments"])
            except Exception:
                db.rollback()
                raise

        logger.info(
            f"Payment {payment.amount_cents} recorded for {booking.reference_code}, "
            f"balance_due={booking.balance_due_cents}"
        )
        self._publish(BookingEventType.PAYMENT_RECORDED, booking, amount_cents=payment.amount_cents)
        if settled:
            self._publish(BookingEventType.BOOKING_STATUS_CHANGED, booking,
                          previous_status=BookingStatus.RESERVED.value)
            self._publish(BookingEventType.BOOKING_CONFIRMED, booking)
        return booking

    @staticmethod
    def _get(db: Session, booking_id: int) -> Booking:
        booking = db.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFound(booking_id=booking_id)
        return booking

    def _publish(self, event_type: str, booking: Booking, **extra) -> None:
        try:
            self._bus.publish(Event(
                event_type=event_type,
                data={**booking_event_data(booking), **extra},
                source="booking_status_service",
            ))
        except Exception as e:
            logger.error(f"Failed to publish {event_type} for {booking.reference_code}: {e}", exc_info=True)
