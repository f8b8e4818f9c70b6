"""
预订取消服务
状态翻转与逐晚库存回补在同一事务中完成（全部生效或全部不生效）
"""
from typing import Callable, Optional
from datetime import datetime
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from booking_engine.database import SessionLocal
from booking_engine.domain.lifecycle import CANCELLABLE_STATUSES, BookingTrigger, next_status
from booking_engine.engine.event_bus import BookingEventType, Event, EventBus, event_bus
from booking_engine.exceptions import BookingNotFound, InvalidStatusTransition
from booking_engine.models.ontology import Booking, BookingStatus
from booking_engine.services.inventory_store import InventoryStore
from booking_engine.services.reservation_service import booking_event_data

logger = logging.getLogger(__name__)


class CancellationService:
    """预订取消服务"""

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        inventory_store: Optional[InventoryStore] = None,
        bus: Optional[EventBus] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._session_factory: sessionmaker = session_factory or SessionLocal
        self.inventory_store = inventory_store or InventoryStore(self._session_factory)
        self._bus = bus or event_bus
        self._clock = clock or datetime.utcnow

    def cancel(self, booking_id: int, reason: Optional[str] = None) -> Booking:
        """
        取消预订

        已取消的预订直接返回（幂等）；促销码使用次数不回退。

        Raises:
            BookingNotFound: 预订不存在
            InvalidStatusTransition: 已入住 / 已离店 / 未到店
        """
        now = self._clock()
        with self._session_factory() as db:
            try:
                booking = db.get(Booking, booking_id)
                if booking is None:
                    raise BookingNotFound(booking_id=booking_id)
                if booking.status == BookingStatus.CANCELLED:
                    logger.info(f"Booking {booking.reference_code} already cancelled")
                    return booking

                new_status = next_status(booking.status, BookingTrigger.CANCEL)

                # 条件翻转：并发取消时只有一个事务能命中
                result = db.execute(
                    update(Booking)
                    .where(
                        Booking.id == booking_id,
                        Booking.status.in_(list(CANCELLABLE_STATUSES)),
                    )
                    .values(
                        status=new_status,
                        cancelled_at=now,
                        cancellation_reason=reason,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    db.rollback()
                    booking = db.get(Booking, booking_id, populate_existing=True)
                    if booking.status == BookingStatus.CANCELLED:
                        logger.info(f"Booking {booking.reference_code} cancelled concurrently")
                        return booking
                    raise InvalidStatusTransition(
                        status=booking.status.value, trigger=BookingTrigger.CANCEL,
                    )

                self.inventory_store.increment_nights(
                    db, booking.room_type_id, [item.date for item in booking.items]
                )
                db.commit()
                db.refresh(booking)
            except Exception:
                db.rollback()
                raise

        logger.info(f"Booking {booking.reference_code} cancelled: reason={reason!r}")
        try:
            self._bus.publish(Event(
                event_type=BookingEventType.BOOKING_CANCELLED,
                data=booking_event_data(booking),
                source="cancellation_service",
            ))
        except Exception as e:
            logger.error(f"Failed to publish cancellation for {booking.reference_code}: {e}", exc_info=True)
        return booking
