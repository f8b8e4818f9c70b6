"""
预订通知处理器
订阅预订确认 / 取消事件，通过已注册渠道通知客人

通知是发后即忘：发送失败只记录日志，预订结果不受影响。
"""
import logging
from typing import Optional

from booking_engine.engine.event_bus import EventBus, Event, BookingEventType, event_bus
from booking_engine.notification.channel import NotificationChannelRegistry

logger = logging.getLogger(__name__)


class BookingNotifier:
    """预订通知处理器集合"""

    def __init__(self, registry: Optional[NotificationChannelRegistry] = None,
                 channel_type: str = "email"):
        self._registry = registry or NotificationChannelRegistry()
        self._channel_type = channel_type
        self._registered = False

    def _send(self, recipient: Optional[str], subject: str, content: str, extra: dict) -> None:
        if not recipient:
            logger.warning(f"Notification skipped, no recipient: {subject}")
            return
        try:
            sent = self._registry.send(self._channel_type, recipient, subject, content, extra)
        except Exception as e:
            logger.error(f"Notification failed for {extra.get('reference_code')}: {e}", exc_info=True)
            return
        if not sent:
            logger.warning(f"Notification not delivered via {self._channel_type}: {subject}")

    def handle_booking_confirmed(self, event: Event) -> None:
        """预订确认：发送确认通知"""
        data = event.data
        reference_code = data.get("reference_code")
        self._send(
            data.get("guest_email"),
            f"预订确认 {reference_code}",
            (
                f"{data.get('guest_name', '')} 您好，您的预订 {reference_code} 已确认，"
                f"入住 {data.get('check_in_date')}，离店 {data.get('check_out_date')}，"
                f"应付 {data.get('balance_due_cents', 0)} 分。"
            ),
            {"event_type": event.event_type, "reference_code": reference_code},
        )

    def handle_booking_cancelled(self, event: Event) -> None:
        """预订取消：发送取消通知"""
        data = event.data
        reference_code = data.get("reference_code")
        self._send(
            data.get("guest_email"),
            f"预订取消 {reference_code}",
            f"您的预订 {reference_code} 已取消。原因：{data.get('cancellation_reason') or '无'}",
            {"event_type": event.event_type, "reference_code": reference_code},
        )

    def register(self, bus: Optional[EventBus] = None) -> None:
        """注册所有事件处理器"""
        if self._registered:
            return
        bus = bus or event_bus
        bus.subscribe(BookingEventType.BOOKING_CONFIRMED, self.handle_booking_confirmed)
        bus.subscribe(BookingEventType.BOOKING_CANCELLED, self.handle_booking_cancelled)
        self._registered = True
        logger.info("Booking notification handlers registered")

    def unregister(self, bus: Optional[EventBus] = None) -> None:
        bus = bus or event_bus
        bus.unsubscribe(BookingEventType.BOOKING_CONFIRMED, self.handle_booking_confirmed)
        bus.unsubscribe(BookingEventType.BOOKING_CANCELLED, self.handle_booking_cancelled)
        self._registered = False
