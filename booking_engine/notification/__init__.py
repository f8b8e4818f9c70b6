"""
通知渠道抽象层与预订通知处理器
"""
from booking_engine.notification.channel import INotificationChannel, NotificationChannelRegistry
from booking_engine.notification.booking_notifier import BookingNotifier

__all__ = ["INotificationChannel", "NotificationChannelRegistry", "BookingNotifier"]
