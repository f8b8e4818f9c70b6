"""
通知渠道接口 - 客人通知协作方的抽象

部署方实现 INotificationChannel（邮件、短信、Webhook 等）并注册到
NotificationChannelRegistry；预订引擎只通过渠道类型发送。
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
import logging
import threading

logger = logging.getLogger(__name__)


class INotificationChannel(ABC):
    """通知渠道接口"""

    @abstractmethod
    def send(
        self,
        recipient: str,
        subject: str,
        content: str,
        extra: Optional[Dict] = None,
    ) -> bool:
        """发送通知

        Args:
            recipient: 客人联系方式（邮箱或手机号，由渠道决定）
            subject: 通知标题
            content: 通知正文
            extra: 附加信息（预订参考号、事件类型）

        Returns:
            是否发送成功
        """

    @abstractmethod
    def get_channel_type(self) -> str:
        """渠道类型，如 'email'、'sms'"""


class NotificationChannelRegistry:
    """
    通知渠道注册表（线程安全单例）

    确认可能在多个工作线程中并发完成，注册与查找都在锁内进行。
    """

    _instance: Optional["NotificationChannelRegistry"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "NotificationChannelRegistry":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    instance = super().__new__(cls)
                    instance._channels: Dict[str, INotificationChannel] = {}
                    instance._channels_lock = threading.RLock()
                    cls._instance = instance
        return cls._instance

    def register(self, channel: INotificationChannel) -> None:
        """注册渠道，同类型渠道会被替换"""
        channel_type = channel.get_channel_type()
        with self._channels_lock:
            replaced = channel_type in self._channels
            self._channels[channel_type] = channel
        logger.info(f"Notification channel {'replaced' if replaced else 'registered'}: {channel_type}")

    def unregister(self, channel_type: str) -> bool:
        with self._channels_lock:
            return self._channels.pop(channel_type, None) is not None

    def get_channel(self, channel_type: str) -> Optional[INotificationChannel]:
        with self._channels_lock:
            return self._channels.get(channel_type)

    def get_all_channels(self) -> List[INotificationChannel]:
        with self._channels_lock:
            return list(self._channels.values())

    def send(
        self,
        channel_type: str,
        recipient: str,
        subject: str,
        content: str,
        extra: Optional[Dict] = None,
    ) -> bool:
        """
        通过指定类型的渠道发送

        Returns:
            渠道返回的结果；渠道未注册时返回 False
        """
        channel = self.get_channel(channel_type)
        if channel is None:
            logger.warning(f"No notification channel registered for {channel_type}")
            return False
        return channel.send(recipient, subject, content, extra)

    def clear(self) -> None:
        """清除所有渠道（用于测试）"""
        with self._channels_lock:
            self._channels.clear()
