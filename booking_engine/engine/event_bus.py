"""
booking_engine/engine/event_bus.py

事件总线 - 内存级发布/订阅模式
预订提交后发布领域事件；处理器异常被隔离并记录，不会回传给发布方
"""
from typing import Callable, Dict, List, Any, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime
from collections import deque
import logging
import threading
import uuid

logger = logging.getLogger(__name__)


class BookingEventType:
    """预订领域事件类型"""
    BOOKING_CONFIRMED = "booking.confirmed"
    BOOKING_CANCELLED = "booking.cancelled"
    BOOKING_STATUS_CHANGED = "booking.status_changed"
    PAYMENT_RECORDED = "booking.payment_recorded"


def _generate_event_id() -> str:
    """生成唯一事件ID"""
    return f"{datetime.now().strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8]}"


@dataclass
class Event:
    """
    事件

    Attributes:
        event_type: 事件类型（如 "booking.confirmed"）
        data: 事件数据
        source: 触发来源（服务名）
        timestamp: 事件时间戳
        event_id: 唯一事件ID
    """

    event_type: str
    data: Dict[str, Any]
    source: str = ""
    timestamp: datetime = field(default_factory=datetime.utcnow)
    event_id: str = field(default_factory=_generate_event_id)


@dataclass
class PublishResult:
    """
    事件发布结果

    Attributes:
        event_type: 事件类型
        subscriber_count: 订阅者数量
        success_count: 成功处理的处理器数量
        failure_count: 失败的处理器数量
        errors: 处理器错误列表 (handler, exception) 元组
    """

    event_type: str
    subscriber_count: int
    success_count: int = 0
    failure_count: int = 0
    errors: List[Tuple[Callable, Exception]] = field(default_factory=list)


class EventBus:
    """
    内存级事件总线（线程安全单例模式）

    使用方式：
    1. 订阅事件：event_bus.subscribe("booking.confirmed", handler_func)
    2. 发布事件：event_bus.publish(Event(...))
    3. 取消订阅：event_bus.unsubscribe("booking.confirmed", handler_func)
    """

    _instance: Optional["EventBus"] = None
    _lock = threading.Lock()

    def __new__(cls, history_size: int = 100) -> "EventBus":
        """单例模式 - 确保全局唯一实例"""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, history_size: int = 100):
        if self._initialized:
            return
        self._subscribers: Dict[str, List[Callable[[Event], None]]] = {}
        self._event_history: deque = deque(maxlen=history_size)  # 保留最近记录用于调试
        self._subscriber_lock = threading.RLock()
        self._initialized = True
        logger.info("EventBus initialized")

    def subscribe(self, event_type: str, handler: Callable[[Event], None]) -> None:
        """
        订阅事件

        Args:
            event_type: 事件类型
            handler: 处理函数，接收 Event 对象作为参数
        """
        with self._subscriber_lock:
            handlers = self._subscribers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)
                logger.info(f"Handler {getattr(handler, '__name__', handler)} subscribed to {event_type}")

    def unsubscribe(self, event_type: str, handler: Callable[[Event], None]) -> None:
        """取消订阅"""
        with self._subscriber_lock:
            if handler in self._subscribers.get(event_type, []):
                self._subscribers[event_type].remove(handler)

    def publish(self, event: Event) -> PublishResult:
        """
        发布事件（同步执行所有处理器）

        处理器异常不会影响其他处理器的执行，也不会抛给发布方。
        """
        self._event_history.append(event)

        # 在锁内复制，避免长时间持锁
        with self._subscriber_lock:
            handlers = list(self._subscribers.get(event.event_type, []))

        result = PublishResult(event_type=event.event_type, subscriber_count=len(handlers))

        for handler in handlers:
            try:
                handler(event)
                result.success_count += 1
            except Exception as e:
                result.failure_count += 1
                result.errors.append((handler, e))
                logger.error(
                    f"Event handler {getattr(handler, '__name__', handler)} error for {event.event_type}: {e}",
                    exc_info=True,
                )

        return result

    def get_history(self, event_type: Optional[str] = None, limit: int = 50) -> List[Event]:
        """获取事件历史（最新的在前）"""
        history = list(self._event_history)
        if event_type:
            history = [e for e in history if e.event_type == event_type]
        return list(reversed(history))[:limit]

    def clear(self) -> None:
        """清除所有订阅和历史（用于测试）"""
        with self._subscriber_lock:
            self._subscribers.clear()
        self._event_history.clear()


# 全局事件总线实例
event_bus = EventBus()
