"""
booking_engine/engine - 通用引擎组件

- state_machine: 状态机（状态转换）
- compensation: 补偿栈（多步操作回滚）
- event_bus: 事件总线（发布/订阅）
"""

# 状态机
from booking_engine.engine.state_machine import (
    StateTransition,
    StateMachineConfig,
    StateMachineSnapshot,
    StateMachine,
)

# 补偿栈
from booking_engine.engine.compensation import CompensationFailure, CompensationStack

# 事件总线
from booking_engine.engine.event_bus import (
    BookingEventType,
    Event,
    PublishResult,
    EventBus,
    event_bus,
)

__all__ = [
    "StateTransition", "StateMachineConfig", "StateMachineSnapshot", "StateMachine",
    "CompensationFailure", "CompensationStack",
    "BookingEventType", "Event", "PublishResult", "EventBus", "event_bus",
]
