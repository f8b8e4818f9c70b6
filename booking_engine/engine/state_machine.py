"""
booking_engine/engine/state_machine.py

状态机引擎 - 校验状态转换并记录历史
"""
from typing import Dict, List, Optional
from dataclasses import dataclass, field
import logging
import time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateTransition:
    """
    状态转换定义

    Attributes:
        from_state: 源状态
        to_state: 目标状态
        trigger: 触发动作
    """

    from_state: str
    to_state: str
    trigger: str


@dataclass
class StateMachineConfig:
    """
    状态机配置

    Attributes:
        name: 状态机名称
        states: 所有状态的列表
        transitions: 转换列表
        initial_state: 初始状态
        terminal_states: 终态（不允许任何转出）
    """

    name: str
    states: List[str]
    transitions: List[StateTransition]
    initial_state: str
    terminal_states: List[str] = field(default_factory=list)


@dataclass
class StateMachineSnapshot:
    """状态转换历史记录"""

    previous_state: str
    current_state: str
    trigger: str
    timestamp: float


class StateMachine:
    """
    状态机引擎

    Example:
        >>> machine = StateMachine(config, current_state="reserved")
        >>> if machine.can_fire("confirm"):
        ...     machine.fire("confirm")
    """

    def __init__(self, config: StateMachineConfig, current_state: Optional[str] = None):
        self._config = config
        self._current_state = current_state or config.initial_state
        if self._current_state not in config.states:
            raise ValueError(f"Unknown state for {config.name}: {self._current_state}")
        self._history: List[StateMachineSnapshot] = []
        self._transition_map: Dict[str, Dict[str, StateTransition]] = {}

        # 构建转换映射: (from_state, trigger) -> transition
        for t in config.transitions:
            if t.from_state in config.terminal_states:
                raise ValueError(f"Terminal state {t.from_state} cannot have outgoing transitions")
            self._transition_map.setdefault(t.from_state, {})[t.trigger] = t

    @property
    def current_state(self) -> str:
        """获取当前状态"""
        return self._current_state

    @property
    def history(self) -> List[StateMachineSnapshot]:
        return list(self._history)

    def is_terminal(self) -> bool:
        return self._current_state in self._config.terminal_states

    def allowed_triggers(self) -> List[str]:
        """当前状态下可用的触发动作"""
        return list(self._transition_map.get(self._current_state, {}).keys())

    def target_of(self, trigger: str) -> Optional[str]:
        """触发动作的目标状态，不允许时返回 None"""
        transition = self._transition_map.get(self._current_state, {}).get(trigger)
        return transition.to_state if transition else None

    def can_fire(self, trigger: str) -> bool:
        return self.target_of(trigger) is not None

    def can_transition_to(self, target_state: str, trigger: str) -> bool:
        """
        检查是否可以转换到目标状态

        Args:
            target_state: 目标状态
            trigger: 触发动作
        """
        return self.target_of(trigger) == target_state

    def fire(self, trigger: str) -> str:
        """
        执行触发动作

        Returns:
            新状态

        Raises:
            ValueError: 当前状态不允许该动作
        """
        target = self.target_of(trigger)
        if target is None:
            logger.warning(
                f"Invalid transition for {self._config.name}: {self._current_state} (trigger: {trigger})"
            )
            raise ValueError(f"{self._config.name} 状态 {self._current_state} 不允许 {trigger}")

        previous = self._current_state
        self._current_state = target
        self._history.append(StateMachineSnapshot(
            previous_state=previous,
            current_state=target,
            trigger=trigger,
            timestamp=time.time(),
        ))
        logger.info(f"State transition: {previous} -> {target} (trigger: {trigger})")
        return target
