"""
补偿栈 - 多步操作的回滚动作

每个修改共享状态的步骤成功后压入一条回滚动作；后续步骤失败时，
``unwind()`` 按逆序执行全部动作，使状态回到操作之前。操作成功后调用 ``discard()``。
"""
from typing import Callable, List, Tuple
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)


@dataclass
class CompensationFailure:
    """回滚时抛出异常的动作"""

    description: str
    error: Exception


@dataclass
class CompensationStack:
    """
    回滚动作栈

    示例:
        >>> stack = CompensationStack("confirm BK-1")
        >>> stack.push("credit 2024-12-20", lambda: store.increment_one_room(1, night))
        >>> try:
        ...     do_more_work()
        ... except Exception:
        ...     stack.unwind()
        ...     raise
    """

    name: str = "operation"
    _actions: List[Tuple[str, Callable[[], None]]] = field(default_factory=list)
    failures: List[CompensationFailure] = field(default_factory=list)

    def push(self, description: str, action: Callable[[], None]) -> None:
        """为刚成功的步骤登记回滚动作"""
        self._actions.append((description, action))

    def __len__(self) -> int:
        return len(self._actions)

    def discard(self) -> None:
        """丢弃全部回滚动作（操作已提交）"""
        self._actions.clear()

    def unwind(self) -> List[CompensationFailure]:
        """
        按后进先出顺序执行回滚动作

        前一个动作失败也会继续执行后续动作；失败会带完整上下文记录日志并返回给调用方。

        Returns:
            失败列表（补偿完整时为空）
        """
        if self._actions:
            logger.info(f"Compensating {self.name}: {len(self._actions)} action(s)")
        while self._actions:
            description, action = self._actions.pop()
            try:
                action()
            except Exception as e:
                self.failures.append(CompensationFailure(description, e))
                logger.error(
                    f"Compensation step failed for {self.name}: {description}: {e}",
                    exc_info=True,
                )
        return list(self.failures)
