"""
保持ポリシーモジュール。

終端状態のタスク数が上限を超えた場合、updated_atが最も古いものから退避する。
実行中(PENDING/IN_PROGRESS)のタスクは経過時間に関わらず退避しない。
"""

import logging

from liaison.task.models import TERMINAL_STATES
from liaison.task.registry import TaskRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETAINED_TASKS = 100


class RetentionPolicy:
    """終端タスクの保持数を制限するポリシー。

    Attributes:
        _max_retained: 保持する終端タスクの最大数
    """

    def __init__(self, max_retained: int = DEFAULT_MAX_RETAINED_TASKS) -> None:
        if max_retained < 0:
            raise ValueError("max_retained must be >= 0")
        self._max_retained = max_retained

    @property
    def max_retained(self) -> int:
        """保持上限を返す。"""
        return self._max_retained

    def enforce(self, registry: TaskRegistry) -> list[str]:
        """上限を超えた終端タスクを退避する。

        Args:
            registry: 対象のタスクレジストリ

        Returns:
            退避したタスクIDのリスト(古い順)
        """
        terminal = [task for task in registry.list() if task.status in TERMINAL_STATES]
        excess = len(terminal) - self._max_retained
        if excess <= 0:
            return []

        terminal.sort(key=registry.recency_key)
        evicted = [task.id for task in terminal[:excess]]
        for task_id in evicted:
            registry.remove(task_id)

        logger.info(
            "Evicted %d terminal tasks (retained=%d)",
            len(evicted),
            self._max_retained,
        )
        return evicted
