"""
受理制御モジュール。

- 同時実行数(PENDING + IN_PROGRESS)をmax_concurrentで制限
- 上限到達時は例外ではなくAdmissionRejectedを返す
- 件数の確認とレジストリへの登録を1つのクリティカルセクションで行う
"""

import asyncio
import logging

from liaison.task.models import ACTIVE_STATES, AdmissionRejected, Task
from liaison.task.registry import TaskRegistry

logger = logging.getLogger(__name__)


class AdmissionController:
    """受理制御クラス。

    機能:
    - 現在の実行中タスク数をレジストリから算出
    - 上限未満の場合のみタスクを登録
    - 上限到達時は現在数と上限を含む拒否結果を返す

    Attributes:
        _registry: タスクレジストリ
        _max_concurrent: 最大同時実行数
        _lock: 件数確認と登録を直列化するロック
    """

    def __init__(self, registry: TaskRegistry, max_concurrent: int) -> None:
        """AdmissionControllerを初期化する。

        Args:
            registry: タスクレジストリ
            max_concurrent: 最大同時実行数
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._registry = registry
        self._max_concurrent = max_concurrent
        self._lock = asyncio.Lock()

        logger.info(
            "AdmissionController initialized with max_concurrent=%d",
            max_concurrent,
        )

    @property
    def max_concurrent(self) -> int:
        """最大同時実行数を返す。"""
        return self._max_concurrent

    @property
    def active_count(self) -> int:
        """PENDINGまたはIN_PROGRESSのタスク数を返す。"""
        return self._registry.count(ACTIVE_STATES)

    def can_admit(self) -> bool:
        """新しいタスクを受理できるかどうかを返す。"""
        return self.active_count < self._max_concurrent

    async def admit(self, task: Task) -> AdmissionRejected | None:
        """タスクを受理してレジストリに登録する。

        Args:
            task: 登録するタスク(PENDING状態)

        Returns:
            受理できた場合はNone、上限に達している場合はAdmissionRejected
        """
        async with self._lock:
            current = self.active_count
            if current >= self._max_concurrent:
                logger.warning(
                    "Admission rejected: running=%d/%d",
                    current,
                    self._max_concurrent,
                )
                return AdmissionRejected(limit=self._max_concurrent, current=current)

            self._registry.insert(task)
            logger.debug(
                "Admitted task %s: running=%d/%d",
                task.id,
                current + 1,
                self._max_concurrent,
            )
            return None
