"""
エグゼキュータモジュール。

委譲されたタスクを実際に処理する外部コラボレータの抽象と、
一定回数の待機と進捗報告を繰り返すシミュレーション実装を提供する。

エグゼキュータは作業単位ごとにcheckpointを呼び出す。checkpointは
レジストリ上の最新の状態を確認し、キャンセル済みであれば
TaskCancelledErrorを送出して以降の作業を打ち切らせる。
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

logger = logging.getLogger(__name__)

# 進捗(0-100)を報告し、キャンセル済みならTaskCancelledErrorを送出する
Checkpoint = Callable[[int], Awaitable[None]]

DEFAULT_SIMULATED_STEPS = 10
DEFAULT_STEP_DELAY_SECONDS = 0.5


class Executor(Protocol):
    """エグゼキュータのプロトコル定義。"""

    async def execute(
        self,
        description: str,
        context: str | None,
        checkpoint: Checkpoint,
    ) -> str:
        """タスクを実行する。

        Args:
            description: タスク本文
            context: 補足情報
            checkpoint: 作業単位ごとに呼び出す進捗報告関数

        Returns:
            実行結果

        Raises:
            Exception: 実行に失敗した場合(タスクはFAILEDになる)
        """
        ...


class SimulatedExecutor:
    """固定回数の待機と進捗報告で作業を模擬するエグゼキュータ。

    Attributes:
        _steps: 作業単位の数
        _step_delay: 1作業単位あたりの待機秒数
    """

    def __init__(
        self,
        steps: int = DEFAULT_SIMULATED_STEPS,
        step_delay_seconds: float = DEFAULT_STEP_DELAY_SECONDS,
    ) -> None:
        if steps < 1:
            raise ValueError("steps must be >= 1")
        if step_delay_seconds < 0:
            raise ValueError("step_delay_seconds must be >= 0")
        self._steps = steps
        self._step_delay = step_delay_seconds

    @property
    def steps(self) -> int:
        """作業単位の数を返す。"""
        return self._steps

    async def execute(
        self,
        description: str,
        context: str | None,
        checkpoint: Checkpoint,
    ) -> str:
        """作業単位ごとに待機し、進捗を報告する。"""
        for step in range(1, self._steps + 1):
            await asyncio.sleep(self._step_delay)
            await checkpoint(step * 100 // self._steps)
            logger.debug("Simulated step %d/%d done", step, self._steps)

        summary = f"Completed task: {description}"
        if context:
            summary += f" (context: {len(context)} chars)"
        return summary
