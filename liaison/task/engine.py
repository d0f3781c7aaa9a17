"""
ライフサイクルエンジンモジュール。

受理されたタスクを状態遷移に沿って駆動する:

    PENDING -> IN_PROGRESS -> COMPLETED | FAILED
    PENDING | IN_PROGRESS -> CANCELLED (明示的なキャンセルのみ)

- タスクごとに独立したasyncio.Taskとして実行し、集合で追跡する
- 書き込みはすべてレジストリのmutate経由で、直前に最新の状態を確認する
- キャンセルは協調的: 実行中のエグゼキュータ呼び出しは中断せず、
  次のチェックポイントでCANCELLEDを検知した時点で以降の書き込みを止める
- タイムアウトはエグゼキュータ呼び出し全体に対するデッドラインとして強制し、
  完了後にもstarted_atからの経過時間を確認する
"""

import asyncio
import logging

from liaison.task.errors import TaskCancelledError, TaskNotFoundError, TaskTimeoutError
from liaison.task.executor import Executor
from liaison.task.models import Task, TaskStatus
from liaison.task.progress import TaskListener
from liaison.task.registry import TaskRegistry, TaskUpdater
from liaison.task.retention import RetentionPolicy

logger = logging.getLogger(__name__)

DEFAULT_TASK_TIMEOUT_MS = 300_000
EXECUTOR_CANCELLED_ERROR = "Executor cancelled"


class LifecycleEngine:
    """タスクのライフサイクルを駆動するエンジン。

    Attributes:
        _registry: タスクレジストリ
        _executor: エグゼキュータ
        _timeout_ms: タスクのタイムアウト(ミリ秒)
        _retention: 終端遷移後に適用する保持ポリシー(任意)
        _listener: 変更通知先(任意)
        _running: 実行中のエンジンタスク
    """

    def __init__(
        self,
        registry: TaskRegistry,
        executor: Executor,
        timeout_ms: int = DEFAULT_TASK_TIMEOUT_MS,
        retention: RetentionPolicy | None = None,
        listener: TaskListener | None = None,
    ) -> None:
        """LifecycleEngineを初期化する。

        Args:
            registry: タスクレジストリ
            executor: タスクを処理するエグゼキュータ
            timeout_ms: タスクのタイムアウト(ミリ秒)
            retention: 保持ポリシー(任意)
            listener: 変更通知先(任意)
        """
        if timeout_ms < 1:
            raise ValueError("timeout_ms must be >= 1")
        self._registry = registry
        self._executor = executor
        self._timeout_ms = timeout_ms
        self._retention = retention
        self._listener = listener
        self._running: set[asyncio.Task[None]] = set()

    @property
    def running_count(self) -> int:
        """実行中のエンジンタスク数を返す。"""
        return len(self._running)

    def start(self, task_id: str) -> asyncio.Task[None]:
        """タスクの駆動をバックグラウンドで開始する。

        Args:
            task_id: 駆動するタスクのID

        Returns:
            エンジンのasyncio.Task
        """
        runner = asyncio.create_task(self.run(task_id), name=f"liaison-task-{task_id}")
        self._running.add(runner)
        runner.add_done_callback(self._running.discard)
        return runner

    async def join(self) -> None:
        """実行中のエンジンタスクがすべて終了するまで待機する。"""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    async def shutdown(self) -> None:
        """実行中のエンジンタスクをすべてキャンセルし、終了を待機する。"""
        runners = list(self._running)
        for runner in runners:
            runner.cancel()
        if runners:
            await asyncio.gather(*runners, return_exceptions=True)
        logger.info("LifecycleEngine stopped: cancelled=%d", len(runners))

    async def notify(self, task: Task) -> None:
        """リスナーに変更を通知する。リスナーのエラーはログに出力して無視する。"""
        if self._listener is None:
            return
        try:
            await self._listener.on_task_updated(task)
        except Exception as e:
            logger.error("Task listener failed for task %s: %s", task.id, e)

    async def run(self, task_id: str) -> None:
        """タスクを終端状態まで駆動する。

        エンジン内部の想定外のエラーは他のタスクに影響させず、
        対象タスクをFAILEDにして終了する。
        """
        try:
            await self._drive(task_id)
        except asyncio.CancelledError:
            logger.info("Engine cancelled for task %s", task_id)
            raise
        except TaskNotFoundError:
            logger.warning("Task disappeared while running: %s", task_id)
        except Exception as e:
            logger.exception("Unexpected engine error for task %s", task_id)
            try:
                await self._commit(task_id, self._failed(f"Internal error: {e}"))
            except (TaskCancelledError, TaskNotFoundError):
                pass

    async def _drive(self, task_id: str) -> None:
        try:
            task = await self._commit(task_id, self._mark_started)
        except TaskCancelledError:
            logger.info("Task %s was cancelled before it started", task_id)
            return

        logger.info("Task status transitioned: id=%s, status=%s", task_id, task.status.value)

        async def checkpoint(progress: int) -> None:
            await self._commit(task_id, self._progressed(progress))

        timeout_seconds = self._timeout_ms / 1000
        try:
            try:
                async with asyncio.timeout(timeout_seconds) as deadline:
                    result = await self._executor.execute(
                        task.description, task.context, checkpoint
                    )
            except TimeoutError:
                if deadline.expired():
                    raise TaskTimeoutError(task_id, self._timeout_ms) from None
                raise

            started_at = task.started_at if task.started_at is not None else task.created_at
            elapsed_ms = (self._registry.now() - started_at) * 1000
            if elapsed_ms > self._timeout_ms:
                raise TaskTimeoutError(task_id, self._timeout_ms)
        except TaskCancelledError:
            logger.info("Task %s cancelled during execution; stopping", task_id)
            return
        except TaskTimeoutError as e:
            logger.warning("Task %s exceeded its timeout: %s", task_id, e)
            await self._fail_quietly(task_id, str(e))
            return
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling() > 0:
                raise
            # エグゼキュータ自身が送出したCancelledError(エンジンはキャンセルされていない)
            logger.warning("Executor cancelled itself for task %s", task_id)
            await self._fail_quietly(task_id, EXECUTOR_CANCELLED_ERROR)
            return
        except Exception as e:
            logger.warning("Executor failed for task %s: %s", task_id, e)
            await self._fail_quietly(task_id, str(e) or type(e).__name__)
            return

        try:
            await self._commit(task_id, self._completed(result))
        except TaskCancelledError:
            logger.info("Task %s was cancelled before completion was recorded", task_id)
            return
        logger.info("Task status transitioned: id=%s, status=%s", task_id, TaskStatus.COMPLETED.value)

    async def _fail_quietly(self, task_id: str, error: str) -> None:
        try:
            await self._commit(task_id, self._failed(error))
        except TaskCancelledError:
            logger.info("Task %s was cancelled before failure was recorded", task_id)
            return
        logger.info("Task status transitioned: id=%s, status=failed, error=%s", task_id, error)

    async def _commit(self, task_id: str, updater: TaskUpdater) -> Task:
        task = self._registry.mutate(task_id, updater)
        if task.status.is_terminal and self._retention is not None:
            self._retention.enforce(self._registry)
        await self.notify(task)
        return task

    # ---- guarded updaters ----

    def _mark_started(self, task: Task) -> Task:
        if task.status != TaskStatus.PENDING:
            raise TaskCancelledError(task.id)
        task.status = TaskStatus.IN_PROGRESS
        task.started_at = max(self._registry.now(), task.created_at)
        task.progress = 0
        return task

    def _progressed(self, progress: int) -> TaskUpdater:
        def update(task: Task) -> Task:
            if task.status != TaskStatus.IN_PROGRESS:
                raise TaskCancelledError(task.id)
            task.progress = max(task.progress, min(max(progress, 0), 100))
            return task

        return update

    def _completed(self, result: str) -> TaskUpdater:
        def update(task: Task) -> Task:
            if task.status != TaskStatus.IN_PROGRESS:
                raise TaskCancelledError(task.id)
            task.status = TaskStatus.COMPLETED
            task.progress = 100
            task.result = result
            task.completed_at = self._finish_time(task)
            return task

        return update

    def _failed(self, error: str) -> TaskUpdater:
        def update(task: Task) -> Task:
            if task.status.is_terminal:
                raise TaskCancelledError(task.id)
            if task.started_at is None:
                # PENDINGから失敗させる場合も開始を記録し、IN_PROGRESSを経た状態にする
                task.started_at = max(self._registry.now(), task.created_at)
            task.status = TaskStatus.FAILED
            task.error = error
            task.completed_at = self._finish_time(task)
            return task

        return update

    def _finish_time(self, task: Task) -> float:
        started_at = task.started_at if task.started_at is not None else task.created_at
        return max(self._registry.now(), started_at)
