"""
タスクマネージャーモジュール。

プロトコル層に公開する境界操作を実装する:
- Protocol型でTaskManagerインターフェース定義
- TaskManagerImplクラスで実装
- タスク委譲(delegate)機能
- タスク状態取得(get_task)機能
- タスク一覧(list_tasks)・統計(get_stats)機能
- タスクキャンセル(cancel)機能

依存性注入パターン:
- TaskRegistry: タスク状態の唯一の情報源
- AdmissionController: 同時実行数による受理制御
- LifecycleEngine: 受理後のタスク駆動
- RetentionPolicy: 終端タスクの保持数制限
"""

import logging
import uuid
from typing import Protocol

from liaison.task.concurrency import AdmissionController
from liaison.task.engine import LifecycleEngine
from liaison.task.errors import InvalidTaskStateError
from liaison.task.executor import Executor
from liaison.task.models import (
    LIST_LIMIT_DEFAULT,
    AdmissionRejected,
    DelegateRequest,
    DelegateResult,
    ListTasksRequest,
    Task,
    TaskListResult,
    TaskStats,
    TaskStatus,
)
from liaison.task.progress import TaskListener
from liaison.task.registry import TaskRegistry
from liaison.task.retention import RetentionPolicy

logger = logging.getLogger(__name__)

DEFAULT_MAX_DESCRIPTION_LENGTH = 5000
DEFAULT_MAX_CONTEXT_LENGTH = 50000


def generate_task_id() -> str:
    """UUID v4形式のタスクIDを生成する。"""
    return str(uuid.uuid4())


class TaskManager(Protocol):
    """タスクマネージャーのプロトコル定義。

    - delegate: タスクを委譲
    - get_task: タスクの現在の状態を取得
    - list_tasks: タスク一覧を取得
    - cancel: タスクをキャンセル
    - get_stats: 状態ごとの件数を取得
    """

    async def delegate(
        self, description: str, context: str | None = None
    ) -> DelegateResult | AdmissionRejected:
        """タスクを委譲する。

        Args:
            description: タスク本文
            context: 補足情報

        Returns:
            受理された場合はDelegateResult、上限到達時はAdmissionRejected

        Raises:
            pydantic.ValidationError: 入力が不正な場合
        """
        ...

    def get_task(self, task_id: str) -> Task:
        """タスクを取得する。

        Raises:
            TaskNotFoundError: タスクが存在しない場合
        """
        ...

    def list_tasks(
        self, status: TaskStatus | str | None = None, limit: int = LIST_LIMIT_DEFAULT
    ) -> TaskListResult:
        """タスク一覧を取得する。"""
        ...

    async def cancel(self, task_id: str) -> Task:
        """タスクをキャンセルする。

        Raises:
            TaskNotFoundError: タスクが存在しない場合
            InvalidTaskStateError: タスクが終端状態の場合
        """
        ...

    def get_stats(self) -> TaskStats:
        """状態ごとのタスク数を返す。"""
        ...


class TaskManagerImpl:
    """TaskManagerの実装クラス。

    Attributes:
        _registry: タスクレジストリ
        _admission: 受理制御
        _engine: ライフサイクルエンジン
        _retention: 保持ポリシー
        _max_description_length: タスク本文の最大文字数
        _max_context_length: 補足情報の最大文字数
    """

    def __init__(
        self,
        registry: TaskRegistry,
        admission: AdmissionController,
        engine: LifecycleEngine,
        retention: RetentionPolicy,
        max_description_length: int = DEFAULT_MAX_DESCRIPTION_LENGTH,
        max_context_length: int = DEFAULT_MAX_CONTEXT_LENGTH,
    ) -> None:
        """TaskManagerImplを初期化する。

        Args:
            registry: タスクレジストリ
            admission: 受理制御(registryと同じインスタンスを参照すること)
            engine: ライフサイクルエンジン
            retention: 保持ポリシー
            max_description_length: タスク本文の最大文字数
            max_context_length: 補足情報の最大文字数
        """
        self._registry = registry
        self._admission = admission
        self._engine = engine
        self._retention = retention
        self._max_description_length = max_description_length
        self._max_context_length = max_context_length

        logger.info("TaskManagerImpl initialized")

    @property
    def registry(self) -> TaskRegistry:
        """タスクレジストリを返す。"""
        return self._registry

    async def delegate(
        self, description: str, context: str | None = None
    ) -> DelegateResult | AdmissionRejected:
        """タスクを委譲する。

        状態遷移:
        - 受理時にPENDINGで登録し、エンジンに駆動を開始させる
        - 上限到達時はレコードを作成せずAdmissionRejectedを返す

        Args:
            description: タスク本文
            context: 補足情報

        Returns:
            受理された場合はDelegateResult、上限到達時はAdmissionRejected

        Raises:
            pydantic.ValidationError: 本文が空、または文字数上限を超える場合
        """
        request = DelegateRequest.model_validate(
            {"task": description, "context": context},
            context={
                "max_description_length": self._max_description_length,
                "max_context_length": self._max_context_length,
            },
        )

        now = self._registry.now()
        task = Task(
            id=generate_task_id(),
            description=request.description,
            context=request.context,
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

        rejected = await self._admission.admit(task)
        if rejected is not None:
            return rejected

        logger.info(
            "Task registered: id=%s, status=%s, description_length=%d",
            task.id,
            task.status.value,
            len(task.description),
        )

        self._retention.enforce(self._registry)
        self._engine.start(task.id)

        return DelegateResult(id=task.id, status=task.status, created_at=task.created_at)

    def get_task(self, task_id: str) -> Task:
        """タスクを取得する。

        Raises:
            TaskNotFoundError: タスクが存在しない場合(退避済みを含む)
        """
        logger.debug("Getting status for task: %s", task_id)
        return self._registry.get(task_id)

    def list_tasks(
        self, status: TaskStatus | str | None = None, limit: int = LIST_LIMIT_DEFAULT
    ) -> TaskListResult:
        """タスク一覧を取得する。

        Args:
            status: 絞り込む状態(省略時は全件)
            limit: 最大件数(1-100)

        Returns:
            updated_at降順に並べたTaskListResult

        Raises:
            pydantic.ValidationError: statusまたはlimitが不正な場合
        """
        request = ListTasksRequest.model_validate({"status": status, "limit": limit})

        snapshot = self._registry.list()
        matched = [
            task for task in snapshot if request.status is None or task.status == request.status
        ]
        matched.sort(key=self._registry.recency_key, reverse=True)

        return TaskListResult(
            total=len(snapshot),
            filtered=len(matched),
            tasks=matched[: request.limit],
        )

    async def cancel(self, task_id: str) -> Task:
        """タスクをキャンセルする。

        終端状態(COMPLETED, FAILED, CANCELLED)のタスクはキャンセルできない。
        この書き込みはエンジンの次のチェックポイントで検知される。

        Args:
            task_id: タスクID

        Returns:
            キャンセル後のタスク

        Raises:
            TaskNotFoundError: タスクが存在しない場合
            InvalidTaskStateError: タスクが終端状態の場合
        """
        logger.info("Cancelling task: %s", task_id)

        def mark_cancelled(task: Task) -> Task:
            if task.status.is_terminal:
                raise InvalidTaskStateError(task.id, task.status)
            task.status = TaskStatus.CANCELLED
            return task

        try:
            task = self._registry.mutate(task_id, mark_cancelled)
        except InvalidTaskStateError as e:
            logger.warning(
                "Cannot cancel: task in terminal state: id=%s, status=%s",
                task_id,
                e.current_status.value,
            )
            raise

        logger.info("Task cancelled: %s", task_id)

        self._retention.enforce(self._registry)
        await self._engine.notify(task)
        return task

    def get_stats(self) -> TaskStats:
        """状態ごとのタスク数を返す。"""
        snapshot = self._registry.list()
        counts = {status: 0 for status in TaskStatus}
        for task in snapshot:
            counts[task.status] += 1

        return TaskStats(
            total=len(snapshot),
            pending=counts[TaskStatus.PENDING],
            in_progress=counts[TaskStatus.IN_PROGRESS],
            completed=counts[TaskStatus.COMPLETED],
            failed=counts[TaskStatus.FAILED],
            cancelled=counts[TaskStatus.CANCELLED],
        )

    async def wait_for_idle(self) -> None:
        """実行中のタスクがすべて終端状態に達するまで待機する。"""
        await self._engine.join()

    async def stop(self) -> None:
        """実行中のエンジンを停止する。"""
        await self._engine.shutdown()

    def clear_tasks(self) -> None:
        """全タスクを削除する。"""
        self._registry.clear()


def create_task_manager(
    *,
    executor: Executor,
    max_concurrent_tasks: int = 10,
    task_timeout_ms: int = 300_000,
    max_description_length: int = DEFAULT_MAX_DESCRIPTION_LENGTH,
    max_context_length: int = DEFAULT_MAX_CONTEXT_LENGTH,
    max_retained_tasks: int = 100,
    registry: TaskRegistry | None = None,
    listener: TaskListener | None = None,
) -> TaskManagerImpl:
    """依存関係を組み立ててTaskManagerImplを生成する。

    Args:
        executor: タスクを処理するエグゼキュータ
        max_concurrent_tasks: 最大同時実行数
        task_timeout_ms: タスクのタイムアウト(ミリ秒)
        max_description_length: タスク本文の最大文字数
        max_context_length: 補足情報の最大文字数
        max_retained_tasks: 保持する終端タスクの最大数
        registry: タスクレジストリ(省略時は新規作成)
        listener: 変更通知先(任意)

    Returns:
        組み立て済みのTaskManagerImpl
    """
    registry = registry if registry is not None else TaskRegistry()
    retention = RetentionPolicy(max_retained_tasks)
    engine = LifecycleEngine(
        registry,
        executor,
        timeout_ms=task_timeout_ms,
        retention=retention,
        listener=listener,
    )
    return TaskManagerImpl(
        registry,
        AdmissionController(registry, max_concurrent_tasks),
        engine,
        retention,
        max_description_length=max_description_length,
        max_context_length=max_context_length,
    )
