"""
タスクレジストリモジュール。

タスクID -> タスクレコードのマッピングを排他的に所有し、
タスク状態の唯一の情報源となる。

- insert: 新規登録(ID重複は内部不変条件違反)
- get: コピーを返す
- mutate: アトミックなread-modify-write
- list: スナップショット(コピー)を返す

すべての操作は同期的で、途中にサスペンドポイントを持たない。
単一スレッドのasyncioではこれがそのまま排他制御になる。
"""

import logging
import time
from collections.abc import Callable, Iterable

from liaison.task.errors import DuplicateTaskError, TaskNotFoundError
from liaison.task.models import Task, TaskStatus

logger = logging.getLogger(__name__)

# 現在時刻(Unix秒)を返す時刻ソース
Clock = Callable[[], float]

# 更新関数: コピーを受け取り新しいレコードを返す。例外を送出すると書き込みは中止される
TaskUpdater = Callable[[Task], Task]


class TaskRegistry:
    """インメモリのタスクレジストリ。

    Attributes:
        _tasks: タスクIDとレコードのマッピング
        _revisions: 最終更新順の通し番号(updated_atが等しい場合の順序付け用)
        _clock: 時刻ソース
    """

    def __init__(self, clock: Clock = time.time) -> None:
        """TaskRegistryを初期化する。

        Args:
            clock: 時刻ソース(テストでは固定・単調増加の関数を注入する)
        """
        self._tasks: dict[str, Task] = {}
        self._revisions: dict[str, int] = {}
        self._next_revision = 0
        self._clock = clock

    def now(self) -> float:
        """時刻ソースから現在時刻を返す。"""
        return self._clock()

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def insert(self, task: Task) -> None:
        """タスクを登録する。

        Args:
            task: 登録するタスク

        Raises:
            DuplicateTaskError: 同一IDが既に登録されている場合
        """
        if task.id in self._tasks:
            logger.error("Duplicate task id detected: %s", task.id)
            raise DuplicateTaskError(task.id)

        self._tasks[task.id] = task.model_copy()
        self._touch(task.id)
        logger.debug("Task inserted: id=%s", task.id)

    def get(self, task_id: str) -> Task:
        """タスクのコピーを返す。

        Raises:
            TaskNotFoundError: タスクが存在しない場合
        """
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task.model_copy()

    def mutate(self, task_id: str, updater: TaskUpdater) -> Task:
        """タスクをアトミックに更新する。

        updaterにはコピーを渡すため、updaterが例外を送出した場合は
        レコードは変更されない。updated_atはここで更新する。

        Args:
            task_id: 更新対象のタスクID
            updater: コピーを受け取り新しいレコードを返す関数

        Returns:
            更新後のレコードのコピー

        Raises:
            TaskNotFoundError: タスクが存在しない場合
        """
        current = self._tasks.get(task_id)
        if current is None:
            raise TaskNotFoundError(task_id)

        updated = updater(current.model_copy())
        # updated_atは巻き戻さない
        updated.updated_at = max(self.now(), current.updated_at)
        self._tasks[task_id] = updated
        self._touch(task_id)
        return updated.model_copy()

    def remove(self, task_id: str) -> None:
        """タスクを削除する。存在しない場合は何もしない。"""
        self._tasks.pop(task_id, None)
        self._revisions.pop(task_id, None)

    def list(self) -> list[Task]:
        """全タスクのスナップショットを返す。"""
        return [task.model_copy() for task in self._tasks.values()]

    def count(self, statuses: Iterable[TaskStatus]) -> int:
        """指定した状態のいずれかにあるタスク数を返す。"""
        wanted = frozenset(statuses)
        return sum(1 for task in self._tasks.values() if task.status in wanted)

    def recency_key(self, task: Task) -> tuple[float, int]:
        """更新の新しさを比較するためのキーを返す(大きいほど新しい)。"""
        return task.updated_at, self._revisions.get(task.id, -1)

    def clear(self) -> None:
        """全タスクを削除する。"""
        count = len(self._tasks)
        self._tasks.clear()
        self._revisions.clear()
        logger.info("Task registry cleared: removed=%d", count)

    def _touch(self, task_id: str) -> None:
        self._revisions[task_id] = self._next_revision
        self._next_revision += 1
