"""
タスク管理の例外定義モジュール。

- TaskNotFoundError: 存在しない(または退避済みの)タスクIDを参照した
- InvalidTaskStateError: 終端状態のタスクをキャンセルしようとした
- DuplicateTaskError: 同一IDの二重登録(内部不変条件違反)
- TaskCancelledError: エンジン内部で使うキャンセル検知
- TaskTimeoutError: タイムアウト検知
"""

from liaison.task.models import TaskStatus


class TaskError(Exception):
    """タスク管理エラーの基底クラス。

    Attributes:
        task_id: 対象タスクのID
    """

    def __init__(self, message: str, task_id: str) -> None:
        super().__init__(message)
        self.task_id = task_id


class TaskNotFoundError(TaskError):
    """タスクが存在しない場合にraiseされる。"""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}", task_id)


class InvalidTaskStateError(TaskError):
    """現在の状態では許可されない操作の場合にraiseされる。

    Attributes:
        current_status: 操作時点のタスク状態
    """

    def __init__(self, task_id: str, current_status: TaskStatus) -> None:
        super().__init__(
            f"Cannot cancel task {task_id}: already {current_status.value}",
            task_id,
        )
        self.current_status = current_status


class DuplicateTaskError(TaskError):
    """同一IDのタスクが既に登録されている場合にraiseされる。"""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task already registered: {task_id}", task_id)


class TaskCancelledError(TaskError):
    """エンジンがキャンセル済みのタスクを検知した場合にraiseされる。"""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task cancelled: {task_id}", task_id)


class TaskTimeoutError(TaskError):
    """タスクが設定されたタイムアウトを超過した場合にraiseされる。

    Attributes:
        timeout_ms: 設定されたタイムアウト(ミリ秒)
    """

    def __init__(self, task_id: str, timeout_ms: int) -> None:
        super().__init__(f"Task timed out after {timeout_ms}ms", task_id)
        self.timeout_ms = timeout_ms
