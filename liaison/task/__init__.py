"""
タスク管理モジュール。

タスクのライフサイクル管理、受理制御、保持数制限を担当する。
"""

from liaison.task.manager import (
    TaskManager,
    TaskManagerImpl,
    create_task_manager,
)
from liaison.task.models import (
    AdmissionRejected,
    DelegateResult,
    Task,
    TaskListResult,
    TaskStats,
    TaskStatus,
)

__all__ = [
    "AdmissionRejected",
    "DelegateResult",
    "Task",
    "TaskListResult",
    "TaskManager",
    "TaskManagerImpl",
    "TaskStats",
    "TaskStatus",
    "create_task_manager",
]
