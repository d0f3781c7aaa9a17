"""
進捗通知モジュール。

- タスク状態の表示用メッセージ生成
- TaskListenerプロトコル(状態変更ごとにエンジンから呼ばれるプッシュ通知の境界)
- LoggingTaskListener: 状態変更をログに出力する実装

状態の取得は現状プル型(check_status)であり、リスナーはその拡張点となる。
"""

import logging
from typing import Protocol

from liaison.task.models import Task, TaskStatus

logger = logging.getLogger(__name__)

# ステータス表示マッピング
STATUS_DISPLAY_MAP: dict[TaskStatus, str] = {
    TaskStatus.PENDING: "Task is waiting to be picked up",
    TaskStatus.IN_PROGRESS: "Task is currently being processed",
    TaskStatus.COMPLETED: "Task completed successfully",
    TaskStatus.FAILED: "Task failed",
    TaskStatus.CANCELLED: "Task was cancelled",
}


def format_progress_message(task: Task) -> str:
    """タスクの状態を人が読めるメッセージに変換する。

    Args:
        task: 対象タスク

    Returns:
        フォーマットされたメッセージ
    """
    display_text = STATUS_DISPLAY_MAP.get(task.status, task.status.value)
    if task.status == TaskStatus.IN_PROGRESS:
        return f"{display_text} ({task.progress}%)"
    if task.status == TaskStatus.FAILED and task.error:
        return f"{display_text}: {task.error}"
    return display_text


class TaskListener(Protocol):
    """タスク状態変更の通知先のプロトコル定義。"""

    async def on_task_updated(self, task: Task) -> None:
        """タスクの変更を受け取る。

        Args:
            task: 変更後のタスクのスナップショット
        """
        ...


class LoggingTaskListener:
    """状態変更をログに出力するTaskListener実装。"""

    def __init__(self, level: int = logging.DEBUG) -> None:
        self._level = level

    async def on_task_updated(self, task: Task) -> None:
        """タスクの変更をログに出力する。"""
        logger.log(
            self._level,
            "Task %s: status=%s, progress=%d, message=%s",
            task.id,
            task.status.value,
            task.progress,
            format_progress_message(task),
        )
