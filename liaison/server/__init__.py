"""
MCPサーバーモジュール。

タスク委譲用のMCPツールとハンドラを提供する。
"""

from liaison.server.app import SERVER_NAME, SERVER_VERSION, create_server
from liaison.server.handlers import (
    handle_cancel_task,
    handle_check_status,
    handle_delegate_task,
    handle_get_stats,
    handle_list_tasks,
)

__all__ = [
    "SERVER_NAME",
    "SERVER_VERSION",
    "create_server",
    "handle_cancel_task",
    "handle_check_status",
    "handle_delegate_task",
    "handle_get_stats",
    "handle_list_tasks",
]
