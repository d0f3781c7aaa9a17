"""
MCPサーバー実装モジュール。

FastMCPにタスク委譲用のツールを登録する。
ツール本体はhandlersモジュールに委譲し、ここでは引数の受け渡しと
JSONテキストへの変換のみを行う。

Transports:
    stdio:  liaison
    http:   TRANSPORT=streamable-http HTTP_PORT=8200 liaison
"""

import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from liaison.server.handlers import (
    handle_cancel_task,
    handle_check_status,
    handle_delegate_task,
    handle_get_stats,
    handle_list_tasks,
)
from liaison.task.manager import TaskManager

logger = logging.getLogger(__name__)

SERVER_NAME = "liaison"
SERVER_VERSION = "0.0.1"

INSTRUCTIONS = (
    "Delegate long-running jobs to sub-agents and check in on them. "
    "delegate_task returns a taskId immediately; poll check_status until the "
    "task is completed, failed or cancelled."
)


def _dump(payload: dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


def create_server(manager: TaskManager, **server_settings: Any) -> FastMCP:
    """ツールを登録したFastMCPサーバーを生成する。

    Args:
        manager: タスクマネージャー
        **server_settings: FastMCPに渡す設定(host, port など)

    Returns:
        FastMCPインスタンス
    """
    mcp = FastMCP(name=SERVER_NAME, instructions=INSTRUCTIONS, **server_settings)

    @mcp.tool()
    async def delegate_task(task: str, context: str | None = None) -> str:
        """Delegate a long-running task to a sub-agent.

        Args:
            task: Description of the task to delegate
            context: Context and requirements for the task
        """
        return _dump(await handle_delegate_task(manager, task, context))

    @mcp.tool()
    async def check_status(taskId: str) -> str:  # noqa: N803
        """Check the status of a delegated task.

        Args:
            taskId: The ID of the task to check
        """
        return _dump(await handle_check_status(manager, taskId))

    @mcp.tool()
    async def list_tasks(status: str | None = None, limit: int = 10) -> str:
        """List delegated tasks, most recently updated first.

        Args:
            status: Only return tasks in this status (pending, in_progress,
                completed, failed, cancelled)
            limit: Maximum number of tasks to return (1-100)
        """
        return _dump(await handle_list_tasks(manager, status, limit))

    @mcp.tool()
    async def cancel_task(taskId: str) -> str:  # noqa: N803
        """Cancel a pending or in-progress task.

        Args:
            taskId: The ID of the task to cancel
        """
        return _dump(await handle_cancel_task(manager, taskId))

    @mcp.tool()
    async def get_stats() -> str:
        """Return the number of tracked tasks per status."""
        return _dump(await handle_get_stats(manager))

    logger.info("MCP server created: name=%s, version=%s", SERVER_NAME, SERVER_VERSION)
    return mcp
