"""
MCPツールハンドラモジュール。

各ツール呼び出しをTaskManagerの境界操作に変換し、
結果またはエラーをJSON互換の辞書として返す。

- バリデーションエラー、未存在、状態不正は構造化されたエラーとして返す
- 受理拒否(AdmissionRejected)は例外ではなく値として返す
- 想定外の例外はログに出力し、internal_errorとして返す
"""

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from liaison.task.errors import InvalidTaskStateError, TaskNotFoundError
from liaison.task.manager import TaskManager
from liaison.task.models import AdmissionRejected, TaskIdRequest
from liaison.task.progress import format_progress_message

logger = logging.getLogger(__name__)

Payload = dict[str, Any]


def format_validation_error(error: ValidationError) -> str:
    """ValidationErrorを1行のメッセージに変換する。

    Args:
        error: pydanticのValidationError

    Returns:
        "Validation error: field: message, ..." 形式の文字列
    """
    issues = ", ".join(
        f"{'.'.join(str(part) for part in issue['loc'])}: {issue['msg']}"
        for issue in error.errors()
    )
    return f"Validation error: {issues}"


def error_payload(error: Exception) -> Payload:
    """例外を構造化されたエラー応答に変換する。"""
    if isinstance(error, ValidationError):
        return {"error": "validation_error", "message": format_validation_error(error)}
    if isinstance(error, TaskNotFoundError):
        return {"error": "not_found", "taskId": error.task_id, "message": str(error)}
    if isinstance(error, InvalidTaskStateError):
        return {
            "error": "invalid_state",
            "taskId": error.task_id,
            "currentStatus": error.current_status.value,
            "message": str(error),
        }
    return {"error": "internal_error", "message": f"Error: {error}"}


def structured_errors(
    handler: Callable[..., Awaitable[Payload]],
) -> Callable[..., Awaitable[Payload]]:
    """ハンドラの例外を構造化されたエラー応答に変換するデコレータ。"""

    @functools.wraps(handler)
    async def wrapper(*args: Any, **kwargs: Any) -> Payload:
        try:
            return await handler(*args, **kwargs)
        except (ValidationError, TaskNotFoundError, InvalidTaskStateError) as e:
            logger.warning("%s rejected: %s", handler.__name__, e)
            return error_payload(e)
        except Exception as e:
            logger.exception("Unexpected error in %s", handler.__name__)
            return error_payload(e)

    return wrapper


def _task_id(task_id: str) -> str:
    return TaskIdRequest.model_validate({"taskId": task_id}).task_id


@structured_errors
async def handle_delegate_task(
    manager: TaskManager, task: str, context: str | None = None
) -> Payload:
    """delegate_taskツールを処理する。

    Args:
        manager: タスクマネージャー
        task: タスク本文
        context: 補足情報

    Returns:
        受理時は {taskId, status, createdAt, message}、
        拒否時は {error: "admission_rejected", limit, current, message}
    """
    logger.info("Delegating task: length=%d, has_context=%s", len(task or ""), context is not None)

    result = await manager.delegate(task, context)
    if isinstance(result, AdmissionRejected):
        return {
            "error": "admission_rejected",
            "limit": result.limit,
            "current": result.current,
            "message": f"{result.reason} ({result.current}/{result.limit}); retry later",
        }

    payload = result.to_wire()
    payload["taskId"] = payload.pop("id")
    payload["message"] = "Task has been delegated to a sub-agent"
    return payload


@structured_errors
async def handle_check_status(manager: TaskManager, task_id: str) -> Payload:
    """check_statusツールを処理する。"""
    task = manager.get_task(_task_id(task_id))
    payload = task.to_wire()
    payload["message"] = format_progress_message(task)
    return payload


@structured_errors
async def handle_list_tasks(
    manager: TaskManager, status: str | None = None, limit: int = 10
) -> Payload:
    """list_tasksツールを処理する。"""
    return manager.list_tasks(status=status, limit=limit).to_wire()


@structured_errors
async def handle_cancel_task(manager: TaskManager, task_id: str) -> Payload:
    """cancel_taskツールを処理する。"""
    task = await manager.cancel(_task_id(task_id))
    payload = task.to_wire()
    payload["message"] = format_progress_message(task)
    return payload


@structured_errors
async def handle_get_stats(manager: TaskManager) -> Payload:
    """get_statsツールを処理する。"""
    return manager.get_stats().to_wire()
