"""
アプリケーションのエントリーポイント。

MCPサーバーを起動する。
環境変数の読み込み、ログ設定、TaskManagerの組み立て、ツールの登録、
トランスポートへの接続を行い、終了時には実行中のタスクを停止する。
"""

import asyncio
import logging
import sys

from liaison.config import Settings, get_settings
from liaison.server import create_server
from liaison.task import TaskManagerImpl, create_task_manager
from liaison.task.executor import SimulatedExecutor
from liaison.task.progress import LoggingTaskListener

# stdoutはstdioトランスポートが使用するため、ログはstderrに出力する
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """ルートロガーをstderr出力に設定する。

    Args:
        level: ログレベル名
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )


def build_task_manager(settings: Settings) -> TaskManagerImpl:
    """設定からTaskManagerImplを組み立てる。

    Args:
        settings: アプリケーション設定

    Returns:
        シミュレーションエグゼキュータを使うTaskManagerImpl
    """
    executor = SimulatedExecutor(
        steps=settings.simulated_steps,
        step_delay_seconds=settings.simulated_step_delay_ms / 1000,
    )
    return create_task_manager(
        executor=executor,
        max_concurrent_tasks=settings.max_concurrent_tasks,
        task_timeout_ms=settings.task_timeout_ms,
        max_description_length=settings.max_description_length,
        max_context_length=settings.max_context_length,
        max_retained_tasks=settings.max_retained_tasks,
        listener=LoggingTaskListener(),
    )


async def main() -> None:
    """アプリケーションのエントリーポイント。

    以下の処理を順次実行する:
    1. 環境変数から設定を読み込み、ログを設定
    2. TaskManagerを組み立て
    3. MCPサーバーを作成してツールを登録
    4. 設定されたトランスポートで待ち受け
    5. 終了時に実行中のタスクを停止し、レジストリを破棄
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    manager = build_task_manager(settings)
    server = create_server(manager, host=settings.http_host, port=settings.http_port)

    logger.info("Starting liaison MCP server on %s...", settings.transport)
    try:
        if settings.transport == "streamable-http":
            await server.run_streamable_http_async()
        else:
            await server.run_stdio_async()
    finally:
        logger.info("Shutting down server...")
        await manager.stop()
        manager.clear_tasks()


def run() -> None:
    """コンソールスクリプト用のエントリーポイント。"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
