"""
設定管理モジュール。

pydantic-settings を使用して環境変数を型安全に管理する。
os.environ の直接参照は禁止し、このモジュール経由で取得する。
設定はプロセス起動時に一度だけ読み込み、以降は変更しない。
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """アプリケーション設定。

    環境変数から設定を読み込み、型安全に管理する。
    すべての項目に既定値があり、形式が不正な場合は ValidationError を発生させる。
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        frozen=True,
    )

    max_concurrent_tasks: int = Field(
        default=10,
        ge=1,
        description="Maximum number of pending or in-progress tasks",
    )
    task_timeout_ms: int = Field(
        default=300_000,
        ge=1,
        description="Task timeout in milliseconds, measured from start",
    )
    max_description_length: int = Field(
        default=5000,
        ge=1,
        description="Maximum task description length",
    )
    max_context_length: int = Field(
        default=50000,
        ge=0,
        description="Maximum task context length",
    )
    max_retained_tasks: int = Field(
        default=100,
        ge=0,
        description="Number of finished tasks kept in memory",
    )
    simulated_steps: int = Field(
        default=10,
        ge=1,
        description="Number of progress steps of the simulated executor",
    )
    simulated_step_delay_ms: int = Field(
        default=500,
        ge=0,
        description="Delay per step of the simulated executor in milliseconds",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level",
    )
    transport: Literal["stdio", "streamable-http"] = Field(
        default="stdio",
        description="MCP transport",
    )
    http_host: str = Field(
        default="127.0.0.1",
        description="Bind host for the streamable-http transport",
    )
    http_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Bind port for the streamable-http transport",
    )


@lru_cache
def get_settings() -> Settings:
    """Settingsインスタンスをキャッシュして返す。

    アプリケーション全体で同一のSettingsインスタンスを共有するために使用する。

    Returns:
        Settings: キャッシュされた設定インスタンス
    """
    return Settings()
