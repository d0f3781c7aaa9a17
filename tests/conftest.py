"""
Pytest設定と共有フィクスチャ。

プロジェクト全体で共有されるフィクスチャを定義します。
"""

import pytest

from tests.fakes import FakeClock, SteppedExecutor


@pytest.fixture
def clock() -> FakeClock:
    """決定的な時刻ソースを提供。"""
    return FakeClock()


@pytest.fixture
def stepped_executor() -> SteppedExecutor:
    """テストから1ステップずつ進められるエグゼキュータを提供。"""
    return SteppedExecutor(steps=4)
