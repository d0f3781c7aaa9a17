"""TaskManagerImplの単体テスト。

テスト対象:
- タスク委譲(delegate)機能と入力バリデーション
- 同時実行数による受理拒否
- タスク取得(get_task)機能
- タスク一覧(list_tasks)の絞り込み・並び順・件数制限
- タスクキャンセル(cancel)機能
- 統計(get_stats)機能
- 終端タスクの保持数制限
"""

import pytest
from pydantic import ValidationError

from liaison.task.errors import InvalidTaskStateError, TaskNotFoundError
from liaison.task.executor import Executor
from liaison.task.manager import TaskManagerImpl, create_task_manager
from liaison.task.models import AdmissionRejected, DelegateResult, TaskStatus
from liaison.task.registry import TaskRegistry
from tests.fakes import (
    FakeClock,
    InstantExecutor,
    SelfCancellingExecutor,
    SteppedExecutor,
    settle,
)


def build_manager(
    clock: FakeClock,
    executor: Executor,
    max_concurrent_tasks: int = 10,
    max_retained_tasks: int = 100,
) -> TaskManagerImpl:
    """テスト用のTaskManagerImplを組み立てる。"""
    return create_task_manager(
        executor=executor,
        max_concurrent_tasks=max_concurrent_tasks,
        task_timeout_ms=10_000,
        max_description_length=50,
        max_context_length=100,
        max_retained_tasks=max_retained_tasks,
        registry=TaskRegistry(clock),
    )


class TestTaskManagerDelegate:
    """delegate機能のテスト。"""

    @pytest.mark.asyncio
    async def test_delegate_returns_pending_task(
        self, clock: FakeClock, stepped_executor: SteppedExecutor
    ) -> None:
        """委譲するとPENDINGのタスク情報が返される。"""
        manager = build_manager(clock, stepped_executor)

        result = await manager.delegate("ping")

        assert isinstance(result, DelegateResult)
        assert result.status == TaskStatus.PENDING
        assert manager.get_task(result.id).description == "ping"
        await manager.stop()

    @pytest.mark.asyncio
    async def test_delegate_runs_task_to_completion(self, clock: FakeClock) -> None:
        """委譲したタスクは最終的にCOMPLETEDになる。"""
        executor = InstantExecutor()
        manager = build_manager(clock, executor)

        result = await manager.delegate("ping")
        await manager.wait_for_idle()

        task = manager.get_task(result.id)
        assert task.status == TaskStatus.COMPLETED
        assert task.progress == 100
        assert task.result is not None
        assert executor.calls == [("ping", None)]

    @pytest.mark.asyncio
    async def test_delegate_passes_context_to_executor(self, clock: FakeClock) -> None:
        """補足情報はエグゼキュータに渡される。"""
        executor = InstantExecutor()
        manager = build_manager(clock, executor)

        await manager.delegate("summarize", "the README")
        await manager.wait_for_idle()

        assert executor.calls == [("summarize", "the README")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("description", "context"),
        [
            ("", None),
            ("   ", None),
            ("x" * 51, None),
            ("ok", "y" * 101),
        ],
    )
    async def test_delegate_rejects_invalid_input(
        self,
        clock: FakeClock,
        stepped_executor: SteppedExecutor,
        description: str,
        context: str | None,
    ) -> None:
        """空や文字数超過の入力はValidationErrorとなり、レコードは作成されない。"""
        manager = build_manager(clock, stepped_executor)

        with pytest.raises(ValidationError):
            await manager.delegate(description, context)

        assert manager.get_stats().total == 0

    @pytest.mark.asyncio
    async def test_delegate_generates_unique_ids(self, clock: FakeClock) -> None:
        """タスクIDは一意に生成される。"""
        manager = build_manager(clock, InstantExecutor())

        ids = set()
        for i in range(5):
            result = await manager.delegate(f"task {i}")
            ids.add(result.id)
        await manager.wait_for_idle()

        assert len(ids) == 5


class TestTaskManagerAdmission:
    """同時実行数制御のテスト。"""

    @pytest.mark.asyncio
    async def test_eleventh_task_rejected_when_limit_is_ten(
        self, clock: FakeClock, stepped_executor: SteppedExecutor
    ) -> None:
        """上限10で11件目を委譲するとAdmissionRejected{limit:10, current:10}が返る。"""
        manager = build_manager(clock, stepped_executor, max_concurrent_tasks=10)

        for i in range(10):
            assert isinstance(await manager.delegate(f"task {i}"), DelegateResult)
        result = await manager.delegate("one too many")

        assert isinstance(result, AdmissionRejected)
        assert result.limit == 10
        assert result.current == 10
        assert manager.get_stats().total == 10
        await manager.stop()

    @pytest.mark.asyncio
    async def test_cancel_frees_a_slot(
        self, clock: FakeClock, stepped_executor: SteppedExecutor
    ) -> None:
        """キャンセルしたタスクの分だけ新たに受理できる。"""
        manager = build_manager(clock, stepped_executor, max_concurrent_tasks=1)
        first = await manager.delegate("first")
        assert isinstance(await manager.delegate("second"), AdmissionRejected)

        await manager.cancel(first.id)

        assert isinstance(await manager.delegate("third"), DelegateResult)
        await manager.stop()

    @pytest.mark.asyncio
    async def test_self_cancelled_executor_frees_its_slot(self, clock: FakeClock) -> None:
        """エグゼキュータがCancelledErrorを送出したタスクはFAILEDとなり、枠が解放される。"""
        manager = build_manager(clock, SelfCancellingExecutor(), max_concurrent_tasks=1)
        first = await manager.delegate("ping")

        await manager.wait_for_idle()

        assert manager.get_task(first.id).status == TaskStatus.FAILED
        assert isinstance(await manager.delegate("pong"), DelegateResult)
        await manager.stop()


class TestTaskManagerGetTask:
    """get_task機能のテスト。"""

    def test_get_unknown_task_raises(
        self, clock: FakeClock, stepped_executor: SteppedExecutor
    ) -> None:
        """存在しないタスクIDの場合、TaskNotFoundErrorを発生させる。"""
        manager = build_manager(clock, stepped_executor)

        with pytest.raises(TaskNotFoundError, match="Task not found"):
            manager.get_task("nonexistent")


class TestTaskManagerCancel:
    """cancel機能のテスト。"""

    @pytest.mark.asyncio
    async def test_cancel_immediately_after_delegate(
        self, clock: FakeClock, stepped_executor: SteppedExecutor
    ) -> None:
        """委譲直後にキャンセルするとCANCELLEDで確定し、progressは0のまま。"""
        manager = build_manager(clock, stepped_executor)
        result = await manager.delegate("ping")

        cancelled = await manager.cancel(result.id)
        stepped_executor.allow(stepped_executor.steps)
        await manager.wait_for_idle()

        assert cancelled.status == TaskStatus.CANCELLED
        task = manager.get_task(result.id)
        assert task.status == TaskStatus.CANCELLED
        assert task.progress == 0
        assert task.completed_at is None

    @pytest.mark.asyncio
    async def test_cancel_in_progress_task(
        self, clock: FakeClock, stepped_executor: SteppedExecutor
    ) -> None:
        """実行中のタスクをキャンセルすると、以降の進捗は記録されない。"""
        manager = build_manager(clock, stepped_executor)
        result = await manager.delegate("ping")
        stepped_executor.allow()
        await settle()

        await manager.cancel(result.id)
        stepped_executor.allow(stepped_executor.steps)
        await manager.wait_for_idle()

        task = manager.get_task(result.id)
        assert task.status == TaskStatus.CANCELLED
        assert task.progress == 25

    @pytest.mark.asyncio
    async def test_cancel_nonexistent_task_raises(
        self, clock: FakeClock, stepped_executor: SteppedExecutor
    ) -> None:
        """存在しないタスクのキャンセルはTaskNotFoundErrorを発生させる。"""
        manager = build_manager(clock, stepped_executor)

        with pytest.raises(TaskNotFoundError):
            await manager.cancel("nonexistent")

    @pytest.mark.asyncio
    async def test_cancel_completed_task_raises_invalid_state(self, clock: FakeClock) -> None:
        """完了済みのタスクのキャンセルはInvalidTaskStateErrorとなり、状態は変わらない。"""
        manager = build_manager(clock, InstantExecutor())
        result = await manager.delegate("ping")
        await manager.wait_for_idle()

        with pytest.raises(InvalidTaskStateError) as exc_info:
            await manager.cancel(result.id)

        assert exc_info.value.current_status == TaskStatus.COMPLETED
        assert manager.get_task(result.id).status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_cancel_twice_raises_invalid_state(
        self, clock: FakeClock, stepped_executor: SteppedExecutor
    ) -> None:
        """キャンセル済みのタスクを再度キャンセルするとInvalidTaskStateErrorとなる。"""
        manager = build_manager(clock, stepped_executor)
        result = await manager.delegate("ping")
        await manager.cancel(result.id)

        with pytest.raises(InvalidTaskStateError) as exc_info:
            await manager.cancel(result.id)

        assert exc_info.value.current_status == TaskStatus.CANCELLED
        await manager.stop()


class TestTaskManagerListTasks:
    """list_tasks機能のテスト。"""

    @pytest.mark.asyncio
    async def test_list_filters_sorts_and_limits(self, clock: FakeClock) -> None:
        """statusで絞り込み、updated_at降順でlimit件まで返す。"""
        manager = build_manager(clock, InstantExecutor())
        completed_ids = []
        for i in range(3):
            result = await manager.delegate(f"done {i}")
            await manager.wait_for_idle()
            completed_ids.append(result.id)

        listing = manager.list_tasks(status="completed", limit=2)

        assert listing.total == 3
        assert listing.filtered == 3
        assert len(listing.tasks) == 2
        assert all(task.status == TaskStatus.COMPLETED for task in listing.tasks)
        assert [task.id for task in listing.tasks] == completed_ids[::-1][:2]
        assert listing.tasks[0].updated_at >= listing.tasks[1].updated_at

    @pytest.mark.asyncio
    async def test_list_without_filter_returns_all_statuses(
        self, clock: FakeClock, stepped_executor: SteppedExecutor
    ) -> None:
        """status未指定の場合は全状態のタスクを返す。"""
        manager = build_manager(clock, stepped_executor)
        first = await manager.delegate("first")
        await manager.delegate("second")
        await manager.cancel(first.id)

        listing = manager.list_tasks()

        assert listing.total == 2
        assert listing.filtered == 2
        assert listing.tasks[0].id == first.id
        assert {task.status for task in listing.tasks} == {
            TaskStatus.CANCELLED,
            TaskStatus.PENDING,
        }
        await manager.stop()

    @pytest.mark.parametrize("limit", [0, 101])
    def test_list_rejects_out_of_range_limit(
        self, clock: FakeClock, stepped_executor: SteppedExecutor, limit: int
    ) -> None:
        """limitが1-100の範囲外の場合、ValidationErrorを発生させる。"""
        manager = build_manager(clock, stepped_executor)

        with pytest.raises(ValidationError):
            manager.list_tasks(limit=limit)

    def test_list_rejects_unknown_status(
        self, clock: FakeClock, stepped_executor: SteppedExecutor
    ) -> None:
        """未知のstatusはValidationErrorを発生させる。"""
        manager = build_manager(clock, stepped_executor)

        with pytest.raises(ValidationError):
            manager.list_tasks(status="delegated")


class TestTaskManagerStats:
    """get_stats機能のテスト。"""

    @pytest.mark.asyncio
    async def test_stats_count_each_status(self, clock: FakeClock) -> None:
        """状態ごとの件数を返す。"""
        stepped = SteppedExecutor(steps=2)
        manager = build_manager(clock, stepped)
        first = await manager.delegate("first")
        await manager.delegate("second")
        await settle()
        await manager.cancel(first.id)

        stats = manager.get_stats()

        assert stats.total == 2
        assert stats.cancelled == 1
        assert stats.in_progress == 1
        assert stats.pending == 0
        assert stats.to_wire() == {
            "total": 2,
            "pending": 0,
            "inProgress": 1,
            "completed": 0,
            "failed": 0,
            "cancelled": 1,
        }
        await manager.stop()

    def test_stats_empty(self, clock: FakeClock, stepped_executor: SteppedExecutor) -> None:
        """タスクがない場合はすべて0。"""
        manager = build_manager(clock, stepped_executor)

        assert manager.get_stats().total == 0


class TestTaskManagerRetention:
    """保持数制限のテスト。"""

    @pytest.mark.asyncio
    async def test_terminal_tasks_bounded_by_retention_cap(self, clock: FakeClock) -> None:
        """終端タスク数は保持上限を超えず、退避されたIDは未存在として扱われる。"""
        manager = build_manager(clock, InstantExecutor(), max_retained_tasks=3)
        ids = []
        for i in range(8):
            ids.append((await manager.delegate(f"task {i}")).id)
            await manager.wait_for_idle()
            stats = manager.get_stats()
            assert stats.completed + stats.failed + stats.cancelled <= 3

        with pytest.raises(TaskNotFoundError):
            manager.get_task(ids[0])
        assert manager.get_task(ids[-1]).status == TaskStatus.COMPLETED


class TestTaskManagerLifecycle:
    """stop/clear_tasksのテスト。"""

    @pytest.mark.asyncio
    async def test_stop_and_clear(
        self, clock: FakeClock, stepped_executor: SteppedExecutor
    ) -> None:
        """stopで実行中のエンジンを停止し、clear_tasksでレジストリを空にする。"""
        manager = build_manager(clock, stepped_executor)
        await manager.delegate("ping")
        await settle()

        await manager.stop()
        manager.clear_tasks()

        assert manager.get_stats().total == 0
