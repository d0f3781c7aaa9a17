"""
タスク関連の型定義モジュール。

委譲タスクのライフサイクルで扱う型をPydanticモデルとして実装する:
- TaskStatus: タスクの状態を表すEnum
- Task: タスクレコード(レジストリが排他的に所有する)
- DelegateRequest / ListTasksRequest: 呼び出し境界での入力バリデーション
- DelegateResult / AdmissionRejected: 投入結果
- TaskListResult / TaskStats: 参照系の結果
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

# list_tasksのlimit上限・既定値
LIST_LIMIT_MAX = 100
LIST_LIMIT_DEFAULT = 10


class TaskStatus(Enum):
    """タスクの状態を表すEnum。

    - PENDING: 受理済み、エンジン起動待ち
    - IN_PROGRESS: エグゼキュータ実行中
    - COMPLETED: 正常完了
    - FAILED: エラーまたはタイムアウト
    - CANCELLED: 明示的なキャンセル
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """終端状態かどうかを返す。"""
        return self in TERMINAL_STATES


# Terminal states (no further transitions)
TERMINAL_STATES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED})

# States counted against the concurrency cap
ACTIVE_STATES = frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS})


class WireModel(BaseModel):
    """camelCaseで入出力するモデルの基底クラス。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """プロトコル層へ返すJSON互換の辞書に変換する。"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Task(WireModel):
    """タスクレコード。

    Attributes:
        id: UUID v4形式のタスクID(受理時に生成、不変)
        description: 委譲されたタスク本文(不変)
        context: 補足情報(任意、不変)
        status: タスクの現在の状態
        progress: 進捗率(0-100)
        created_at: 受理時のUnixタイムスタンプ
        updated_at: 最終更新時のUnixタイムスタンプ
        started_at: IN_PROGRESSへ遷移した時刻
        completed_at: COMPLETED/FAILEDへ遷移した時刻
        result: COMPLETED時のみ存在するエグゼキュータの出力
        error: FAILED時のみ存在するエラー内容
    """

    id: str = Field(..., pattern=r"^[0-9a-f-]{36}$")
    description: str = Field(..., min_length=1)
    context: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    created_at: float
    updated_at: float
    started_at: float | None = None
    completed_at: float | None = None
    result: str | None = None
    error: str | None = None


class DelegateRequest(WireModel):
    """タスク委譲リクエスト。

    文字数上限はバリデーションコンテキスト
    (max_description_length / max_context_length)から読み込む。
    """

    description: str = Field(..., min_length=1, alias="task")
    context: str | None = None

    @field_validator("description")
    @classmethod
    def _check_description(cls, value: str, info: ValidationInfo) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        limit = (info.context or {}).get("max_description_length")
        if limit is not None and len(value) > limit:
            raise ValueError(f"must be at most {limit} characters")
        return value

    @field_validator("context")
    @classmethod
    def _check_context(cls, value: str | None, info: ValidationInfo) -> str | None:
        limit = (info.context or {}).get("max_context_length")
        if value is not None and limit is not None and len(value) > limit:
            raise ValueError(f"must be at most {limit} characters")
        return value


class ListTasksRequest(WireModel):
    """タスク一覧リクエスト。"""

    status: TaskStatus | None = None
    limit: int = Field(default=LIST_LIMIT_DEFAULT, ge=1, le=LIST_LIMIT_MAX)


class TaskIdRequest(WireModel):
    """タスクIDを1つ受け取るリクエスト。"""

    task_id: str = Field(..., min_length=1, max_length=128)


class DelegateResult(WireModel):
    """受理されたタスクの情報。"""

    id: str
    status: TaskStatus
    created_at: float


class AdmissionRejected(WireModel):
    """同時実行数上限による受理拒否。

    例外ではなく値として返し、呼び出し側がバックオフできるよう
    現在の実行数と上限を含める。
    """

    limit: int
    current: int
    reason: str = "Maximum concurrent tasks reached"


class TaskListResult(WireModel):
    """タスク一覧の結果。

    Attributes:
        total: レジストリ内の全タスク数
        filtered: フィルタ適用後(切り詰め前)の件数
        tasks: updated_at降順のスナップショット
    """

    total: int
    filtered: int
    tasks: list[Task]


class TaskStats(WireModel):
    """状態ごとのタスク数。"""

    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
