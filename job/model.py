"""
Job 모델 - 큐 설정, 실행 상태, 실행 결과
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from job.registry import JobRegistry, default_registry


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class QueueConfig:
    """큐 설정 (저장소 DB 이름, 잡 레지스트리, 시계)"""
    database: str = "default"  # database.yaml에 정의된 이름
    registry: JobRegistry = field(default_factory=lambda: default_registry)
    clock: Callable[[], datetime] = utc_now


class JobState(str, Enum):
    """잡 상태"""
    UNENQUEUED = "unenqueued"
    ENQUEUED = "enqueued"
    EXECUTING = "executing"
    COMPLETED = "completed"
    RETRYING = "retrying"
    DISCARDED = "discarded"


@dataclass
class ExecutionResult:
    """perform_now 결과"""
    job: Any
    state: JobState
    value: Any = None
    error: BaseException | None = None
    reenqueued: bool = False  # 실행 중 다시 등록되어 레코드가 유지됨

    @property
    def success(self) -> bool:
        return self.error is None
