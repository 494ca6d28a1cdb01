"""
Job 레코드 모델 정의

jobs 테이블 한 행을 표현합니다. 확장 컬럼(id, shard, last_error, discarded_at)은
테이블에 존재할 때만 extra 속성으로 보관됩니다.
"""

from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from record.exception import RecordValidationError

# 고정 폭 텍스트: 문자열 비교 순서 == 시간 순서
TIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

REQUIRED_ATTRIBUTES = (
    "job_class",
    "job_id",
    "queue_name",
    "priority",
    "arguments",
    "executions",
    "exception_executions",
    "locale",
    "timezone",
    "enqueued_at",
    "scheduled_at",
)


def to_db_time(value: datetime | None) -> str | None:
    """datetime -> UTC 텍스트 (마이크로초 정밀도)"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIME_FORMAT)


def from_db_time(value: str | datetime | None) -> datetime | None:
    """UTC 텍스트 -> aware datetime"""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class JobRecord(BaseModel):
    """jobs 테이블 레코드"""
    model_config = ConfigDict(extra='allow')

    job_class: str
    job_id: str
    queue_name: str | None
    priority: int | None
    arguments: str
    executions: int = Field(ge=0)
    exception_executions: str
    locale: str | None
    timezone: str | None
    enqueued_at: datetime | None
    scheduled_at: datetime | None

    @field_validator('enqueued_at', 'scheduled_at', mode='before')
    @classmethod
    def _parse_time(cls, value: Any) -> datetime | None:
        return from_db_time(value)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'JobRecord':
        """DB row를 JobRecord로 변환"""
        # sqlite3.Row는 .get() 메서드가 없으므로 dict 변환
        data = dict(row)
        try:
            return cls(**data)
        except ValidationError as e:
            raise RecordValidationError(data.get('job_id'), str(e)) from e

    def has(self, column: str) -> bool:
        """컬럼 존재 여부 (확장 컬럼 포함)"""
        return column in type(self).model_fields or column in (self.model_extra or {})

    def get(self, column: str, default: Any = None) -> Any:
        if column in type(self).model_fields:
            return getattr(self, column)
        return (self.model_extra or {}).get(column, default)


def is_complete(row: Mapping[str, Any]) -> bool:
    """필수 속성이 모두 포함된 row인지 (select 프로젝션이면 False)"""
    return all(attribute in row.keys() for attribute in REQUIRED_ATTRIBUTES)
