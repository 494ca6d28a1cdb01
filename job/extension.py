"""
Job 확장

잡 클래스의 extensions에 나열하여 선택적 컬럼/동작을 추가합니다.
컬럼이 필요한 확장은 해당 작업 시점에 컬럼 존재를 확인하고,
없으면 ConfigurationError를 발생시킵니다.

    ProviderId       id 컬럼 -> job.provider_job_id
    Shard            shard 컬럼
    LastError        last_error 컬럼 (마지막 오류 메시지 + traceback)
    RetainDiscarded  discarded_at 컬럼, 폐기 잡 보존 여부
    Timeout          perform 실행 시간 제한 (컬럼 없음)
"""

import asyncio
import traceback
from typing import Any, Awaitable

from job.exception import JobTimeoutError
from record.exception import ConfigurationError
from record.model import JobRecord, from_db_time


def _require(record: JobRecord, column: str) -> None:
    if not record.has(column):
        raise ConfigurationError(f"jobs data missing {column} attribute")


class Extension:
    """확장 기본 클래스 (모든 훅은 기본적으로 아무것도 하지 않음)"""

    def initialize(self, job) -> None:
        pass

    def apply_options(self, job, options: dict[str, Any]) -> None:
        """set()의 키워드 중 이 확장이 처리하는 키를 꺼내 적용"""
        pass

    def before_enqueue(self, job) -> None:
        pass

    def serialize(self, job) -> dict[str, Any]:
        """레코드에 추가할 컬럼 값"""
        return {}

    def deserialize(self, job, record: JobRecord) -> None:
        pass

    def on_error(self, job, error: BaseException) -> None:
        pass

    def wrap_perform(self, job, awaitable: Awaitable) -> Awaitable:
        return awaitable


class ProviderId(Extension):
    """정수 id 컬럼을 provider_job_id로 노출 (저장소가 부여, 직렬화하지 않음)"""

    def deserialize(self, job, record: JobRecord) -> None:
        _require(record, 'id')
        job.provider_job_id = record.get('id')


class Shard(Extension):
    """shard 컬럼"""

    def initialize(self, job) -> None:
        job.extras['shard'] = None

    def apply_options(self, job, options: dict[str, Any]) -> None:
        if 'shard' in options:
            job.extras['shard'] = options.pop('shard')

    def serialize(self, job) -> dict[str, Any]:
        return {'shard': job.extras.get('shard')}

    def deserialize(self, job, record: JobRecord) -> None:
        _require(record, 'shard')
        job.extras['shard'] = record.get('shard')


class LastError(Extension):
    """마지막 오류 ("Class: message" + traceback) 기록"""

    MAX_LENGTH = 10535
    OMISSION = "… (truncated)"

    def initialize(self, job) -> None:
        job.extras['last_error'] = None

    def apply_options(self, job, options: dict[str, Any]) -> None:
        if 'error' in options:
            error = options.pop('error')
            job.extras['last_error'] = None if error is None else self.format(error)

    def on_error(self, job, error: BaseException) -> None:
        job.extras['last_error'] = self.format(error)

    @classmethod
    def format(cls, error: BaseException | str) -> str:
        if isinstance(error, BaseException):
            text = f"{type(error).__name__}: {error}"
            if error.__traceback__ is not None:
                text += "\n" + "".join(traceback.format_tb(error.__traceback__))
        else:
            text = str(error)
        if len(text) > cls.MAX_LENGTH:
            text = text[:cls.MAX_LENGTH - len(cls.OMISSION)] + cls.OMISSION
        return text

    def serialize(self, job) -> dict[str, Any]:
        return {'last_error': job.extras.get('last_error')}

    def deserialize(self, job, record: JobRecord) -> None:
        _require(record, 'last_error')
        job.extras['last_error'] = record.get('last_error')


class RetainDiscarded(Extension):
    """
    폐기 잡 보존

    retain=True면 폐기 시 discarded_at을 기록하고 레코드를 남기며,
    False면 레코드를 삭제합니다. 다시 등록하면 discarded_at이 지워집니다.
    """

    def __init__(self, retain: bool = True):
        self.retain = retain

    def initialize(self, job) -> None:
        job.extras['discarded_at'] = None

    def before_enqueue(self, job) -> None:
        job.extras['discarded_at'] = None

    def serialize(self, job) -> dict[str, Any]:
        return {'discarded_at': job.extras.get('discarded_at')}

    def deserialize(self, job, record: JobRecord) -> None:
        _require(record, 'discarded_at')
        job.extras['discarded_at'] = from_db_time(record.get('discarded_at'))


class Timeout(Extension):
    """perform 실행 시간 제한"""

    DEFAULT_SECONDS = 300

    def __init__(self, seconds: float | None = None):
        self.seconds = self.DEFAULT_SECONDS if seconds is None else seconds

    def wrap_perform(self, job, awaitable: Awaitable) -> Awaitable:
        return self._run(job, awaitable)

    async def _run(self, job, awaitable: Awaitable) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.seconds)
        except asyncio.TimeoutError as e:
            raise JobTimeoutError(job.job_id, self.seconds) from e
