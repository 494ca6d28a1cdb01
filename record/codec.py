"""
Record <-> Job 변환 모듈

잡 인스턴스의 직렬화 데이터를 jobs 테이블의 평면 속성으로 바꾸고,
레코드로부터 잡 인스턴스를 다시 구성합니다.

- arguments, exception_executions: 쓰기 시 JSON 인코딩, 읽기 시 JSON 디코딩
- 디코딩 실패는 빈 값으로 대체하지 않고 SerializationError
- 확장 컬럼은 잡 클래스의 extensions가 각자 직렬화/역직렬화
"""

import json
import logging
from datetime import datetime
from typing import Any, Collection

from record.exception import (
    ConfigurationError,
    IdentityMismatchError,
    SerializationError,
)
from record.model import REQUIRED_ATTRIBUTES, JobRecord, from_db_time, to_db_time

logger = logging.getLogger(__name__)


def _encode(field: str, value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as e:
        raise SerializationError(field, str(e)) from e


def _decode(field: str, raw: str | None, expected: type) -> Any:
    if raw is None:
        raise SerializationError(field, "null value")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise SerializationError(field, str(e)) from e
    if not isinstance(value, expected):
        raise SerializationError(field, f"expected {expected.__name__}, found {type(value).__name__}")
    return value


class RecordCodec:
    """Record <-> Job 변환기"""

    def __init__(self, registry):
        self._registry = registry

    def to_record_attributes(
        self,
        job,
        columns: Collection[str],
        expected_job_id: str | None = None,
    ) -> dict[str, Any]:
        """
        잡 -> 레코드 속성

        Args:
            job: 변환할 잡
            columns: jobs 테이블 컬럼 목록 (확장 컬럼 존재 확인용)
            expected_job_id: 갱신 대상 레코드의 job_id

        Raises:
            ConfigurationError: 직렬화 데이터에 필수 키가 없거나 확장 컬럼이 테이블에 없음
            IdentityMismatchError: job_id가 갱신 대상 레코드와 다름
            SerializationError: 인자를 JSON으로 인코딩할 수 없음
        """
        serialized = job.serialize()

        missing = [key for key in REQUIRED_ATTRIBUTES if key not in serialized]
        if missing:
            raise ConfigurationError(
                f"{type(job).__name__} serialization missing required attributes: {', '.join(missing)}"
            )

        if expected_job_id is not None and serialized['job_id'] != expected_job_id:
            raise IdentityMismatchError(
                expected_job_id,
                serialized['job_id'],
                f"unexpected job_id for {type(job).__name__}: {serialized['job_id']} vs. {expected_job_id}",
            )

        attributes = {key: serialized[key] for key in REQUIRED_ATTRIBUTES}
        attributes['arguments'] = _encode('arguments', attributes['arguments'])
        attributes['exception_executions'] = _encode(
            'exception_executions', attributes['exception_executions']
        )

        for extension in job.extensions:
            extension_attributes = extension.serialize(job)
            for column in extension_attributes:
                if column not in columns:
                    raise ConfigurationError(f"jobs table missing {column} column")
            attributes.update(extension_attributes)

        return {
            key: to_db_time(value) if isinstance(value, datetime) else value
            for key, value in attributes.items()
        }

    def from_record(self, record: JobRecord, job=None):
        """
        레코드 -> 잡

        job이 주어지면 해당 인스턴스를 레코드 값으로 갱신하고,
        없으면 레코드의 job_class로 레지스트리에서 클래스를 찾아 생성합니다.

        Raises:
            IdentityMismatchError: 잡 클래스, job_id 또는 provider_job_id 불일치
            SerializationError: JSON 컬럼이 손상됨
            ConfigurationError: 등록되지 않은 job_class, 확장 컬럼 누락
        """
        if not isinstance(record, JobRecord):
            raise TypeError(f"expected JobRecord, found {type(record).__name__}")

        if job is not None:
            if job.job_name != record.job_class:
                raise IdentityMismatchError(record.job_class, job.job_name)
            if job.job_id != record.job_id:
                raise IdentityMismatchError(
                    record.job_id,
                    job.job_id,
                    f"unexpected job_id for {job.job_name}: {record.job_id} vs. {job.job_id}",
                )
            record_id = record.get('id')
            if job.provider_job_id is not None and job.provider_job_id != record_id:
                raise IdentityMismatchError(
                    str(record_id),
                    str(job.provider_job_id),
                    f"unexpected id for {job.job_name}: {record_id} vs. {job.provider_job_id}",
                )
        else:
            job = self._registry.get(record.job_class)()

        job.deserialize(self.job_data(record))
        for extension in job.extensions:
            extension.deserialize(job, record)
        job.successfully_enqueued = job.enqueued_at is not None
        return job

    @staticmethod
    def job_data(record: JobRecord) -> dict[str, Any]:
        """레코드 -> 잡 직렬화 데이터 (JSON 컬럼 디코딩 포함)"""
        data = {attribute: getattr(record, attribute) for attribute in REQUIRED_ATTRIBUTES}
        data['arguments'] = _decode('arguments', record.arguments, list)
        data['exception_executions'] = _decode(
            'exception_executions', record.exception_executions, dict
        )
        data['enqueued_at'] = from_db_time(record.enqueued_at)
        data['scheduled_at'] = from_db_time(record.scheduled_at)
        return data
