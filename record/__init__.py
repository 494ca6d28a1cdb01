"""
Record 패키지 - jobs 테이블 저장소, Record <-> Job 변환, 조회 엔진
"""

from record.exception import (
    RecordError,
    RecordNotFoundError,
    RecordValidationError,
    SerializationError,
    ConfigurationError,
    IdentityMismatchError,
)
from record.model import JobRecord, REQUIRED_ATTRIBUTES, to_db_time, from_db_time
from record.codec import RecordCodec
from record.store import RecordStore, TABLE_NAME
from record.query import JobQuery, TODO_ORDER

__all__ = [
    'RecordError',
    'RecordNotFoundError',
    'RecordValidationError',
    'SerializationError',
    'ConfigurationError',
    'IdentityMismatchError',
    'JobRecord',
    'REQUIRED_ATTRIBUTES',
    'to_db_time',
    'from_db_time',
    'RecordCodec',
    'RecordStore',
    'TABLE_NAME',
    'JobQuery',
    'TODO_ORDER',
]
