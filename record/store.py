"""
Record Store 모듈

jobs 테이블에 대한 단일 행 원자적 변경을 담당합니다.
모든 변경은 job_id를 키로 하는 한 문장이며, 다중 행 트랜잭션을 요구하지 않습니다.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from aiosql.queries import Queries

from database import get_connection, get_db, transactional, transactional_readonly
from record.codec import RecordCodec
from record.exception import ConfigurationError, RecordNotFoundError, RecordValidationError
from record.model import REQUIRED_ATTRIBUTES, JobRecord

logger = logging.getLogger(__name__)

TABLE_NAME = "jobs"

_SQL_PATH = Path(__file__).parent / "sql" / "record.sql"


def _translate(error: sqlite3.Error, job_id: str | None) -> Exception | None:
    """sqlite 예외 -> record 예외 (대응하는 예외가 없으면 None)"""
    message = str(error)
    if isinstance(error, sqlite3.IntegrityError):
        return RecordValidationError(job_id, message)
    if isinstance(error, sqlite3.OperationalError) and (
        "no such table" in message or "no such column" in message or "has no column" in message
    ):
        return ConfigurationError(f"{TABLE_NAME} table misconfigured: {message}")
    return None


@contextmanager
def translate_errors(job_id: str | None = None) -> Iterator[None]:
    """블록 안의 sqlite 예외를 record 예외로 변환 (대응 없는 예외는 그대로 전파)"""
    try:
        yield
    except sqlite3.Error as e:
        translated = _translate(e, job_id)
        if translated is None:
            raise
        raise translated from e


class RecordStore:
    """jobs 테이블 저장소"""

    def __init__(self, config):
        self._config = config
        self._database = config.database
        self._queries: Queries | None = None
        self._codec = RecordCodec(config.registry)

    def _get_queries(self) -> Queries:
        if self._queries is None:
            db = get_db(self._database)
            self._queries = db.get_queries('record')
            if self._queries is None:
                self._queries = db.load_queries('record', str(_SQL_PATH))
        return self._queries

    @property
    def config(self):
        return self._config

    @property
    def codec(self) -> RecordCodec:
        return self._codec

    @transactional_readonly
    async def columns(self) -> list[str]:
        """
        jobs 테이블 컬럼 목록

        Raises:
            ConfigurationError: 테이블이 없거나 필수 컬럼이 누락됨
        """
        return await self._columns()

    async def _columns(self) -> list[str]:
        ctx = get_connection(self._database)
        rows = await ctx.fetch_all(f"SELECT name FROM pragma_table_info('{TABLE_NAME}')")
        columns = [row[0] for row in rows]
        if not columns:
            raise ConfigurationError(f"{TABLE_NAME} table not found in database '{self._database}'")

        missing = [column for column in REQUIRED_ATTRIBUTES if column not in columns]
        if missing:
            raise ConfigurationError(f"{TABLE_NAME} table missing required columns: {', '.join(missing)}")
        return columns

    @transactional
    async def upsert(self, attributes: dict[str, Any]) -> JobRecord:
        """
        레코드 생성 또는 갱신 (INSERT ... ON CONFLICT(job_id) DO UPDATE)

        executions는 저장된 값보다 작아지지 않습니다 (다른 워커가 먼저 증가시킨 값 유지).

        Returns:
            저장된 레코드
        """
        ctx = get_connection(self._database)
        job_id = attributes['job_id']
        names = list(attributes.keys())
        updates = [
            f"{name} = MAX({name}, excluded.{name})" if name == 'executions' else f"{name} = excluded.{name}"
            for name in names
            if name != 'job_id'
        ]

        sql = (
            f"INSERT INTO {TABLE_NAME} ({', '.join(names)}) "
            f"VALUES ({', '.join(':' + name for name in names)}) "
            f"ON CONFLICT(job_id) DO UPDATE SET {', '.join(updates)}"
        )
        with translate_errors(job_id):
            await ctx.execute(sql, attributes)
            row = await self._get_queries().get_record(ctx.connection, job_id=job_id)

        logger.debug(f"Record upserted: job_id={job_id}")
        return JobRecord.from_row(row)

    @transactional
    async def update(self, job_id: str, attributes: dict[str, Any]) -> JobRecord:
        """
        기존 레코드 갱신 (레코드를 생성하지 않음, executions는 줄지 않음)

        Raises:
            RecordNotFoundError: 레코드 없음
        """
        ctx = get_connection(self._database)
        assignments = ', '.join(
            f"{name} = MAX({name}, :{name})" if name == 'executions' else f"{name} = :{name}"
            for name in attributes
            if name != 'job_id'
        )
        parameters = {**attributes, 'job_id': job_id}

        with translate_errors(job_id):
            affected = await ctx.execute_rowcount(
                f"UPDATE {TABLE_NAME} SET {assignments} WHERE job_id = :job_id",
                parameters,
            )
            if affected == 0:
                raise RecordNotFoundError(job_id)
            row = await self._get_queries().get_record(ctx.connection, job_id=job_id)

        return JobRecord.from_row(row)

    @transactional
    async def increment_executions(self, job_id: str) -> int:
        """
        실행 횟수 증가

        Returns:
            증가 후 저장된 실행 횟수

        Raises:
            RecordNotFoundError: 레코드 없음 (다른 워커가 이미 완료/삭제)
        """
        ctx = get_connection(self._database)
        with translate_errors(job_id):
            executions = await self._get_queries().increment_executions(ctx.connection, job_id=job_id)
        if executions is None:
            raise RecordNotFoundError(job_id)
        return executions

    @transactional
    async def delete(self, job_id: str) -> None:
        """
        레코드 삭제

        Raises:
            RecordNotFoundError: 레코드가 이미 삭제됨
        """
        ctx = get_connection(self._database)
        with translate_errors(job_id):
            affected = await self._get_queries().delete_record(ctx.connection, job_id=job_id)
        if affected == 0:
            raise RecordNotFoundError(job_id)
        logger.debug(f"Record deleted: job_id={job_id}")

    @transactional_readonly
    async def find_by(self, job_id: str) -> JobRecord | None:
        """job_id로 레코드 조회 (없으면 None)"""
        ctx = get_connection(self._database)
        with translate_errors(job_id):
            row = await self._get_queries().get_record(ctx.connection, job_id=job_id)
        return JobRecord.from_row(row) if row else None

    async def find(self, job_id: str) -> JobRecord:
        """
        job_id로 레코드 조회

        Raises:
            RecordNotFoundError: 레코드 없음
        """
        record = await self.find_by(job_id)
        if record is None:
            raise RecordNotFoundError(job_id)
        return record

    @transactional_readonly
    async def exists(self, job_id: str) -> bool:
        ctx = get_connection(self._database)
        with translate_errors(job_id):
            found = await self._get_queries().record_exists(ctx.connection, job_id=job_id)
        return bool(found)

    @transactional_readonly
    async def count(self) -> int:
        ctx = get_connection(self._database)
        with translate_errors():
            return await self._get_queries().count_records(ctx.connection)

    def query(self):
        """전체 레코드에 대한 JobQuery"""
        from record.query import JobQuery
        return JobQuery(self)
