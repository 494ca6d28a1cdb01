"""
Ordering Query Engine

jobs 테이블에 대한 필터/정렬 뷰를 조합합니다. 각 스코프 메서드는 새 JobQuery를
반환하며 조건은 AND로 결합됩니다. 실행 시점에 레코드를 반환하고,
잡 인스턴스로의 변환(jobs(), first_job())은 필수 컬럼이 모두 있는 행만 수행합니다.

실행 순서 (todo):
    1. priority 오름차순, NULL은 마지막
    2. scheduled_at 오름차순, NULL은 마지막
    3. enqueued_at 오름차순 (동일 순위 간 FIFO)
    4. job_id 오름차순 (모든 값이 같은 행 간 순서 고정)

사용 예시:
    query = store.query().queue('mailers').max_executions(3).todo()
    record = await query.first()
    async for record in query:
        ...
"""

import logging
from typing import Any, AsyncIterator

from database import get_connection, transactional_readonly
from record.exception import ConfigurationError
from record.model import JobRecord, is_complete, to_db_time
from record.store import TABLE_NAME, translate_errors

logger = logging.getLogger(__name__)

TODO_ORDER = (
    "CASE WHEN priority IS NULL THEN 1 ELSE 0 END, priority, "
    "CASE WHEN scheduled_at IS NULL THEN 1 ELSE 0 END, scheduled_at, "
    "enqueued_at, job_id"
)

# 정렬 미지정 시 기본 순서
IMPLICIT_ORDER = "enqueued_at, job_id"


def _check_column(name: str) -> str:
    if not name.isidentifier():
        raise ValueError(f"invalid column name: {name!r}")
    return name


class JobQuery:
    """jobs 테이블 조회 빌더 (불변)"""

    BATCH_SIZE = 100

    def __init__(
        self,
        store,
        conditions: tuple[tuple[str, tuple], ...] = (),
        order: str | None = None,
        limit: int | None = None,
        columns: tuple[str, ...] | None = None,
        executable: bool = False,
        discarded: bool = False,
    ):
        self._store = store
        self._database = store.config.database
        self._conditions = conditions
        self._order = order
        self._limit = limit
        self._columns = columns
        self._executable = executable
        self._discarded = discarded

    def _copy(self, **changes) -> 'JobQuery':
        values = {
            'conditions': self._conditions,
            'order': self._order,
            'limit': self._limit,
            'columns': self._columns,
            'executable': self._executable,
            'discarded': self._discarded,
        }
        values.update(changes)
        return JobQuery(self._store, **values)

    def _and(self, sql: str, parameters: tuple = ()) -> 'JobQuery':
        return self._copy(conditions=self._conditions + ((sql, parameters),))

    # ------------------------------------------------------------
    # 스코프
    # ------------------------------------------------------------

    def where(self, **equals: Any) -> 'JobQuery':
        """컬럼 = 값 조건 (None은 IS NULL, list/tuple은 IN)"""
        query = self
        for name, value in equals.items():
            column = _check_column(name)
            if value is None:
                query = query._and(f"{column} IS NULL")
            elif isinstance(value, (list, tuple, set)):
                values = tuple(value)
                if not values:
                    query = query._and("0 = 1")
                else:
                    placeholders = ', '.join('?' for _ in values)
                    query = query._and(f"{column} IN ({placeholders})", values)
            else:
                query = query._and(f"{column} = ?", (value,))
        return query

    def queue(self, *queue_names: str) -> 'JobQuery':
        """지정한 큐의 잡"""
        return self.where(queue_name=list(queue_names))

    def job_class(self, *job_classes: str) -> 'JobQuery':
        """지정한 잡 클래스의 잡"""
        return self.where(job_class=list(job_classes))

    def max_executions(self, max_executions: int) -> 'JobQuery':
        """실행 횟수가 max_executions 미만인 잡"""
        return self._and("executions < ?", (max_executions,))

    def failing(self) -> 'JobQuery':
        """한 번 이상 실행된 잡"""
        return self._and("executions > ?", (0,))

    def executable(self) -> 'JobQuery':
        """scheduled_at이 NULL이거나 현재 이전인 잡 (보존된 폐기 잡 제외)"""
        return self._copy(executable=True)

    def discarded(self) -> 'JobQuery':
        """보존된 폐기 잡 (discarded_at 컬럼 필요)"""
        return self._copy(discarded=True)

    def todo(self) -> 'JobQuery':
        """실행 가능한 잡을 실행 순서대로"""
        return self.executable()._copy(order=TODO_ORDER)

    def order_by(self, *columns: str) -> 'JobQuery':
        """정렬 지정 ('-column'은 내림차순)"""
        clauses = []
        for column in columns:
            if column.startswith('-'):
                clauses.append(f"{_check_column(column[1:])} DESC")
            else:
                clauses.append(f"{_check_column(column)} ASC")
        return self._copy(order=', '.join(clauses))

    def limit(self, limit: int) -> 'JobQuery':
        return self._copy(limit=limit)

    def select(self, *columns: str) -> 'JobQuery':
        """프로젝션 (필수 컬럼이 빠지면 잡으로 변환하지 않고 dict 반환)"""
        return self._copy(columns=tuple(_check_column(column) for column in columns))

    # ------------------------------------------------------------
    # 실행
    # ------------------------------------------------------------

    async def _where_clause(self) -> tuple[str, list]:
        fragments = [sql for sql, _ in self._conditions]
        parameters = [value for _, values in self._conditions for value in values]

        if self._executable or self._discarded:
            columns = await self._store._columns()
            has_discarded_at = 'discarded_at' in columns

            if self._discarded:
                if not has_discarded_at:
                    raise ConfigurationError(f"{TABLE_NAME} table missing discarded_at column")
                fragments.append("discarded_at IS NOT NULL")

            if self._executable:
                fragments.append("(scheduled_at IS NULL OR scheduled_at <= ?)")
                parameters.append(to_db_time(self._store.config.clock()))
                if has_discarded_at:
                    fragments.append("discarded_at IS NULL")

        where = f" WHERE {' AND '.join(fragments)}" if fragments else ""
        return where, parameters

    async def _fetch(self, limit: int | None, offset: int = 0) -> list[JobRecord | dict]:
        ctx = get_connection(self._database)
        where, parameters = await self._where_clause()
        columns = ', '.join(self._columns) if self._columns else '*'
        sql = f"SELECT {columns} FROM {TABLE_NAME}{where} ORDER BY {self._order or IMPLICIT_ORDER}"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            parameters = parameters + [limit, offset]

        with translate_errors():
            rows = await ctx.fetch_all(sql, parameters)
        return [JobRecord.from_row(row) if is_complete(row) else dict(row) for row in rows]

    @transactional_readonly
    async def records(self) -> list[JobRecord | dict]:
        """조건에 맞는 레코드 목록"""
        return await self._fetch(self._limit)

    @transactional_readonly
    async def first(self) -> JobRecord | dict | None:
        """첫 번째 레코드 (없으면 None)"""
        records = await self._fetch(1)
        return records[0] if records else None

    @transactional_readonly
    async def count(self) -> int:
        ctx = get_connection(self._database)
        where, parameters = await self._where_clause()
        with translate_errors():
            row = await ctx.fetch_one(f"SELECT COUNT(*) AS cnt FROM {TABLE_NAME}{where}", parameters)
        return row['cnt']

    async def exists(self) -> bool:
        return await self.count() > 0

    @transactional_readonly
    async def _batch(self, limit: int, offset: int) -> list[JobRecord | dict]:
        return await self._fetch(limit, offset)

    async def __aiter__(self) -> AsyncIterator[JobRecord | dict]:
        """BATCH_SIZE 단위로 지연 조회"""
        offset = 0
        remaining = self._limit
        while remaining is None or remaining > 0:
            size = self.BATCH_SIZE if remaining is None else min(self.BATCH_SIZE, remaining)
            batch = await self._batch(size, offset)
            for record in batch:
                yield record
            if len(batch) < size:
                return
            offset += len(batch)
            if remaining is not None:
                remaining -= len(batch)

    # ------------------------------------------------------------
    # 잡 변환
    # ------------------------------------------------------------

    def _hydrate(self, record: JobRecord | dict):
        if isinstance(record, JobRecord):
            return self._store.codec.from_record(record)
        return record

    async def jobs(self) -> list:
        """잡 목록 (프로젝션 행은 dict 그대로)"""
        return [self._hydrate(record) for record in await self.records()]

    async def first_job(self):
        """첫 번째 잡 (없으면 None)"""
        record = await self.first()
        return None if record is None else self._hydrate(record)
