"""
SQLite3 jobs 저장소 연결 모듈

aiosqlite 연결을 고정 크기 풀로 유지하고, 트랜잭션마다 연결 하나를 빌려줍니다.
jobs 테이블의 변경은 모두 단일 행 문장이므로 쓰기 트랜잭션은 BEGIN IMMEDIATE로
곧바로 쓰기 잠금을 잡고 짧게 끝납니다.

설정 예시 (database.yaml):
    default:
      type: sqlite3
      path: ./data/jobrow.db
      pool:
        pool_size: 5
        pool_timeout: 30
      options:
        busy_timeout: 5000
        journal_mode: WAL
        synchronous: NORMAL
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator

import aiosql
import aiosqlite
from aiosql.queries import Queries

from database.base import BaseDatabase
from database.context import clear_connection, set_connection
from database.exception import ConnectionPoolExhaustedError, DatabaseError, ReadOnlyTransactionError

logger = logging.getLogger(__name__)

# 읽기 전용 트랜잭션에서 거부할 문장
WRITE_STATEMENTS = ('INSERT', 'UPDATE', 'DELETE', 'REPLACE', 'CREATE', 'DROP', 'ALTER')


@dataclass
class SqliteConfig:
    """database.yaml의 sqlite3 항목"""
    path: str
    pool_size: int = 5
    pool_timeout: float = 30.0
    busy_timeout: int = 5000  # ms
    journal_mode: str = 'WAL'
    synchronous: str = 'NORMAL'

    @classmethod
    def from_config(cls, name: str, config: dict[str, Any]) -> 'SqliteConfig':
        pool = config.get('pool', {})
        options = config.get('options', {})
        return cls(
            path=config.get('path', f'./data/{name}.db'),
            pool_size=pool.get('pool_size', cls.pool_size),
            pool_timeout=pool.get('pool_timeout', cls.pool_timeout),
            busy_timeout=options.get('busy_timeout', cls.busy_timeout),
            journal_mode=options.get('journal_mode', cls.journal_mode),
            synchronous=options.get('synchronous', cls.synchronous),
        )

    def pragmas(self) -> list[str]:
        return [
            f"PRAGMA busy_timeout={self.busy_timeout}",
            f"PRAGMA journal_mode={self.journal_mode}",
            f"PRAGMA synchronous={self.synchronous}",
        ]


class ConnectionPool:
    """고정 크기 aiosqlite 연결 풀 (유휴 연결 큐)"""

    def __init__(self, config: SqliteConfig):
        self._config = config
        self._idle: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue()
        self._connections: list[aiosqlite.Connection] = []
        self._closed = False

    async def open(self) -> None:
        path = Path(self._config.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(self._config.pool_size):
            connection = await self._connect(path)
            self._connections.append(connection)
            self._idle.put_nowait(connection)
        logger.info(
            f"Connection pool opened: {path} "
            f"(size={self._config.pool_size}, timeout={self._config.pool_timeout}s)"
        )

    async def _connect(self, path: Path) -> aiosqlite.Connection:
        # isolation_level=None: BEGIN/COMMIT은 transaction()이 직접 실행
        connection = await aiosqlite.connect(
            path,
            timeout=self._config.busy_timeout / 1000.0,
            isolation_level=None,
        )
        connection.row_factory = aiosqlite.Row
        for pragma in self._config.pragmas():
            await connection.execute(pragma)
        return connection

    async def acquire(self, timeout: float | None = None) -> aiosqlite.Connection:
        """
        유휴 연결 획득

        Raises:
            ConnectionPoolExhaustedError: timeout 안에 반환된 연결이 없음
        """
        if self._closed:
            raise DatabaseError("Connection pool is closed")

        timeout = timeout or self._config.pool_timeout
        try:
            return await asyncio.wait_for(self._idle.get(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ConnectionPoolExhaustedError(
                f"Connection pool exhausted. Timeout after {timeout}s"
            )

    async def release(self, connection: aiosqlite.Connection) -> None:
        if self._closed:
            return
        self._idle.put_nowait(connection)

    async def close(self) -> None:
        self._closed = True
        for connection in self._connections:
            try:
                await connection.close()
            except Exception as e:
                logger.error(f"Error closing connection: {e}")
        self._connections.clear()
        logger.info("Connection pool closed")

    @property
    def size(self) -> int:
        return len(self._connections)

    @property
    def available(self) -> int:
        return self._idle.qsize()


class TransactionContext:
    """트랜잭션 하나에 묶인 연결 (execute/fetch 헬퍼)"""

    def __init__(self, connection: aiosqlite.Connection, readonly: bool = False):
        self._connection = connection
        self._readonly = readonly

    @property
    def connection(self) -> aiosqlite.Connection:
        """aiosql 쿼리에 넘길 원본 연결"""
        return self._connection

    @property
    def readonly(self) -> bool:
        return self._readonly

    async def execute(self, sql: str, parameters: Any = None) -> aiosqlite.Cursor:
        if self._readonly and sql.lstrip().upper().startswith(WRITE_STATEMENTS):
            raise ReadOnlyTransactionError("Cannot execute write query in readonly transaction")

        logger.debug(f"[SQL] {' '.join(sql.split())}" + (f" | params: {parameters}" if parameters else ""))
        if parameters:
            return await self._connection.execute(sql, parameters)
        return await self._connection.execute(sql)

    async def execute_rowcount(self, sql: str, parameters: Any = None) -> int:
        """영향받은 행 수"""
        cursor = await self.execute(sql, parameters)
        logger.debug(f"[SQL Result] {cursor.rowcount} row(s)")
        return cursor.rowcount

    async def fetch_one(self, sql: str, parameters: Any = None) -> aiosqlite.Row | None:
        cursor = await self.execute(sql, parameters)
        return await cursor.fetchone()

    async def fetch_all(self, sql: str, parameters: Any = None) -> list[aiosqlite.Row]:
        cursor = await self.execute(sql, parameters)
        rows = await cursor.fetchall()
        logger.debug(f"[SQL Result] {len(rows)} row(s)")
        return list(rows)


class SQLiteDatabase(BaseDatabase):
    """
    SQLite 데이터베이스

    사용 예시:
        db = await SQLiteDatabase.create('default', {'path': './data/jobrow.db'})

        async with db.transaction() as ctx:
            await ctx.execute("DELETE FROM jobs WHERE job_id = ?", (job_id,))
    """

    def __init__(self, name: str, config: SqliteConfig):
        super().__init__(name)
        self._config = config
        self._pool = ConnectionPool(config)
        self._queries: dict[str, Queries] = {}

    @classmethod
    async def create(cls, name: str, config: dict[str, Any]) -> 'SQLiteDatabase':
        db = cls(name, SqliteConfig.from_config(name, config))
        await db._pool.open()
        logger.info(f"SQLiteDatabase '{name}' initialized")
        return db

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    @asynccontextmanager
    async def transaction(self, readonly: bool = False) -> AsyncIterator[TransactionContext]:
        """
        트랜잭션 블록

        정상 종료 시 커밋, 예외 시 롤백합니다. 블록 안에서는
        get_connection(name)으로 같은 컨텍스트를 얻을 수 있습니다.
        """
        connection = await self._pool.acquire()
        try:
            await connection.execute("BEGIN DEFERRED" if readonly else "BEGIN IMMEDIATE")
            ctx = TransactionContext(connection, readonly)
            set_connection(self.name, ctx)
            try:
                yield ctx
            except BaseException:
                await connection.rollback()
                logger.debug("Transaction rolled back")
                raise
            else:
                await connection.commit()
            finally:
                clear_connection(self.name)
        finally:
            await self._pool.release(connection)

    def load_queries(self, name: str, sql_path: str) -> Queries:
        """aiosql로 SQL 파일 로드"""
        queries = aiosql.from_path(sql_path, "aiosqlite")
        self._queries[name] = queries
        return queries

    def get_queries(self, name: str) -> Queries | None:
        return self._queries.get(name)

    async def close(self) -> None:
        await self._pool.close()
        logger.info(f"SQLiteDatabase '{self.name}' closed")
