"""
jobs 테이블 스키마 관리

기본 컬럼에 선택적 확장 컬럼을 더해 jobs 테이블을 생성합니다.

확장:
    id                정수 PK 추가 (job_id는 UNIQUE 인덱스), provider_job_id로 노출
    shard             shard 텍스트 컬럼
    last_error        마지막 오류 텍스트 컬럼
    retain_discarded  discarded_at 컬럼 추가, enqueued_at NULL 허용

사용 예시:
    await create_jobs_table(db, extensions=['id', 'last_error'])
    await add_extension(db, 'shard')
"""

import logging
from collections.abc import Iterable

from database.base import BaseDatabase
from record.exception import ConfigurationError
from record.store import TABLE_NAME

logger = logging.getLogger(__name__)

EXTENSIONS = ("id", "shard", "last_error", "retain_discarded")

_EXTENSION_COLUMNS = {
    "shard": "shard VARCHAR(255)",
    "last_error": "last_error TEXT",
    "retain_discarded": "discarded_at DATETIME",
}


def _validate(extensions: list[str]) -> None:
    if len(set(extensions)) != len(extensions):
        raise ConfigurationError(f"duplicate extensions found: {extensions}")
    invalid = [extension for extension in extensions if extension not in EXTENSIONS]
    if invalid:
        raise ConfigurationError(f"invalid extensions found: {invalid}")


def jobs_table_ddl(extensions: Iterable[str] = ()) -> list[str]:
    """jobs 테이블 DDL 목록 생성"""
    extensions = list(extensions)
    _validate(extensions)

    enqueued_at_null = "" if "retain_discarded" in extensions else " NOT NULL"
    if "id" in extensions:
        key_columns = [
            "id INTEGER PRIMARY KEY AUTOINCREMENT",
            "job_id VARCHAR(255) NOT NULL",
        ]
    else:
        key_columns = ["job_id VARCHAR(255) NOT NULL PRIMARY KEY"]

    columns = key_columns + [
        "job_class VARCHAR(255) NOT NULL",
        "queue_name VARCHAR(255)",
        "priority INTEGER",
        "arguments TEXT NOT NULL",
        "executions INTEGER NOT NULL CHECK (executions >= 0)",
        "exception_executions TEXT NOT NULL",
        "locale VARCHAR(255)",
        "timezone VARCHAR(255)",
        f"enqueued_at DATETIME{enqueued_at_null}",
        "scheduled_at DATETIME",
    ]
    columns += [_EXTENSION_COLUMNS[name] for name in EXTENSIONS if name in extensions and name in _EXTENSION_COLUMNS]

    statements = [f"CREATE TABLE IF NOT EXISTS {TABLE_NAME} (\n    " + ",\n    ".join(columns) + "\n)"]
    if "id" in extensions:
        statements.append(f"CREATE UNIQUE INDEX IF NOT EXISTS idx_{TABLE_NAME}_job_id ON {TABLE_NAME} (job_id)")
    statements.append(
        f"CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_todo ON {TABLE_NAME} (priority, scheduled_at, enqueued_at)"
    )
    return statements


async def create_jobs_table(db: BaseDatabase, extensions: Iterable[str] = ()) -> None:
    """jobs 테이블 생성 (이미 있으면 무시)"""
    statements = jobs_table_ddl(extensions)
    async with db.transaction() as ctx:
        for sql in statements:
            await ctx.execute(sql)
    logger.info(f"{TABLE_NAME} table ready (extensions={list(extensions)})")


async def drop_jobs_table(db: BaseDatabase) -> None:
    async with db.transaction() as ctx:
        await ctx.execute(f"DROP TABLE IF EXISTS {TABLE_NAME}")


async def add_extension(db: BaseDatabase, extension: str) -> None:
    """
    기존 jobs 테이블에 확장 컬럼 추가

    id 확장은 기본 키 변경이 필요하므로 테이블 생성 시에만 지정할 수 있습니다.
    retain_discarded의 enqueued_at NULL 허용은 SQLite ALTER TABLE로 바꿀 수 없으므로,
    기존 테이블에 추가하면 discarded_at만 생깁니다.
    """
    if extension not in _EXTENSION_COLUMNS:
        raise ConfigurationError(f"extension cannot be added to an existing table: {extension}")
    async with db.transaction() as ctx:
        await ctx.execute(f"ALTER TABLE {TABLE_NAME} ADD COLUMN {_EXTENSION_COLUMNS[extension]}")
    logger.info(f"{TABLE_NAME} table extension added: {extension}")
