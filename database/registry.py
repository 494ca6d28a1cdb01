"""
데이터베이스 레지스트리

database.yaml에 정의된 DB를 이름으로 관리합니다.

설정 예시:
    databases:
      default:
        type: sqlite3
        path: ./data/jobs.db
        pool:
          pool_size: 5
"""

import logging
from typing import Any

from database.base import BaseDatabase
from database.exception import DatabaseError, DatabaseNotFoundError

logger = logging.getLogger(__name__)


class DatabaseRegistry:
    """이름 -> Database 인스턴스 매핑"""

    _databases: dict[str, BaseDatabase] = {}

    @classmethod
    async def init_from_config(cls, config: dict[str, Any], names: list[str] | None = None) -> None:
        """설정으로부터 DB 초기화 (names가 주어지면 해당 DB만)"""
        databases = config.get('databases', {})
        targets = names if names is not None else list(databases.keys())

        for name in targets:
            if name in cls._databases:
                continue
            if name not in databases:
                raise DatabaseNotFoundError(name)
            cls._databases[name] = await cls._create(name, databases[name])
            logger.info(f"Database '{name}' registered")

    @classmethod
    async def _create(cls, name: str, db_config: dict[str, Any]) -> BaseDatabase:
        db_type = db_config.get('type', 'sqlite3')
        if db_type == 'sqlite3':
            from database.sqlite3 import SQLiteDatabase
            return await SQLiteDatabase.create(name, db_config)
        raise DatabaseError(f"Unsupported database type: {db_type}")

    @classmethod
    def register(cls, db: BaseDatabase) -> None:
        """이미 생성된 DB 등록"""
        cls._databases[db.name] = db

    @classmethod
    def get(cls, name: str = 'default') -> BaseDatabase:
        if name not in cls._databases:
            raise DatabaseNotFoundError(name)
        return cls._databases[name]

    @classmethod
    def names(cls) -> list[str]:
        return list(cls._databases.keys())

    @classmethod
    async def close_all(cls) -> None:
        """모든 DB 연결 종료"""
        for name, db in list(cls._databases.items()):
            try:
                await db.close()
            except Exception as e:
                logger.error(f"Error closing database '{name}': {e}")
        cls._databases.clear()

    @classmethod
    def clear(cls) -> None:
        """레지스트리 초기화 (테스트용, 연결은 닫지 않음)"""
        cls._databases.clear()
