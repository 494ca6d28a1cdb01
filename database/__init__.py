"""
비동기 데이터베이스 패키지

사용 예시:
    from database import transactional, get_connection
    from database.registry import DatabaseRegistry

    await DatabaseRegistry.init_from_config(config)

    @transactional
    async def delete_job(job_id):
        ctx = get_connection()
        await ctx.execute("DELETE FROM jobs WHERE job_id = ?", (job_id,))

    @transactional('reporting')
    async def count_jobs():
        ...
"""

import functools
import inspect
from typing import Any, Callable

from database.base import BaseDatabase
from database.context import get_connection, find_connection
from database.exception import (
    DatabaseError,
    ConnectionPoolExhaustedError,
    TransactionError,
    ReadOnlyTransactionError,
    DatabaseNotFoundError,
)
from database.registry import DatabaseRegistry

__all__ = [
    'transactional',
    'transactional_readonly',
    'get_connection',
    'get_db',
    'BaseDatabase',
    'DatabaseRegistry',
    'DatabaseError',
    'ConnectionPoolExhaustedError',
    'TransactionError',
    'ReadOnlyTransactionError',
    'DatabaseNotFoundError',
]


def get_db(name: str = 'default') -> BaseDatabase:
    """등록된 DB 반환"""
    return DatabaseRegistry.get(name)


def _resolve(target: Any) -> BaseDatabase:
    if isinstance(target, BaseDatabase):
        return target
    return get_db(target)


def _wrap(func: Callable, target: Any, readonly: bool) -> Callable:
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        # 인스턴스에 _database 속성이 있으면 해당 DB 사용
        db_target = target
        if db_target is None and args and hasattr(args[0], '_database'):
            db_target = args[0]._database
        db = _resolve(db_target or 'default')

        # 이미 트랜잭션이 열려 있으면 재사용 (중첩 호출)
        if find_connection(db.name) is not None:
            return await func(*args, **kwargs)

        async with db.transaction(readonly=readonly):
            return await func(*args, **kwargs)

    return wrapper


def _decorator(readonly: bool):
    def outer(arg: Any = None):
        # @transactional (인자 없이 사용)
        if inspect.iscoroutinefunction(arg):
            return _wrap(arg, None, readonly)

        # @transactional(db) / @transactional('name')
        def decorator(func: Callable) -> Callable:
            return _wrap(func, arg, readonly)
        return decorator
    return outer


transactional = _decorator(readonly=False)
transactional_readonly = _decorator(readonly=True)
