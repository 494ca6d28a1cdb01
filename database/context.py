"""
트랜잭션 컨텍스트 저장소

현재 태스크에서 사용 중인 TransactionContext를 DB 이름별로 보관합니다.
contextvars 기반이므로 asyncio 태스크마다 독립적입니다.
"""

from contextvars import ContextVar
from typing import Any

from database.exception import TransactionError

_connections: ContextVar[dict[str, Any] | None] = ContextVar('_connections', default=None)


def set_connection(name: str, ctx: Any) -> None:
    """현재 태스크에 트랜잭션 컨텍스트 등록"""
    current = dict(_connections.get() or {})
    current[name] = ctx
    _connections.set(current)


def clear_connection(name: str) -> None:
    """현재 태스크의 트랜잭션 컨텍스트 제거"""
    current = dict(_connections.get() or {})
    current.pop(name, None)
    _connections.set(current)


def find_connection(name: str) -> Any | None:
    """등록된 트랜잭션 컨텍스트 반환 (없으면 None)"""
    return (_connections.get() or {}).get(name)


def get_connection(name: str = 'default') -> Any:
    """
    현재 트랜잭션 컨텍스트 반환

    @transactional 또는 db.transaction() 블록 안에서만 사용할 수 있습니다.
    """
    ctx = find_connection(name)
    if ctx is None:
        raise TransactionError(f"No active transaction for database '{name}'")
    return ctx
