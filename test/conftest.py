"""
공통 테스트 fixture

각 테스트는 tmp_path의 SQLite DB와 고정 시계를 사용합니다.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

# 프로젝트 루트 경로 추가
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import get_db
from database.registry import DatabaseRegistry
from job import JobRegistry, Lifecycle, QueueConfig
from record.schema import create_jobs_table

import sample_jobs


class FakeClock:
    """테스트용 시계 (advance로 시간 이동)"""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    """테스트 잡이 등록된 새 레지스트리"""
    registry = JobRegistry()
    for job_class in sample_jobs.ALL_JOBS:
        registry.register(job_class)
    return registry


@pytest.fixture(autouse=True)
def events():
    """잡 실행 기록 초기화"""
    sample_jobs.events.clear()
    yield sample_jobs.events
    sample_jobs.events.clear()


@pytest_asyncio.fixture
async def database(tmp_path):
    """테스트용 Database 인스턴스 (DatabaseRegistry 사용)"""
    DatabaseRegistry.clear()
    config = {
        'databases': {
            'default': {
                'type': 'sqlite3',
                'path': str(tmp_path / 'jobs.db'),
                'pool': {'pool_size': 3, 'pool_timeout': 5.0},
            }
        }
    }
    await DatabaseRegistry.init_from_config(config)
    yield get_db('default')
    await DatabaseRegistry.close_all()


@pytest.fixture
def extensions():
    """jobs 테이블 확장 (모듈/클래스에서 재정의)"""
    return []


@pytest_asyncio.fixture
async def jobs_table(database, extensions):
    await create_jobs_table(database, extensions)
    return database


@pytest.fixture
def queue_config(registry, clock):
    return QueueConfig(database='default', registry=registry, clock=clock)


@pytest_asyncio.fixture
async def lifecycle(jobs_table, queue_config):
    return Lifecycle(queue_config)
