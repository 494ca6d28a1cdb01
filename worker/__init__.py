"""
Worker 패키지 - jobs 테이블 폴링 워커
"""

from worker.exception import WorkerError, WorkerAlreadyRunningError
from worker.main import Worker, WorkerConfig, WorkerPool, load_jobs

__all__ = [
    'WorkerError',
    'WorkerAlreadyRunningError',
    'Worker',
    'WorkerConfig',
    'WorkerPool',
    'load_jobs',
]
