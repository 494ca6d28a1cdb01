"""
Job 패키지

사용 예시:
    from job import Job, Lifecycle, QueueConfig, register_job

    @register_job
    class HelloJob(Job):
        async def perform(self, name):
            ...

    lifecycle = Lifecycle(QueueConfig(database='default'))
    job = await lifecycle.enqueue(HelloJob("world"))
    result = await lifecycle.perform_now(job)
"""

from job.exception import JobError, JobNotBoundError, JobTimeoutError, UnknownJobClassError
from job.registry import JobRegistry, default_registry, register_job
from job.model import ExecutionResult, JobState, QueueConfig, utc_now
from job.base import Job, RetryPolicy, polynomially_longer
from job.extension import Extension, LastError, ProviderId, RetainDiscarded, Shard, Timeout
from job.lifecycle import Lifecycle

__all__ = [
    'JobError',
    'JobNotBoundError',
    'JobTimeoutError',
    'UnknownJobClassError',
    'JobRegistry',
    'default_registry',
    'register_job',
    'ExecutionResult',
    'JobState',
    'QueueConfig',
    'utc_now',
    'Job',
    'RetryPolicy',
    'polynomially_longer',
    'Extension',
    'LastError',
    'ProviderId',
    'RetainDiscarded',
    'Shard',
    'Timeout',
    'Lifecycle',
]
