"""
Job 기본 클래스

애플리케이션 잡은 Job을 상속하고 perform을 구현합니다.
잡 인스턴스는 jobs 테이블 레코드의 메모리 표현이며, 저장소 작업은
바인딩된 Lifecycle을 통해 수행됩니다.

사용 예시:
    @register_job
    class MailJob(Job):
        default_queue_name = "mailers"
        retry_on = (RetryPolicy((ConnectionError,), wait=10, attempts=3),)
        discard_on = (ValueError,)
        extensions = (LastError(), Timeout(60))

        async def perform(self, address, subject):
            ...

    job = await lifecycle.enqueue(MailJob("a@example.com", "hi"))
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, ClassVar

from job.exception import JobNotBoundError
from job.model import JobState

logger = logging.getLogger(__name__)


def polynomially_longer(executions: int) -> float:
    """재시도 대기 시간 (executions^4 + 2초)"""
    return executions ** 4 + 2


@dataclass(frozen=True)
class RetryPolicy:
    """
    재시도 정책

    attempts는 총 시도 횟수입니다. 해당 오류로 실행된 횟수가 attempts 미만이면
    wait초 뒤로 다시 등록하고, 도달하면 폐기합니다.
    """
    errors: tuple[type[BaseException], ...]
    wait: float | Callable[[int], float] = 3
    attempts: int = 5

    @property
    def key(self) -> str:
        """exception_executions 키 ("[ErrorA, ErrorB]")"""
        return f"[{', '.join(error.__name__ for error in self.errors)}]"

    def matches(self, error: BaseException) -> bool:
        return isinstance(error, self.errors)

    def wait_seconds(self, executions: int) -> float:
        if callable(self.wait):
            return self.wait(executions)
        return self.wait


class Job:
    """잡 기본 클래스"""

    job_name: ClassVar[str] = "Job"
    default_queue_name: ClassVar[str | None] = "default"
    default_priority: ClassVar[int | None] = None
    default_locale: ClassVar[str] = "en"
    default_timezone: ClassVar[str] = "UTC"

    retry_on: ClassVar[tuple[RetryPolicy, ...]] = ()
    discard_on: ClassVar[tuple[type[BaseException], ...]] = ()
    extensions: ClassVar[tuple] = ()

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if 'job_name' not in cls.__dict__:
            cls.job_name = cls.__name__

    def __init__(self, *arguments: Any):
        self.job_id: str = uuid.uuid4().hex
        self.queue_name: str | None = self.default_queue_name
        self.priority: int | None = self.default_priority
        self.arguments: list = list(arguments)
        self.executions: int = 0
        self.exception_executions: dict[str, int] = {}
        self.locale: str | None = self.default_locale
        self.timezone: str | None = self.default_timezone
        self.enqueued_at: datetime | None = None
        self.scheduled_at: datetime | None = None
        self.provider_job_id: int | None = None
        self.successfully_enqueued: bool = False
        self.state: JobState = JobState.UNENQUEUED
        self.extras: dict[str, Any] = {}

        self._lifecycle = None
        self._pending_wait: float | None = None
        self._pending_wait_until: datetime | float | None = None

        for extension in self.extensions:
            extension.initialize(self)

    def __repr__(self) -> str:
        return f"<{self.job_name} job_id={self.job_id} queue={self.queue_name} executions={self.executions}>"

    # ------------------------------------------------------------
    # 사용자 구현
    # ------------------------------------------------------------

    async def perform(self, *arguments: Any) -> Any:
        raise NotImplementedError(f"{type(self).__name__} must implement perform")

    async def before_perform(self) -> None:
        pass

    async def after_perform(self) -> None:
        pass

    async def after_discard(self, error: BaseException | None) -> None:
        pass

    # ------------------------------------------------------------
    # 직렬화
    # ------------------------------------------------------------

    def serialize(self) -> dict[str, Any]:
        return {
            'job_class': self.job_name,
            'job_id': self.job_id,
            'queue_name': self.queue_name,
            'priority': self.priority,
            'arguments': list(self.arguments),
            'executions': self.executions,
            'exception_executions': dict(self.exception_executions),
            'locale': self.locale,
            'timezone': self.timezone,
            'enqueued_at': self.enqueued_at,
            'scheduled_at': self.scheduled_at,
        }

    def deserialize(self, data: dict[str, Any]) -> None:
        self.job_id = data['job_id']
        self.queue_name = data['queue_name']
        self.priority = data['priority']
        self.arguments = list(data['arguments'])
        self.executions = data['executions']
        self.exception_executions = dict(data['exception_executions'])
        self.locale = data['locale']
        self.timezone = data['timezone']
        self.enqueued_at = data['enqueued_at']
        self.scheduled_at = data['scheduled_at']

    # ------------------------------------------------------------
    # 옵션
    # ------------------------------------------------------------

    def set(
        self,
        queue: str | None = None,
        priority: int | None = None,
        wait: float | timedelta | None = None,
        wait_until: datetime | float | None = None,
        **options: Any,
    ) -> 'Job':
        """
        등록 옵션 지정

        wait/wait_until은 다음 enqueue에서 scheduled_at으로 사용됩니다.
        나머지 키워드는 확장(shard, error 등)이 처리합니다.

        Raises:
            TypeError: 처리하는 확장이 없는 옵션
        """
        if queue is not None:
            self.queue_name = queue
        if priority is not None:
            self.priority = priority
        if wait is not None:
            self._pending_wait = wait.total_seconds() if isinstance(wait, timedelta) else wait
        if wait_until is not None:
            self._pending_wait_until = wait_until

        for extension in self.extensions:
            extension.apply_options(self, options)
        if options:
            raise TypeError(f"unknown options for {self.job_name}: {', '.join(sorted(options))}")
        return self

    def take_schedule(self, now: datetime) -> datetime | float | None:
        """set()으로 지정된 예약 시각을 꺼냄 (한 번만 사용)"""
        wait, wait_until = self._pending_wait, self._pending_wait_until
        self._pending_wait = None
        self._pending_wait_until = None
        if wait_until is not None:
            return wait_until
        if wait is not None:
            return now + timedelta(seconds=wait)
        return None

    def extension(self, kind: type):
        """지정 타입의 확장 (없으면 None)"""
        for extension in self.extensions:
            if isinstance(extension, kind):
                return extension
        return None

    # ------------------------------------------------------------
    # 재시도 / 폐기 정책
    # ------------------------------------------------------------

    def retry_policy_for(self, error: BaseException) -> RetryPolicy | None:
        for policy in self.retry_on:
            if policy.matches(error):
                return policy
        return None

    def should_discard(self, error: BaseException) -> bool:
        return bool(self.discard_on) and isinstance(error, tuple(self.discard_on))

    def count_exception(self, policy: RetryPolicy) -> int:
        """정책 키의 오류 실행 횟수 증가 후 반환"""
        count = self.exception_executions.get(policy.key, 0) + 1
        self.exception_executions[policy.key] = count
        return count

    # ------------------------------------------------------------
    # 저장소 작업 (바인딩된 Lifecycle 위임)
    # ------------------------------------------------------------

    def bind(self, lifecycle) -> 'Job':
        self._lifecycle = lifecycle
        return self

    @property
    def lifecycle(self):
        if self._lifecycle is None:
            raise JobNotBoundError(self.job_name, self.job_id)
        return self._lifecycle

    async def enqueue(self, timestamp: datetime | float | None = None) -> 'Job':
        return await self.lifecycle.enqueue(self, timestamp)

    async def retry_job(self, error: BaseException | None = None, wait: float | None = None) -> 'Job':
        """wait초 뒤로 다시 등록 (perform 안에서 호출하면 레코드가 유지됨)"""
        return await self.lifecycle.retry(self, error, wait)
