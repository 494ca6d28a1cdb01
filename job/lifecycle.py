"""
Job Lifecycle Controller

잡의 등록, 실행, 완료, 재시도, 폐기를 jobs 테이블 레코드와 맞춰 관리합니다.

상태 전이:
    UNENQUEUED --enqueue--> ENQUEUED --perform_now--> EXECUTING
    EXECUTING --성공--> COMPLETED (레코드 삭제)
    EXECUTING --성공, 실행 중 재등록--> ENQUEUED (레코드 유지)
    EXECUTING --재시도 정책 일치--> RETRYING (now + wait로 재등록)
    EXECUTING --그 외 오류--> DISCARDED (보존 시 discarded_at 기록, 아니면 삭제)

레코드는 실행 대기 중이거나 보존된 폐기 잡인 동안에만 존재합니다.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from job.base import Job
from job.extension import RetainDiscarded
from job.model import ExecutionResult, JobState, QueueConfig
from record.exception import RecordNotFoundError
from record.query import JobQuery
from record.store import RecordStore

logger = logging.getLogger(__name__)


class Lifecycle:
    """잡 상태 전이 관리자"""

    def __init__(self, config: QueueConfig | None = None):
        self._config = config or QueueConfig()
        self._store = RecordStore(self._config)
        self._codec = self._store.codec

    @property
    def config(self) -> QueueConfig:
        return self._config

    @property
    def store(self) -> RecordStore:
        return self._store

    def now(self) -> datetime:
        return self._config.clock()

    @staticmethod
    def _to_datetime(timestamp: datetime | float | None) -> datetime | None:
        if timestamp is None or isinstance(timestamp, datetime):
            return timestamp
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)

    async def _write(self, job: Job) -> Job:
        """기존 레코드를 잡 값으로 갱신 후 잡을 레코드 값으로 재구성"""
        columns = await self._store.columns()
        attributes = self._codec.to_record_attributes(job, columns, expected_job_id=job.job_id)
        record = await self._store.update(job.job_id, attributes)
        return self._codec.from_record(record, job)

    # ------------------------------------------------------------
    # 등록
    # ------------------------------------------------------------

    async def enqueue(self, job: Job, timestamp: datetime | float | None = None) -> Job:
        """
        잡 등록 (멱등)

        같은 job_id의 레코드가 있으면 갱신하고 없으면 생성합니다.

        Args:
            job: 등록할 잡
            timestamp: 실행 예정 시각 (datetime 또는 epoch 초, None이면 즉시 실행 가능)
        """
        job.bind(self)
        now = self.now()
        if timestamp is None:
            timestamp = job.take_schedule(now)

        job.scheduled_at = self._to_datetime(timestamp)
        job.enqueued_at = now
        for extension in job.extensions:
            extension.before_enqueue(job)

        columns = await self._store.columns()
        attributes = self._codec.to_record_attributes(job, columns)
        record = await self._store.upsert(attributes)
        self._codec.from_record(record, job)
        job.state = JobState.ENQUEUED

        logger.info(
            f"Enqueued {job.job_name} (job_id={job.job_id}) to {job.queue_name}"
            + (f" at {job.scheduled_at.isoformat()}" if job.scheduled_at else "")
        )
        return job

    async def retry(self, job: Job, error: BaseException | None = None, wait: float | None = None) -> Job:
        """wait초 뒤로 다시 등록"""
        scheduled_at = None
        if wait:
            scheduled_at = self.now().timestamp() + wait
        logger.info(
            f"Retrying {job.job_name} (job_id={job.job_id}) in {wait or 0}s"
            + (f" due to {type(error).__name__}: {error}" if error is not None else "")
        )
        return await self.enqueue(job, scheduled_at)

    # ------------------------------------------------------------
    # 실행
    # ------------------------------------------------------------

    async def begin_execution(self, job: Job) -> bool:
        """
        실행 시작

        재등록 플래그를 지우고, 레코드가 있는 잡이면 사용자 코드 실행 전에
        executions를 저장소에서 먼저 증가시킵니다.

        Returns:
            레코드가 있는 잡인지 여부

        Raises:
            RecordNotFoundError: 레코드가 이미 없음 (다른 워커가 완료/삭제)
        """
        backed = job.successfully_enqueued
        job.successfully_enqueued = False
        if backed:
            # 저장소가 증가시킨 값 사용 (같은 행을 가져간 다른 워커의 실행 포함)
            job.executions = await self._store.increment_executions(job.job_id)
        else:
            job.executions += 1
        job.state = JobState.EXECUTING
        return backed

    async def perform_now(self, job: Job) -> ExecutionResult:
        """
        잡 실행

        Returns:
            ExecutionResult (재시도/discard_on 폐기 시 error 포함)

        Raises:
            Exception: 재시도/폐기 정책에 해당하지 않는 오류 (폐기 후 전파)
        """
        job.bind(self)
        backed = await self.begin_execution(job)
        logger.info(f"Performing {job.job_name} (job_id={job.job_id}, executions={job.executions})")

        try:
            await job.before_perform()
            value = await self._invoke(job)
            await job.after_perform()
        except Exception as e:
            return await self._handle_error(job, e, backed)

        return await self.finish_execution(job, backed, value)

    async def _invoke(self, job: Job) -> Any:
        awaitable = job.perform(*job.arguments)
        for extension in job.extensions:
            awaitable = extension.wrap_perform(job, awaitable)
        return await awaitable

    async def finish_execution(self, job: Job, backed: bool, value: Any = None) -> ExecutionResult:
        """
        성공 처리

        실행 중 다시 등록된 잡은 레코드를 그대로 두고, 아니면 레코드를 삭제합니다.

        Raises:
            RecordNotFoundError: 삭제할 레코드가 이미 없음
        """
        if job.successfully_enqueued:
            logger.info(f"Performed {job.job_name} (job_id={job.job_id}), re-enqueued during execution")
            return ExecutionResult(job=job, state=JobState.ENQUEUED, value=value, reenqueued=True)

        job.scheduled_at = None
        job.enqueued_at = None
        if backed:
            await self._store.delete(job.job_id)
        job.state = JobState.COMPLETED
        logger.info(f"Performed {job.job_name} (job_id={job.job_id})")
        return ExecutionResult(job=job, state=JobState.COMPLETED, value=value)

    async def _handle_error(self, job: Job, error: Exception, backed: bool) -> ExecutionResult:
        for extension in job.extensions:
            extension.on_error(job, error)

        if job.successfully_enqueued:
            # 실행 중 재등록된 레코드는 유지하고 오류만 전파
            logger.warning(
                f"{job.job_name} (job_id={job.job_id}) failed after re-enqueue: {type(error).__name__}: {error}"
            )
            raise error

        policy = job.retry_policy_for(error)
        if policy is not None:
            count = job.count_exception(policy)
            if count < policy.attempts:
                await self.retry(job, error, policy.wait_seconds(count))
                job.state = JobState.RETRYING
                return ExecutionResult(job=job, state=JobState.RETRYING, error=error, reenqueued=True)
            logger.warning(
                f"Stopped retrying {job.job_name} (job_id={job.job_id}) after {count} attempts: {error}"
            )

        await self.discard(job, error, backed)
        if job.should_discard(error):
            return ExecutionResult(job=job, state=JobState.DISCARDED, error=error)
        raise error

    # ------------------------------------------------------------
    # 폐기
    # ------------------------------------------------------------

    async def discard(self, job: Job, error: BaseException | None = None, backed: bool = True) -> Job:
        """
        잡 폐기

        RetainDiscarded(retain=True) 확장이 있으면 discarded_at을 기록해 레코드를 남기고,
        아니면 레코드를 삭제합니다.
        """
        job.scheduled_at = None
        job.enqueued_at = None

        retention = job.extension(RetainDiscarded)
        if retention is not None and retention.retain:
            job.extras['discarded_at'] = self.now()
            if backed:
                await self._write(job)
            else:
                columns = await self._store.columns()
                record = await self._store.upsert(self._codec.to_record_attributes(job, columns))
                self._codec.from_record(record, job)
        elif backed:
            await self._store.delete(job.job_id)

        job.state = JobState.DISCARDED
        logger.warning(
            f"Discarded {job.job_name} (job_id={job.job_id})"
            + (f" due to {type(error).__name__}: {error}" if error is not None else "")
        )
        await job.after_discard(error)
        return job

    # ------------------------------------------------------------
    # 레코드 동기화
    # ------------------------------------------------------------

    async def reload(self, job: Job) -> Job:
        """
        레코드 값으로 잡 갱신

        Raises:
            RecordNotFoundError: 레코드 없음
        """
        try:
            record = await self._store.find(job.job_id)
        except RecordNotFoundError:
            job.successfully_enqueued = False
            raise
        job.bind(self)
        return self._codec.from_record(record, job)

    async def save(self, job: Job) -> Job:
        """
        잡 값을 기존 레코드에 저장 (레코드를 생성하지 않음)

        Raises:
            RecordNotFoundError: 레코드 없음
        """
        job.bind(self)
        return await self._write(job)

    async def update(self, job: Job, attributes: dict[str, Any]) -> Job:
        """
        속성 변경 후 저장

        Raises:
            TypeError: attributes가 dict가 아님
            AttributeError: 잡에 없는 속성
            IdentityMismatchError: job_id 변경 시도
            RecordNotFoundError: 레코드 없음
        """
        if not isinstance(attributes, dict):
            raise TypeError(f"expected dict of attributes, found {type(attributes).__name__}")

        job_id = job.job_id
        for name, value in attributes.items():
            if name in job.extras:
                job.extras[name] = value
            elif not name.startswith('_') and hasattr(job, name):
                setattr(job, name, value)
            else:
                raise AttributeError(f"{job.job_name} has no attribute {name!r}")

        job.bind(self)
        columns = await self._store.columns()
        record_attributes = self._codec.to_record_attributes(job, columns, expected_job_id=job_id)
        record = await self._store.update(job_id, record_attributes)
        return self._codec.from_record(record, job)

    async def destroy(self, job: Job) -> Job:
        """
        레코드 삭제

        Raises:
            RecordNotFoundError: 레코드가 이미 없음
        """
        await self._store.delete(job.job_id)
        job.successfully_enqueued = False
        job.enqueued_at = None
        job.scheduled_at = None
        job.state = JobState.UNENQUEUED
        return job

    async def exists(self, job: Job) -> bool:
        return await self._store.exists(job.job_id)

    async def destroyed(self, job: Job) -> bool:
        return not await self._store.exists(job.job_id)

    # ------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------

    def query(self, job_class: type[Job] | str | None = None) -> JobQuery:
        """jobs 조회 (job_class 지정 시 해당 클래스로 한정)"""
        query = self._store.query()
        if job_class is None:
            return query
        name = job_class if isinstance(job_class, str) else job_class.job_name
        return query.job_class(name)

    async def next_job(
        self,
        queue_names: Iterable[str] | None = None,
        max_executions: int | None = None,
        job_classes: Iterable[str] | None = None,
    ) -> Job | None:
        """실행 순서상 다음 잡 (없으면 None)"""
        query = self.query().todo()
        if queue_names:
            query = query.queue(*queue_names)
        if job_classes:
            query = query.job_class(*job_classes)
        if max_executions is not None:
            query = query.max_executions(max_executions)

        job = await query.first_job()
        if job is None:
            return None
        job.bind(self)
        return job
