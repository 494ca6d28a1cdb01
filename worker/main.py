"""
Worker: jobs 테이블 폴링 워커 모듈

실행 순서(todo)상 다음 잡을 하나씩 꺼내 실행합니다. 잡 실행 중 발생한 오류는
로그만 남기고 다음 잡으로 넘어가며, 대기열이 비면 sleep_delay_seconds만큼 쉽니다.

실행 방법:
    python main.py
"""

import asyncio
import importlib
import logging
import pkgutil
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from common.logging import worker_logger
from job.base import Job
from job.lifecycle import Lifecycle
from job.model import QueueConfig
from worker.exception import WorkerAlreadyRunningError

logger = logging.getLogger(__name__)


@dataclass
class WorkerConfig:
    """워커 설정"""
    description: str = "jobrow worker"
    database: str = "default"  # jobs 테이블이 있는 DB (database.yaml에 정의된 이름)
    queue_names: list[str] = field(default_factory=list)  # 비어 있으면 전체 큐
    job_classes: list[str] = field(default_factory=list)  # 비어 있으면 전체 잡 클래스
    max_executions: int | None = None
    sleep_delay_seconds: float = 5
    pool_size: int = 1
    jobs_package: str = "worker.job"
    logger: logging.Logger | logging.LoggerAdapter | None = None  # 없으면 worker 필드가 붙은 로거


class Worker:
    """
    단일 순차 워커

    source가 주어지지 않으면 queue_names/job_classes/max_executions로 필터링한
    todo 조회의 첫 잡을 실행합니다.
    """

    def __init__(
        self,
        config: WorkerConfig,
        queue_config: QueueConfig | None = None,
        source: Callable[[], Awaitable[Job | None]] | None = None,
    ):
        self._config = config
        self._lifecycle = Lifecycle(queue_config or QueueConfig(database=config.database))
        self._source = source or self._next_job
        self._logger = config.logger or worker_logger(config.description, __name__)
        self._running = False
        self._stop_event: asyncio.Event | None = None

    @property
    def lifecycle(self) -> Lifecycle:
        return self._lifecycle

    @property
    def is_running(self) -> bool:
        return self._running

    async def _next_job(self) -> Job | None:
        return await self._lifecycle.next_job(
            queue_names=self._config.queue_names,
            max_executions=self._config.max_executions,
            job_classes=self._config.job_classes,
        )

    async def execute_next(self) -> bool:
        """
        다음 잡 하나 실행

        잡 실행 오류는 로그만 남기고 삼킵니다. 잡 조회 오류는 전파됩니다.

        Returns:
            잡을 실행했는지 여부
        """
        description = self._config.description
        self._logger.info(f"{description}: Looking for the next available job")

        job = await self._source()
        if job is None:
            self._logger.info(f"{description}: No available jobs found")
            return False

        self._logger.info(f"{description}: Executing {job.job_name} (job_id={job.job_id})")
        try:
            result = await self._lifecycle.perform_now(job)
        except Exception as e:
            self._logger.error(
                f"{description}: {job.job_name} (job_id={job.job_id}) failed: {type(e).__name__}: {e}",
                exc_info=True,
            )
        else:
            self._logger.info(
                f"{description}: {job.job_name} (job_id={job.job_id}) finished as {result.state.value}"
            )
        return True

    async def work_off(self) -> bool:
        """
        실행 가능한 잡이 없을 때까지 실행

        Returns:
            하나 이상의 잡을 실행했는지 여부
        """
        ran = False
        while await self.execute_next():
            ran = True
            # stop() 요청 시 남은 잡은 다음 실행으로
            if self._stop_event is not None and self._stop_event.is_set():
                break
        return ran

    async def start(self) -> None:
        """워커 메인 루프 시작 (stop() 호출 시 종료)"""
        if self._running:
            raise WorkerAlreadyRunningError(self._config.description)

        self._running = True
        self._stop_event = asyncio.Event()
        self._logger.info(
            f"{self._config.description}: started (queues={self._config.queue_names or 'all'}, "
            f"sleep_delay={self._config.sleep_delay_seconds}s)"
        )

        try:
            while self._running:
                try:
                    await self.work_off()
                except Exception as e:
                    self._logger.error(f"{self._config.description}: Error in work_off: {e}", exc_info=True)

                if not self._running:
                    break

                # 다음 폴링까지 대기 (stop 시 즉시 종료)
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._config.sleep_delay_seconds)
                    break
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            self._logger.info(f"{self._config.description}: cancelled")
            raise
        finally:
            self._running = False
            self._logger.info(f"{self._config.description}: stopped")

    async def stop(self) -> None:
        """워커 종료 요청 (실행 중인 잡은 끝까지 실행)"""
        if not self._running:
            return
        self._logger.info(f"Stopping {self._config.description}...")
        self._running = False
        if self._stop_event:
            self._stop_event.set()


class WorkerPool:
    """
    워커풀

    pool_size개의 독립 워커를 동시에 실행합니다. 워커 간 공유 상태는 없고,
    각 워커는 잡을 하나씩 순차 실행합니다.
    """

    def __init__(self, config: WorkerConfig, queue_config: QueueConfig | None = None):
        self._config = config
        queue_config = queue_config or QueueConfig(database=config.database)
        self._workers = [
            Worker(
                WorkerConfig(**{**config.__dict__, 'description': f"{config.description} #{index + 1}"}),
                queue_config,
            )
            for index in range(config.pool_size)
        ]

    @property
    def workers(self) -> list[Worker]:
        return list(self._workers)

    async def start(self) -> None:
        logger.info(f"WorkerPool started (pool_size={self._config.pool_size})")
        try:
            await asyncio.gather(*(worker.start() for worker in self._workers))
        finally:
            logger.info("WorkerPool stopped")

    async def stop(self) -> None:
        for worker in self._workers:
            await worker.stop()


def load_jobs(package_name: str = "worker.job") -> list[str]:
    """잡 모듈 로드 (데코레이터 등록을 위해, 하위 폴더 재귀 탐색)"""
    loaded = []

    def load_recursive(package, prefix: str):
        for _, module_name, is_pkg in pkgutil.iter_modules(package.__path__):
            full_name = f"{prefix}.{module_name}"
            module = importlib.import_module(full_name)
            loaded.append(full_name)
            logger.debug(f"Loaded job module: {full_name}")
            if is_pkg:
                load_recursive(module, full_name)

    load_recursive(importlib.import_module(package_name), package_name)
    return loaded
