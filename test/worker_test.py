"""
Worker 테스트

테스트 항목:
1. execute_next (빈 큐, 성공, 실패 삼킴)
2. work_off 순서 실행
3. 큐/잡 클래스 필터
4. start/stop, 중복 실행 방지
5. WorkerPool
6. load_jobs (데코레이터 등록)

실행: python -m pytest test/worker_test.py -v
"""

import asyncio
import logging

import pytest

from job import QueueConfig, default_registry
from worker import Worker, WorkerAlreadyRunningError, WorkerConfig, WorkerPool, load_jobs

from sample_jobs import EchoJob, FailingJob, MailJob

logger = logging.getLogger(__name__)


@pytest.fixture
def worker_config():
    return WorkerConfig(description="test worker", sleep_delay_seconds=0.01)


@pytest.fixture
def worker(lifecycle, worker_config, queue_config):
    return Worker(worker_config, queue_config)


class TestExecuteNext:
    """execute_next 테스트"""

    @pytest.mark.asyncio
    async def test_empty_queue(self, worker):
        assert await worker.execute_next() is False

    @pytest.mark.asyncio
    async def test_runs_next_job(self, worker, lifecycle, events):
        job = await lifecycle.enqueue(EchoJob("hi"))

        assert await worker.execute_next() is True
        assert events == [("EchoJob", 'perform', ["hi"])]
        assert await lifecycle.destroyed(job)

    @pytest.mark.asyncio
    async def test_job_error_is_swallowed(self, worker, lifecycle, caplog):
        await lifecycle.enqueue(FailingJob())

        with caplog.at_level(logging.ERROR):
            assert await worker.execute_next() is True

        assert any("FailingJob" in record.getMessage() and "boom" in record.getMessage() for record in caplog.records)
        assert await lifecycle.store.count() == 0

    @pytest.mark.asyncio
    async def test_custom_source(self, lifecycle, worker_config, queue_config, events):
        pending = [EchoJob("from source")]

        async def source():
            return pending.pop() if pending else None

        worker = Worker(worker_config, queue_config, source=source)
        assert await worker.work_off() is True
        assert events == [("EchoJob", 'perform', ["from source"])]


class TestWorkOff:
    """work_off 테스트"""

    @pytest.mark.asyncio
    async def test_runs_until_empty(self, worker, lifecycle, clock, events):
        for index in range(3):
            await lifecycle.enqueue(EchoJob(index).set(priority=3 - index))
            clock.advance(1)

        assert await worker.work_off() is True
        assert [value for _, _, value in events] == [[2], [1], [0]]
        assert await worker.work_off() is False

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_work_off(self, worker, lifecycle, clock, events):
        await lifecycle.enqueue(FailingJob())
        clock.advance(1)
        await lifecycle.enqueue(EchoJob("after"))

        assert await worker.work_off() is True
        assert events[-1] == ("EchoJob", 'perform', ["after"])

    @pytest.mark.asyncio
    async def test_queue_filter(self, lifecycle, queue_config, events):
        await lifecycle.enqueue(EchoJob("default queue"))
        await lifecycle.enqueue(MailJob("mail queue"))

        worker = Worker(WorkerConfig(queue_names=["mailers"]), queue_config)
        await worker.work_off()

        assert events == [("MailJob", 'perform', ["mail queue"])]
        assert await lifecycle.store.count() == 1

    @pytest.mark.asyncio
    async def test_job_class_filter(self, lifecycle, queue_config, events):
        await lifecycle.enqueue(EchoJob("echo"))
        await lifecycle.enqueue(MailJob("mail"))

        worker = Worker(WorkerConfig(job_classes=["EchoJob"]), queue_config)
        await worker.work_off()

        assert events == [("EchoJob", 'perform', ["echo"])]


class TestStartStop:
    """start/stop 테스트"""

    @pytest.mark.asyncio
    async def test_start_processes_and_stops(self, worker, lifecycle, events):
        await lifecycle.enqueue(EchoJob("loop"))

        task = asyncio.create_task(worker.start())
        for _ in range(100):
            if events:
                break
            await asyncio.sleep(0.01)

        assert worker.is_running
        with pytest.raises(WorkerAlreadyRunningError):
            await worker.start()

        await worker.stop()
        await asyncio.wait_for(task, timeout=1)
        assert not worker.is_running
        assert events == [("EchoJob", 'perform', ["loop"])]

    @pytest.mark.asyncio
    async def test_stop_interrupts_sleep(self, lifecycle, queue_config):
        worker = Worker(WorkerConfig(sleep_delay_seconds=60), queue_config)

        task = asyncio.create_task(worker.start())
        await asyncio.sleep(0.05)
        await worker.stop()

        await asyncio.wait_for(task, timeout=1)

    @pytest.mark.asyncio
    async def test_source_error_keeps_loop_alive(self, lifecycle, worker_config, queue_config, caplog):
        calls = []

        async def flaky_source():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("source down")
            return None

        worker = Worker(worker_config, queue_config, source=flaky_source)
        task = asyncio.create_task(worker.start())
        for _ in range(100):
            if len(calls) >= 2:
                break
            await asyncio.sleep(0.01)

        await worker.stop()
        await asyncio.wait_for(task, timeout=1)
        assert len(calls) >= 2
        assert any("source down" in record.getMessage() for record in caplog.records)


class TestWorkerPool:
    """WorkerPool 테스트"""

    @pytest.mark.asyncio
    async def test_pool_runs_all_jobs(self, lifecycle, queue_config, clock, events):
        for index in range(4):
            await lifecycle.enqueue(EchoJob(index))
            clock.advance(1)

        pool = WorkerPool(WorkerConfig(description="pool", pool_size=2, sleep_delay_seconds=0.01), queue_config)
        assert [worker._config.description for worker in pool.workers] == ["pool #1", "pool #2"]

        task = asyncio.create_task(pool.start())
        for _ in range(200):
            if not await lifecycle.query().exists():
                break
            await asyncio.sleep(0.01)

        await pool.stop()
        await asyncio.wait_for(task, timeout=1)

        assert await lifecycle.store.count() == 0
        # 행 잠금이 없으므로 같은 잡을 두 워커가 집을 수 있음 (늦은 쪽은 NotFound로 끝남)
        assert {value[0] for _, event, value in events if event == 'perform'} == {0, 1, 2, 3}


class TestLoadJobs:
    """잡 모듈 로드 테스트"""

    @pytest.fixture
    def extensions(self):
        return ['last_error']

    @pytest.mark.asyncio
    async def test_load_and_run_sample_job(self, jobs_table, clock):
        loaded = load_jobs("worker.job")

        assert "worker.job.sample" in loaded
        assert "sample" in default_registry

        queue_config = QueueConfig(database='default', clock=clock)
        worker = Worker(WorkerConfig(), queue_config)
        job_class = default_registry.get("sample")
        job = await worker.lifecycle.enqueue(job_class("hello", 1))

        assert await worker.work_off() is True
        assert await worker.lifecycle.destroyed(job)


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
