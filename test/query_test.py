"""
Ordering Query Engine 테스트

테스트 항목:
1. todo 순서 (priority -> scheduled_at -> enqueued_at, NULL은 마지막)
2. 실행 가능 경계 (scheduled_at <= now)
3. 큐/클래스/실행 횟수 필터
4. 보존된 폐기 잡 조회
5. 프로젝션, 배치 순회

실행: python -m pytest test/query_test.py -v
"""

from datetime import timedelta

import pytest

from job import Lifecycle
from record import ConfigurationError, JobQuery, JobRecord
from record.schema import create_jobs_table

from sample_jobs import EchoJob, MailJob, RetainedJob


async def _enqueue(lifecycle, clock, job, timestamp=None):
    """1초 간격으로 등록 (enqueued_at 순서 고정)"""
    await lifecycle.enqueue(job, timestamp)
    clock.advance(1)
    return job


class TestTodoOrder:
    """실행 순서 테스트"""

    @pytest.mark.asyncio
    async def test_priority_ascending_nulls_last(self, lifecycle, clock):
        for priority in (2, 1, None):
            await _enqueue(lifecycle, clock, EchoJob(priority).set(priority=priority))

        records = await lifecycle.query().todo().records()
        assert [record.priority for record in records] == [1, 2, None]

        job = await lifecycle.next_job()
        assert job.priority == 1
        assert job.arguments == [1]

    @pytest.mark.asyncio
    async def test_scheduled_before_unscheduled(self, lifecycle, clock):
        unscheduled = await _enqueue(lifecycle, clock, EchoJob("now"))
        scheduled = await _enqueue(lifecycle, clock, EchoJob("past"), clock() - timedelta(hours=1))

        records = await lifecycle.query().todo().records()
        assert [record.job_id for record in records] == [scheduled.job_id, unscheduled.job_id]

    @pytest.mark.asyncio
    async def test_fifo_within_same_rank(self, lifecycle, clock):
        jobs = [await _enqueue(lifecycle, clock, EchoJob(index)) for index in range(3)]

        records = await lifecycle.query().todo().records()
        assert [record.job_id for record in records] == [job.job_id for job in jobs]

    @pytest.mark.asyncio
    async def test_job_id_breaks_full_ties(self, lifecycle, clock):
        # 시계를 움직이지 않음: priority, scheduled_at, enqueued_at이 모두 같음
        for job_id in ("c", "a", "b"):
            job = EchoJob(job_id)
            job.job_id = job_id
            await lifecycle.enqueue(job)

        records = await lifecycle.query().todo().records()
        assert [record.job_id for record in records] == ["a", "b", "c"]
        assert (await lifecycle.next_job()).job_id == "a"

    @pytest.mark.asyncio
    async def test_priority_wins_over_schedule(self, lifecycle, clock):
        early = await _enqueue(lifecycle, clock, EchoJob().set(priority=5), clock() - timedelta(days=1))
        urgent = await _enqueue(lifecycle, clock, EchoJob().set(priority=0))

        first = await lifecycle.query().todo().first()
        assert first.job_id == urgent.job_id
        assert (await lifecycle.query().todo().records())[1].job_id == early.job_id

    @pytest.mark.asyncio
    async def test_order_by(self, lifecycle, clock):
        for priority in (2, 3, 1):
            await _enqueue(lifecycle, clock, EchoJob().set(priority=priority))

        records = await lifecycle.query().order_by('-priority').records()
        assert [record.priority for record in records] == [3, 2, 1]

        with pytest.raises(ValueError):
            lifecycle.query().order_by('priority; DROP TABLE jobs')


class TestExecutable:
    """실행 가능 여부 테스트"""

    @pytest.mark.asyncio
    async def test_future_job_becomes_executable_at_scheduled_time(self, lifecycle, clock):
        job = EchoJob()
        await lifecycle.enqueue(job, clock() + timedelta(seconds=1))

        assert await lifecycle.query().todo().first() is None
        assert await lifecycle.query().count() == 1

        clock.advance(1)
        assert (await lifecycle.query().todo().first()).job_id == job.job_id

    @pytest.mark.asyncio
    async def test_epoch_timestamp(self, lifecycle, clock):
        job = EchoJob()
        await lifecycle.enqueue(job, clock().timestamp() + 30)
        assert job.scheduled_at == clock() + timedelta(seconds=30)
        assert not await lifecycle.query().executable().exists()


class TestFilters:
    """필터 스코프 테스트"""

    @pytest.mark.asyncio
    async def test_queue_and_job_class(self, lifecycle, clock):
        mail = await _enqueue(lifecycle, clock, MailJob("to@example.com"))
        echo = await _enqueue(lifecycle, clock, EchoJob())

        assert [r.job_id for r in await lifecycle.query().queue("mailers").records()] == [mail.job_id]
        assert [r.job_id for r in await lifecycle.query(EchoJob).records()] == [echo.job_id]
        assert [r.job_id for r in await lifecycle.query("MailJob").records()] == [mail.job_id]
        assert await lifecycle.query().queue().count() == 0

        job = await lifecycle.next_job(queue_names=["default"])
        assert job.job_id == echo.job_id

    @pytest.mark.asyncio
    async def test_max_executions_and_failing(self, lifecycle, clock):
        fresh = await _enqueue(lifecycle, clock, EchoJob())
        retried = await _enqueue(lifecycle, clock, EchoJob())
        await lifecycle.store.increment_executions(retried.job_id)

        assert [r.job_id for r in await lifecycle.query().max_executions(1).records()] == [fresh.job_id]
        assert [r.job_id for r in await lifecycle.query().failing().records()] == [retried.job_id]

        job = await lifecycle.next_job(max_executions=1)
        assert job.job_id == fresh.job_id

    @pytest.mark.asyncio
    async def test_where_composes(self, lifecycle, clock):
        await _enqueue(lifecycle, clock, EchoJob().set(priority=1))
        target = await _enqueue(lifecycle, clock, EchoJob())

        query = lifecycle.query().where(priority=None).where(queue_name=["default", "mailers"])
        assert [r.job_id for r in await query.records()] == [target.job_id]
        assert await lifecycle.query().where(priority=[]).count() == 0

    @pytest.mark.asyncio
    async def test_scopes_do_not_mutate(self, lifecycle, clock):
        await _enqueue(lifecycle, clock, EchoJob())
        base = lifecycle.query()
        base.queue("mailers")
        assert await base.count() == 1


class TestDiscarded:
    """보존된 폐기 잡 조회 테스트"""

    @pytest.fixture
    def extensions(self):
        return ['retain_discarded']

    @pytest.mark.asyncio
    async def test_discarded_excluded_from_todo(self, lifecycle, clock):
        kept = await _enqueue(lifecycle, clock, RetainedJob())
        pending = await _enqueue(lifecycle, clock, EchoJob())

        with pytest.raises(ValueError):
            await lifecycle.perform_now(await lifecycle.reload(kept))

        assert [r.job_id for r in await lifecycle.query().discarded().records()] == [kept.job_id]
        assert [r.job_id for r in await lifecycle.query().todo().records()] == [pending.job_id]

    @pytest.mark.asyncio
    async def test_discarded_requires_column(self, database, queue_config):
        await create_jobs_table(database)
        with pytest.raises(ConfigurationError, match="discarded_at"):
            await Lifecycle(queue_config).query().discarded().records()


class TestResults:
    """조회 결과 형태 테스트"""

    @pytest.mark.asyncio
    async def test_records_not_jobs(self, lifecycle, clock):
        await _enqueue(lifecycle, clock, EchoJob("a"))

        record = await lifecycle.query().first()
        assert isinstance(record, JobRecord)

        jobs = await lifecycle.query().jobs()
        assert isinstance(jobs[0], EchoJob)
        assert jobs[0].arguments == ["a"]

    @pytest.mark.asyncio
    async def test_projection_returns_raw_rows(self, lifecycle, clock):
        job = await _enqueue(lifecycle, clock, EchoJob())

        rows = await lifecycle.query().select('job_id', 'priority').jobs()
        assert rows == [{'job_id': job.job_id, 'priority': None}]

    @pytest.mark.asyncio
    async def test_limit_and_batched_iteration(self, lifecycle, clock, monkeypatch):
        monkeypatch.setattr(JobQuery, 'BATCH_SIZE', 2)
        jobs = [await _enqueue(lifecycle, clock, EchoJob(index)) for index in range(5)]

        seen = [record.job_id async for record in lifecycle.query()]
        assert seen == [job.job_id for job in jobs]

        limited = [record.job_id async for record in lifecycle.query().limit(3)]
        assert limited == [job.job_id for job in jobs[:3]]
        assert len(await lifecycle.query().limit(2).records()) == 2

    @pytest.mark.asyncio
    async def test_empty_queue(self, lifecycle):
        assert await lifecycle.query().first() is None
        assert await lifecycle.query().first_job() is None
        assert await lifecycle.next_job() is None
        assert not await lifecycle.query().exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
