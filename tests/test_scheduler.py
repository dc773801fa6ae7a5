"""
Tests for the one-shot moderation job scheduler
"""

import asyncio
import pytest
from unittest.mock import AsyncMock

from core.moderation.scheduler import ModerationScheduler


class TestModerationScheduler:

    @pytest.fixture
    def scheduler(self):
        return ModerationScheduler()

    @pytest.mark.asyncio
    async def test_job_runs_after_delay(self, scheduler):
        callback = AsyncMock()

        scheduler.schedule('job', 0.01, callback, job_type='test')
        assert scheduler.get_job_info('job')['job_type'] == 'test'

        await asyncio.sleep(0.05)

        callback.assert_awaited_once()
        assert scheduler.get_scheduled_jobs() == []

    @pytest.mark.asyncio
    async def test_cancelled_job_never_runs(self, scheduler):
        callback = AsyncMock()

        scheduler.schedule('job', 0.01, callback)
        assert scheduler.cancel_job('job') is True

        await asyncio.sleep(0.05)

        callback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_unknown_job(self, scheduler):
        assert scheduler.cancel_job('missing') is False

    @pytest.mark.asyncio
    async def test_reschedule_replaces_job(self, scheduler):
        first = AsyncMock()
        second = AsyncMock()

        scheduler.schedule('job', 0.01, first)
        scheduler.schedule('job', 0.01, second)
        await asyncio.sleep(0.05)

        first.assert_not_awaited()
        second.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failing_callback_is_logged_not_raised(self, scheduler):
        callback = AsyncMock(side_effect=RuntimeError("boom"))

        scheduler.schedule('job', 0, callback)
        await asyncio.sleep(0.02)

        callback.assert_awaited_once()
        assert scheduler.get_job_info('job') is None

    @pytest.mark.asyncio
    async def test_callback_can_schedule_replacement(self, scheduler):
        calls = []

        async def again():
            calls.append('again')

        async def first():
            calls.append('first')
            scheduler.schedule('job', 0, again)

        scheduler.schedule('job', 0, first)
        await asyncio.sleep(0.05)

        assert calls == ['first', 'again']

    @pytest.mark.asyncio
    async def test_cancel_all(self, scheduler):
        callback = AsyncMock()
        scheduler.schedule('a', 1, callback)
        scheduler.schedule('b', 1, callback)

        assert scheduler.cancel_all() == 2
        assert scheduler.get_scheduled_jobs() == []

    @pytest.mark.asyncio
    async def test_overdue_jobs(self, scheduler):
        scheduler.schedule('late', 60, AsyncMock())
        scheduler.get_job_info('late')['execute_at'] -= 3600

        assert scheduler.get_overdue_jobs(grace_seconds=30) == ['late']
        scheduler.cancel_all()
