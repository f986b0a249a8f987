"""Tests for the content scheduler."""

import asyncio
import logging
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from folio.db.services import content_service, history_service
from folio.lib.hooks import AFTER_CONTENT_TRANSITION, SCHEDULER_ALERT, SCHEDULER_RUN_COMPLETE
from folio.workflow.errors import PersistenceError
from folio.workflow.results import TransitionResult
from folio.workflow.scheduler import SchedulerMetrics, SchedulerRun
from folio.workflow.states import ContentStatus, WorkflowAction

S = ContentStatus
A = WorkflowAction


async def _approved(workflow, author, editor, clock, hours=1):
    item = (
        await workflow.create(
            author, title="Scheduled", body="Body", scheduled_publish_at=clock() + timedelta(hours=hours)
        )
    ).unwrap()
    (await workflow.transition(item.id, A.SUBMIT, author)).unwrap()
    return (await workflow.transition(item.id, A.APPROVE, editor)).unwrap()


async def _published(workflow, author, editor, clock, expires_in_hours=1):
    item = (
        await workflow.create(
            author,
            title="Expiring",
            body="Body",
            expiration_date=clock() + timedelta(hours=expires_in_hours),
        )
    ).unwrap()
    (await workflow.transition(item.id, A.SUBMIT, author)).unwrap()
    return (await workflow.transition(item.id, A.APPROVE, editor)).unwrap()


async def _load(session_maker, content_id):
    async with session_maker() as session:
        item = await content_service.get_content_by_id(session, content_id)
        history = await history_service.list_by_content(session, content_id)
    return item, history


class TestScheduledPublishing:
    async def test_publishes_only_once_due(self, workflow, scheduler, session_maker, author, editor, clock):
        item = await _approved(workflow, author, editor, clock)

        early = await scheduler.run_once()
        assert early.items_transitioned == 0
        stored, _ = await _load(session_maker, item.id)
        assert stored.status == S.APPROVED.value

        clock.advance(hours=1, minutes=1)
        run = await scheduler.run_once()

        assert run.items_scanned == 1
        assert run.items_transitioned == 1
        assert run.published == (item.id,)
        stored, history = await _load(session_maker, item.id)
        assert stored.status == S.PUBLISHED.value
        assert stored.published_at == clock()
        assert history[0].action == "published"
        assert history[0].user_id is None
        assert history[0].actor_name == "Scheduler"

    async def test_expires_published_content(self, workflow, scheduler, session_maker, author, editor, clock):
        item = await _published(workflow, author, editor, clock)
        _, history_before = await _load(session_maker, item.id)

        clock.advance(hours=2)
        run = await scheduler.run_once()

        assert run.expired == (item.id,)
        stored, history = await _load(session_maker, item.id)
        assert stored.status == S.ARCHIVED.value
        assert stored.archived_at == clock()
        assert stored.published_at is None
        assert stored.archive_reason == "Expired"
        assert len(history) == len(history_before) + 1
        assert history[0].action == "archived"

    async def test_publish_then_expire_in_later_ticks(self, workflow, scheduler, session_maker, author, editor, clock):
        item = (
            await workflow.create(
                author,
                title="Short lived",
                body="Body",
                scheduled_publish_at=clock() + timedelta(hours=1),
                expiration_date=clock() + timedelta(hours=3),
            )
        ).unwrap()
        await workflow.transition(item.id, A.SUBMIT, author)
        await workflow.transition(item.id, A.APPROVE, editor)

        clock.advance(hours=2)
        await scheduler.run_once()
        assert (await _load(session_maker, item.id))[0].status == S.PUBLISHED.value

        clock.advance(hours=2)
        await scheduler.run_once()
        assert (await _load(session_maker, item.id))[0].status == S.ARCHIVED.value

    async def test_second_run_is_a_no_op(self, workflow, scheduler, session_maker, author, editor, clock):
        item = await _approved(workflow, author, editor, clock)
        clock.advance(hours=2)
        await scheduler.run_once()
        _, history = await _load(session_maker, item.id)

        run = await scheduler.run_once()

        assert run.items_scanned == 0
        assert len((await _load(session_maker, item.id))[1]) == len(history)

    async def test_batch_size_limits_candidates(self, workflow, scheduler, author, editor, clock):
        scheduler.batch_size = 2
        for _ in range(3):
            await _approved(workflow, author, editor, clock)
        clock.advance(hours=2)

        first = await scheduler.run_once()
        second = await scheduler.run_once()

        assert first.items_transitioned == 2
        assert second.items_transitioned == 1


class TestFailureHandling:
    async def test_already_handled_items_are_skipped(self, workflow, scheduler, author, editor, clock):
        item = await _approved(workflow, author, editor, clock)
        clock.advance(hours=2)

        with patch.object(
            content_service, "list_due_for_publish", AsyncMock(return_value=[item.id, item.id])
        ):
            run = await scheduler.run_once()

        assert run.items_transitioned == 1
        assert run.items_skipped == 1
        assert run.errors == 0

    async def test_persistence_error_does_not_abort_tick(self, workflow, scheduler, author, editor, clock):
        first = await _approved(workflow, author, editor, clock)
        second = await _approved(workflow, author, editor, clock)
        clock.advance(hours=2)
        real_transition = workflow.transition

        async def flaky(content_id, action, actor, payload=None):
            if content_id == first.id:
                return TransitionResult.failure(PersistenceError("disk full"))
            return await real_transition(content_id, action, actor, payload)

        with patch.object(workflow, "transition", side_effect=flaky):
            run = await scheduler.run_once()

        assert run.errors == 1
        assert run.published == (second.id,)

    async def test_failing_item_does_not_starve_later_items(
        self, workflow, scheduler, session_maker, author, editor, clock
    ):
        scheduler.batch_size = 1
        stuck = await _approved(workflow, author, editor, clock, hours=1)
        waiting = await _approved(workflow, author, editor, clock, hours=2)
        clock.advance(hours=3)
        real_transition = workflow.transition

        async def stuck_fails(content_id, action, actor, payload=None):
            if content_id == stuck.id:
                return TransitionResult.failure(PersistenceError("disk full"))
            return await real_transition(content_id, action, actor, payload)

        with patch.object(workflow, "transition", side_effect=stuck_fails):
            run = await scheduler.run_once()
            again = await scheduler.run_once()

        assert run.published == (waiting.id,)
        assert run.items_scanned == 2
        assert run.errors == 1
        assert again.items_scanned == 1
        assert again.errors == 1
        assert (await _load(session_maker, waiting.id))[0].status == S.PUBLISHED.value
        assert (await _load(session_maker, stuck.id))[0].status == S.APPROVED.value

    async def test_successful_batch_still_honours_batch_size(self, workflow, scheduler, author, editor, clock):
        scheduler.batch_size = 1
        for hours in (1, 2):
            await _approved(workflow, author, editor, clock, hours=hours)
        clock.advance(hours=3)

        run = await scheduler.run_once()

        assert run.items_transitioned == 1
        assert run.errors == 0

    async def test_unexpected_exception_counts_as_error(
        self, workflow, scheduler, session_maker, author, editor, clock, caplog
    ):
        first = await _approved(workflow, author, editor, clock)
        second = await _approved(workflow, author, editor, clock)
        clock.advance(hours=2)
        real_transition = workflow.transition

        async def crashing(content_id, action, actor, payload=None):
            if content_id == first.id:
                raise RuntimeError("engine bug")
            return await real_transition(content_id, action, actor, payload)

        with caplog.at_level(logging.ERROR, logger="folio.workflow.scheduler"):
            with patch.object(workflow, "transition", side_effect=crashing):
                run = await scheduler.run_once()

        assert run.errors == 1
        assert run.published == (second.id,)
        assert scheduler.get_metrics().runs == 1
        assert "engine bug" in caplog.text

    async def test_failing_transition_hook_does_not_abort_tick(
        self, workflow, scheduler, session_maker, author, editor, clock, clean_hooks
    ):
        first = await _approved(workflow, author, editor, clock)
        second = await _approved(workflow, author, editor, clock)
        clock.advance(hours=2)

        def explode(item, action, actor):
            raise RuntimeError("hook failed")

        clean_hooks.add_action(AFTER_CONTENT_TRANSITION, explode)
        run = await scheduler.run_once()

        assert set(run.published) == {first.id, second.id}
        assert run.errors == 0
        assert scheduler.get_metrics().runs == 1
        for item in (first, second):
            assert (await _load(session_maker, item.id))[0].status == S.PUBLISHED.value

    async def test_failed_scan_counts_as_error(self, scheduler):
        failing = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("gone")))

        with patch.object(content_service, "list_due_for_publish", failing):
            run = await scheduler.run_once()

        assert run.errors == 1
        assert scheduler.get_metrics().consecutive_failed_runs == 1

    async def test_alert_after_consecutive_failed_runs(self, scheduler, clean_hooks, caplog):
        alerts = []
        clean_hooks.add_action(SCHEDULER_ALERT, lambda metrics: alerts.append(metrics))
        failing = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("gone")))

        with caplog.at_level(logging.ERROR, logger="folio.workflow.scheduler"):
            with patch.object(content_service, "list_due_for_publish", failing):
                await scheduler.run_once()
                assert alerts == []
                await scheduler.run_once()
                await scheduler.run_once()

        # threshold is 2: one alert per streak
        assert len(alerts) == 1
        assert alerts[0].consecutive_failed_runs == 2
        assert "failed 2 consecutive runs" in caplog.text

        await scheduler.run_once()
        assert scheduler.get_metrics().consecutive_failed_runs == 0

    async def test_new_streak_alerts_again(self, scheduler, clean_hooks):
        alerts = []
        clean_hooks.add_action(SCHEDULER_ALERT, lambda metrics: alerts.append(metrics))
        failing = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("gone")))

        for _ in range(2):
            with patch.object(content_service, "list_due_for_publish", failing):
                await scheduler.run_once()
                await scheduler.run_once()
            await scheduler.run_once()

        assert len(alerts) == 2


class TestMetrics:
    async def test_metrics_accumulate(self, workflow, scheduler, author, editor, clock):
        await _approved(workflow, author, editor, clock)
        clock.advance(hours=2)

        await scheduler.run_once()
        await scheduler.run_once()
        metrics = scheduler.get_metrics()

        assert metrics.runs == 2
        assert metrics.items_scanned == 1
        assert metrics.items_transitioned == 1
        assert metrics.errors == 0
        assert metrics.last_run_at == clock()
        assert metrics.total_duration_ms >= metrics.last_run_duration_ms >= 0

    async def test_reset_returns_fresh_value(self, scheduler):
        await scheduler.run_once()
        before = scheduler.get_metrics()

        fresh = scheduler.reset_metrics()

        assert fresh == SchedulerMetrics()
        assert scheduler.get_metrics() is fresh
        assert before.runs == 1

    def test_metrics_are_immutable(self):
        metrics = SchedulerMetrics()
        with pytest.raises(AttributeError):
            metrics.runs = 5

    def test_record_returns_new_value(self, clock):
        metrics = SchedulerMetrics()
        run = SchedulerRun(started_at=clock(), duration_ms=12.5, items_scanned=3, items_transitioned=2, items_skipped=1)

        updated = metrics.record(run)

        assert metrics.runs == 0
        assert updated.runs == 1
        assert updated.items_scanned == 3
        assert updated.average_duration_ms == 12.5
        assert updated.to_dict()["last_run_at"] == clock().isoformat()

    async def test_run_complete_hook(self, scheduler, clean_hooks):
        runs = []
        clean_hooks.add_action(SCHEDULER_RUN_COMPLETE, lambda run: runs.append(run))

        run = await scheduler.run_once()

        assert runs == [run]

    async def test_failing_run_complete_hook_still_records_run(self, scheduler, clean_hooks):
        def explode(run):
            raise RuntimeError("hook failed")

        clean_hooks.add_action(SCHEDULER_RUN_COMPLETE, explode)

        run = await scheduler.run_once()

        assert run.errors == 0
        assert scheduler.get_metrics().runs == 1


class TestLoop:
    async def test_start_and_stop(self, workflow, scheduler, session_maker, author, editor, clock):
        item = await _approved(workflow, author, editor, clock)
        clock.advance(hours=2)

        await scheduler.start()
        assert scheduler.running
        for _ in range(100):
            if scheduler.get_metrics().items_transitioned:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert not scheduler.running
        stored, _ = await _load(session_maker, item.id)
        assert stored.status == S.PUBLISHED.value

    async def test_stop_without_start(self, scheduler):
        await scheduler.stop()
        assert not scheduler.running

    async def test_ticks_do_not_overlap(self, scheduler):
        active = 0
        peak = 0
        real_process = scheduler._process

        async def tracked(*args, **kwargs):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            await real_process(*args, **kwargs)
            active -= 1

        with patch.object(scheduler, "_process", side_effect=tracked):
            await asyncio.gather(scheduler.run_once(), scheduler.run_once())

        assert peak == 1
        assert scheduler.get_metrics().runs == 2
