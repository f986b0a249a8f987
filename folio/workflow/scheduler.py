"""Time-driven scheduler publishing and expiring due content.

Each tick runs two scans: approved content whose publish time has arrived is
published, and published content whose expiration date has arrived is
archived. Both go through the workflow engine as the scheduler actor, so a
duplicate attempt (another replica, or a user who got there first) simply
finds the item in a different status and is skipped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from folio.db.services import content_service
from folio.lib import observability
from folio.lib.hooks import SCHEDULER_ALERT, SCHEDULER_RUN_COMPLETE
from folio.workflow.engine import Clock, WorkflowEngine, as_utc, notify
from folio.workflow.errors import ConflictError, InvalidTransitionError
from folio.workflow.guards import SCHEDULER_ACTOR
from folio.workflow.states import WorkflowAction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchedulerRun:
    """Outcome of a single tick."""

    started_at: datetime
    duration_ms: float
    items_scanned: int = 0
    items_transitioned: int = 0
    items_skipped: int = 0
    errors: int = 0
    published: tuple[UUID, ...] = ()
    expired: tuple[UUID, ...] = ()

    @property
    def failed(self) -> bool:
        return self.errors > 0

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "duration_ms": round(self.duration_ms, 3),
            "items_scanned": self.items_scanned,
            "items_transitioned": self.items_transitioned,
            "items_skipped": self.items_skipped,
            "errors": self.errors,
            "published": [str(i) for i in self.published],
            "expired": [str(i) for i in self.expired],
        }


@dataclass(frozen=True)
class SchedulerMetrics:
    """Cumulative scheduler counters. Immutable; ``record`` returns a new value."""

    runs: int = 0
    items_scanned: int = 0
    items_transitioned: int = 0
    items_skipped: int = 0
    errors: int = 0
    total_duration_ms: float = 0.0
    last_run_at: datetime | None = None
    last_run_duration_ms: float | None = None
    consecutive_failed_runs: int = 0

    def record(self, run: SchedulerRun) -> SchedulerMetrics:
        return replace(
            self,
            runs=self.runs + 1,
            items_scanned=self.items_scanned + run.items_scanned,
            items_transitioned=self.items_transitioned + run.items_transitioned,
            items_skipped=self.items_skipped + run.items_skipped,
            errors=self.errors + run.errors,
            total_duration_ms=self.total_duration_ms + run.duration_ms,
            last_run_at=run.started_at,
            last_run_duration_ms=run.duration_ms,
            consecutive_failed_runs=self.consecutive_failed_runs + 1 if run.failed else 0,
        )

    @property
    def average_duration_ms(self) -> float:
        return self.total_duration_ms / self.runs if self.runs else 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["last_run_at"] = self.last_run_at.isoformat() if self.last_run_at else None
        data["average_duration_ms"] = round(self.average_duration_ms, 3)
        return data


@dataclass
class _Tally:
    scanned: int = 0
    transitioned: int = 0
    skipped: int = 0
    errors: int = 0
    done: dict[WorkflowAction, list[UUID]] = field(default_factory=dict)


class ContentScheduler:
    """Periodic publisher/expirer for scheduled content.

    ``run_once`` is the unit of work used by both the background loop and
    on-demand administrative runs. Ticks never overlap.
    """

    def __init__(
        self,
        engine: WorkflowEngine,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
        *,
        interval: float = 60.0,
        batch_size: int = 100,
        alert_threshold: int = 3,
        clock: Clock | None = None,
    ) -> None:
        self.engine = engine
        self.session_maker = session_maker or engine.session_maker
        self.interval = interval
        self.batch_size = batch_size
        self.alert_threshold = alert_threshold
        self._clock = clock or engine.now
        self._metrics = SchedulerMetrics()
        self._run_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._alerted = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def get_metrics(self) -> SchedulerMetrics:
        return self._metrics

    def reset_metrics(self) -> SchedulerMetrics:
        """Replace the metrics with a fresh value and return it."""
        self._metrics = SchedulerMetrics()
        self._alerted = False
        return self._metrics

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info("Content scheduler started (interval %.1fs)", self.interval)

    async def stop(self) -> None:
        """Stop the loop between ticks. A tick in progress runs to completion."""
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("Content scheduler stopped")

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Content scheduler tick crashed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> SchedulerRun:
        """Run one tick: publish due approved content, then expire due published content."""
        async with self._run_lock:
            started_at = as_utc(self._clock())
            started = time.perf_counter()
            tally = _Tally()

            with observability.span("scheduler.run", started_at=started_at.isoformat()):
                await self._process(
                    WorkflowAction.PUBLISH, content_service.list_due_for_publish, started_at, tally
                )
                await self._process(
                    WorkflowAction.EXPIRE, content_service.list_due_for_expiry, started_at, tally
                )

            run = SchedulerRun(
                started_at=started_at,
                duration_ms=(time.perf_counter() - started) * 1000,
                items_scanned=tally.scanned,
                items_transitioned=tally.transitioned,
                items_skipped=tally.skipped,
                errors=tally.errors,
                published=tuple(tally.done.get(WorkflowAction.PUBLISH, ())),
                expired=tuple(tally.done.get(WorkflowAction.EXPIRE, ())),
            )
            self._metrics = self._metrics.record(run)

        if run.items_transitioned or run.errors:
            observability.record(
                logger,
                logging.INFO,
                "Scheduler run complete",
                "Scheduler run: %d scanned, %d transitioned, %d skipped, %d errors in %.1fms",
                run.items_scanned,
                run.items_transitioned,
                run.items_skipped,
                run.errors,
                run.duration_ms,
                **run.to_dict(),
            )
        await self._check_alert()
        await notify(SCHEDULER_RUN_COMPLETE, run)
        return run

    async def _process(self, action, finder, now: datetime, tally: _Tally) -> None:
        """Apply ``action`` to the due candidates returned by ``finder``.

        Each batch excludes every id already attempted in this tick. Items
        that fail do not count against the batch: after a batch with failures
        the scan runs again, so a stuck item at the head of the queue cannot
        starve the items due after it.
        """
        attempted: set[UUID] = set()
        while True:
            try:
                async with self.session_maker() as session:
                    candidates = await asyncio.wait_for(
                        finder(session, now, self.batch_size, exclude=attempted),
                        timeout=self.engine.timeout,
                    )
            except (SQLAlchemyError, asyncio.TimeoutError) as exc:
                tally.errors += 1
                observability.record(
                    logger,
                    logging.ERROR,
                    "Scheduler scan failed",
                    "Scheduler could not scan for %s candidates: %s",
                    action.value,
                    exc,
                    action=action.value,
                    error=str(exc),
                )
                return

            batch = [content_id for content_id in candidates if content_id not in attempted]
            if not batch:
                return
            tally.scanned += len(batch)
            errors_before = tally.errors
            for content_id in batch:
                attempted.add(content_id)
                await self._apply(action, content_id, tally)
            if tally.errors == errors_before:
                return

    async def _apply(self, action: WorkflowAction, content_id: UUID, tally: _Tally) -> None:
        try:
            result = await self.engine.transition(content_id, action, SCHEDULER_ACTOR)
        except Exception:
            tally.errors += 1
            observability.record_exception(
                logger,
                "Scheduler {action} crashed",
                "Scheduler crashed applying %s to content %s",
                action.value,
                content_id,
                action=action.value,
                content_id=str(content_id),
            )
            return

        if result.ok:
            tally.transitioned += 1
            tally.done.setdefault(action, []).append(content_id)
        elif isinstance(result.error, (InvalidTransitionError, ConflictError)):
            tally.skipped += 1
            logger.debug("Scheduler skipped %s of %s: %s", action.value, content_id, result.error)
        else:
            tally.errors += 1
            observability.workflow_failure(
                logger,
                action.value,
                result.error,
                actor=SCHEDULER_ACTOR,
                content_id=content_id,
                level=logging.ERROR,
            )

    async def _check_alert(self) -> None:
        metrics = self._metrics
        if metrics.consecutive_failed_runs == 0:
            self._alerted = False
            return
        if self._alerted or metrics.consecutive_failed_runs < self.alert_threshold:
            return

        self._alerted = True
        observability.record(
            logger,
            logging.ERROR,
            "Content scheduler failing",
            "Content scheduler has failed %d consecutive runs (%d errors total)",
            metrics.consecutive_failed_runs,
            metrics.errors,
            consecutive_failed_runs=metrics.consecutive_failed_runs,
            errors=metrics.errors,
        )
        await notify(SCHEDULER_ALERT, metrics)
