"""Overdue Scheduler - Periodic sweep for steps past their due date

Overdue status is derived at read time (pending and now > current step
due date); nothing is mutated here. The sweep only emits STEP_OVERDUE
once per (instance, step) so the notifier can remind or escalate.
"""
from datetime import datetime
from typing import Optional, Set, Tuple
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..domain.models import WorkflowEvent
from ..domain.enums import WorkflowEventType
from ..services.workflow_manager import WorkflowManager
from ..utils.logger import get_logger, set_correlation_id
from ..utils.idgen import generate_correlation_id

logger = get_logger(__name__)


class OverdueScheduler:
    """
    APScheduler job that reports overdue approval steps

    Responsibilities:
    - Find pending instances whose current step is past due
    - Emit STEP_OVERDUE for each newly overdue step
    """

    def __init__(self, manager: WorkflowManager, interval_seconds: Optional[int] = None):
        self.manager = manager
        self.interval_seconds = interval_seconds or settings.overdue_sweep_interval_seconds
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False
        self._notified: Set[Tuple[str, int]] = set()

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._sweep_job,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="sweep_overdue_steps",
            name="Report overdue approval steps",
            replace_existing=True
        )
        self.scheduler.start()
        self._is_running = True
        logger.info(f"Overdue scheduler started (every {self.interval_seconds}s)")

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("Overdue scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Emit STEP_OVERDUE for steps not reported yet

        Keys of steps that are no longer overdue are dropped, so the
        notified set only holds live overdue steps.

        Returns:
            Number of events emitted
        """
        now = now or self.manager.clock()
        emitted = 0
        overdue_keys: Set[Tuple[str, int]] = set()
        for instance in self.manager.find_overdue(now):
            step = instance.current_step_instance()
            if step is None:
                continue
            key = (instance.instance_id, step.step_number)
            overdue_keys.add(key)
            if key in self._notified:
                continue

            event = WorkflowEvent(
                instance_id=instance.instance_id,
                event=WorkflowEventType.STEP_OVERDUE,
                timestamp=now,
                step_number=step.step_number,
                approver_id=instance.current_approver_id
            )
            if self.manager.emit_event(event):
                self._notified.add(key)
                emitted += 1

        self._notified &= overdue_keys

        if emitted:
            logger.info(f"Reported {emitted} overdue steps")
        return emitted

    async def _sweep_job(self) -> None:
        set_correlation_id(generate_correlation_id())
        try:
            self.sweep()
        except Exception as e:
            # Keep the job scheduled; the next interval retries
            logger.error(f"Overdue sweep failed: {e}", exc_info=True)


# Global scheduler instance
_scheduler: Optional[OverdueScheduler] = None


def start_scheduler(manager: WorkflowManager) -> OverdueScheduler:
    """Start the global scheduler"""
    global _scheduler
    if _scheduler is None:
        _scheduler = OverdueScheduler(manager)
    _scheduler.start()
    return _scheduler


def stop_scheduler() -> None:
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None
