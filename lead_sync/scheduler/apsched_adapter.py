"""APScheduler wrapper that triggers sync runs on a fixed cadence."""

from __future__ import annotations

from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import ScheduleConfig, ScheduleType
from ..logging_conf import configure_logging

SYNC_JOB_ID = "lead-sync::run"


class APSchedulerAdapter:
    """Manage the APScheduler job driving the sync orchestrator."""

    def __init__(self) -> None:
        self.scheduler = BackgroundScheduler()
        self.logger = configure_logging().bind(component="scheduler")
        self.started = False

    def start(self) -> None:
        if not self.started:
            self.scheduler.start()
            self.started = True
            self.logger.info("apscheduler_started")

    def shutdown(self, wait: bool = False) -> None:
        if self.started:
            self.scheduler.shutdown(wait=wait)
            self.started = False
            self.logger.info("apscheduler_stopped")

    def schedule_sync(self, schedule: ScheduleConfig, callback: Callable[[], None]) -> None:
        trigger = self._build_trigger(schedule)
        # One run at a time; a missed run is folded into the next one
        self.scheduler.add_job(
            callback,
            trigger=trigger,
            id=SYNC_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info(
            "job_scheduled",
            schedule=schedule.model_dump(mode="json"),
            description=schedule.description,
        )

    def remove_sync(self) -> None:
        try:
            self.scheduler.remove_job(SYNC_JOB_ID)
        except Exception:  # noqa: BLE001
            self.logger.warning("job_remove_failed", job_id=SYNC_JOB_ID)

    def _build_trigger(self, schedule: ScheduleConfig):
        if schedule.type is ScheduleType.CRON:
            return CronTrigger.from_crontab(str(schedule.value), timezone=schedule.timezone)
        if schedule.type is ScheduleType.INTERVAL:
            if isinstance(schedule.value, (int, float)):
                return IntervalTrigger(minutes=float(schedule.value), timezone=schedule.timezone)
            if isinstance(schedule.value, dict):
                return IntervalTrigger(timezone=schedule.timezone, **schedule.value)
            raise ValueError("Interval schedule requires minutes or kwargs dict")
        raise ValueError(f"Unknown schedule type: {schedule.type}")

    def list_jobs(self) -> list[dict]:
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "next_run_time": getattr(job, "next_run_time", None),
                    "trigger": str(job.trigger),
                }
            )
        return jobs


__all__ = ["APSchedulerAdapter", "SYNC_JOB_ID"]
