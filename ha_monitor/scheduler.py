"""Job scheduling for the periodic health check."""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger


logger = structlog.get_logger(__name__)


_CRON_WEEKDAYS = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]


def _cron_weekday(token: str) -> int:
    value = token.strip().lower()
    if value in _CRON_WEEKDAYS:
        return _CRON_WEEKDAYS.index(value)
    if value.isdigit() and 0 <= int(value) <= 6:
        return int(value)
    raise ValueError(f"Invalid day of week: {token}")


def convert_day_of_week(field: str) -> str:
    """Translate a cron day-of-week field (0 = Sunday) to APScheduler's numbering (0 = Monday).

    Each list item may be ``*``, ``?``, a day, or a ``first-last`` range, with an
    optional ``/step``. The result is an explicit comma-separated list of days.
    """
    if field in ("*", "?"):
        return "*"

    days = set()
    for part in field.split(","):
        base, _, step_text = part.partition("/")
        step = int(step_text) if step_text else 1
        if step < 1:
            raise ValueError(f"Invalid day of week step: {part}")
        if base in ("*", "?"):
            first, last = 0, 6
        elif "-" in base:
            first_text, last_text = base.split("-", 1)
            first, last = _cron_weekday(first_text), _cron_weekday(last_text)
            if first > last:
                raise ValueError(f"Invalid day of week range: {part}")
        else:
            first = _cron_weekday(base)
            last = 6 if step_text else first
        days.update(range(first, last + 1, step))

    return ",".join(str(d) for d in sorted((day - 1) % 7 for day in days))


def parse_cron_expression(cron_expression: str) -> CronTrigger:
    """Build a trigger from a 5-field cron expression, or 6 fields with leading seconds.

    Day-of-week follows cron numbering, where 0 is Sunday.
    """
    cron_parts = cron_expression.split()
    if len(cron_parts) == 5:
        second = "0"
        minute, hour, day, month, day_of_week = cron_parts
    elif len(cron_parts) == 6:
        second, minute, hour, day, month, day_of_week = cron_parts
    else:
        raise ValueError(f"Invalid cron expression: {cron_expression}")

    return CronTrigger(
        second=second,
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=convert_day_of_week(day_of_week),
    )


class JobScheduler:
    """Runs monitoring jobs with APScheduler, never more than one instance of a job at a time."""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self.scheduler = scheduler or AsyncIOScheduler()
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.running = False

    def start(self):
        """Start the job scheduler. Must be called from inside a running event loop."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler.start()
        self.running = True
        logger.info("Job scheduler started")

    def stop(self):
        """Stop the job scheduler."""
        if not self.running:
            return

        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Job scheduler stopped")

    def _add_job(self, job_id: str, func: Callable, trigger: Any, info: Dict[str, Any], description: Optional[str]):
        if job_id in self.jobs:
            logger.warning("Job already exists, replacing", job_id=job_id)
            self.remove_job(job_id)

        job = self.scheduler.add_job(
            func=func,
            trigger=trigger,
            id=job_id,
            name=description or job_id,
            max_instances=1,
            coalesce=True,
        )

        self.jobs[job_id] = {
            "job": job,
            "description": description,
            "added_at": datetime.now(timezone.utc),
            **info,
        }
        return job

    def add_cron_job(self, job_id: str, func: Callable, cron_expression: str, description: Optional[str] = None):
        """Add a cron-scheduled job."""
        trigger = parse_cron_expression(cron_expression)
        self._add_job(job_id, func, trigger, {"type": "cron", "expression": cron_expression}, description)
        logger.info("Added cron job", job_id=job_id, cron=cron_expression, description=description)

    def add_interval_job(self, job_id: str, func: Callable, seconds: int, description: Optional[str] = None):
        """Add an interval-based job."""
        trigger = IntervalTrigger(seconds=seconds)
        self._add_job(job_id, func, trigger, {"type": "interval", "seconds": seconds}, description)
        logger.info("Added interval job", job_id=job_id, interval_seconds=seconds, description=description)

    def remove_job(self, job_id: str) -> bool:
        """Remove a scheduled job."""
        if job_id not in self.jobs:
            logger.warning("Job not found", job_id=job_id)
            return False

        self.scheduler.remove_job(job_id)
        del self.jobs[job_id]
        logger.info("Removed job", job_id=job_id)
        return True

    def get_job_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Get status information for a job."""
        job_info = self.jobs.get(job_id)
        if job_info is None:
            return None

        scheduler_job = self.scheduler.get_job(job_id)
        if scheduler_job is None:
            return None

        next_run_time = getattr(scheduler_job, "next_run_time", None)
        return {
            "job_id": job_id,
            "name": scheduler_job.name,
            "type": job_info["type"],
            "next_run": next_run_time.isoformat() if next_run_time else None,
            "added_at": job_info["added_at"].isoformat(),
            "description": job_info.get("description"),
        }
