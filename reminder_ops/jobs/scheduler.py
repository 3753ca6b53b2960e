"""Scheduler process for the daily reminder run.

Run separately from CLI/manual flows using:
    python -m reminder_ops.jobs.scheduler
"""

from __future__ import annotations

import argparse
import logging
import os
from datetime import datetime
from zoneinfo import ZoneInfo

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from reminder_ops.jobs.daily_reminders import run as run_daily_reminders
from reminder_ops.settings import Settings, load_settings, resolve_target_date
from reminder_ops.utils.logging import configure_logging

JOB_ID = "daily_reminders"
DEFAULT_WORK_DAYS = "mon,tue,wed,thu,fri"
VALID_DAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

logger = logging.getLogger(__name__)


def resolve_work_days() -> str:
    """Cron day-of-week list from ``REMINDERS_WORK_DAYS``; unknown tokens are dropped."""
    raw = os.getenv("REMINDERS_WORK_DAYS", "")
    days = [token.strip().lower() for token in raw.split(",") if token.strip()]
    valid = [day for day in days if day in VALID_DAYS]
    invalid = [day for day in days if day not in VALID_DAYS]
    if invalid:
        logger.warning("Ignoring unknown work days: %s", ", ".join(invalid))
    return ",".join(valid) or DEFAULT_WORK_DAYS


def resolve_run_time() -> tuple[int, int]:
    hour = int(os.getenv("REMINDERS_RUN_HOUR", "18"))
    minute = int(os.getenv("REMINDERS_RUN_MINUTE", "0"))
    if not 0 <= hour <= 23 or not 0 <= minute <= 59:
        raise ValueError(f"Invalid run time {hour:02d}:{minute:02d}")
    return hour, minute


def daily_reminders_job(settings: Settings | None = None) -> None:
    """Build tomorrow's reminder sheet."""
    settings = settings or load_settings()
    target_date = resolve_target_date(settings)
    artifacts = run_daily_reminders(target_date=target_date, settings=settings)
    logger.info("Reminder sheet ready at %s", artifacts.reminder_sheet)


def _on_job_finished(scheduler: BlockingScheduler, event: JobExecutionEvent, tz: ZoneInfo) -> None:
    """A failed run is logged and left for the next fire time; no same-day retry."""
    job = scheduler.get_job(event.job_id)
    upcoming = getattr(job, "next_run_time", None)
    ran_at = (event.scheduled_run_time or datetime.now(tz=tz)).astimezone(tz)
    outcome = "failed" if event.exception else "completed"
    logger.log(
        logging.ERROR if event.exception else logging.INFO,
        "%s %s (scheduled %s); next run %s",
        event.job_id,
        outcome,
        ran_at.strftime("%Y-%m-%d %H:%M %Z"),
        upcoming.isoformat() if upcoming else "none",
        exc_info=event.exception,
    )


def build_scheduler(settings: Settings | None = None) -> BlockingScheduler:
    """Register the reminder run on the configured work days and time."""
    settings = settings or load_settings()
    tz = ZoneInfo(settings.timezone)
    hour, minute = resolve_run_time()
    days = resolve_work_days()

    scheduler = BlockingScheduler(timezone=tz)
    trigger = CronTrigger(day_of_week=days, hour=hour, minute=minute, timezone=tz)
    scheduler.add_job(
        daily_reminders_job,
        trigger=trigger,
        kwargs={"settings": settings},
        id=JOB_ID,
        replace_existing=True,
        coalesce=True,
        misfire_grace_time=1800,
    )
    scheduler.add_listener(
        lambda event: _on_job_finished(scheduler, event, tz),
        EVENT_JOB_EXECUTED | EVENT_JOB_ERROR,
    )

    first_fire = trigger.get_next_fire_time(None, datetime.now(tz=tz))
    logger.info(
        "%s scheduled on %s at %02d:%02d %s; first run %s",
        JOB_ID,
        days,
        hour,
        minute,
        tz.key,
        first_fire.isoformat() if first_fire else "none",
    )
    return scheduler


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Build the reminder sheet on a schedule")
    parser.add_argument("--once", action="store_true", help="Build the sheet now and exit")
    args = parser.parse_args(argv)

    configure_logging()
    if args.once:
        daily_reminders_job()
        return

    logger.info("Scheduler started; waiting for the next %s run", JOB_ID)
    build_scheduler().start()


if __name__ == "__main__":
    main()
