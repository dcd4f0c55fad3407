import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

DAILY_DIGEST_JOB_ID = 'daily_leave_digest'


def run_daily_digest(dispatcher):
    """One scheduled tick; failures are already contained per channel"""
    logger.info("Running daily leave notification...")
    outcomes = dispatcher.run_once()
    logger.info(f"Completed daily notifications for {len(outcomes)} channels")
    return outcomes


def build_scheduler(dispatcher, hour=9, minute=0, timezone='Australia/Sydney', blocking=False):
    """Scheduler with the daily digest job at hour:minute in the given timezone"""
    scheduler_class = BlockingScheduler if blocking else BackgroundScheduler
    scheduler = scheduler_class(timezone=timezone)
    scheduler.add_job(
        run_daily_digest,
        CronTrigger(hour=hour, minute=minute, timezone=timezone),
        args=[dispatcher],
        id=DAILY_DIGEST_JOB_ID,
        name='Daily leave digest',
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=15 * 60,
    )
    logger.info(f"Daily leave digest scheduled for {hour:02d}:{minute:02d} {timezone}")
    return scheduler
