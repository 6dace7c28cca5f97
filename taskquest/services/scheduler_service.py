"""
Background scheduler for the daily reset sweep.
Runs the sweep once a day at the configured local time, plus a catch-up run
at startup for a midnight the process was down for.
"""
import logging
from datetime import date
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from taskquest.config import AppConfig
from taskquest.database import Database
from taskquest.exceptions import SweepInProgressException
from taskquest.services.sweep_service import DailySweepService

logger = logging.getLogger("taskquest.scheduler")

SWEEP_JOB_ID = "daily_sweep"

scheduler = BackgroundScheduler()


def run_daily_sweep(database: Database, today: Optional[date] = None):
    """Job: close yesterday for every daily unless already closed"""
    with database.session() as db:
        try:
            run = DailySweepService(db).run_pending(today or date.today())
            if run is not None:
                logger.info(f"Daily sweep finished for {run.run_date}: status={run.status}")
        except SweepInProgressException:
            logger.warning("Daily sweep skipped: another sweep is still running")
        except Exception as e:
            logger.error(f"Scheduler Error (Daily Sweep): {e}")


def start_scheduler(database: Database, config: AppConfig):
    """Start the scheduler with the daily sweep job"""
    if scheduler.running:
        return

    trigger = CronTrigger(hour=config.sweep_hour, minute=config.sweep_minute)
    scheduler.add_job(
        run_daily_sweep,
        trigger,
        args=[database],
        id=SWEEP_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info(f"APScheduler started, daily sweep at {config.sweep_hour:02d}:{config.sweep_minute:02d}")
    logger.info(f"Scheduled jobs: {[job.id for job in scheduler.get_jobs()]}")


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("APScheduler stopped")
