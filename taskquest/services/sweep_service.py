"""
Daily reset sweep.
Closes one calendar day for every daily of every user: penalises dailies that
were due that weekday but not completed, and clears completion flags for the
next cycle. Safe to re-run for the same day.
"""
import logging
import threading
from datetime import date, datetime
from typing import Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from taskquest.models import Daily, SweepRun
from taskquest.repositories.task_repository import TaskRepository
from taskquest.repositories.activity_repository import ActivityLogRepository
from taskquest.repositories.sweep_repository import SweepRunRepository
from taskquest.services.date_service import DateService
from taskquest.services.reward_policy import RewardPolicy
from taskquest.services.scoring_service import ScoringService
from taskquest.exceptions import SweepInProgressException, ValidationException
from taskquest.constants import (
    ACTION_MISSED, SWEEP_STATUS_COMPLETED, SWEEP_STATUS_PARTIAL,
    SWEEP_STATUS_RUNNING, TASK_KIND_DAILY
)

logger = logging.getLogger("taskquest.sweep")


class DailySweepService:
    """Service for the midnight daily reset"""

    # One sweep at a time per process
    _run_lock = threading.Lock()

    def __init__(self, db: Session):
        self.db = db
        self.task_repo = TaskRepository()
        self.activity_repo = ActivityLogRepository()
        self.run_repo = SweepRunRepository()
        self.date_service = DateService()

    def run_pending(self, today: Optional[date] = None) -> Optional[SweepRun]:
        """
        Close the day before `today` unless it has already been closed.

        Called by the midnight job and at startup, so a restart neither misses
        nor repeats a sweep. Older unswept days are not back-filled.

        Returns:
            The sweep run, or None if the day was already closed
        """
        today = today or date.today()
        target_date = self.date_service.day_to_close(today)

        run = self.run_repo.get_by_date(self.db, target_date)
        if run and run.status == SWEEP_STATUS_COMPLETED:
            logger.info(f"Sweep for {target_date} already completed, skipping")
            return None

        return self.sweep(target_date)

    def sweep(self, target_date: date, now: Optional[datetime] = None) -> SweepRun:
        """
        Close target_date for every daily.

        For each daily, in its own transaction:
        - created after target_date ended, or already closed for it: untouched
        - due that weekday and not completed during it: health -= magnitude
          (clamped at 0) and a `missed` log entry
        - a completion from target_date is cleared for the next cycle; a
          completion stamped after target_date belongs to the next cycle and is kept

        Dailies not due that weekday are never penalised. A daily that fails
        is rolled back and counted; the run is then marked partial and can be
        re-run without double penalties.

        Only days that have already ended can be closed.

        Raises:
            ValidationException: target_date has not ended yet
            SweepInProgressException: Another sweep is running in this process
        """
        now = now or datetime.now()
        if target_date >= now.date():
            raise ValidationException("target_date", "must be a day that has already ended")

        if not self._run_lock.acquire(blocking=False):
            raise SweepInProgressException()
        try:
            return self._sweep(target_date, now)
        finally:
            self._run_lock.release()

    def get_latest_run(self) -> Optional[SweepRun]:
        return self.run_repo.get_latest(self.db)

    def _sweep(self, target_date: date, now: datetime) -> SweepRun:
        run = self._start_run(target_date, now)
        _, day_end = self.date_service.get_day_range(target_date)
        weekday = self.date_service.weekday_index(target_date)
        logger.info(f"Sweeping dailies for {target_date} (weekday index {weekday})")

        checked = missed = health_lost = failures = 0

        for daily_id in self.task_repo.get_all_daily_ids(self.db):
            try:
                penalty = self._close_daily(daily_id, target_date, day_end, now)
            except SQLAlchemyError as e:
                self.db.rollback()
                failures += 1
                logger.error(f"Sweep failed for daily {daily_id} on {target_date}: {e}")
                continue

            if penalty is None:
                continue

            checked += 1
            if penalty > 0:
                missed += 1
                health_lost += penalty

        run.dailies_checked += checked
        run.dailies_missed += missed
        run.health_lost += health_lost
        run.failures = failures
        run.status = SWEEP_STATUS_COMPLETED if failures == 0 else SWEEP_STATUS_PARTIAL
        run.finished_at = datetime.now()
        self.run_repo.update(self.db, run)

        if failures:
            logger.warning(
                f"Sweep for {target_date} partial: {checked} dailies closed, "
                f"{failures} failed; re-run to finish"
            )
        else:
            logger.info(
                f"Sweep for {target_date} done: {checked} dailies closed, "
                f"{missed} missed, {health_lost} health lost"
            )
        return run

    def _close_daily(
        self,
        daily_id: int,
        target_date: date,
        day_end: datetime,
        now: datetime
    ) -> Optional[int]:
        """
        Close one daily for target_date.

        Returns:
            Penalty applied (0 if none), or None if the daily was skipped
        """
        daily = self.task_repo.get_by_id(self.db, daily_id, TASK_KIND_DAILY)
        if daily is None:
            return None  # Deleted since the ID list was read

        if daily.created_at is not None and daily.created_at >= day_end:
            return None

        if not self.task_repo.claim_daily_for_reset(self.db, daily_id, target_date):
            self.db.rollback()
            return None

        # Re-read after the claim: the row is now locked against concurrent checks
        daily = self.task_repo.reload(self.db, daily_id)
        completed_in_cycle = self._completed_during(daily, day_end)

        penalty = 0
        if self.date_service.is_due(daily.active_weekdays, target_date) and not completed_in_cycle:
            penalty = RewardPolicy.magnitude(daily.priority)
            ScoringService.penalize_user(self.db, daily.owner_id, penalty)
            self.activity_repo.append(
                self.db, daily.owner_id, daily.id, TASK_KIND_DAILY, ACTION_MISSED, -penalty, now
            )

        if completed_in_cycle:
            self.task_repo.reset_daily(self.db, daily_id)

        self.db.commit()
        return penalty

    @staticmethod
    def _completed_during(daily: Daily, day_end: datetime) -> bool:
        """True if the daily's completion flag belongs to the day ending at day_end"""
        if not daily.completed:
            return False
        return daily.last_completed_at is None or daily.last_completed_at < day_end

    def _start_run(self, target_date: date, now: datetime) -> SweepRun:
        """Create the run marker, or reopen it when re-running a day"""
        run = self.run_repo.get_by_date(self.db, target_date)
        if run is None:
            try:
                return self.run_repo.create(
                    self.db,
                    SweepRun(run_date=target_date, status=SWEEP_STATUS_RUNNING, started_at=now)
                )
            except IntegrityError:
                # Another process created it first
                self.db.rollback()
                run = self.run_repo.get_by_date(self.db, target_date)

        run.status = SWEEP_STATUS_RUNNING
        run.started_at = now
        run.finished_at = None
        return self.run_repo.update(self.db, run)
