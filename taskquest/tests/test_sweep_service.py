"""
Tests for DailySweepService.

Tests cover:
1. Missed due dailies are penalised and logged
2. Dailies not due that weekday are left alone
3. Completion flags are reset for the next cycle
4. A check and a sweep never both apply to one cycle
5. Idempotency per day, partial runs and days that have not ended
6. run_pending catch-up and the overlap guard
"""
import pytest
from datetime import datetime, time, timedelta
from sqlalchemy.exc import SQLAlchemyError

from taskquest.services.sweep_service import DailySweepService
from taskquest.services.scoring_service import ScoringService
from taskquest.services.scheduler_service import (
    SWEEP_JOB_ID, run_daily_sweep, scheduler, start_scheduler, stop_scheduler
)
from taskquest.repositories.activity_repository import ActivityLogRepository
from taskquest.exceptions import SweepInProgressException, ValidationException


def _logs(db_session, task):
    return ActivityLogRepository.get_for_task(db_session, task.id)


@pytest.fixture
def noon_yesterday(yesterday):
    return datetime.combine(yesterday, time(12, 0))


class TestMissedDailies:
    """Tests for penalties on due, uncompleted dailies"""

    def test_due_uncompleted_trivial_daily(self, db_session, user, make_daily, yesterday, schedule_for):
        """A missed due daily costs its magnitude in health and logs one miss"""
        daily = make_daily(user, priority="trivial", active_weekdays=schedule_for(yesterday))

        run = DailySweepService(db_session).sweep(yesterday)

        db_session.refresh(user)
        db_session.refresh(daily)
        assert user.health == 49
        assert daily.completed is False
        assert daily.last_reset_date == yesterday
        assert [(log.action, log.value) for log in _logs(db_session, daily)] == [("missed", -1)]
        assert run.status == "completed"
        assert (run.dailies_checked, run.dailies_missed, run.health_lost) == (1, 1, 1)

    def test_penalty_clamped_at_zero(self, db_session, make_user, make_daily, yesterday):
        """Health never drops below zero"""
        user = make_user(health=4)
        make_daily(user, priority="hard")

        DailySweepService(db_session).sweep(yesterday)

        db_session.refresh(user)
        assert user.health == 0

    def test_not_due_daily_untouched(self, db_session, user, make_daily, yesterday, schedule_for):
        """A daily not scheduled for the day is never penalised"""
        daily = make_daily(user, priority="hard", active_weekdays=schedule_for(yesterday, due=False))

        run = DailySweepService(db_session).sweep(yesterday)

        db_session.refresh(user)
        assert user.health == 50
        assert _logs(db_session, daily) == []
        assert run.dailies_missed == 0

    def test_not_due_completed_daily_is_reset(
        self, db_session, user, make_daily, yesterday, noon_yesterday, schedule_for
    ):
        """A completed daily that was not due is reset without a penalty or a log entry"""
        daily = make_daily(
            user,
            priority="hard",
            active_weekdays=schedule_for(yesterday, due=False),
            completed=True,
            streak=1,
            last_completed_at=noon_yesterday,
        )

        DailySweepService(db_session).sweep(yesterday)

        db_session.refresh(user)
        db_session.refresh(daily)
        assert daily.completed is False
        assert daily.streak == 1
        assert user.health == 50
        assert _logs(db_session, daily) == []

    def test_every_user_is_swept(self, db_session, make_user, make_daily, yesterday):
        """Dailies of all users are closed in one run"""
        alice = make_user("alice")
        bob = make_user("bob")
        make_daily(alice, priority="easy")
        make_daily(bob, priority="medium")

        run = DailySweepService(db_session).sweep(yesterday)

        db_session.refresh(alice)
        db_session.refresh(bob)
        assert (alice.health, bob.health) == (48, 45)
        assert run.health_lost == 7


class TestReset:
    """Tests for clearing completion flags"""

    def test_completed_daily_reset_without_penalty(
        self, db_session, user, make_daily, yesterday, noon_yesterday
    ):
        """A daily completed during the day is reset and keeps its streak"""
        daily = make_daily(user, priority="hard")
        ScoringService(db_session).check_daily(daily.id, user.id, True, now=noon_yesterday)

        DailySweepService(db_session).sweep(yesterday)

        db_session.refresh(user)
        db_session.refresh(daily)
        assert daily.completed is False
        assert daily.streak == 1
        assert user.health == 50
        assert [log.action for log in _logs(db_session, daily)] == ["completed"]

    def test_completion_after_day_end_belongs_to_next_cycle(self, db_session, user, make_daily, yesterday):
        """A check made after the closed day ended is kept, and the closed day still counts as missed"""
        daily = make_daily(user, priority="easy")
        ScoringService(db_session).check_daily(daily.id, user.id, True, now=datetime.now())

        DailySweepService(db_session).sweep(yesterday)

        db_session.refresh(user)
        db_session.refresh(daily)
        assert daily.completed is True
        assert user.health == 48

    def test_daily_created_after_day_is_skipped(self, db_session, user, make_daily, yesterday):
        """A daily that did not exist during the closed day is not evaluated"""
        daily = make_daily(user, priority="hard", created_at=datetime.now())

        run = DailySweepService(db_session).sweep(yesterday)

        db_session.refresh(user)
        db_session.refresh(daily)
        assert user.health == 50
        assert daily.last_reset_date is None
        assert run.dailies_checked == 0


class TestCheckAndSweep:
    """Tests for a check and a sweep touching the same daily"""

    def test_check_then_sweep(self, db_session, user, make_daily, yesterday, noon_yesterday):
        """A day checked before its sweep is rewarded and not penalised"""
        daily = make_daily(user, priority="easy")
        ScoringService(db_session).check_daily(daily.id, user.id, True, now=noon_yesterday)

        DailySweepService(db_session).sweep(yesterday)

        db_session.refresh(user)
        assert user.experience == 2
        assert user.health == 50
        assert [log.action for log in _logs(db_session, daily)] == ["completed"]

    def test_sweep_then_check(self, db_session, user, make_daily, yesterday):
        """A check after the sweep rewards the new cycle; the closed day keeps its one penalty"""
        daily = make_daily(user, priority="easy")
        service = DailySweepService(db_session)

        service.sweep(yesterday)
        result = ScoringService(db_session).check_daily(daily.id, user.id, True)
        service.sweep(yesterday)

        db_session.refresh(user)
        db_session.refresh(daily)
        assert result.reward_applied == 2
        assert user.experience == 2
        assert user.health == 48
        assert daily.completed is True
        assert [log.action for log in _logs(db_session, daily)] == ["missed", "completed"]


class TestIdempotency:
    """Tests for re-running a sweep for the same day"""

    def test_rerun_does_not_double_penalise(self, db_session, user, make_daily, yesterday):
        """The second run for a day closes nothing"""
        daily = make_daily(user, priority="medium")
        service = DailySweepService(db_session)

        service.sweep(yesterday)
        run = service.sweep(yesterday)

        db_session.refresh(user)
        assert user.health == 45
        assert len(_logs(db_session, daily)) == 1
        assert run.status == "completed"
        assert run.dailies_checked == 1

    def test_partial_run_can_be_finished(self, db_session, user, make_daily, yesterday, monkeypatch):
        """A failed daily is rolled back and handled by the next run"""
        daily = make_daily(user, priority="easy")

        def fail(db, user_id, penalty):
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr(ScoringService, "penalize_user", staticmethod(fail))
        service = DailySweepService(db_session)
        run = service.sweep(yesterday)

        assert run.status == "partial"
        assert run.failures == 1
        db_session.refresh(daily)
        assert daily.last_reset_date is None

        monkeypatch.undo()
        run = service.sweep(yesterday)

        db_session.refresh(user)
        assert run.status == "completed"
        assert run.failures == 0
        assert user.health == 48
        assert len(_logs(db_session, daily)) == 1

    @pytest.mark.parametrize("days_ahead", [0, 1, 3])
    def test_day_not_ended_rejected(self, db_session, user, make_daily, today, days_ahead):
        """Today and future days cannot be closed, and nothing is claimed"""
        daily = make_daily(user, priority="easy")

        with pytest.raises(ValidationException):
            DailySweepService(db_session).sweep(today + timedelta(days=days_ahead))

        db_session.refresh(daily)
        assert daily.last_reset_date is None
        assert DailySweepService(db_session).get_latest_run() is None

    def test_early_close_does_not_block_later_days(self, db_session, user, make_daily, today, yesterday):
        """A rejected future close leaves the real missed days to be penalised"""
        make_daily(user, priority="easy")
        service = DailySweepService(db_session)

        with pytest.raises(ValidationException):
            service.sweep(today + timedelta(days=3))
        service.sweep(yesterday - timedelta(days=1))
        service.sweep(yesterday)

        db_session.refresh(user)
        assert user.health == 46


class TestRunPending:
    """Tests for run_pending"""

    def test_closes_yesterday_once(self, db_session, user, make_daily, today, yesterday):
        """Startup and midnight runs close yesterday exactly once"""
        make_daily(user, priority="easy")
        service = DailySweepService(db_session)

        run = service.run_pending(today)
        again = service.run_pending(today)

        db_session.refresh(user)
        assert run.run_date == yesterday
        assert again is None
        assert user.health == 48
        assert service.get_latest_run().run_date == yesterday

    def test_overlapping_sweep_rejected(self, db_session, yesterday):
        """A second sweep while one is running is refused"""
        lock = DailySweepService._run_lock
        lock.acquire()
        try:
            with pytest.raises(SweepInProgressException):
                DailySweepService(db_session).sweep(yesterday)
        finally:
            lock.release()


class TestScheduledJob:
    """Tests for the scheduler job wrapper"""

    def test_job_closes_yesterday(self, database, db_session, user, make_daily, today, yesterday):
        """The job opens its own session and runs the pending sweep"""
        make_daily(user, priority="easy")

        run_daily_sweep(database, today)

        db_session.refresh(user)
        assert user.health == 48
        assert DailySweepService(db_session).get_latest_run().run_date == yesterday

    def test_job_skips_while_sweep_running(self, database, db_session, user, make_daily, today):
        """An overlapping job logs and returns instead of raising"""
        make_daily(user, priority="easy")
        lock = DailySweepService._run_lock
        lock.acquire()
        try:
            run_daily_sweep(database, today)
        finally:
            lock.release()

        db_session.refresh(user)
        assert user.health == 50

    def test_start_registers_single_job(self, database, config):
        """The sweep job runs at the configured time with no overlap"""
        start_scheduler(database, config)
        try:
            job = scheduler.get_job(SWEEP_JOB_ID)
            assert job is not None
            assert job.max_instances == 1
            assert job.coalesce is True
        finally:
            stop_scheduler()
