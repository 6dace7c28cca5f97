"""
Tests for ScoringService.

Tests cover:
1. Habit scoring up/down and disabled directions
2. Daily check/uncheck, streaks and idempotency
3. Todo check/uncheck and the on-time bonus
4. Health clamp and level-up
5. Ownership and lookup errors
"""
import pytest
from datetime import datetime, timedelta

from taskquest.services.scoring_service import ScoringService
from taskquest.repositories.activity_repository import ActivityLogRepository
from taskquest.exceptions import ForbiddenException, NotFoundException, ValidationException


def _logs(db_session, task):
    return ActivityLogRepository.get_for_task(db_session, task.id)


class TestScoreHabit:
    """Tests for score_habit"""

    def test_medium_habit_up(self, db_session, user, make_habit):
        """Scoring up bumps counters and credits experience and coins"""
        habit = make_habit(user, priority="medium")

        result = ScoringService(db_session).score_habit(habit.id, user.id, "up")

        assert result.reward_applied == 5
        assert result.task.positive_count == 1
        assert result.task.strength == 1
        assert result.user.experience == 5
        assert result.user.coins == 2
        logs = _logs(db_session, habit)
        assert [(log.action, log.value) for log in logs] == [("scored_up", 5)]

    def test_habit_down_costs_health(self, db_session, user, make_habit):
        """Scoring down lowers health and strength"""
        habit = make_habit(user, priority="medium")

        result = ScoringService(db_session).score_habit(habit.id, user.id, "down")

        assert result.reward_applied == -5
        assert result.task.negative_count == 1
        assert result.task.strength == -1
        assert result.user.health == 45
        assert result.user.experience == 0
        assert result.user.coins == 0
        assert [(log.action, log.value) for log in _logs(db_session, habit)] == [("scored_down", -5)]

    def test_health_clamped_at_zero(self, db_session, make_user, make_habit):
        """Health never drops below zero"""
        user = make_user(health=3)
        habit = make_habit(user, priority="hard")

        result = ScoringService(db_session).score_habit(habit.id, user.id, "down")

        assert result.user.health == 0

    def test_disabled_direction_is_noop(self, db_session, user, make_habit):
        """A direction the habit does not allow changes nothing and logs nothing"""
        habit = make_habit(user, allows_negative=False)

        result = ScoringService(db_session).score_habit(habit.id, user.id, "down")

        assert result.reward_applied == 0
        assert result.task.negative_count == 0
        assert result.task.strength == 0
        assert result.user.health == 50
        assert _logs(db_session, habit) == []

    def test_scoring_is_not_idempotent(self, db_session, user, make_habit):
        """Each call scores again"""
        habit = make_habit(user, priority="easy")
        service = ScoringService(db_session)

        service.score_habit(habit.id, user.id, "up")
        result = service.score_habit(habit.id, user.id, "up")

        assert result.task.positive_count == 2
        assert result.user.experience == 4
        assert len(_logs(db_session, habit)) == 2

    def test_level_up(self, db_session, user, make_habit):
        """Crossing a threshold raises the stored level"""
        habit = make_habit(user, priority="hard")
        service = ScoringService(db_session)

        for _ in range(5):
            result = service.score_habit(habit.id, user.id, "up")

        assert result.user.experience == 50
        assert result.user.level == 2
        assert result.user.experience_to_next_level == 100

    def test_unknown_direction(self, db_session, user, make_habit):
        """Only up and down are accepted"""
        habit = make_habit(user)
        with pytest.raises(ValidationException):
            ScoringService(db_session).score_habit(habit.id, user.id, "sideways")

    def test_other_users_habit_forbidden(self, db_session, user, make_user, make_habit):
        """Scoring someone else's habit is rejected without changes"""
        other = make_user("bob")
        habit = make_habit(other)

        with pytest.raises(ForbiddenException):
            ScoringService(db_session).score_habit(habit.id, user.id, "up")

        db_session.refresh(habit)
        assert habit.positive_count == 0

    def test_missing_habit(self, db_session, user):
        """Unknown IDs raise NotFound"""
        with pytest.raises(NotFoundException):
            ScoringService(db_session).score_habit(999, user.id, "up")


class TestCheckDaily:
    """Tests for check_daily"""

    def test_hard_daily_check(self, db_session, user, make_daily):
        """Checking bumps the streak and rewards the owner once"""
        daily = make_daily(user, priority="hard", streak=3)

        result = ScoringService(db_session).check_daily(daily.id, user.id, True)

        assert result.reward_applied == 10
        assert result.task.completed is True
        assert result.task.streak == 4
        assert result.task.last_completed_at is not None
        assert result.user.experience == 10
        assert result.user.coins == 5
        assert [log.action for log in _logs(db_session, daily)] == ["completed"]

    def test_check_twice_rewards_once(self, db_session, user, make_daily):
        """A repeated check is a no-op"""
        daily = make_daily(user, priority="hard")
        service = ScoringService(db_session)

        service.check_daily(daily.id, user.id, True)
        result = service.check_daily(daily.id, user.id, True)

        assert result.reward_applied == 0
        assert result.task.streak == 1
        assert result.user.experience == 10
        assert len(_logs(db_session, daily)) == 1

    def test_uncheck_has_no_penalty(self, db_session, user, make_daily):
        """Unchecking drops the streak but leaves rewards and health alone"""
        daily = make_daily(user, priority="medium", streak=2)
        service = ScoringService(db_session)
        service.check_daily(daily.id, user.id, True)

        result = service.check_daily(daily.id, user.id, False)

        assert result.reward_applied == 0
        assert result.task.completed is False
        assert result.task.streak == 2
        assert result.user.experience == 5
        assert result.user.health == 50
        assert [log.action for log in _logs(db_session, daily)] == ["completed", "uncompleted"]

    def test_streak_never_negative(self, db_session, user, make_daily):
        """Unchecking at streak 0 keeps the streak at 0"""
        daily = make_daily(user, completed=True, streak=0)

        result = ScoringService(db_session).check_daily(daily.id, user.id, False)

        assert result.task.streak == 0

    def test_uncheck_when_not_completed_is_noop(self, db_session, user, make_daily):
        """Unchecking an unchecked daily changes nothing"""
        daily = make_daily(user, streak=4)

        result = ScoringService(db_session).check_daily(daily.id, user.id, False)

        assert result.reward_applied == 0
        assert result.task.streak == 4
        assert _logs(db_session, daily) == []

    def test_wrong_kind_not_found(self, db_session, user, make_todo):
        """A todo ID is not a daily"""
        todo = make_todo(user)
        with pytest.raises(NotFoundException):
            ScoringService(db_session).check_daily(todo.id, user.id, True)


class TestCheckTodo:
    """Tests for check_todo"""

    def test_check_then_uncheck(self, db_session, user, make_todo):
        """completed_at is set then cleared; the reward is applied once"""
        todo = make_todo(user, priority="easy")
        service = ScoringService(db_session)

        checked = service.check_todo(todo.id, user.id, True)
        assert checked.reward_applied == 2
        assert checked.task.completed is True
        assert checked.task.completed_at is not None

        unchecked = service.check_todo(todo.id, user.id, False)
        assert unchecked.reward_applied == 0
        assert unchecked.task.completed is False
        assert unchecked.task.completed_at is None
        assert unchecked.user.experience == 2
        assert unchecked.user.coins == 1

    def test_on_time_bonus(self, db_session, user, make_todo):
        """Completing before the due date adds the bonus"""
        now = datetime.now()
        todo = make_todo(user, priority="easy", due_date=now + timedelta(days=1))

        result = ScoringService(db_session).check_todo(todo.id, user.id, True, now=now)

        assert result.reward_applied == 4

    def test_late_completion_has_no_bonus(self, db_session, user, make_todo):
        """Completing after the due date earns the base reward"""
        now = datetime.now()
        todo = make_todo(user, priority="easy", due_date=now - timedelta(days=1))

        result = ScoringService(db_session).check_todo(todo.id, user.id, True, now=now)

        assert result.reward_applied == 2

    def test_bonus_is_configurable(self, db_session, user, make_todo):
        """The on-time bonus comes from the service configuration"""
        now = datetime.now()
        todo = make_todo(user, priority="medium", due_date=now + timedelta(hours=1))

        result = ScoringService(db_session, todo_on_time_bonus=3).check_todo(
            todo.id, user.id, True, now=now
        )

        assert result.reward_applied == 8

    def test_other_users_todo_forbidden(self, db_session, user, make_user, make_todo):
        """Checking someone else's todo is rejected"""
        todo = make_todo(make_user("bob"))
        with pytest.raises(ForbiddenException):
            ScoringService(db_session).check_todo(todo.id, user.id, True)
