"""
Scoring engine.
Applies reward-bearing task transitions (score habit, check daily, check todo)
together with the owner's experience/coins/health change and the activity log
entry, all in one transaction.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from taskquest.models import Task, User
from taskquest.repositories.task_repository import TaskRepository
from taskquest.repositories.user_repository import UserRepository
from taskquest.repositories.activity_repository import ActivityLogRepository
from taskquest.services.reward_policy import RewardPolicy
from taskquest.exceptions import (
    DatabaseException, ForbiddenException, NotFoundException, ValidationException
)
from taskquest.constants import (
    ACTION_COMPLETED, ACTION_SCORED_DOWN, ACTION_SCORED_UP, ACTION_UNCOMPLETED,
    DEFAULT_TODO_ON_TIME_BONUS, DIRECTION_DOWN, DIRECTION_UP,
    TASK_KIND_DAILY, TASK_KIND_HABIT, TASK_KIND_TODO
)

logger = logging.getLogger("taskquest.scoring")


@dataclass
class ScoreResult:
    task: Task
    reward_applied: int
    user: User


@dataclass(frozen=True)
class CompletionRule:
    """How one checkable kind flips its completion flag"""
    complete: Callable[[Session, int, datetime], bool]
    uncomplete: Callable[[Session, int], bool]


COMPLETION_RULES = {
    TASK_KIND_DAILY: CompletionRule(
        complete=TaskRepository.complete_daily,
        uncomplete=TaskRepository.uncomplete_daily,
    ),
    TASK_KIND_TODO: CompletionRule(
        complete=TaskRepository.complete_todo,
        uncomplete=TaskRepository.uncomplete_todo,
    ),
}


class ScoringService:
    """Service for reward-bearing task transitions"""

    def __init__(self, db: Session, todo_on_time_bonus: int = DEFAULT_TODO_ON_TIME_BONUS):
        self.db = db
        self.todo_on_time_bonus = todo_on_time_bonus
        self.task_repo = TaskRepository()
        self.user_repo = UserRepository()
        self.activity_repo = ActivityLogRepository()

    def score_habit(
        self,
        habit_id: int,
        caller_id: int,
        direction: str,
        now: Optional[datetime] = None
    ) -> ScoreResult:
        """
        Score a habit up or down.

        Up: positive_count += 1, strength += 1, experience += magnitude,
        coins += magnitude // 2.
        Down: negative_count += 1, strength -= 1, health -= magnitude (clamped).

        A direction the habit does not allow is a no-op: nothing changes and
        nothing is logged.

        Not idempotent: retrying a successful call scores twice.

        Raises:
            ValidationException: Unknown direction
            NotFoundException: Habit does not exist
            ForbiddenException: Habit belongs to another user
            DatabaseException: Commit failed (nothing was applied)
        """
        if direction not in (DIRECTION_UP, DIRECTION_DOWN):
            raise ValidationException("direction", "must be 'up' or 'down'")

        habit = self._get_owned_task(habit_id, caller_id, TASK_KIND_HABIT)
        now = now or datetime.now()

        try:
            if not self.task_repo.score_habit(self.db, habit.id, direction):
                self.db.rollback()
                logger.debug(f"Habit {habit.id}: direction '{direction}' disabled, nothing scored")
                return self._result(habit.id, caller_id, 0)

            magnitude = RewardPolicy.magnitude(habit.priority)
            if direction == DIRECTION_UP:
                reward = magnitude
                self.credit_user(self.db, caller_id, reward)
                action = ACTION_SCORED_UP
            else:
                reward = -magnitude
                self.penalize_user(self.db, caller_id, magnitude)
                action = ACTION_SCORED_DOWN

            self.activity_repo.append(
                self.db, caller_id, habit.id, TASK_KIND_HABIT, action, reward, now
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Scoring habit {habit.id} failed: {e}")
            raise DatabaseException("score_habit", str(e))

        logger.info(f"Habit {habit.id} scored {direction} by user {caller_id}: {reward:+d}")
        return self._result(habit.id, caller_id, reward)

    def check_daily(
        self,
        daily_id: int,
        caller_id: int,
        completed: bool,
        now: Optional[datetime] = None
    ) -> ScoreResult:
        """
        Check or uncheck a daily.

        Checking bumps the streak, stamps last_completed_at and rewards the
        owner. Unchecking drops the streak (floored at 0) without a health
        penalty or reward reversal. Calling with the current state is a no-op.
        """
        return self._check(TASK_KIND_DAILY, daily_id, caller_id, completed, now)

    def check_todo(
        self,
        todo_id: int,
        caller_id: int,
        completed: bool,
        now: Optional[datetime] = None
    ) -> ScoreResult:
        """
        Check or uncheck a todo.

        Checking stamps completed_at and rewards the owner, with an on-time
        bonus when the todo has a due date that was met. Unchecking clears
        completed_at and keeps the reward already given.
        """
        return self._check(TASK_KIND_TODO, todo_id, caller_id, completed, now)

    def _check(
        self,
        kind: str,
        task_id: int,
        caller_id: int,
        completed: bool,
        now: Optional[datetime]
    ) -> ScoreResult:
        rule = COMPLETION_RULES[kind]
        task = self._get_owned_task(task_id, caller_id, kind)
        now = now or datetime.now()

        try:
            if completed:
                changed = rule.complete(self.db, task.id, now)
            else:
                changed = rule.uncomplete(self.db, task.id)

            if not changed:
                self.db.rollback()
                logger.debug(f"{kind.capitalize()} {task.id} already completed={completed}, nothing to do")
                return self._result(task.id, caller_id, 0)

            if completed:
                reward = self._completion_reward(task, now)
                self.credit_user(self.db, caller_id, reward)
                action = ACTION_COMPLETED
            else:
                reward = 0
                action = ACTION_UNCOMPLETED

            self.activity_repo.append(self.db, caller_id, task.id, kind, action, reward, now)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Checking {kind} {task.id} failed: {e}")
            raise DatabaseException(f"check_{kind}", str(e))

        logger.info(f"{kind.capitalize()} {task.id} {action} by user {caller_id}: {reward:+d}")
        return self._result(task.id, caller_id, reward)

    def _completion_reward(self, task: Task, now: datetime) -> int:
        reward = RewardPolicy.magnitude(task.priority)
        if task.kind == TASK_KIND_TODO and task.due_date is not None and now <= task.due_date:
            reward += self.todo_on_time_bonus
        return reward

    def _get_owned_task(self, task_id: int, caller_id: int, kind: str) -> Task:
        task = self.task_repo.get_by_id(self.db, task_id, kind)
        if not task:
            raise NotFoundException(kind, task_id)
        if task.owner_id != caller_id:
            raise ForbiddenException(kind, task_id, caller_id)
        return task

    def _result(self, task_id: int, user_id: int, reward: int) -> ScoreResult:
        return ScoreResult(
            task=self.task_repo.reload(self.db, task_id),
            reward_applied=reward,
            user=self.user_repo.reload(self.db, user_id),
        )

    # User attribute primitives, shared with the daily reset sweep

    @staticmethod
    def credit_user(db: Session, user_id: int, reward: int) -> None:
        """Add experience and coins for a positive reward and raise the level if earned"""
        UserRepository.add_rewards(db, user_id, reward, RewardPolicy.coins_for(reward))

        user = UserRepository.reload(db, user_id)
        level = RewardPolicy.level_for_experience(user.experience)
        if level > user.level:
            UserRepository.set_level(db, user_id, level)
            logger.info(f"User {user_id} reached level {level}")

    @staticmethod
    def penalize_user(db: Session, user_id: int, penalty: int) -> None:
        """Subtract health, clamped to [0, max_health]"""
        UserRepository.change_health(db, user_id, -penalty)
