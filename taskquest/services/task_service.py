"""
Task management service.
Handles create/read/update/delete for habits, dailies and todos, manual
reordering and the reminder window query. None of these operations touch
rewards; reward-bearing changes go through ScoringService.
"""
import logging
from datetime import datetime
from typing import List, Optional, Union
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from taskquest.models import TASK_MODELS, Task
from taskquest.schemas import (
    DailyCreate, DailyUpdate, HabitCreate, HabitUpdate, TodoCreate, TodoUpdate
)
from taskquest.repositories.task_repository import TaskRepository
from taskquest.repositories.user_repository import UserRepository
from taskquest.exceptions import (
    DatabaseException, ForbiddenException, InvalidTransitionException,
    NotFoundException, ValidationException
)
from taskquest.constants import (
    TASK_KIND_DAILY, TASK_KIND_HABIT, TASK_KIND_TODO, TASK_KINDS
)

logger = logging.getLogger("taskquest.tasks")

TaskCreateData = Union[HabitCreate, DailyCreate, TodoCreate]
TaskUpdateData = Union[HabitUpdate, DailyUpdate, TodoUpdate]

DATETIME_FIELDS = ("reminder_time", "due_date")

# Fields that may be omitted from an update but never cleared
REQUIRED_FIELDS = (
    "title", "priority", "has_reminder", "allows_positive", "allows_negative", "active_weekdays"
)


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    """Drop tzinfo so stored datetimes compare with datetime.now()"""
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class TaskService:
    """Service for task management"""

    def __init__(self, db: Session):
        self.db = db
        self.task_repo = TaskRepository()
        self.user_repo = UserRepository()

    def create_task(self, owner_id: int, kind: str, task_data: TaskCreateData) -> Task:
        """
        Create a task of the given kind for a user.

        The new task is appended after the user's existing tasks of that kind.

        Raises:
            ValidationException: Unknown kind
            NotFoundException: Owner does not exist
        """
        model = self._model_for(kind)
        if not self.user_repo.get_by_id(self.db, owner_id):
            raise NotFoundException("user", owner_id)

        values = task_data.model_dump()
        for field in DATETIME_FIELDS:
            if field in values:
                values[field] = _naive(values[field])

        task = model(**values)
        task.owner_id = owner_id
        task.order = self.task_repo.next_order(self.db, owner_id, kind)

        try:
            self.task_repo.create(self.db, task)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException(f"create_{kind}", str(e))

        logger.info(f"Created {kind} {task.id} for user {owner_id}")
        return task

    def create_habit(self, owner_id: int, habit_data: HabitCreate) -> Task:
        return self.create_task(owner_id, TASK_KIND_HABIT, habit_data)

    def create_daily(self, owner_id: int, daily_data: DailyCreate) -> Task:
        return self.create_task(owner_id, TASK_KIND_DAILY, daily_data)

    def create_todo(self, owner_id: int, todo_data: TodoCreate) -> Task:
        return self.create_task(owner_id, TASK_KIND_TODO, todo_data)

    def get_task(self, task_id: int, caller_id: int, kind: Optional[str] = None) -> Task:
        """
        Get a task owned by the caller.

        Raises:
            NotFoundException: No such task (of that kind)
            ForbiddenException: Task belongs to another user
        """
        task = self.task_repo.get_by_id(self.db, task_id, kind)
        if not task:
            raise NotFoundException(kind or "task", task_id)
        if task.owner_id != caller_id:
            raise ForbiddenException(task.kind, task_id, caller_id)
        return task

    def list_tasks(self, owner_id: int, kind: str) -> List[Task]:
        """Get a user's tasks of one kind in display order"""
        self._model_for(kind)
        return self.task_repo.get_for_owner(self.db, owner_id, kind)

    def update_task(
        self,
        task_id: int,
        caller_id: int,
        kind: str,
        task_update: TaskUpdateData
    ) -> Task:
        """
        Apply a non-reward edit (title, notes, priority, schedule, reminder...).

        Only fields present in the update are changed. For habits, turning one
        scoring direction off turns the other one on.

        Raises:
            InvalidTransitionException: Both habit directions turned off at once
        """
        task = self.get_task(task_id, caller_id, kind)

        update_data = task_update.model_dump(exclude_unset=True)
        for field in REQUIRED_FIELDS:
            if field in update_data and update_data[field] is None:
                del update_data[field]
        for field in DATETIME_FIELDS:
            if field in update_data:
                update_data[field] = _naive(update_data[field])

        if kind == TASK_KIND_HABIT:
            self._apply_direction_rules(update_data)

        for key, value in update_data.items():
            setattr(task, key, value)

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException(f"update_{kind}", str(e))

        return self.task_repo.reload(self.db, task.id)

    def delete_task(self, task_id: int, caller_id: int, kind: str) -> None:
        """Delete a task. Its activity log entries are kept."""
        task = self.get_task(task_id, caller_id, kind)
        try:
            self.task_repo.delete(self.db, task)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException(f"delete_{kind}", str(e))
        logger.info(f"Deleted {kind} {task_id} of user {caller_id}")

    def reorder(self, owner_id: int, kind: str, task_ids: List[int]) -> List[Task]:
        """
        Rewrite display order to match the given ID sequence.

        Every ID must be a task of that kind owned by the user; each may appear once.
        Tasks left out of the list follow the listed ones in their current order.

        Returns:
            The user's tasks of that kind in their new order
        """
        self._model_for(kind)
        if len(set(task_ids)) != len(task_ids):
            raise ValidationException("ids", "duplicate task IDs")

        tasks_by_id = {task.id: task for task in self.task_repo.get_by_ids(self.db, task_ids)}
        for task_id in task_ids:
            task = tasks_by_id.get(task_id)
            if not task or task.kind != kind:
                raise NotFoundException(kind, task_id)
            if task.owner_id != owner_id:
                raise ForbiddenException(kind, task_id, owner_id)

        listed = set(task_ids)
        ordered = list(task_ids) + [
            task.id for task in self.task_repo.get_for_owner(self.db, owner_id, kind)
            if task.id not in listed
        ]

        try:
            for position, task_id in enumerate(ordered):
                self.task_repo.set_order(self.db, task_id, position)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException(f"reorder_{kind}", str(e))

        self.db.expire_all()
        return self.task_repo.get_for_owner(self.db, owner_id, kind)

    def list_due_reminders(
        self,
        start_time: datetime,
        end_time: datetime,
        owner_id: Optional[int] = None
    ) -> List[Task]:
        """
        Get tasks with an enabled reminder in [start_time, end_time).

        Read-only; sending the reminders is up to the caller.
        """
        if end_time <= start_time:
            raise ValidationException("end", "must be after start")
        return self.task_repo.get_with_reminders(
            self.db, _naive(start_time), _naive(end_time), owner_id
        )

    @staticmethod
    def _apply_direction_rules(update_data: dict) -> None:
        """Keep at least one scoring direction enabled"""
        positive = update_data.get("allows_positive")
        negative = update_data.get("allows_negative")

        if positive is False and negative is False:
            raise InvalidTransitionException("a habit must allow at least one scoring direction")

        if positive is False:
            update_data["allows_negative"] = True
        elif negative is False:
            update_data["allows_positive"] = True

    @staticmethod
    def _model_for(kind: str):
        if kind not in TASK_KINDS:
            raise ValidationException("kind", f"must be one of {', '.join(TASK_KINDS)}")
        return TASK_MODELS[kind]
