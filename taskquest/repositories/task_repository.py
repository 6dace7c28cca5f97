"""
Task repository - Data access layer for the Task union (habits, dailies, todos).
Handles all database queries related to tasks.

Reward-bearing changes are conditional UPDATE statements: the returned bool
tells whether the row actually changed, so two concurrent requests can never
both apply the same transition. Nothing here commits; services own the
transaction.
"""
from datetime import date, datetime
from typing import List, Optional
from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.orm import Session

from taskquest.models import Task
from taskquest.constants import (
    DIRECTION_UP, TASK_KIND_DAILY, TASK_KIND_HABIT, TASK_KIND_TODO
)

tasks_table = Task.__table__


class TaskRepository:
    """Repository for Task data access"""

    @staticmethod
    def get_by_id(db: Session, task_id: int, kind: Optional[str] = None) -> Optional[Task]:
        """Get task by ID, optionally restricted to one kind"""
        query = db.query(Task).filter(Task.id == task_id)
        if kind is not None:
            query = query.filter(Task.kind == kind)
        return query.first()

    @staticmethod
    def reload(db: Session, task_id: int) -> Optional[Task]:
        """Re-read a task from the database, discarding any stale in-session state"""
        return db.get(Task, task_id, populate_existing=True)

    @staticmethod
    def get_for_owner(db: Session, owner_id: int, kind: str) -> List[Task]:
        """Get all tasks of one kind for a user in display order"""
        return db.query(Task).filter(
            and_(
                Task.owner_id == owner_id,
                Task.kind == kind
            )
        ).order_by(Task.order.asc(), Task.id.asc()).all()

    @staticmethod
    def get_by_ids(db: Session, task_ids: List[int]) -> List[Task]:
        if not task_ids:
            return []
        return db.query(Task).filter(Task.id.in_(task_ids)).all()

    @staticmethod
    def next_order(db: Session, owner_id: int, kind: str) -> int:
        """Order value for a new task: max existing + 1, or 0 for the first one"""
        current_max = db.query(func.max(Task.order)).filter(
            and_(
                Task.owner_id == owner_id,
                Task.kind == kind
            )
        ).scalar()
        return 0 if current_max is None else current_max + 1

    @staticmethod
    def get_all_daily_ids(db: Session) -> List[int]:
        """Get IDs of every daily across all users"""
        rows = db.execute(
            select(Task.id).where(Task.kind == TASK_KIND_DAILY).order_by(Task.id)
        ).all()
        return [row[0] for row in rows]

    @staticmethod
    def get_with_reminders(
        db: Session,
        start_time: datetime,
        end_time: datetime,
        owner_id: Optional[int] = None
    ) -> List[Task]:
        """Get tasks whose reminder falls in [start_time, end_time), skipping finished todos"""
        query = db.query(Task).filter(
            and_(
                Task.has_reminder == True,
                Task.reminder_time >= start_time,
                Task.reminder_time < end_time,
                or_(
                    Task.kind != TASK_KIND_TODO,
                    Task.completed == False
                )
            )
        )

        if owner_id is not None:
            query = query.filter(Task.owner_id == owner_id)

        return query.order_by(Task.reminder_time.asc(), Task.id.asc()).all()

    @staticmethod
    def create(db: Session, task: Task) -> Task:
        """Stage a new task and assign its ID"""
        db.add(task)
        db.flush()
        return task

    @staticmethod
    def delete(db: Session, task: Task) -> None:
        db.delete(task)
        db.flush()

    @staticmethod
    def set_order(db: Session, task_id: int, order: int) -> None:
        db.execute(
            update(tasks_table)
            .where(tasks_table.c.id == task_id)
            .values(display_order=order)
        )

    # Reward-bearing transitions

    @staticmethod
    def score_habit(db: Session, habit_id: int, direction: str) -> bool:
        """
        Bump a habit's counter and strength if the direction is enabled.

        Returns:
            False when the direction is disabled (nothing changed)
        """
        c = tasks_table.c
        if direction == DIRECTION_UP:
            condition = c.allows_positive == True
            values = {
                "positive_count": c.positive_count + 1,
                "strength": c.strength + 1,
            }
        else:
            condition = c.allows_negative == True
            values = {
                "negative_count": c.negative_count + 1,
                "strength": c.strength - 1,
            }

        result = db.execute(
            update(tasks_table)
            .where(and_(c.id == habit_id, c.kind == TASK_KIND_HABIT, condition))
            .values(**values)
        )
        return result.rowcount == 1

    @staticmethod
    def complete_daily(db: Session, daily_id: int, now: datetime) -> bool:
        """Flip a daily false -> true, bumping its streak. False if already completed."""
        c = tasks_table.c
        result = db.execute(
            update(tasks_table)
            .where(and_(c.id == daily_id, c.kind == TASK_KIND_DAILY, c.completed == False))
            .values(completed=True, streak=c.streak + 1, last_completed_at=now)
        )
        return result.rowcount == 1

    @staticmethod
    def uncomplete_daily(db: Session, daily_id: int) -> bool:
        """Flip a daily true -> false, dropping its streak (floored at 0)"""
        c = tasks_table.c
        result = db.execute(
            update(tasks_table)
            .where(and_(c.id == daily_id, c.kind == TASK_KIND_DAILY, c.completed == True))
            .values(completed=False, streak=case((c.streak > 0, c.streak - 1), else_=0))
        )
        return result.rowcount == 1

    @staticmethod
    def complete_todo(db: Session, todo_id: int, now: datetime) -> bool:
        c = tasks_table.c
        result = db.execute(
            update(tasks_table)
            .where(and_(c.id == todo_id, c.kind == TASK_KIND_TODO, c.completed == False))
            .values(completed=True, completed_at=now)
        )
        return result.rowcount == 1

    @staticmethod
    def uncomplete_todo(db: Session, todo_id: int) -> bool:
        c = tasks_table.c
        result = db.execute(
            update(tasks_table)
            .where(and_(c.id == todo_id, c.kind == TASK_KIND_TODO, c.completed == True))
            .values(completed=False, completed_at=None)
        )
        return result.rowcount == 1

    @staticmethod
    def claim_daily_for_reset(db: Session, daily_id: int, target_date: date) -> bool:
        """
        Mark a daily as closed for target_date.

        Returns:
            False if the daily was already closed for that day (or a later one)
        """
        c = tasks_table.c
        result = db.execute(
            update(tasks_table)
            .where(
                and_(
                    c.id == daily_id,
                    c.kind == TASK_KIND_DAILY,
                    or_(
                        c.last_reset_date.is_(None),
                        c.last_reset_date < target_date
                    )
                )
            )
            .values(last_reset_date=target_date)
        )
        return result.rowcount == 1

    @staticmethod
    def reset_daily(db: Session, daily_id: int) -> None:
        """Clear the completion flag for the next cycle"""
        db.execute(
            update(tasks_table)
            .where(tasks_table.c.id == daily_id)
            .values(completed=False)
        )

