from sqlalchemy import (
    JSON, Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String
)
from datetime import datetime

from taskquest.database import Base
from taskquest.services.reward_policy import RewardPolicy
from taskquest.constants import (
    ALL_WEEKDAYS, DEFAULT_LEVEL, DEFAULT_MAX_HEALTH, DEFAULT_PRIORITY,
    SWEEP_STATUS_RUNNING, TASK_KIND_DAILY, TASK_KIND_HABIT, TASK_KIND_TODO
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, nullable=False, unique=True)
    level = Column(Integer, nullable=False, default=DEFAULT_LEVEL)
    experience = Column(Integer, nullable=False, default=0)  # Cumulative, never decreases
    coins = Column(Integer, nullable=False, default=0)
    health = Column(Integer, nullable=False, default=DEFAULT_MAX_HEALTH)  # Clamped to [0, max_health]
    max_health = Column(Integer, nullable=False, default=DEFAULT_MAX_HEALTH)
    created_at = Column(DateTime, default=datetime.now)

    @property
    def experience_to_next_level(self) -> int:
        return RewardPolicy.experience_to_next_level(self.experience or 0)


class Task(Base):
    """
    Single table for all task kinds, discriminated by `kind`.

    Kind-specific columns live on the subclasses and are NULL for other kinds.
    """
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String, nullable=False, index=True)  # habit, daily, todo
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    notes = Column(String, nullable=True)
    priority = Column(String, nullable=False, default=DEFAULT_PRIORITY)  # trivial, easy, medium, hard
    order = Column("display_order", Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Reminder (read by the external reminder dispatcher)
    has_reminder = Column(Boolean, nullable=False, default=False)
    reminder_time = Column(DateTime, nullable=True)

    # Dailies and todos only
    completed = Column(Boolean, nullable=False, default=False)

    __mapper_args__ = {"polymorphic_on": kind}
    __table_args__ = (
        Index("ix_tasks_owner_kind_order", "owner_id", "kind", "display_order"),
        Index("ix_tasks_reminder", "has_reminder", "reminder_time"),
    )


class Habit(Task):
    allows_positive = Column(Boolean, default=True)  # Can be scored "+"
    allows_negative = Column(Boolean, default=True)  # Can be scored "-"
    positive_count = Column(Integer, default=0)
    negative_count = Column(Integer, default=0)
    strength = Column(Integer, default=0)  # +1 per up, -1 per down

    __mapper_args__ = {"polymorphic_identity": TASK_KIND_HABIT}


class Daily(Task):
    streak = Column(Integer, default=0)
    active_weekdays = Column(JSON, default=lambda: list(ALL_WEEKDAYS))  # 7 bools, index 0 = Sunday
    last_completed_at = Column(DateTime, nullable=True)
    last_reset_date = Column(Date, nullable=True)  # Last day closed by the sweep

    __mapper_args__ = {"polymorphic_identity": TASK_KIND_DAILY}


class Todo(Task):
    due_date = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    __mapper_args__ = {"polymorphic_identity": TASK_KIND_TODO}


TASK_MODELS = {
    TASK_KIND_HABIT: Habit,
    TASK_KIND_DAILY: Daily,
    TASK_KIND_TODO: Todo,
}


class ActivityLog(Base):
    """Append-only record of every reward-bearing state change"""
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    task_id = Column(Integer, nullable=False)  # Not a foreign key: entries outlive deleted tasks
    task_kind = Column(String, nullable=False)
    action = Column(String, nullable=False)  # scored_up, scored_down, completed, uncompleted, missed
    value = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.now)

    __table_args__ = (
        Index("ix_activity_logs_owner_created", "owner_id", "created_at"),
    )


class SweepRun(Base):
    """Persisted marker of one daily reset sweep"""
    __tablename__ = "sweep_runs"

    id = Column(Integer, primary_key=True, index=True)
    run_date = Column(Date, nullable=False, unique=True, index=True)  # Day being closed
    status = Column(String, nullable=False, default=SWEEP_STATUS_RUNNING)
    started_at = Column(DateTime, default=datetime.now)
    finished_at = Column(DateTime, nullable=True)

    dailies_checked = Column(Integer, nullable=False, default=0)
    dailies_missed = Column(Integer, nullable=False, default=0)
    health_lost = Column(Integer, nullable=False, default=0)
    failures = Column(Integer, nullable=False, default=0)
