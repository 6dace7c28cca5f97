from pydantic import AfterValidator, BaseModel, Field, StringConstraints, model_validator
from datetime import datetime, date
from typing import Annotated, List, Literal, Optional, Union

from taskquest.constants import WEEKDAY_COUNT

Priority = Literal["trivial", "easy", "medium", "hard"]
TaskKind = Literal["habit", "daily", "todo"]


def _check_weekdays(value: List[bool]) -> List[bool]:
    if len(value) != WEEKDAY_COUNT:
        raise ValueError(f"active_weekdays must have exactly {WEEKDAY_COUNT} entries (Sunday first)")
    return value


Weekdays = Annotated[List[bool], AfterValidator(_check_weekdays)]
Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=500)]


# User schemas
class UserCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    max_health: Optional[int] = Field(default=None, gt=0)


class UserResponse(BaseModel):
    id: int
    username: str
    level: int
    experience: int
    experience_to_next_level: int = 0
    coins: int
    health: int
    max_health: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Task schemas
class TaskBase(BaseModel):
    title: Title
    notes: Optional[str] = None
    priority: Priority = "easy"
    has_reminder: bool = False
    reminder_time: Optional[datetime] = None


class TaskUpdateBase(BaseModel):
    title: Optional[Title] = None
    notes: Optional[str] = None
    priority: Optional[Priority] = None
    has_reminder: Optional[bool] = None
    reminder_time: Optional[datetime] = None


class HabitCreate(TaskBase):
    allows_positive: bool = True
    allows_negative: bool = True

    @model_validator(mode="after")
    def check_direction(self):
        if not self.allows_positive and not self.allows_negative:
            raise ValueError("a habit must allow at least one scoring direction")
        return self


class HabitUpdate(TaskUpdateBase):
    allows_positive: Optional[bool] = None
    allows_negative: Optional[bool] = None


class DailyCreate(TaskBase):
    active_weekdays: Weekdays = Field(default_factory=lambda: [True] * WEEKDAY_COUNT)


class DailyUpdate(TaskUpdateBase):
    active_weekdays: Optional[Weekdays] = None


class TodoCreate(TaskBase):
    due_date: Optional[datetime] = None


class TodoUpdate(TaskUpdateBase):
    due_date: Optional[datetime] = None


class TaskResponseBase(BaseModel):
    id: int
    kind: TaskKind
    owner_id: int
    title: str
    notes: Optional[str] = None
    priority: Priority
    order: int
    has_reminder: bool = False
    reminder_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class HabitResponse(TaskResponseBase):
    kind: Literal["habit"] = "habit"
    allows_positive: bool
    allows_negative: bool
    positive_count: int = 0
    negative_count: int = 0
    strength: int = 0


class DailyResponse(TaskResponseBase):
    kind: Literal["daily"] = "daily"
    completed: bool = False
    streak: int = 0
    active_weekdays: List[bool]
    last_completed_at: Optional[datetime] = None
    last_reset_date: Optional[date] = None


class TodoResponse(TaskResponseBase):
    kind: Literal["todo"] = "todo"
    completed: bool = False
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None


TaskResponse = Union[HabitResponse, DailyResponse, TodoResponse]


# Scoring schemas
class CheckRequest(BaseModel):
    completed: bool


class HabitScoreResponse(BaseModel):
    task: HabitResponse
    reward_applied: int
    user: UserResponse


class DailyCheckResponse(BaseModel):
    task: DailyResponse
    reward_applied: int
    user: UserResponse


class TodoCheckResponse(BaseModel):
    task: TodoResponse
    reward_applied: int
    user: UserResponse


class ReorderRequest(BaseModel):
    ids: List[int]


# Activity log schemas
class ActivityLogResponse(BaseModel):
    id: int
    owner_id: int
    task_id: int
    task_kind: TaskKind
    action: str
    value: int
    created_at: datetime

    class Config:
        from_attributes = True


# Reminder schemas
class ReminderResponse(BaseModel):
    id: int
    kind: TaskKind
    owner_id: int
    title: str
    notes: Optional[str] = None
    priority: Priority
    reminder_time: datetime

    class Config:
        from_attributes = True


# Sweep schemas
class SweepRunResponse(BaseModel):
    id: int
    run_date: date
    status: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    dailies_checked: int = 0
    dailies_missed: int = 0
    health_lost: int = 0
    failures: int = 0

    class Config:
        from_attributes = True
