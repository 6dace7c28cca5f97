from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Iterator, List, Optional
from datetime import date, datetime, timedelta
import logging
from pathlib import Path

from taskquest.config import AppConfig
from taskquest.database import Database
from taskquest.auto_migrate import auto_migrate
from taskquest.auth import get_current_user_id, verify_api_key
from taskquest.schemas import (
    UserCreate, UserResponse,
    HabitCreate, HabitUpdate, HabitResponse,
    DailyCreate, DailyUpdate, DailyResponse,
    TodoCreate, TodoUpdate, TodoResponse,
    CheckRequest, HabitScoreResponse, DailyCheckResponse, TodoCheckResponse,
    ReorderRequest, ActivityLogResponse, ReminderResponse, SweepRunResponse
)
from taskquest.services.task_service import TaskService
from taskquest.services.user_service import UserService
from taskquest.services.scoring_service import ScoringService
from taskquest.services.sweep_service import DailySweepService
from taskquest.services.date_service import DateService
from taskquest.services.scheduler_service import run_daily_sweep, start_scheduler, stop_scheduler
from taskquest.exceptions import (
    DatabaseException, ForbiddenException, InvalidTransitionException,
    NotFoundException, SweepInProgressException, TaskQuestException, ValidationException
)
from taskquest.constants import (
    DEFAULT_ACTIVITY_LIMIT, DEFAULT_LOG_DIRECTORY_DEV, DIRECTION_DOWN, DIRECTION_UP,
    MAX_ACTIVITY_LIMIT, TASK_KIND_DAILY, TASK_KIND_HABIT, TASK_KIND_TODO
)

logger = logging.getLogger("taskquest")

EXCEPTION_STATUS_CODES = {
    NotFoundException: status.HTTP_404_NOT_FOUND,
    ForbiddenException: status.HTTP_403_FORBIDDEN,
    InvalidTransitionException: status.HTTP_409_CONFLICT,
    ValidationException: status.HTTP_400_BAD_REQUEST,
    SweepInProgressException: status.HTTP_409_CONFLICT,
    DatabaseException: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def configure_logging(config: AppConfig) -> Path:
    """Log to a file under log_dir and to the console"""
    log_dir = Path(config.log_dir)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / config.log_file
    except PermissionError:
        # Fallback to local directory if no permissions for /var/log
        log_dir = Path(DEFAULT_LOG_DIRECTORY_DEV)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / config.log_file

    logging.basicConfig(
        level=config.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_path),
            logging.StreamHandler()  # Also log to console
        ]
    )
    return log_path


def get_db(request: Request) -> Iterator[Session]:
    yield from request.app.state.database.get_db()


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def _scoring_service(db: Session, config: AppConfig) -> ScoringService:
    return ScoringService(db, todo_on_time_bonus=config.todo_on_time_bonus)


def _score_response(result) -> dict:
    return {"task": result.task, "reward_applied": result.reward_applied, "user": result.user}


router = APIRouter(prefix="/api", dependencies=[Depends(verify_api_key)])


# Users
@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user: UserCreate,
    db: Session = Depends(get_db),
    config: AppConfig = Depends(get_config)
):
    """Create a user at level 1 with full health"""
    return UserService(db, config.default_max_health).create_user(user.username, user.max_health)


@router.get("/user", response_model=UserResponse)
def get_user(db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    """Get the caller's attributes"""
    return UserService(db).get_user(user_id)


@router.get("/stats/activity", response_model=List[ActivityLogResponse])
def get_activity(
    limit: int = Query(DEFAULT_ACTIVITY_LIMIT, ge=1, le=MAX_ACTIVITY_LIMIT),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """Get the caller's recent activity, newest first"""
    return UserService(db).list_activity(user_id, limit)


# Habits
@router.get("/habits", response_model=List[HabitResponse])
def list_habits(db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return TaskService(db).list_tasks(user_id, TASK_KIND_HABIT)


@router.post("/habits", response_model=HabitResponse, status_code=status.HTTP_201_CREATED)
def create_habit(
    habit: HabitCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return TaskService(db).create_habit(user_id, habit)


@router.patch("/habits/order", response_model=List[HabitResponse])
def reorder_habits(
    reorder: ReorderRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return TaskService(db).reorder(user_id, TASK_KIND_HABIT, reorder.ids)


@router.get("/habits/{habit_id}", response_model=HabitResponse)
def get_habit(habit_id: int, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return TaskService(db).get_task(habit_id, user_id, TASK_KIND_HABIT)


@router.patch("/habits/{habit_id}", response_model=HabitResponse)
def update_habit(
    habit_id: int,
    habit_update: HabitUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """Edit a habit. Turning one direction off turns the other on."""
    return TaskService(db).update_task(habit_id, user_id, TASK_KIND_HABIT, habit_update)


@router.delete("/habits/{habit_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_habit(habit_id: int, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    TaskService(db).delete_task(habit_id, user_id, TASK_KIND_HABIT)


@router.post("/habits/{habit_id}/score/{direction}", response_model=HabitScoreResponse)
def score_habit(
    habit_id: int,
    direction: str,
    db: Session = Depends(get_db),
    config: AppConfig = Depends(get_config),
    user_id: int = Depends(get_current_user_id)
):
    """Score a habit up or down"""
    if direction not in (DIRECTION_UP, DIRECTION_DOWN):
        raise HTTPException(status_code=404, detail="Unknown scoring direction")
    result = _scoring_service(db, config).score_habit(habit_id, user_id, direction)
    return _score_response(result)


# Dailies
@router.get("/dailies", response_model=List[DailyResponse])
def list_dailies(db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return TaskService(db).list_tasks(user_id, TASK_KIND_DAILY)


@router.post("/dailies", response_model=DailyResponse, status_code=status.HTTP_201_CREATED)
def create_daily(
    daily: DailyCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return TaskService(db).create_daily(user_id, daily)


@router.patch("/dailies/order", response_model=List[DailyResponse])
def reorder_dailies(
    reorder: ReorderRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return TaskService(db).reorder(user_id, TASK_KIND_DAILY, reorder.ids)


@router.get("/dailies/{daily_id}", response_model=DailyResponse)
def get_daily(daily_id: int, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return TaskService(db).get_task(daily_id, user_id, TASK_KIND_DAILY)


@router.patch("/dailies/{daily_id}", response_model=DailyResponse)
def update_daily(
    daily_id: int,
    daily_update: DailyUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return TaskService(db).update_task(daily_id, user_id, TASK_KIND_DAILY, daily_update)


@router.delete("/dailies/{daily_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_daily(daily_id: int, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    TaskService(db).delete_task(daily_id, user_id, TASK_KIND_DAILY)


@router.post("/dailies/{daily_id}/check", response_model=DailyCheckResponse)
def check_daily(
    daily_id: int,
    check: CheckRequest,
    db: Session = Depends(get_db),
    config: AppConfig = Depends(get_config),
    user_id: int = Depends(get_current_user_id)
):
    """Check or uncheck a daily; repeating the current state is a no-op"""
    result = _scoring_service(db, config).check_daily(daily_id, user_id, check.completed)
    return _score_response(result)


# Todos
@router.get("/todos", response_model=List[TodoResponse])
def list_todos(db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return TaskService(db).list_tasks(user_id, TASK_KIND_TODO)


@router.post("/todos", response_model=TodoResponse, status_code=status.HTTP_201_CREATED)
def create_todo(
    todo: TodoCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return TaskService(db).create_todo(user_id, todo)


@router.patch("/todos/order", response_model=List[TodoResponse])
def reorder_todos(
    reorder: ReorderRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return TaskService(db).reorder(user_id, TASK_KIND_TODO, reorder.ids)


@router.get("/todos/{todo_id}", response_model=TodoResponse)
def get_todo(todo_id: int, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    return TaskService(db).get_task(todo_id, user_id, TASK_KIND_TODO)


@router.patch("/todos/{todo_id}", response_model=TodoResponse)
def update_todo(
    todo_id: int,
    todo_update: TodoUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return TaskService(db).update_task(todo_id, user_id, TASK_KIND_TODO, todo_update)


@router.delete("/todos/{todo_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_todo(todo_id: int, db: Session = Depends(get_db), user_id: int = Depends(get_current_user_id)):
    TaskService(db).delete_task(todo_id, user_id, TASK_KIND_TODO)


@router.post("/todos/{todo_id}/check", response_model=TodoCheckResponse)
def check_todo(
    todo_id: int,
    check: CheckRequest,
    db: Session = Depends(get_db),
    config: AppConfig = Depends(get_config),
    user_id: int = Depends(get_current_user_id)
):
    """Check or uncheck a todo; repeating the current state is a no-op"""
    result = _scoring_service(db, config).check_todo(todo_id, user_id, check.completed)
    return _score_response(result)


# Reminders
@router.get("/notifications/upcoming", response_model=List[ReminderResponse])
def get_upcoming_reminders(
    hours: Optional[int] = Query(None, ge=1, le=168),
    db: Session = Depends(get_db),
    config: AppConfig = Depends(get_config),
    user_id: int = Depends(get_current_user_id)
):
    """Get the caller's reminders due within the next `hours` (default from config)"""
    now = datetime.now()
    window = timedelta(hours=hours or config.reminder_window_hours)
    return TaskService(db).list_due_reminders(now, now + window, user_id)


@router.get("/reminders", response_model=List[ReminderResponse])
def get_reminders(
    start: datetime,
    end: datetime,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return TaskService(db).list_due_reminders(start, end, user_id)


# Daily reset sweep
@router.post("/sweeps/run", response_model=SweepRunResponse)
def run_sweep(target_date: Optional[date] = None, db: Session = Depends(get_db)):
    """Close a day now (default: yesterday). Re-running a closed day changes nothing."""
    target_date = target_date or DateService.day_to_close(date.today())
    return DailySweepService(db).sweep(target_date)


@router.get("/sweeps/latest", response_model=SweepRunResponse)
def get_latest_sweep(db: Session = Depends(get_db)):
    run = DailySweepService(db).get_latest_run()
    if not run:
        raise HTTPException(status_code=404, detail="No sweep has run yet")
    return run


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build the API for one configuration"""
    config = config or AppConfig()
    log_path = configure_logging(config)
    database = Database(config)

    app = FastAPI(
        title="TaskQuest API",
        description="Gamified habits, dailies and todos",
        version="1.0.0"
    )
    app.state.config = config
    app.state.database = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TaskQuestException)
    async def taskquest_exception_handler(request: Request, exc: TaskQuestException):
        status_code = EXCEPTION_STATUS_CODES.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    @app.on_event("startup")
    async def startup_event():
        database.create_all()
        try:
            auto_migrate(database.engine)
        except Exception as e:
            logger.error(f"Auto-migration failed: {e}")
            # Don't crash the app - continue with existing schema

        if config.sweep_enabled:
            # Catch up on a midnight missed while the process was down
            run_daily_sweep(database)
            start_scheduler(database, config)
        logger.info(f"TaskQuest API started. Logging to: {log_path}")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down TaskQuest API")
        stop_scheduler()
        database.dispose()

    # Health check (no auth required)
    @app.get("/")
    async def root():
        return {"message": "TaskQuest API", "status": "active"}

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("taskquest.main:app", host="0.0.0.0", port=8000, reload=False)
