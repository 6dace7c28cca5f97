"""
Shared fixtures: an in-memory store per test, a user factory and task helpers.
"""
import pytest
from datetime import date, datetime, timedelta

from taskquest.config import AppConfig
from taskquest.database import Database
from taskquest.models import Daily, Habit, Todo
from taskquest.services.date_service import DateService
from taskquest.services.user_service import UserService


@pytest.fixture
def config(tmp_path):
    return AppConfig(
        database_url="memory",
        api_key="test-key",
        log_dir=str(tmp_path / "logs"),
        sweep_enabled=False,
    )


@pytest.fixture
def database(config):
    db = Database(config)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def db_session(database):
    session = database.SessionLocal()
    yield session
    session.close()


@pytest.fixture
def today():
    return date.today()


@pytest.fixture
def yesterday(today):
    return today - timedelta(days=1)


@pytest.fixture
def make_user(db_session):
    """Factory: create a user with a unique name"""
    counter = {"n": 0}

    def _make(username=None, max_health=None, health=None):
        counter["n"] += 1
        user = UserService(db_session).create_user(username or f"user{counter['n']}", max_health)
        if health is not None:
            user.health = health
            db_session.commit()
        return user

    return _make


@pytest.fixture
def user(make_user):
    return make_user("alice")


def _add(db_session, task):
    db_session.add(task)
    db_session.commit()
    db_session.refresh(task)
    return task


@pytest.fixture
def make_habit(db_session):
    def _make(owner, priority="easy", **kwargs):
        kwargs.setdefault("title", "Drink water")
        return _add(db_session, Habit(owner_id=owner.id, priority=priority, **kwargs))
    return _make


@pytest.fixture
def make_daily(db_session):
    def _make(owner, priority="easy", **kwargs):
        kwargs.setdefault("title", "Stretch")
        # Existed well before any day a test closes
        kwargs.setdefault("created_at", datetime.now() - timedelta(days=7))
        return _add(db_session, Daily(owner_id=owner.id, priority=priority, **kwargs))
    return _make


@pytest.fixture
def make_todo(db_session):
    def _make(owner, priority="easy", **kwargs):
        kwargs.setdefault("title", "File taxes")
        return _add(db_session, Todo(owner_id=owner.id, priority=priority, **kwargs))
    return _make


@pytest.fixture
def schedule_for():
    """Schedule that is due (or, with due=False, not due) on exactly one date's weekday"""
    def _schedule(target_date, due=True):
        index = DateService.weekday_index(target_date)
        return [(i == index) == due for i in range(7)]
    return _schedule
