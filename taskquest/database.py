"""
Database setup.
Engine and session factory are built from AppConfig; there is no module-level
engine, so the storage backend is selected only by configuration.
"""
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from taskquest.config import AppConfig

Base = declarative_base()


def build_engine(config: AppConfig) -> Engine:
    """Create the SQLAlchemy engine for the configured backend"""
    if config.uses_memory_storage:
        # One shared connection so every session sees the same in-memory database
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=config.database_echo,
        )
    elif config.database_url.startswith("sqlite"):
        engine = create_engine(
            config.database_url,
            connect_args={"check_same_thread": False},
            echo=config.database_echo,
        )
    else:
        engine = create_engine(
            config.database_url,
            pool_pre_ping=True,
            echo=config.database_echo,
        )

    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Engine plus session factory for one configured store"""

    def __init__(self, config: AppConfig):
        self.config = config
        self.engine = build_engine(config)
        self.SessionLocal = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )

    def create_all(self) -> None:
        """Create missing tables"""
        from taskquest import models  # noqa: F401  register models with Base

        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def get_db(self) -> Iterator[Session]:
        """FastAPI dependency yielding a request-scoped session"""
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()
