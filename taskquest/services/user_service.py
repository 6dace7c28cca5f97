"""
User service.
Creates and reads users and lists their activity log. User attributes are
never edited here; they change only through scoring and the daily sweep.
"""
import logging
from typing import List, Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from taskquest.models import ActivityLog, User
from taskquest.repositories.user_repository import UserRepository
from taskquest.repositories.activity_repository import ActivityLogRepository
from taskquest.exceptions import DatabaseException, NotFoundException, ValidationException
from taskquest.constants import (
    DEFAULT_ACTIVITY_LIMIT, DEFAULT_LEVEL, DEFAULT_MAX_HEALTH, MAX_ACTIVITY_LIMIT
)

logger = logging.getLogger("taskquest.users")


class UserService:
    """Service for users and their activity"""

    def __init__(self, db: Session, default_max_health: int = DEFAULT_MAX_HEALTH):
        self.db = db
        self.default_max_health = default_max_health
        self.user_repo = UserRepository()
        self.activity_repo = ActivityLogRepository()

    def create_user(self, username: str, max_health: Optional[int] = None) -> User:
        """Create a user at level 1 with full health"""
        username = username.strip()
        if not username:
            raise ValidationException("username", "must not be empty")
        if self.user_repo.get_by_username(self.db, username):
            raise ValidationException("username", f"'{username}' is already taken")

        max_health = max_health or self.default_max_health
        user = User(
            username=username,
            level=DEFAULT_LEVEL,
            experience=0,
            coins=0,
            health=max_health,
            max_health=max_health
        )

        try:
            self.user_repo.create(self.db, user)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValidationException("username", f"'{username}' is already taken")
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException("create_user", str(e))

        logger.info(f"Created user {user.id} ({username})")
        return user

    def get_user(self, user_id: int) -> User:
        user = self.user_repo.get_by_id(self.db, user_id)
        if not user:
            raise NotFoundException("user", user_id)
        return user

    def list_activity(self, owner_id: int, limit: int = DEFAULT_ACTIVITY_LIMIT) -> List[ActivityLog]:
        """Get a user's most recent activity, newest first"""
        if limit < 1 or limit > MAX_ACTIVITY_LIMIT:
            raise ValidationException("limit", f"must be between 1 and {MAX_ACTIVITY_LIMIT}")
        return self.activity_repo.get_for_owner(self.db, owner_id, limit)
