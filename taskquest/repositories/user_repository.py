"""
User repository - Data access layer for User model.
Attribute changes are applied as SQL expressions on the current row value,
so concurrent rewards for the same user add up instead of overwriting each other.
"""
from typing import Optional
from sqlalchemy import case, update
from sqlalchemy.orm import Session

from taskquest.models import User

users_table = User.__table__


class UserRepository:
    """Repository for User data access"""

    @staticmethod
    def get_by_id(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_by_username(db: Session, username: str) -> Optional[User]:
        return db.query(User).filter(User.username == username).first()

    @staticmethod
    def reload(db: Session, user_id: int) -> Optional[User]:
        """Re-read a user, discarding any stale in-session state"""
        return db.get(User, user_id, populate_existing=True)

    @staticmethod
    def create(db: Session, user: User) -> User:
        db.add(user)
        db.flush()
        return user

    @staticmethod
    def add_rewards(db: Session, user_id: int, experience: int, coins: int) -> None:
        """Add experience and coins"""
        c = users_table.c
        db.execute(
            update(users_table)
            .where(c.id == user_id)
            .values(experience=c.experience + experience, coins=c.coins + coins)
        )

    @staticmethod
    def change_health(db: Session, user_id: int, delta: int) -> None:
        """Add delta to health, clamped to [0, max_health]"""
        c = users_table.c
        new_health = c.health + delta
        db.execute(
            update(users_table)
            .where(c.id == user_id)
            .values(
                health=case(
                    (new_health < 0, 0),
                    (new_health > c.max_health, c.max_health),
                    else_=new_health
                )
            )
        )

    @staticmethod
    def set_level(db: Session, user_id: int, level: int) -> None:
        """Raise the stored level; never lowers it"""
        c = users_table.c
        db.execute(
            update(users_table)
            .where(c.id == user_id, c.level < level)
            .values(level=level)
        )
