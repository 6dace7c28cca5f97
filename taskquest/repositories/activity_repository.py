"""
Activity log repository - append-only access to ActivityLog.
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from taskquest.models import ActivityLog


class ActivityLogRepository:
    """Repository for ActivityLog data access"""

    @staticmethod
    def append(
        db: Session,
        owner_id: int,
        task_id: int,
        task_kind: str,
        action: str,
        value: int,
        created_at: Optional[datetime] = None
    ) -> ActivityLog:
        """Stage a new log entry in the current transaction"""
        entry = ActivityLog(
            owner_id=owner_id,
            task_id=task_id,
            task_kind=task_kind,
            action=action,
            value=value,
            created_at=created_at or datetime.now()
        )
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def get_for_owner(db: Session, owner_id: int, limit: int) -> List[ActivityLog]:
        """Get the most recent entries for a user, newest first"""
        return db.query(ActivityLog).filter(
            ActivityLog.owner_id == owner_id
        ).order_by(
            ActivityLog.created_at.desc(), ActivityLog.id.desc()
        ).limit(limit).all()

    @staticmethod
    def get_for_task(db: Session, task_id: int) -> List[ActivityLog]:
        return db.query(ActivityLog).filter(
            ActivityLog.task_id == task_id
        ).order_by(ActivityLog.id.asc()).all()
