"""
Sweep run repository - Data access layer for SweepRun markers.
"""
from datetime import date
from typing import Optional
from sqlalchemy.orm import Session

from taskquest.models import SweepRun


class SweepRunRepository:
    """Repository for SweepRun data access"""

    @staticmethod
    def get_by_date(db: Session, run_date: date) -> Optional[SweepRun]:
        return db.query(SweepRun).filter(SweepRun.run_date == run_date).first()

    @staticmethod
    def get_latest(db: Session) -> Optional[SweepRun]:
        """Get the run for the most recent closed day"""
        return db.query(SweepRun).order_by(SweepRun.run_date.desc()).first()

    @staticmethod
    def create(db: Session, run: SweepRun) -> SweepRun:
        db.add(run)
        db.commit()
        db.refresh(run)
        return run

    @staticmethod
    def update(db: Session, run: SweepRun) -> SweepRun:
        db.commit()
        db.refresh(run)
        return run
