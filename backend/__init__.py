"""
Backend package: SQLAlchemy persistence for tasks, conflicts and inspections.
"""

import logging
from typing import List

from backend.database import (
    Base, engine, SessionLocal, DatabaseConfig, DatabaseManager,
    init_db, check_database_health, get_database_metrics,
)
from backend.db_models import TaskDB, ScheduleConflictDB, InspectionScheduleDB
from backend.repository import ScheduleRepository

logger = logging.getLogger(__name__)

__version__ = "1.0.0"

__all__: List[str] = [
    # Database core
    'Base',
    'engine',
    'SessionLocal',
    'DatabaseConfig',
    'DatabaseManager',
    'init_db',
    'check_database_health',
    'get_database_metrics',

    # Database models
    'TaskDB',
    'ScheduleConflictDB',
    'InspectionScheduleDB',

    # Repository
    'ScheduleRepository',
]
