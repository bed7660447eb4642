import pytest
from datetime import date, timedelta

from backend.database import Base, DatabaseConfig, DatabaseManager, create_db_engine, create_session_factory
from backend.repository import ScheduleRepository
from config.settings import Settings
from defaults import DEFAULT_RULES, SAMPLE_PROJECT_ID, SAMPLE_TASKS
from models import Task
from scheduling_engine import ScheduleIntelligenceEngine

import backend.db_models  # noqa: F401


@pytest.fixture(scope="function")
def db_engine():
    """Fresh in-memory database for each test"""
    engine = create_db_engine(DatabaseConfig("sqlite:///:memory:"))
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repository(db_engine):
    return ScheduleRepository(DatabaseManager(create_session_factory(db_engine)))


@pytest.fixture
def test_settings():
    """Settings independent of the environment the tests run in"""
    return Settings(
        DATABASE_URL="sqlite:///:memory:",
        INSPECTION_LEAD_TIME_DAYS=1,
        DAILY_INSPECTION_CAPACITY=1,
        ANALYSIS_TIME_BUDGET_SECONDS=5.0,
        MAX_WORKERS=4,
        DEFAULT_WORKWEEK=[0, 1, 2, 3, 4],
        HOLIDAYS=[],
        TRADE_CAPACITY={},
    )


@pytest.fixture
def schedule_engine(repository, test_settings):
    return ScheduleIntelligenceEngine(repository, rules=DEFAULT_RULES, settings=test_settings)


@pytest.fixture
def rules():
    return DEFAULT_RULES


@pytest.fixture
def make_task():
    """Factory for tasks in project p1; dates accept ISO strings"""
    def _make(task_id, phase, start, end, status="not_started", trade="general", project_id="p1", **kwargs):
        return Task.from_dict({
            "id": task_id,
            "name": task_id,
            "phase": phase,
            "start_date": start,
            "end_date": end,
            "status": status,
            "assigned_trade": trade,
            **kwargs,
        }, project_id=project_id)
    return _make


@pytest.fixture
def day():
    """Project day n (1-based) of a schedule starting 2026-01-01"""
    def _day(n):
        return date(2026, 1, 1) + timedelta(days=n - 1)
    return _day


@pytest.fixture
def sample_tasks():
    return [Task.from_dict(raw, project_id=SAMPLE_PROJECT_ID) for raw in SAMPLE_TASKS]
