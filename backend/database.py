import os
import logging
import threading
import time
from contextlib import contextmanager
from typing import Generator, Dict, Any, Optional

from sqlalchemy import create_engine, event, exc, inspect, text
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.pool import QueuePool, StaticPool

from config.settings import settings

logger = logging.getLogger(__name__)


class DatabaseConfig:
    """
    Database configuration resolved from settings.DATABASE_URL
    """

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.DATABASE_URL

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_memory(self) -> bool:
        return self.is_sqlite and (":memory:" in self.url or self.url.rstrip("/") == "sqlite:")

    @property
    def engine_config(self) -> Dict[str, Any]:
        """Get SQLAlchemy engine configuration for the configured backend"""
        base_config = {
            "echo": os.getenv("DB_ECHO", "false").lower() == "true",
            "pool_pre_ping": True,
        }

        if self.is_memory:
            # One shared connection so every session sees the same in-memory database
            base_config.update({
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False}
            })
        elif self.is_sqlite:
            base_config.update({"connect_args": {"check_same_thread": False}})
        else:
            base_config.update({
                "poolclass": QueuePool,
                "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
                "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
                "pool_timeout": 30,
                "pool_recycle": 1800,  # 30 minutes
            })

        return base_config

    @property
    def masked_url(self) -> str:
        return self.url.split('@')[-1]


class DatabaseMetrics:
    """
    Session-level counters. Sessions are opened from analysis worker
    threads, so updates go through a lock.
    """

    SLOW_SESSION_SECONDS = 1.0

    def __init__(self):
        self._lock = threading.Lock()
        self.sessions = 0
        self.slow_sessions = 0
        self.session_seconds = 0.0
        self.connections = 0
        self.errors = 0

    def session_finished(self, duration: float) -> bool:
        """Record a committed session; returns True when it was slow."""
        slow = duration > self.SLOW_SESSION_SECONDS
        with self._lock:
            self.sessions += 1
            self.session_seconds += duration
            if slow:
                self.slow_sessions += 1
        return slow

    def connection_opened(self):
        with self._lock:
            self.connections += 1

    def error_raised(self):
        with self._lock:
            self.errors += 1

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            average = self.session_seconds / self.sessions if self.sessions else 0.0
            return {
                "sessions": self.sessions,
                "slow_sessions": self.slow_sessions,
                "avg_session_ms": round(average * 1000, 2),
                "connections": self.connections,
                "errors": self.errors,
            }


Base = declarative_base()
metrics = DatabaseMetrics()


def create_db_engine(config: DatabaseConfig):
    """Create an engine and attach the monitoring listeners"""
    db_engine = create_engine(config.url, **config.engine_config)

    @event.listens_for(db_engine, "connect")
    def set_connection_settings(dbapi_connection, connection_record):
        metrics.connection_opened()
        if config.is_sqlite:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
        logger.debug("New database connection established")

    @event.listens_for(db_engine, "handle_error")
    def handle_error(exception_context):
        metrics.error_raised()
        logger.error(f"Database error: {exception_context.original_exception}")

    return db_engine


def create_session_factory(db_engine):
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=db_engine,
        expire_on_commit=False,
        class_=Session
    )


config = DatabaseConfig()
engine = create_db_engine(config)
SessionLocal = create_session_factory(engine)


class DatabaseManager:
    """
    Session management with commit/rollback handling and metrics
    """

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or SessionLocal

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Session context manager: commits on success, rolls back and re-raises on error
        """
        session = self.session_factory()
        started = time.monotonic()

        try:
            yield session
            session.commit()
        except exc.SQLAlchemyError as e:
            session.rollback()
            metrics.error_raised()
            logger.error(f"Database error, session rolled back: {e}")
            raise
        except Exception as e:
            session.rollback()
            metrics.error_raised()
            logger.error(f"Session rolled back after {type(e).__name__}: {e}")
            raise
        else:
            duration = time.monotonic() - started
            if metrics.session_finished(duration):
                logger.warning(f"🐌 Slow database session: {duration:.2f}s")
        finally:
            session.close()


def check_database_health(db_engine=None) -> Dict[str, Any]:
    """
    Database health check with connection pool status
    """
    db_engine = db_engine or engine
    health_check = {
        "status": "unknown",
        "database_url": str(db_engine.url).split('@')[-1],
        "connection_test": False,
        "pool_status": {},
        "metrics": metrics.get_metrics(),
        "timestamp": time.time()
    }

    try:
        with db_engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            health_check["connection_test"] = True

        if isinstance(db_engine.pool, QueuePool):
            health_check["pool_status"] = {
                "checkedout": db_engine.pool.checkedout(),
                "checkedin": db_engine.pool.checkedin(),
                "overflow": db_engine.pool.overflow(),
                "size": db_engine.pool.size(),
            }

        health_check["tables"] = inspect(db_engine).get_table_names()
        health_check["status"] = "healthy"
        logger.debug("Database health check passed")

    except exc.SQLAlchemyError as e:
        health_check["status"] = "unhealthy"
        health_check["error"] = str(e)
        logger.error(f"Database health check failed: {e}")

    return health_check


EXPECTED_TABLES = ['tasks', 'schedule_conflicts', 'inspection_schedules']


def init_db(db_engine=None) -> bool:
    """
    Create all tables and verify they exist
    """
    from backend import db_models  # noqa: F401  registers the models on Base

    db_engine = db_engine or engine
    try:
        logger.info("Initializing database schema...")
        Base.metadata.create_all(bind=db_engine)

        tables = inspect(db_engine).get_table_names()
        missing_tables = [table for table in EXPECTED_TABLES if table not in tables]
        if missing_tables:
            logger.error(f"❌ Missing tables after initialization: {missing_tables}")
            return False

        logger.info(f"✅ Database initialized successfully. Tables: {EXPECTED_TABLES}")
        return True

    except exc.SQLAlchemyError as e:
        logger.error(f"❌ Database initialization failed: {e}")
        return False


def get_database_metrics() -> Dict[str, Any]:
    return metrics.get_metrics()
