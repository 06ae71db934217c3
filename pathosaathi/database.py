"""
Database Engine and Session Factory

SQLAlchemy engine setup with connection pooling. There is no module-level
declarative Base: every tenant table is mapped at runtime by the model
router (see services/model_router.py), which owns its own declarative base.

NOTE: Engines are built per AppState so tests can hand in an in-memory
SQLite engine without touching the production configuration.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool
import logging

from pathosaathi.config import Settings

logger = logging.getLogger(__name__)


def create_db_engine(settings: Settings) -> Engine:
    """
    Build the SQLAlchemy engine for the configured DATABASE_URL.

    PostgreSQL gets a QueuePool sized from settings. SQLite (tests, local
    experiments) gets check_same_thread disabled because FastAPI runs sync
    dependencies in a threadpool.
    """
    url = settings.DATABASE_URL

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=settings.DEBUG,
        )
    else:
        # TRADEOFF: Larger pool = more connections = more memory but better throughput
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_pre_ping=True,  # Handles stale connections
            echo=settings.DEBUG,
        )

    configure_engine(engine)
    return engine


def configure_engine(engine: Engine) -> None:
    """Register connection-level setup on an engine."""

    @event.listens_for(engine, "connect")
    def set_connection_defaults(dbapi_connection, connection_record):
        # Identifier dates and lock windows are computed in UTC
        if engine.dialect.name == "postgresql":
            cursor = dbapi_connection.cursor()
            cursor.execute("SET TIME ZONE 'UTC'")
            cursor.close()
        logger.debug("New database connection established")


def create_session_factory(engine: Engine) -> sessionmaker:
    """
    Session factory bound to an engine.

    expire_on_commit=False lets handlers read ORM attributes after commit
    (tenant context objects outlive the session that loaded them).
    """
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False,
    )
