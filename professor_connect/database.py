"""
Database initialization and session management.
"""

import logging
from contextlib import contextmanager
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session

from .config import config
from .models import Base

logger = logging.getLogger(__name__)

# SQLite connections are shared across Flask worker threads
_connect_args = {"check_same_thread": False} if config.DATABASE_URL.startswith("sqlite") else {}

# Create engine
engine = create_engine(
    config.DATABASE_URL,
    echo=config.FLASK_DEBUG,  # Log SQL in debug mode
    pool_pre_ping=True,  # Verify connections before using
    connect_args=_connect_args,
)

if engine.dialect.name == "sqlite":
    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create all database tables if they don't exist."""
    Base.metadata.create_all(bind=engine, checkfirst=True)
    logger.info("Database tables ready")


def drop_db() -> None:
    """Drop all database tables. Use with caution!"""
    Base.metadata.drop_all(bind=engine)


@contextmanager
def get_db() -> Session:
    """
    Get a database session with automatic cleanup.

    Usage:
        with get_db() as db:
            records = RecordStore(db).list_for_user(user_id)
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db_session() -> Session:
    """
    Get a database session (for Flask request context).

    The caller is responsible for closing the session.
    """
    return SessionLocal()
