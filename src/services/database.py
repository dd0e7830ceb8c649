"""
Engine, session factory and table setup for the fulfillment core.

Services open their own unit of work with session_scope() unless the caller
passes a session. Objects stay usable after commit (expire_on_commit=False)
because services return them detached.
"""

from typing import Optional
from contextlib import contextmanager

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..utils.config import get_config
from .. import models
from .logging_utils import get_service_logger

logger = get_service_logger(__name__)

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Foreign keys on, WAL journal; SQLite connections only."""
    if type(dbapi_connection).__module__.split(".")[0] not in ("sqlite3", "pysqlite2"):
        return

    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_database_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Create an engine for the configured (or given) database URL.

    In-memory SQLite shares one connection across threads (StaticPool);
    file SQLite waits up to 30 s for the write lock held by another
    confirmation or consumption.
    """
    database_url = database_url or get_config().database_url
    logger.info(f"Creating database engine: {database_url}")

    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    connect_args = {"check_same_thread": False}
    if ":memory:" in database_url or "mode=memory" in database_url:
        return create_engine(
            database_url, echo=echo, connect_args=connect_args, poolclass=StaticPool
        )
    connect_args["timeout"] = 30
    return create_engine(database_url, echo=echo, connect_args=connect_args)


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_database_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    """Return the process-wide session factory. Tests patch this."""
    global _SessionFactory
    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _SessionFactory


@contextmanager
def session_scope():
    """
    One unit of work: commit on success, roll back on any exception, always close.

    Example:
        with session_scope() as session:
            session.add(StockLot(raw_material_id=1, ...))
    """
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_database(engine: Optional[Engine] = None) -> None:
    """Create any missing tables. Existing tables are left alone."""
    models.Base.metadata.create_all(engine or get_engine())


def verify_database() -> bool:
    """True when every model table exists in the database."""
    try:
        tables = set(inspect(get_engine()).get_table_names())
    except Exception as e:
        logger.error(f"Database verification failed: {e}")
        return False
    missing = set(models.Base.metadata.tables) - tables
    if missing:
        logger.warning(f"Missing tables: {', '.join(sorted(missing))}")
    return not missing


def reset_database(confirm: bool = False) -> None:
    """
    Drop and recreate every table. All stock, orders and pallets are lost.

    Raises:
        ValueError: If confirm is not True
    """
    if not confirm:
        raise ValueError("Must pass confirm=True to reset database. This will delete all data!")

    logger.warning("Resetting database: dropping all tables")
    engine = get_engine()
    models.Base.metadata.drop_all(engine)
    models.Base.metadata.create_all(engine)


def close_connections() -> None:
    """Dispose of the engine; the next call creates a new one from config."""
    global _engine, _SessionFactory
    _SessionFactory = None
    if _engine is not None:
        _engine.dispose()
        _engine = None


def initialize_app_database() -> None:
    """Create tables if missing and check that all of them exist."""
    init_database()
    if verify_database():
        logger.info("Database initialized")
    else:
        logger.warning("Database verification failed - tables may not exist")
