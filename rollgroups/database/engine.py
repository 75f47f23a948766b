"""
Database engine configuration.
"""
import logging
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from rollgroups.services.config_service import config_service

logger = logging.getLogger("rollgroups.database")


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()


def create_database_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create and configure SQLAlchemy engine.

    SQLite URLs get ``check_same_thread=False`` so group recomputations can
    run on worker threads; other backends get a connection pool sized for the
    recomputation thread pool.

    Args:
        database_url: Database URL, defaults to the DB_URL setting

    Returns:
        Configured SQLAlchemy engine
    """
    database_url = database_url or config_service.database_url
    echo = str(config_service.get_setting("DB_ECHO", "false")).lower() == "true"

    logger.info(f"Creating database engine for: {database_url.split('@')[1] if '@' in database_url else database_url}")

    if _is_sqlite(database_url):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=echo,
        )
        _enable_sqlite_foreign_keys(engine)
        return engine

    return create_engine(
        database_url,
        # Connection pool settings
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=echo,
    )


# Global engine instance
engine = create_database_engine()
