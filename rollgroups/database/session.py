"""
Database session management.
"""
import logging
from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy.orm import Session, sessionmaker

from rollgroups.database.engine import engine

logger = logging.getLogger("rollgroups.database")

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_session() -> Generator[Session, None, None]:
    """
    Dependency to get database session.

    Yields:
        Database session
    """
    session = SessionLocal()
    try:
        logger.debug("Database session created")
        yield session
    except Exception as e:
        logger.error(f"Database session error: {e}")
        session.rollback()
        raise
    finally:
        logger.debug("Database session closed")
        session.close()


def get_session_factory() -> Callable[[], Session]:
    """
    Dependency returning the session factory.

    Group recomputation opens one session per group, so it needs the factory
    rather than a single request session.
    """
    return SessionLocal


@contextmanager
def get_db_session(session_factory: Callable[[], Session] = None):
    """
    Context manager for database session.
    """
    session = (session_factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
