"""
Database initialization script.
"""
import argparse
import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel

from rollgroups.database.engine import engine as default_engine

logger = logging.getLogger("rollgroups.database")


def register_models() -> None:
    """Import every table model so SQLModel knows about it."""
    from rollgroups.models.attendance import Roll, Student, StudentRollState  # noqa: F401
    from rollgroups.models.group import Group, GroupStudent  # noqa: F401


def init_database(engine: Optional[Engine] = None) -> None:
    """
    Create all tables.
    """
    logger.info("Initializing database...")

    register_models()
    SQLModel.metadata.create_all(engine or default_engine)

    logger.info("Database tables created")


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Create the RollGroups tables")
    parser.add_argument("--seed", action="store_true", help="load demo students, rolls and groups")
    args = parser.parse_args(argv)

    init_database()

    if args.seed:
        from rollgroups.database.seed import seed_demo_data
        from rollgroups.database.session import get_db_session

        with get_db_session() as db:
            seed_demo_data(db)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
