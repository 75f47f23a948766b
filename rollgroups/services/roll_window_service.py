"""
Time-window selection of completed rolls.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Set, Tuple

from sqlalchemy import and_
from sqlalchemy.orm import Session

from rollgroups.models.attendance import Roll
from rollgroups.services.config_service import config_service, to_naive_utc

logger = logging.getLogger("rollgroups.roll_window")


class RollWindowService:
    """Service for selecting rolls completed within a lookback window."""

    def window_bounds(self, weeks: int, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
        """
        Compute the ``(from, to)`` bounds of a window of whole weeks ending at now.

        Args:
            weeks: Positive number of weeks to look back
            now: End of the window, defaults to the configured clock

        Returns:
            Tuple of naive UTC datetimes
        """
        if weeks is None or int(weeks) <= 0:
            raise ValueError(f"number_of_weeks must be a positive integer, got {weeks!r}")

        to_time = to_naive_utc(now) if now is not None else config_service.now()
        from_time = to_time - timedelta(days=int(weeks) * 7)
        return from_time, to_time

    def select_rolls_in_window(self, weeks: int, db: Session, now: Optional[datetime] = None) -> Set[int]:
        """
        Select ids of rolls completed strictly inside the window.

        Rolls without ``completed_at`` are never selected, and rolls completed
        exactly on either bound are excluded.

        Args:
            weeks: Positive number of weeks to look back
            db: Database session
            now: End of the window, defaults to the configured clock

        Returns:
            Set of roll ids
        """
        from_time, to_time = self.window_bounds(weeks, now)

        rows = db.query(Roll.id).filter(
            and_(
                Roll.completed_at.isnot(None),
                Roll.completed_at > from_time,
                Roll.completed_at < to_time,
            )
        ).all()

        roll_ids = {row[0] for row in rows}
        logger.debug(f"Selected {len(roll_ids)} rolls between {from_time} and {to_time}")
        return roll_ids
