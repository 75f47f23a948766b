"""
Atomic replacement of a group's membership.
"""
import logging
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import delete, insert, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rollgroups.errors import GroupNotFoundError, StorageError
from rollgroups.models.group import Group, GroupStudent
from rollgroups.services.config_service import config_service, to_naive_utc
from rollgroups.services.incident_service import MemberIncidents

logger = logging.getLogger("rollgroups.membership")


class MembershipService:
    """Service for replacing the member list of a group."""

    def replace_membership(
        self,
        group_id: int,
        members: Sequence[MemberIncidents],
        db: Session,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Delete the group's members, insert the new ones and update its summary.

        The three statements run in a single transaction, so readers see the
        old member list or the new one.

        Args:
            group_id: Group to replace membership for
            members: New members, may be empty
            db: Database session
            now: Timestamp stored as ``run_at``, defaults to the configured clock

        Returns:
            New member count

        Raises:
            GroupNotFoundError: If the group does not exist
            StorageError: If any statement fails; nothing is changed
        """
        run_at = to_naive_utc(now) if now is not None else config_service.now()
        rows = [
            {"group_id": group_id, "student_id": member.student_id, "incident_count": member.incident_count}
            for member in members
        ]

        try:
            db.execute(delete(GroupStudent).where(GroupStudent.group_id == group_id))

            if rows:
                db.execute(insert(GroupStudent), rows)

            result = db.execute(
                update(Group)
                .where(Group.id == group_id)
                .values(run_at=run_at, student_count=len(rows))
            )
            if result.rowcount == 0:
                db.rollback()
                raise GroupNotFoundError(group_id)

            db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to replace membership for group {group_id}: {e}")
            db.rollback()
            raise StorageError(str(e), group_id=group_id) from e

        # Bulk statements bypass the identity map
        db.expire_all()

        logger.info(f"Replaced membership for group {group_id}: {len(rows)} students")
        return len(rows)
