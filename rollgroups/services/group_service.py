"""
Group service for managing group definitions and listing their members.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete
from sqlalchemy.orm import Session

from rollgroups.errors import GroupNotFoundError
from rollgroups.models.attendance import Student
from rollgroups.models.group import Group, GroupCreate, GroupStudent, GroupUpdate

logger = logging.getLogger("rollgroups.groups")


class GroupService:
    """Service for group definitions."""

    def list_groups(self, db: Session) -> List[Group]:
        """Return all groups ordered by id."""
        return db.query(Group).order_by(Group.id).all()

    def get_group(self, group_id: int, db: Session) -> Group:
        """
        Get a group by id.

        Raises:
            GroupNotFoundError: If there is no such group
        """
        group = db.get(Group, group_id)
        if not group:
            raise GroupNotFoundError(group_id)
        return group

    def create_group(self, data: GroupCreate, db: Session) -> Group:
        """
        Create a group from a validated field set.

        ``run_at`` starts empty and ``student_count`` at zero until the first run.
        """
        group = Group()
        group.prepare_to_create(data)

        db.add(group)
        db.commit()
        db.refresh(group)

        logger.info(f"Created group {group.id} '{group.name}'")
        return group

    def update_group(self, group_id: int, data: GroupUpdate, db: Session) -> Group:
        """
        Update a group's mutable fields.

        Raises:
            GroupNotFoundError: If there is no such group
        """
        group = self.get_group(group_id, db)
        group.prepare_to_update(data)

        db.add(group)
        db.commit()
        db.refresh(group)

        logger.info(f"Updated group {group_id}")
        return group

    def delete_group(self, group_id: int, db: Session) -> None:
        """
        Delete a group together with its membership rows.

        Raises:
            GroupNotFoundError: If there is no such group
        """
        group = self.get_group(group_id, db)

        try:
            db.execute(delete(GroupStudent).where(GroupStudent.group_id == group_id))
            db.delete(group)
            db.commit()
        except Exception as e:
            logger.error(f"Error deleting group {group_id}: {e}")
            db.rollback()
            raise

        logger.info(f"Deleted group {group_id}")

    def list_group_members(self, group_id: int, db: Session) -> List[Dict[str, Any]]:
        """
        List the current members of one group.

        Args:
            group_id: Group id
            db: Database session

        Returns:
            Members ordered by student id, with names and incident counts
        """
        rows = (
            db.query(GroupStudent.student_id, GroupStudent.incident_count, Student.first_name, Student.last_name)
            .join(Student, GroupStudent.student_id == Student.id)
            .filter(GroupStudent.group_id == group_id)
            .order_by(GroupStudent.student_id)
            .all()
        )

        return [
            {
                "student_id": row.student_id,
                "first_name": row.first_name,
                "last_name": row.last_name,
                "full_name": f"{row.first_name} {row.last_name}",
                "incident_count": row.incident_count,
            }
            for row in rows
        ]

    def get_group_students(self, db: Session, group_id: Optional[int] = None) -> Dict[str, List[Dict[str, str]]]:
        """
        Roster of students per group, keyed by group name.

        Args:
            db: Database session
            group_id: Restrict to a single group

        Returns:
            Dictionary mapping group name to its students' names
        """
        query = (
            db.query(Group.name.label("group_name"), Student.first_name, Student.last_name)
            .select_from(GroupStudent)
            .join(Group, GroupStudent.group_id == Group.id)
            .join(Student, GroupStudent.student_id == Student.id)
        )
        if group_id is not None:
            query = query.filter(Group.id == group_id)

        roster: Dict[str, List[Dict[str, str]]] = {}
        for row in query.order_by(Group.id, Student.id).all():
            roster.setdefault(row.group_name, []).append({
                "first_name": row.first_name,
                "last_name": row.last_name,
                "full_name": f"{row.first_name} {row.last_name}",
            })

        return roster
