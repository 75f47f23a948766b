"""
Per-student incident aggregation over a set of rolls.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from rollgroups.models.attendance import StudentRollState
from rollgroups.models.group import Comparator

logger = logging.getLogger("rollgroups.incidents")


@dataclass(frozen=True)
class MemberIncidents:
    """A student qualifying for a group and the number of matching records."""

    student_id: int
    incident_count: int


class IncidentService:
    """Service for counting attendance incidents per student."""

    def aggregate(
        self,
        roll_ids: Iterable[int],
        states: Iterable[str],
        op,
        threshold: int,
        db: Session,
    ) -> List[MemberIncidents]:
        """
        Count matching roll states per student and keep those passing the threshold.

        Equivalent to::

            SELECT student_id, COUNT(state) AS incident_count
            FROM student_roll_states
            WHERE roll_id IN (:roll_ids) AND state IN (:states)
            GROUP BY student_id
            HAVING COUNT(state) <op> :threshold
            ORDER BY student_id

        Args:
            roll_ids: Rolls to consider
            states: Attendance states counted as incidents
            op: Comparator or operator symbol
            threshold: Incident threshold
            db: Database session

        Returns:
            Qualifying students ordered by ascending student id

        Raises:
            InvalidOperatorError: If op is not a known symbol
        """
        comparator = Comparator.parse(op)
        roll_ids = sorted(set(roll_ids))
        states = sorted(set(states))

        if not roll_ids or not states:
            return []

        incident_count = func.count(StudentRollState.id)
        rows = (
            db.query(StudentRollState.student_id, incident_count.label("incident_count"))
            .filter(
                StudentRollState.roll_id.in_(roll_ids),
                StudentRollState.state.in_(states),
            )
            .group_by(StudentRollState.student_id)
            .having(comparator.compare(incident_count, int(threshold)))
            .order_by(StudentRollState.student_id)
            .all()
        )

        members = [MemberIncidents(student_id=row.student_id, incident_count=int(row.incident_count)) for row in rows]
        logger.debug(
            f"Aggregated incidents over {len(roll_ids)} rolls for states {states}: "
            f"{len(members)} students with count {comparator.value} {threshold}"
        )
        return members
