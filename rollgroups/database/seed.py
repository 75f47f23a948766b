"""
Demo data: students, five completed rolls and a few groups.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from rollgroups.models.attendance import Roll, RollState, Student, StudentRollState
from rollgroups.models.group import Group, GroupCreate
from rollgroups.services.config_service import config_service

logger = logging.getLogger("rollgroups.database")

DEMO_STUDENT_COUNT = 20

# (present, absent, late) per roll, oldest first
DEMO_ROLL_STATES = [
    (10, 5, 5),
    (15, 5, 0),
    (6, 4, 10),
    (5, 10, 5),
    (1, 19, 0),
]

DEMO_GROUPS = [
    GroupCreate(name="Chronic absence", number_of_weeks=1, roll_states="absent", incidents=3, ltmt=">="),
    GroupCreate(name="Often late", number_of_weeks=1, roll_states="late", incidents=1, ltmt=">"),
    GroupCreate(name="Missed a lot", number_of_weeks=2, roll_states="absent|late", incidents=4, ltmt=">"),
]


def seed_demo_data(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Load demo data, one roll per day over the last five days.

    Student ``i`` on a roll gets "present" for the first ``present`` students,
    then "absent", then "late".

    Args:
        db: Database session
        now: Reference time, defaults to the configured clock

    Returns:
        Dictionary with the number of rows created
    """
    now = now or config_service.now()

    students = [Student(first_name=f"Student{i:02d}", last_name="Demo") for i in range(1, DEMO_STUDENT_COUNT + 1)]
    db.add_all(students)
    db.flush()

    state_rows = 0
    for day, (present, absent, late) in enumerate(DEMO_ROLL_STATES):
        completed_at = now - timedelta(days=len(DEMO_ROLL_STATES) - day)
        roll = Roll(name=f"Roll {completed_at:%Y-%m-%d}", status="completed", completed_at=completed_at)
        db.add(roll)
        db.flush()

        states = [RollState.PRESENT] * present + [RollState.ABSENT] * absent + [RollState.LATE] * late
        for student, state in zip(students, states):
            db.add(StudentRollState(student_id=student.id, roll_id=roll.id, state=state.value))
            state_rows += 1

    for data in DEMO_GROUPS:
        group = Group()
        group.prepare_to_create(data)
        db.add(group)

    db.commit()

    logger.info(f"Seeded {len(students)} students, {len(DEMO_ROLL_STATES)} rolls and {len(DEMO_GROUPS)} groups")
    return {
        "students": len(students),
        "rolls": len(DEMO_ROLL_STATES),
        "student_roll_states": state_rows,
        "groups": len(DEMO_GROUPS),
    }
