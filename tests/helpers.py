"""
Test data helpers shared by the test modules.
"""
from datetime import datetime

from rollgroups.models.attendance import Roll, Student, StudentRollState
from rollgroups.models.group import Group

# Fixed end of window used by most tests
NOW = datetime(2024, 5, 15, 12, 0, 0)


def add_student(db, first_name: str, last_name: str) -> Student:
    student = Student(first_name=first_name, last_name=last_name)
    db.add(student)
    db.commit()
    db.refresh(student)
    return student


def add_roll(db, name: str, completed_at) -> Roll:
    roll = Roll(name=name, completed_at=completed_at, status="completed" if completed_at else "unmarked")
    db.add(roll)
    db.commit()
    db.refresh(roll)
    return roll


def add_states(db, student: Student, roll: Roll, state: str, count: int = 1) -> None:
    for _ in range(count):
        db.add(StudentRollState(student_id=student.id, roll_id=roll.id, state=state))
    db.commit()


def add_group(db, name: str, number_of_weeks: int = 1, roll_states: str = "absent|late",
              incidents: int = 3, ltmt: str = ">") -> Group:
    group = Group(
        name=name,
        number_of_weeks=number_of_weeks,
        roll_states=roll_states,
        incidents=incidents,
        ltmt=ltmt,
    )
    db.add(group)
    db.commit()
    db.refresh(group)
    return group
