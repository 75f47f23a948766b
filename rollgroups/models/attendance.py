"""
Student, roll and roll state models.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, Relationship, SQLModel


class RollState(str, Enum):
    """Attendance state recorded for a student on a roll."""

    UNMARK = "unmark"
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"


class Student(SQLModel, table=True):
    """Student model."""

    __tablename__ = "students"

    id: Optional[int] = Field(default=None, primary_key=True)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    photo_url: Optional[str] = Field(default=None, max_length=500)

    # Relationships
    roll_states: List["StudentRollState"] = Relationship(back_populates="student")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Roll(SQLModel, table=True):
    """One attendance-taking session."""

    __tablename__ = "rolls"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=255)
    schedule_id: Optional[int] = Field(default=None)
    status: str = Field(default="unmarked", max_length=20)  # unmarked, completed
    # Naive UTC, see config_service.now()
    completed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=False), nullable=True, index=True),
    )

    # Relationships
    student_states: List["StudentRollState"] = Relationship(back_populates="roll")


class StudentRollState(SQLModel, table=True):
    """Attendance state of one student on one roll."""

    __tablename__ = "student_roll_states"

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="students.id", index=True)
    roll_id: int = Field(foreign_key="rolls.id", index=True)
    state: str = Field(max_length=20)  # see RollState

    # Relationships
    student: Student = Relationship(back_populates="roll_states")
    roll: Roll = Relationship(back_populates="student_states")
