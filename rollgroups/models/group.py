"""
Group models: filter definitions, their members and the input schemas.
"""

import operator
from datetime import datetime
from enum import Enum
from typing import List, Optional, Set

from pydantic import field_validator
from sqlalchemy import Column, DateTime
from sqlmodel import Field, Relationship, SQLModel

from rollgroups.errors import InvalidOperatorError
from rollgroups.models.attendance import RollState, Student

ROLL_STATES_DELIMITER = "|"


class Comparator(str, Enum):
    """Operator applied as ``incident_count <op> incidents``."""

    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    EQ = "="

    @classmethod
    def parse(cls, symbol) -> "Comparator":
        if isinstance(symbol, cls):
            return symbol
        try:
            return cls(str(symbol).strip())
        except ValueError:
            raise InvalidOperatorError(symbol) from None

    def compare(self, count, threshold):
        """
        Apply the operator.

        Works on plain integers and on SQLAlchemy column expressions, where it
        returns the SQL condition instead of a bool.
        """
        return _COMPARATOR_FUNCS[self](count, threshold)


_COMPARATOR_FUNCS = {
    Comparator.LT: operator.lt,
    Comparator.LTE: operator.le,
    Comparator.GT: operator.gt,
    Comparator.GTE: operator.ge,
    Comparator.EQ: operator.eq,
}


def parse_roll_states(value: Optional[str]) -> Set[str]:
    """Split a stored ``absent|late`` value into a set of trimmed tags."""
    if not value:
        return set()
    return {part.strip() for part in value.split(ROLL_STATES_DELIMITER) if part.strip()}


def normalize_roll_states(value: str) -> str:
    """Validate roll state tags and return them in canonical ``a|b`` form."""
    known = {state.value for state in RollState}
    tags: List[str] = []
    for part in value.split(ROLL_STATES_DELIMITER):
        tag = part.strip().lower()
        if not tag:
            continue
        if tag not in known:
            raise ValueError(f"Unknown roll state '{tag}', expected one of {sorted(known)}")
        if tag not in tags:
            tags.append(tag)
    if not tags:
        raise ValueError("At least one roll state is required")
    return ROLL_STATES_DELIMITER.join(tags)


class GroupCreate(SQLModel):
    """Validated field set for a new group."""

    name: str = Field(min_length=1, max_length=255)
    number_of_weeks: int = Field(gt=0)
    roll_states: str = Field(min_length=1, max_length=255)
    incidents: int = Field(ge=0)
    ltmt: Comparator

    @field_validator("roll_states")
    @classmethod
    def validate_roll_states(cls, value: str) -> str:
        return normalize_roll_states(value)


class GroupUpdate(SQLModel):
    """Mutable group fields. ``run_at`` and ``student_count`` are not editable."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    number_of_weeks: Optional[int] = Field(default=None, gt=0)
    roll_states: Optional[str] = Field(default=None, min_length=1, max_length=255)
    incidents: Optional[int] = Field(default=None, ge=0)
    ltmt: Optional[Comparator] = None

    @field_validator("roll_states")
    @classmethod
    def validate_roll_states(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return normalize_roll_states(value)


class Group(SQLModel, table=True):
    """Saved attendance filter plus a summary of its last computed membership."""

    __tablename__ = "student_groups"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=255)
    number_of_weeks: int = Field()
    roll_states: str = Field(max_length=255)  # "absent|late"
    incidents: int = Field()
    ltmt: str = Field(max_length=2)  # see Comparator
    run_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=False), nullable=True))
    student_count: int = Field(default=0)

    # Relationships
    members: List["GroupStudent"] = Relationship(back_populates="group")

    def prepare_to_create(self, data: GroupCreate) -> None:
        for key, value in data.model_dump(mode="json").items():
            setattr(self, key, value)
        self.run_at = None
        self.student_count = 0

    def prepare_to_update(self, data: GroupUpdate) -> None:
        for key, value in data.model_dump(mode="json", exclude_unset=True).items():
            if value is None:
                continue
            setattr(self, key, value)


class GroupStudent(SQLModel, table=True):
    """Membership row, recreated on every recomputation of its group."""

    __tablename__ = "group_students"

    id: Optional[int] = Field(default=None, primary_key=True)
    group_id: int = Field(foreign_key="student_groups.id", index=True)
    student_id: int = Field(foreign_key="students.id", index=True)
    incident_count: int = Field()

    # Relationships
    group: Group = Relationship(back_populates="members")
    student: Student = Relationship()
