"""Exception classes for group recomputation and group management."""

from __future__ import annotations


class GroupFilterError(Exception):
    """Base exception for group filter failures."""

    def __init__(self, message: str, group_id: int | None = None):
        super().__init__(message)
        self.group_id = group_id


class InvalidOperatorError(GroupFilterError):
    """Raised when a group's comparison operator is not a known symbol."""

    def __init__(self, symbol, group_id: int | None = None):
        super().__init__(f"Invalid comparison operator: {symbol!r}", group_id=group_id)
        self.symbol = symbol


class StorageError(GroupFilterError):
    """Raised when reading or writing the database fails for a group."""

    def __init__(self, message: str, group_id: int | None = None):
        super().__init__(f"Storage error: {message}", group_id=group_id)


class GroupNotFoundError(GroupFilterError):
    """Raised when a group id does not exist."""

    def __init__(self, group_id: int):
        super().__init__(f"Group {group_id} not found", group_id=group_id)
