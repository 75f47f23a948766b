"""
Group API routes.
"""

import logging
from typing import Any, Callable, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from rollgroups.database.session import get_session, get_session_factory
from rollgroups.errors import GroupNotFoundError, StorageError
from rollgroups.models.group import Group, GroupCreate, GroupUpdate
from rollgroups.services.group_filter_service import GroupFilterService
from rollgroups.services.group_service import GroupService

logger = logging.getLogger("rollgroups.groups")
router = APIRouter(prefix="/group", tags=["group"])

group_service = GroupService()


def _group_to_dict(group: Group) -> Dict[str, Any]:
    return {
        "id": group.id,
        "name": group.name,
        "number_of_weeks": group.number_of_weeks,
        "roll_states": group.roll_states,
        "incidents": group.incidents,
        "ltmt": group.ltmt,
        "run_at": group.run_at.isoformat() if group.run_at else None,
        "student_count": group.student_count,
    }


@router.get("/get-groups")
async def get_groups(db: Session = Depends(get_session)) -> List[Dict[str, Any]]:
    """Return the list of all groups."""
    return [_group_to_dict(group) for group in group_service.list_groups(db)]


@router.post("/create-group")
async def create_group(data: GroupCreate, db: Session = Depends(get_session)) -> Dict[str, Any]:
    """Add a group."""
    try:
        return _group_to_dict(group_service.create_group(data, db))
    except Exception as e:
        logger.error(f"Error creating group: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/update-group/{group_id}")
async def update_group(group_id: int, data: GroupUpdate, db: Session = Depends(get_session)) -> Dict[str, Any]:
    """Update a group's mutable fields."""
    try:
        return _group_to_dict(group_service.update_group(group_id, data, db))
    except GroupNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating group {group_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/delete-group/{group_id}")
async def delete_group(group_id: int, db: Session = Depends(get_session)) -> Dict[str, Any]:
    """Delete a group and its members."""
    try:
        group_service.delete_group(group_id, db)
        return {"status": "deleted", "group_id": group_id}
    except GroupNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error deleting group {group_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/get-students-from-group")
async def get_students_from_group(db: Session = Depends(get_session)) -> Dict[str, List[Dict[str, str]]]:
    """Return the students of every group, keyed by group name."""
    return group_service.get_group_students(db)


@router.get("/{group_id}/students")
async def get_group_members(group_id: int, db: Session = Depends(get_session)) -> List[Dict[str, Any]]:
    """Return the current members of one group."""
    try:
        group_service.get_group(group_id, db)
    except GroupNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return group_service.list_group_members(group_id, db)


# Recompute endpoints block on the database, so they run in the threadpool
@router.post("/run-group-filters")
def run_group_filters(
    background: bool = False,
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> Dict[str, Any]:
    """
    Recompute every group's membership.

    With ``background=true`` the batch is queued on the worker instead.

    Returns:
        One outcome per group, successes alongside failures
    """
    if background:
        from worker.group_tasks import run_group_filters as run_group_filters_task

        task = run_group_filters_task.delay()
        logger.info(f"Queued group filter run: {task.id}")
        return {"status": "queued", "task_id": task.id}

    try:
        outcomes = GroupFilterService(session_factory=session_factory).run_all()
    except StorageError as e:
        logger.error(f"Error running group filters: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return {"status": "success", "results": [outcome.to_dict() for outcome in outcomes]}


@router.post("/{group_id}/run")
def run_single_group(
    group_id: int,
    db: Session = Depends(get_session),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> Dict[str, Any]:
    """Recompute one group's membership."""
    try:
        group_service.get_group(group_id, db)
    except GroupNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return GroupFilterService(session_factory=session_factory).run_group(group_id).to_dict()
