"""
Celery tasks for group membership recomputation.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from rollgroups.database.session import SessionLocal
from rollgroups.services.config_service import config_service
from rollgroups.services.group_filter_service import STATUS_FAILURE, GroupFilterService, GroupRunOutcome
from worker.celery_app import celery_app

logger = logging.getLogger("worker.group_tasks")


def build_group_filter_service() -> GroupFilterService:
    return GroupFilterService(session_factory=SessionLocal)


@celery_app.task(bind=True, name="groups.run_group_filters")
def run_group_filters(self) -> Dict[str, Any]:
    """
    Recompute membership for every group.

    Returns:
        Dictionary with one outcome per group and a summary
    """
    logger.info("Starting group filter run")

    try:
        outcomes = build_group_filter_service().run_all()
        successful = sum(1 for outcome in outcomes if outcome.succeeded)

        logger.info(f"Group filter run completed: {successful}/{len(outcomes)} groups succeeded")

        return {
            "status": "success",
            "total_groups": len(outcomes),
            "successful_groups": successful,
            "failed_groups": len(outcomes) - successful,
            "results": [outcome.to_dict() for outcome in outcomes],
            "timestamp": config_service.now().isoformat()
        }

    except Exception as e:
        logger.error(f"Error in group filter run: {e}")
        return {
            "status": "failed",
            "error": str(e),
            "timestamp": config_service.now().isoformat()
        }


@celery_app.task(bind=True, name="groups.run_group_filter")
def run_group_filter(self, group_id: int, now: Optional[str] = None) -> Dict[str, Any]:
    """
    Recompute membership for one group.

    Args:
        group_id: Group to recompute
        now: Optional ISO timestamp ending the window

    Returns:
        Outcome dictionary for the group
    """
    logger.info(f"Starting group filter run for group {group_id}")

    try:
        window_end = datetime.fromisoformat(now) if now else None
    except (TypeError, ValueError):
        logger.error(f"Invalid window end for group {group_id}: {now!r}")
        return GroupRunOutcome(
            group_id=group_id,
            status=STATUS_FAILURE,
            error=f"Invalid timestamp: {now!r}",
        ).to_dict()

    return build_group_filter_service().run_group(group_id, now=window_end).to_dict()
