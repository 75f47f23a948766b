"""
Group filter service: recomputes group membership from attendance incidents.
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rollgroups.database.session import SessionLocal, get_db_session
from rollgroups.errors import GroupFilterError, GroupNotFoundError, StorageError
from rollgroups.models.group import Comparator, Group, parse_roll_states
from rollgroups.services.config_service import config_service, to_naive_utc
from rollgroups.services.incident_service import IncidentService
from rollgroups.services.membership_service import MembershipService
from rollgroups.services.roll_window_service import RollWindowService

logger = logging.getLogger("rollgroups.group_filter")

STATUS_SUCCESS = "success"
STATUS_FAILURE = "failure"


@dataclass(frozen=True)
class GroupFilterConfig:
    """Snapshot of the group fields a recomputation needs."""

    group_id: int
    number_of_weeks: int
    roll_states: str
    incidents: int
    ltmt: str


@dataclass
class GroupRunOutcome:
    """Result of recomputing one group."""

    group_id: int
    status: str
    error: Optional[str] = None
    rolls_processed: int = 0
    student_count: Optional[int] = None
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class GroupFilterService:
    """
    Service for running every group's filter.

    Each group is recomputed on its own worker thread with its own session.
    Failures are captured per group, so the batch always returns one outcome
    for every group loaded.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        max_workers: Optional[int] = None,
        window_service: Optional[RollWindowService] = None,
        incident_service: Optional[IncidentService] = None,
        membership_service: Optional[MembershipService] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory or SessionLocal
        self.max_workers = max_workers or config_service.group_filter_max_workers
        self.window_service = window_service or RollWindowService()
        self.incident_service = incident_service or IncidentService()
        self.membership_service = membership_service or MembershipService()
        self.clock = clock or config_service.now
        self.logger = logger

    def load_groups(self, db: Session, group_id: Optional[int] = None) -> List[GroupFilterConfig]:
        """
        Load filter configuration for all groups, or one group.

        Args:
            db: Database session
            group_id: Restrict to a single group

        Returns:
            List of group snapshots ordered by id
        """
        query = db.query(Group.id, Group.number_of_weeks, Group.roll_states, Group.incidents, Group.ltmt)
        if group_id is not None:
            query = query.filter(Group.id == group_id)

        return [
            GroupFilterConfig(
                group_id=row.id,
                number_of_weeks=row.number_of_weeks,
                roll_states=row.roll_states,
                incidents=row.incidents,
                ltmt=row.ltmt,
            )
            for row in query.order_by(Group.id).all()
        ]

    def run_all(self, now: Optional[datetime] = None) -> List[GroupRunOutcome]:
        """
        Recompute every group concurrently and wait for all of them to settle.

        Args:
            now: End of every group's window, defaults to the configured clock

        Returns:
            One outcome per group, in group id order

        Raises:
            StorageError: If the group list itself cannot be loaded
        """
        now = to_naive_utc(now) if now is not None else config_service.now()

        try:
            with get_db_session(self.session_factory) as db:
                groups = self.load_groups(db)
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to load groups: {e}")
            raise StorageError(str(e)) from e

        if not groups:
            self.logger.info("No groups to run")
            return []

        workers = min(self.max_workers, len(groups))
        self.logger.info(f"Running filters for {len(groups)} groups with {workers} workers")

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="group-filter") as executor:
            futures = [(group, executor.submit(self._run_group, group, now)) for group in groups]
            outcomes = [self._settle(group, future) for group, future in futures]

        failed = sum(1 for outcome in outcomes if not outcome.succeeded)
        self.logger.info(f"Group filters completed: {len(outcomes) - failed} succeeded, {failed} failed")
        return outcomes

    def run_group(self, group_id: int, now: Optional[datetime] = None) -> GroupRunOutcome:
        """
        Recompute a single group.

        Args:
            group_id: Group id
            now: End of the window, defaults to the configured clock

        Returns:
            Outcome for the group; a missing group is reported as a failure
        """
        now = to_naive_utc(now) if now is not None else config_service.now()

        try:
            with get_db_session(self.session_factory) as db:
                groups = self.load_groups(db, group_id=group_id)
        except SQLAlchemyError as e:
            return self._failure(group_id, StorageError(str(e), group_id=group_id))

        if not groups:
            return self._failure(group_id, GroupNotFoundError(group_id))

        return self._run_group(groups[0], now)

    def recompute(self, group: GroupFilterConfig, db: Session, now: datetime) -> GroupRunOutcome:
        """
        Select the window's rolls, aggregate incidents and replace membership.

        When the window holds no rolls the membership is left as it is.
        ``now`` only bounds the window; ``run_at`` comes from the service clock.
        """
        comparator = Comparator.parse(group.ltmt)
        states = parse_roll_states(group.roll_states)

        roll_ids = self.window_service.select_rolls_in_window(group.number_of_weeks, db, now=now)
        if not roll_ids:
            self.logger.info(f"No rolls found for group {group.group_id} in the last {group.number_of_weeks} weeks")
            return GroupRunOutcome(
                group_id=group.group_id,
                status=STATUS_SUCCESS,
                rolls_processed=0,
                message="no rolls found",
            )

        members = self.incident_service.aggregate(roll_ids, states, comparator, group.incidents, db)
        student_count = self.membership_service.replace_membership(group.group_id, members, db, now=self.clock())

        return GroupRunOutcome(
            group_id=group.group_id,
            status=STATUS_SUCCESS,
            rolls_processed=len(roll_ids),
            student_count=student_count,
            message=f"{student_count} students matched",
        )

    def _run_group(self, group: GroupFilterConfig, now: datetime) -> GroupRunOutcome:
        db = self.session_factory()
        try:
            outcome = self.recompute(group, db, now)
            self.logger.info(f"Group {group.group_id} recomputed: {outcome.message}")
            return outcome
        except GroupFilterError as e:
            db.rollback()
            return self._failure(group.group_id, e)
        except SQLAlchemyError as e:
            db.rollback()
            return self._failure(group.group_id, StorageError(str(e), group_id=group.group_id))
        except Exception as e:
            db.rollback()
            return self._failure(group.group_id, e)
        finally:
            db.close()

    def _settle(self, group: GroupFilterConfig, future: Future) -> GroupRunOutcome:
        try:
            return future.result()
        except Exception as e:
            return self._failure(group.group_id, e)

    def _failure(self, group_id: int, error: Exception) -> GroupRunOutcome:
        self.logger.error(f"Group {group_id} failed: {error}")
        return GroupRunOutcome(group_id=group_id, status=STATUS_FAILURE, error=str(error))
