"""
Tests for running group filters across all groups.
"""
from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.exc import OperationalError

from helpers import NOW, add_group
from rollgroups.models.group import Group, GroupStudent
from rollgroups.services.config_service import config_service
from rollgroups.services.group_filter_service import STATUS_FAILURE, STATUS_SUCCESS, GroupFilterService
from rollgroups.services.incident_service import MemberIncidents
from rollgroups.services.membership_service import MembershipService
from rollgroups.services.roll_window_service import RollWindowService


def member_ids(db, group_id):
    db.expire_all()
    return [
        row.student_id
        for row in db.query(GroupStudent).filter(GroupStudent.group_id == group_id).order_by(GroupStudent.student_id)
    ]


class FailingMembershipService(MembershipService):
    """Raises a database error for one group."""

    def __init__(self, failing_group_id):
        self.failing_group_id = failing_group_id

    def replace_membership(self, group_id, members, db, now=None):
        if group_id == self.failing_group_id:
            raise OperationalError("INSERT INTO group_students", {}, Exception("disk I/O error"))
        return super().replace_membership(group_id, members, db, now=now)


class ExplodingWindowService(RollWindowService):
    """Raises an unexpected error for one group's window size."""

    def select_rolls_in_window(self, weeks, db, now=None):
        if weeks == 13:
            raise RuntimeError("unexpected failure")
        return super().select_rolls_in_window(weeks, db, now=now)


class TestGroupFilterService:
    """Test GroupFilterService."""

    def test_run_all_absent_or_late_scenario(self, db_session, session_factory, sample_students, sample_rolls):
        """Absent|late > 3 over one week picks S with 5 incidents and leaves out T."""
        group = add_group(db_session, "Chronic", number_of_weeks=1, roll_states="absent|late", incidents=3, ltmt=">")

        run_at = NOW + timedelta(hours=3)
        service = GroupFilterService(session_factory=session_factory, clock=lambda: run_at)
        outcomes = service.run_all(now=NOW)

        assert len(outcomes) == 1
        outcome = outcomes[0]
        assert outcome.group_id == group.id
        assert outcome.status == STATUS_SUCCESS
        assert outcome.error is None
        assert outcome.rolls_processed == 2
        assert outcome.student_count == 1

        assert member_ids(db_session, group.id) == [sample_students["S"].id]
        incident_count = db_session.query(GroupStudent.incident_count).filter(GroupStudent.group_id == group.id).scalar()
        assert incident_count == 5

        refreshed = db_session.get(Group, group.id)
        assert refreshed.student_count == 1
        assert refreshed.run_at == run_at

    def test_invalid_operator_fails_only_its_group(self, db_session, session_factory, sample_students, sample_rolls):
        """A bad operator produces one failure while other groups succeed."""
        good_before = add_group(db_session, "Good before", ltmt=">")
        broken = add_group(db_session, "Broken", ltmt="!=")
        good_after = add_group(db_session, "Good after", roll_states="absent", incidents=2, ltmt=">=")

        outcomes = GroupFilterService(session_factory=session_factory, max_workers=3).run_all(now=NOW)

        by_group = {outcome.group_id: outcome for outcome in outcomes}
        assert [outcome.group_id for outcome in outcomes] == [good_before.id, broken.id, good_after.id]
        assert by_group[good_before.id].status == STATUS_SUCCESS
        assert by_group[broken.id].status == STATUS_FAILURE
        assert "!=" in by_group[broken.id].error
        assert by_group[good_after.id].status == STATUS_SUCCESS

        assert member_ids(db_session, good_before.id) == [sample_students["S"].id]
        assert member_ids(db_session, good_after.id) == [sample_students["S"].id, sample_students["T"].id]
        assert member_ids(db_session, broken.id) == []
        assert db_session.get(Group, broken.id).run_at is None

    def test_student_count_matches_membership_rows(self, db_session, session_factory, sample_students, sample_rolls):
        """Every group's cached count equals its membership rows after a run."""
        add_group(db_session, "Absent or late", roll_states="absent|late", incidents=0, ltmt=">")
        add_group(db_session, "Present", roll_states="present", incidents=2, ltmt="=")
        add_group(db_session, "Three weeks", number_of_weeks=3, roll_states="absent", incidents=5, ltmt=">")
        add_group(db_session, "Nobody", roll_states="late", incidents=10, ltmt=">=")

        outcomes = GroupFilterService(session_factory=session_factory, max_workers=4).run_all(now=NOW)

        assert all(outcome.status == STATUS_SUCCESS for outcome in outcomes)
        db_session.expire_all()
        for outcome in outcomes:
            rows = db_session.query(func.count(GroupStudent.id)).filter(GroupStudent.group_id == outcome.group_id).scalar()
            group = db_session.get(Group, outcome.group_id)
            assert group.student_count == rows == outcome.student_count

        three_weeks = next(group for group in db_session.query(Group).all() if group.name == "Three weeks")
        assert member_ids(db_session, three_weeks.id) == [sample_students["T"].id]

    def test_empty_window_leaves_membership_untouched(self, db_session, session_factory, sample_students, sample_rolls):
        """With no rolls in the window the previous members stay and the run succeeds."""
        group = add_group(db_session, "Chronic")
        MembershipService().replace_membership(
            group.id, [MemberIncidents(student_id=sample_students["T"].id, incident_count=7)], db_session, now=NOW
        )

        later = NOW + timedelta(days=90)
        outcomes = GroupFilterService(session_factory=session_factory).run_all(now=later)

        assert outcomes[0].status == STATUS_SUCCESS
        assert outcomes[0].rolls_processed == 0
        assert outcomes[0].student_count is None
        assert outcomes[0].message == "no rolls found"
        assert member_ids(db_session, group.id) == [sample_students["T"].id]
        refreshed = db_session.get(Group, group.id)
        assert refreshed.run_at == NOW
        assert refreshed.student_count == 1

    def test_storage_error_is_contained(self, db_session, session_factory, sample_students, sample_rolls):
        """A database failure in one group is reported, the others still run."""
        first = add_group(db_session, "First")
        second = add_group(db_session, "Second")

        service = GroupFilterService(
            session_factory=session_factory,
            membership_service=FailingMembershipService(first.id),
        )
        outcomes = service.run_all(now=NOW)

        assert [outcome.status for outcome in outcomes] == [STATUS_FAILURE, STATUS_SUCCESS]
        assert "Storage error" in outcomes[0].error
        assert member_ids(db_session, second.id) == [sample_students["S"].id]

    def test_unexpected_error_is_contained(self, db_session, session_factory, sample_students, sample_rolls):
        """Any exception inside a group's task becomes a failure outcome."""
        add_group(db_session, "Quarter", number_of_weeks=13)
        fine = add_group(db_session, "Week")

        service = GroupFilterService(session_factory=session_factory, window_service=ExplodingWindowService())
        outcomes = service.run_all(now=NOW)

        assert outcomes[0].status == STATUS_FAILURE
        assert outcomes[0].error == "unexpected failure"
        assert outcomes[1].group_id == fine.id
        assert outcomes[1].status == STATUS_SUCCESS

    def test_run_all_without_groups(self, session_factory):
        """No groups yields no outcomes."""
        assert GroupFilterService(session_factory=session_factory).run_all(now=NOW) == []

    def test_run_group(self, db_session, session_factory, sample_students, sample_rolls):
        """A single group can be recomputed on its own."""
        target = add_group(db_session, "Target")
        other = add_group(db_session, "Other")

        outcome = GroupFilterService(session_factory=session_factory).run_group(target.id, now=NOW)

        assert outcome.status == STATUS_SUCCESS
        assert member_ids(db_session, target.id) == [sample_students["S"].id]
        assert member_ids(db_session, other.id) == []

    def test_past_window_does_not_backdate_run_at(self, db_session, session_factory, sample_students, sample_rolls):
        """A run over an earlier window still stamps run_at with the current time."""
        group = add_group(db_session, "Target", number_of_weeks=3, roll_states="absent", incidents=4, ltmt=">")
        window_end = NOW - timedelta(days=10)

        outcome = GroupFilterService(session_factory=session_factory, clock=lambda: NOW).run_group(
            group.id, now=window_end
        )

        assert outcome.status == STATUS_SUCCESS
        assert outcome.rolls_processed == 1
        assert member_ids(db_session, group.id) == [sample_students["T"].id]
        assert db_session.get(Group, group.id).run_at == NOW

    def test_run_all_with_default_clock(self, db_session, session_factory, sample_students, sample_rolls):
        """End to end with the real clock: timestamps bind and read back as naive UTC."""
        group = add_group(db_session, "Chronic")
        before = config_service.now()

        outcomes = GroupFilterService(session_factory=session_factory).run_all(now=NOW)

        assert [outcome.status for outcome in outcomes] == [STATUS_SUCCESS]
        assert outcomes[0].error is None
        db_session.expire_all()
        run_at = db_session.get(Group, group.id).run_at
        assert run_at.tzinfo is None
        assert run_at >= before.replace(microsecond=0)

    def test_run_group_not_found(self, session_factory):
        """Running an unknown group reports a failure."""
        outcome = GroupFilterService(session_factory=session_factory).run_group(555, now=NOW)

        assert outcome.status == STATUS_FAILURE
        assert "not found" in outcome.error

    def test_outcome_to_dict(self, db_session, session_factory, sample_rolls):
        """Outcomes serialize to plain dictionaries."""
        group = add_group(db_session, "Chronic")

        outcome = GroupFilterService(session_factory=session_factory).run_all(now=NOW)[0]

        assert outcome.to_dict() == {
            "group_id": group.id,
            "status": "success",
            "error": None,
            "rolls_processed": 2,
            "student_count": 1,
            "message": "1 students matched",
        }
