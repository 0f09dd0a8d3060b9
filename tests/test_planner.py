"""
Tests for the sprint planning assembler.
"""

import copy
import json
import pytest
from dataclasses import replace
from datetime import datetime, timezone

from sprint_capacity.aggregator import UNASSIGNED
from sprint_capacity.errors import ValidationError
from sprint_capacity.models import RawIssue, SprintSettings, SprintWindow, TeamMember, WorklogEntry
from sprint_capacity.planner import (
    PlanningTotals,
    build_sprint_report,
    parent_commitment,
    utilization_percent,
)


HOUR = 3600


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def sprint_issues() -> list[RawIssue]:
    return [
        RawIssue(key="STORY-1", summary="Checkout", assignee_id="alice", story_points=5),
        RawIssue(key="SUB-1", summary="Dev: api", is_subtask_type=True, parent_key="STORY-1",
                 assignee_id="alice", original_estimate_seconds=8 * HOUR,
                 remaining_estimate_seconds=6 * HOUR, story_points=2),
        RawIssue(key="SUB-2", summary="QA: verify", is_subtask_type=True, parent_key="STORY-1",
                 assignee_id="quinn", original_estimate_seconds=4 * HOUR,
                 remaining_estimate_seconds=4 * HOUR),
        RawIssue(key="TASK-2", summary="Migrate", assignee_id="alice", story_points=3,
                 original_estimate_seconds=6 * HOUR, remaining_estimate_seconds=4 * HOUR),
        RawIssue(key="BUG-3", summary="Crash on login", remaining_estimate_seconds=3 * HOUR,
                 created=utc(2024, 1, 3, 11)),
        RawIssue(key="SAM-4", summary="Release notes", assignee_id="sam",
                 remaining_estimate_seconds=2 * HOUR),
    ]


def sprint_worklogs() -> dict[str, list[WorklogEntry]]:
    return {
        "SUB-1": [WorklogEntry(started=utc(2024, 1, 2, 10), time_spent_seconds=2 * HOUR)],
        "TASK-2": [WorklogEntry(started=utc(2024, 1, 4, 15), time_spent_seconds=2 * HOUR)],
    }


@pytest.fixture
def report(roster, sprint):
    return build_sprint_report(
        members=roster,
        sprint=sprint,
        holidays=[],
        leaves=[],
        issues=sprint_issues(),
        worklogs_by_issue=sprint_worklogs(),
    )


class TestUtilization:
    """Tests for utilization percentages."""

    @pytest.mark.parametrize("committed,allocated,expected", [
        (32, 64, 50),
        (1, 8, 13),
        (3, 8, 38),
        (80, 64, 125),
        (0, 64, 0),
    ])
    def test_rounds_half_up(self, committed, allocated, expected):
        """Test percentages round half up."""
        assert utilization_percent(committed, allocated) == expected

    def test_zero_allocation(self):
        """Test a member with no allocation never divides by zero."""
        assert utilization_percent(2, 0) == 100
        assert utilization_percent(0, 0) == 0


class TestParentCommitment:
    """Tests for the per-parent dev/QA commitment."""

    def test_logged_hours_shared_by_estimate(self, base_issue):
        """Test logged hours split by the dev/QA estimate share."""
        issue = replace(base_issue, has_subtasks=True, dev_estimate_hours=4, qa_estimate_hours=2,
                        work_logged_hours=3)
        assert parent_commitment(issue) == (6, 3)

    def test_late_parent_ignores_logged(self, base_issue):
        """Test a late parent commits only its estimates."""
        issue = replace(base_issue, has_subtasks=True, dev_estimate_hours=4, qa_estimate_hours=2,
                        work_logged_hours=3, is_late_addition=True)
        assert parent_commitment(issue) == (4, 2)

    def test_unestimated_subtasks_log_to_dev(self, base_issue):
        """Test logged hours go to dev when subtasks have no estimate."""
        issue = replace(base_issue, has_subtasks=True, work_logged_hours=2)
        assert parent_commitment(issue) == (2, 0)

    def test_without_subtasks(self, base_issue):
        """Test a lone issue commits remaining plus logged hours."""
        issue = replace(base_issue, remaining_estimate_hours=5, work_logged_hours=1)
        assert parent_commitment(issue) == (6, 0)

    def test_late_without_subtasks_uses_remaining_only(self, base_issue):
        """Test a late lone issue commits its remaining estimate."""
        issue = replace(base_issue, remaining_estimate_hours=5, work_logged_hours=1, is_late_addition=True)
        assert parent_commitment(issue) == (5, 0)


class TestBuildSprintReport:
    """Tests for the end-to-end planning report."""

    def test_member_rows(self, report):
        """Test every roster member gets a row and unassigned work is appended."""
        assert [m.account_id for m in report.members] == ["alice", "quinn", "sam", UNASSIGNED]

        alice = report.get_member("alice")
        assert alice.availability.allocated_hours == 64
        assert alice.committed_hours == 14
        assert alice.remaining_capacity == 50
        assert alice.utilization_percent == 22
        assert not alice.is_overcommitted

        quinn = report.get_member("quinn")
        assert quinn.committed_hours == 4
        assert quinn.utilization_percent == 6

    def test_sprint_head(self, report):
        """Test the Sprint Head has no capacity and reads 100% once given work."""
        sam = report.get_member("sam")

        assert sam.availability.allocated_hours == 0
        assert sam.utilization_percent == 100
        assert sam.is_overcommitted
        assert report.get_overcommitted() == [sam]

    def test_unassigned_row(self, report):
        """Test the unassigned row has work but no capacity."""
        unassigned = report.unassigned

        assert [i.key for i in unassigned.work.issues] == ["BUG-3"]
        assert unassigned.availability is None
        assert unassigned.utilization_percent is None
        assert unassigned.to_dict()["capacity"] is None

    def test_no_unassigned_row_when_empty(self, roster, sprint):
        """Test the unassigned row is left out when empty."""
        report = build_sprint_report(roster, sprint, [], [], [RawIssue(key="A-1", assignee_id="alice")])
        assert report.unassigned is None

    def test_totals_count_parents_once(self, report):
        """Test subtask effort reaches the totals through its parent only."""
        totals = report.totals

        assert totals.total_team_capacity == 128
        assert totals.total_dev_committed == 19
        assert totals.total_qa_committed == 4
        assert totals.total_committed == 23
        assert totals.total_remaining == 105
        assert totals.team_utilization == 18
        assert totals.total_story_points == 8
        assert totals.total_issues == 4

    def test_totals_in_days(self, report):
        """Test totals are also reported in days."""
        result = report.totals.to_dict()

        assert result["total_committed_days"] == 23 / 8
        assert result["total_team_capacity_days"] == 16
        assert result["hours_per_day"] == 8

    def test_deterministic(self, roster, sprint):
        """Test the same inputs always produce the same report."""
        first = build_sprint_report(roster, sprint, [], [], sprint_issues(), sprint_worklogs())
        second = build_sprint_report(roster, sprint, [], [], sprint_issues(), sprint_worklogs())

        assert first.to_dict() == second.to_dict()
        assert json.dumps(first.to_dict(), sort_keys=True) == json.dumps(second.to_dict(), sort_keys=True)

    def test_inputs_not_mutated(self, roster, sprint):
        """Test building a report leaves its inputs untouched."""
        issues = sprint_issues()
        before = copy.deepcopy((roster, sprint, issues))

        build_sprint_report(roster, sprint, [], [], issues, sprint_worklogs())

        assert (roster, sprint, issues) == before

    def test_exclude_done(self, roster, sprint):
        """Test completed issues can be left out of the report."""
        issues = [
            RawIssue(key="A-1", assignee_id="alice", status="Done", remaining_estimate_seconds=HOUR),
            RawIssue(key="A-2", assignee_id="alice", status="In Review", remaining_estimate_seconds=HOUR),
        ]

        report = build_sprint_report(roster, sprint, [], [], issues, exclude_done=True)

        assert [i.key for i in report.get_member("alice").work.issues] == ["A-2"]
        assert report.totals.total_committed == 1

    def test_empty_roster(self, sprint):
        """Test a sprint with nobody on the roster still reports its work."""
        issues = [RawIssue(key="A-1", assignee_id="alice", remaining_estimate_seconds=HOUR)]

        report = build_sprint_report([], sprint, [], [], issues)

        assert [m.account_id for m in report.members] == [UNASSIGNED]
        assert report.totals.total_team_capacity == 0
        assert report.totals.team_utilization == 0
        assert report.totals.total_committed == 1

    def test_settings_flow_through(self, roster, sprint):
        """Test sprint settings reach availability and totals."""
        report = build_sprint_report(roster, sprint, [], [], [], settings=SprintSettings(hours_per_day=6))

        assert report.get_member("alice").availability.allocated_hours == 48
        assert report.totals.hours_per_day == 6

    def test_backwards_sprint(self, roster):
        """Test a sprint ending before it starts is rejected."""
        sprint = SprintWindow(start=utc(2024, 2, 1), end=utc(2024, 1, 1), name="Backwards")
        with pytest.raises(ValidationError):
            build_sprint_report(roster, sprint, [], [], [])

    def test_duplicate_roster_entry(self, roster, sprint):
        """Test a member listed twice fails instead of counting their work twice."""
        issues = [RawIssue(key="A-1", assignee_id="alice", remaining_estimate_seconds=4 * HOUR)]

        with pytest.raises(ValidationError) as exc:
            build_sprint_report(roster + [roster[0]], sprint, [], [], issues)
        assert exc.value.field == "accountId"

    def test_role_names_on_members(self, sprint):
        """Test members built with role names plan like members built with roles."""
        members = [TeamMember(account_id="quinn", display_name="Quinn", role="QA")]

        report = build_sprint_report(members, sprint, [], [], [])

        assert report.get_member("quinn").availability.allocated_hours == 64


class TestPlanningTotals:
    """Tests for PlanningTotals."""

    def test_zero_capacity_utilization(self):
        """Test team utilization with no capacity."""
        totals = PlanningTotals(total_team_capacity=0, total_dev_committed=5)
        assert totals.team_utilization == 0
        assert totals.total_remaining == -5

    def test_zero_hours_per_day(self):
        """Test day conversion with zero hours per day."""
        totals = PlanningTotals(total_team_capacity=10, hours_per_day=0)
        assert totals.to_dict()["total_team_capacity_days"] == 0
