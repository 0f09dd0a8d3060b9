"""
Sprint Planning Assembler

Joins member availability with assigned work into the sprint planning
report: per-member bandwidth and utilization plus team totals.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from .aggregator import UNASSIGNED, MemberWork, aggregate_work
from .availability import MemberAvailability, TeamCapacity, team_capacity
from .classifier import ClassifiedIssue, classify_issues
from .dates import round_half_up
from .models import Holiday, Leave, RawIssue, Role, SprintSettings, SprintWindow, TeamMember, WorklogEntry

logger = logging.getLogger(__name__)


def utilization_percent(committed_hours: float, allocated_hours: float) -> int:
    """
    Committed hours as a percentage of allocated hours.

    Members with no allocation (a Sprint Head) read 100% once anything is
    assigned to them and 0% otherwise.
    """
    if allocated_hours > 0:
        return round_half_up(committed_hours / allocated_hours * 100)
    return 100 if committed_hours > 0 else 0


@dataclass
class MemberPlanningEntry:
    """One row of the planning report."""
    account_id: str
    display_name: str
    work: MemberWork
    role: Optional[Role] = None
    avatar_url: Optional[str] = None
    availability: Optional[MemberAvailability] = None

    @property
    def is_unassigned(self) -> bool:
        return self.account_id == UNASSIGNED

    @property
    def committed_hours(self) -> float:
        return self.work.total_committed_hours

    @property
    def remaining_capacity(self) -> Optional[float]:
        """Allocated minus committed hours; negative when overcommitted."""
        if self.availability is None:
            return None
        return self.availability.allocated_hours - self.committed_hours

    @property
    def utilization_percent(self) -> Optional[int]:
        if self.availability is None:
            return None
        return utilization_percent(self.committed_hours, self.availability.allocated_hours)

    @property
    def is_overcommitted(self) -> bool:
        return self.remaining_capacity is not None and self.remaining_capacity < 0

    def to_dict(self) -> dict:
        capacity = None
        if self.availability is not None:
            capacity = {
                "work_allocated": self.committed_hours,
                "available_bandwidth": self.remaining_capacity,
                "utilization_percent": self.utilization_percent,
                "is_overcommitted": self.is_overcommitted,
            }

        availability = None
        if self.availability is not None:
            availability = self.availability.to_dict()
            availability["role"] = self.role.value if self.role else None

        return {
            "member": {
                "account_id": self.account_id,
                "display_name": self.display_name,
                "avatar_url": self.avatar_url,
            },
            "availability": availability,
            "work": self.work.to_dict(),
            "capacity": capacity,
        }


@dataclass
class PlanningTotals:
    """Team-wide planning totals."""
    total_team_capacity: float = 0.0
    total_dev_committed: float = 0.0
    total_qa_committed: float = 0.0
    total_story_points: float = 0.0
    total_issues: int = 0
    hours_per_day: float = 8.0

    @property
    def total_committed(self) -> float:
        return self.total_dev_committed + self.total_qa_committed

    @property
    def total_remaining(self) -> float:
        return self.total_team_capacity - self.total_committed

    @property
    def team_utilization(self) -> int:
        if self.total_team_capacity > 0:
            return round_half_up(self.total_committed / self.total_team_capacity * 100)
        return 0

    def _days(self, hours: float) -> float:
        return hours / self.hours_per_day if self.hours_per_day > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            "total_team_capacity": self.total_team_capacity,
            "total_team_capacity_days": self._days(self.total_team_capacity),
            "total_committed": self.total_committed,
            "total_committed_days": self._days(self.total_committed),
            "total_dev_committed": self.total_dev_committed,
            "total_dev_committed_days": self._days(self.total_dev_committed),
            "total_qa_committed": self.total_qa_committed,
            "total_qa_committed_days": self._days(self.total_qa_committed),
            "total_remaining": self.total_remaining,
            "total_remaining_days": self._days(self.total_remaining),
            "total_story_points": self.total_story_points,
            "total_issues": self.total_issues,
            "team_utilization": self.team_utilization,
            "hours_per_day": self.hours_per_day,
        }


@dataclass
class SprintPlanningReport:
    """Everything the dashboard shows for one sprint."""
    sprint: SprintWindow
    members: list[MemberPlanningEntry] = field(default_factory=list)
    totals: PlanningTotals = field(default_factory=PlanningTotals)
    holidays: list[Holiday] = field(default_factory=list)
    settings: SprintSettings = field(default_factory=SprintSettings)

    @property
    def unassigned(self) -> Optional[MemberPlanningEntry]:
        return next((m for m in self.members if m.is_unassigned), None)

    def get_member(self, account_id: str) -> Optional[MemberPlanningEntry]:
        return next((m for m in self.members if m.account_id == account_id), None)

    def get_overcommitted(self) -> list[MemberPlanningEntry]:
        return [m for m in self.members if m.is_overcommitted]

    def to_dict(self) -> dict:
        return {
            "sprint": self.sprint.to_dict(),
            "members": [m.to_dict() for m in self.members],
            "totals": self.totals.to_dict(),
            "holidays": [h.to_dict() for h in self.holidays],
            "sprint_config": self.settings.to_dict(),
        }


def parent_commitment(issue: ClassifiedIssue) -> tuple[float, float]:
    """
    Dev and QA hours a parent issue commits the team to.

    With subtasks the split estimates count, and for issues planned from
    the start the hours logged during the sprint are shared out by estimate
    share (all to dev when there is no estimate). Without subtasks the
    remaining estimate counts, plus logged hours unless the issue came in
    late, all as dev work.
    """
    logged = issue.work_logged_hours
    late = issue.is_late_addition

    if issue.has_subtasks:
        dev, qa = issue.dev_estimate_hours, issue.qa_estimate_hours
        if not late:
            estimate = dev + qa
            if estimate > 0:
                dev, qa = dev + logged * (dev / estimate), qa + logged * (qa / estimate)
            else:
                dev += logged
        return dev, qa

    return issue.remaining_estimate_hours + (0.0 if late else logged), 0.0


def compute_totals(
    entries: Iterable[MemberPlanningEntry],
    total_capacity: float,
    hours_per_day: float,
) -> PlanningTotals:
    """
    Team totals from parent issues only.

    Subtask effort is already inside its parent's dev/QA split, so counting
    subtasks again would double it.
    """
    totals = PlanningTotals(total_team_capacity=total_capacity, hours_per_day=hours_per_day)

    for entry in entries:
        for issue in entry.work.issues:
            if issue.is_subtask:
                continue
            dev, qa = parent_commitment(issue)
            totals.total_dev_committed += dev
            totals.total_qa_committed += qa
            totals.total_story_points += issue.story_points or 0
            totals.total_issues += 1

    return totals


def assemble_planning(
    capacity: TeamCapacity,
    work: Mapping[str, MemberWork],
) -> tuple[list[MemberPlanningEntry], PlanningTotals]:
    """
    Build report rows and totals.

    Every roster member gets a row, including members with zero allocation.
    The unassigned bucket is appended when it holds any issue.
    """
    entries = []
    for item in capacity.members:
        member = item.member
        entries.append(MemberPlanningEntry(
            account_id=member.account_id,
            display_name=member.display_name,
            role=member.role,
            avatar_url=member.avatar_url,
            availability=item.availability,
            work=work.get(member.account_id) or MemberWork(member.account_id, member.display_name),
        ))

    unassigned = work.get(UNASSIGNED)
    if unassigned is not None and unassigned.issues:
        entries.append(MemberPlanningEntry(
            account_id=UNASSIGNED,
            display_name=unassigned.display_name,
            work=unassigned,
        ))

    totals = compute_totals(entries, capacity.total_capacity, capacity.settings.hours_per_day)
    return entries, totals


def build_sprint_report(
    members: Iterable[TeamMember],
    sprint: SprintWindow,
    holidays: Iterable[Holiday],
    leaves: Iterable[Leave],
    issues: Iterable[RawIssue],
    worklogs_by_issue: Optional[Mapping[str, list[WorklogEntry]]] = None,
    settings: Optional[SprintSettings] = None,
    exclude_done: bool = False,
) -> SprintPlanningReport:
    """
    Run the whole planning pipeline for one sprint.

    The result depends only on the arguments; nothing is cached or mutated.

    Example:
        report = build_sprint_report(
            members=roster,
            sprint=SprintWindow(start, end, name="Sprint 12"),
            holidays=holidays,
            leaves=leaves,
            issues=issues,
            worklogs_by_issue=worklogs,
        )

        for row in report.members:
            print(f"{row.display_name}: {row.utilization_percent}%")

    Raises:
        ValidationError: if any date or number in the input is malformed
    """
    members = list(members)
    sprint = sprint.validate()

    capacity = team_capacity(members, sprint, holidays, leaves, settings)
    roles = {m.account_id: m.role for m in members}
    classified = classify_issues(issues, sprint, roles, worklogs_by_issue, exclude_done=exclude_done)
    work = aggregate_work(classified, members)
    entries, totals = assemble_planning(capacity, work)

    logger.debug(
        "Planned sprint %r: %d members, %d issues, %d%% utilization",
        sprint.name, len(members), len(classified), totals.team_utilization,
    )

    return SprintPlanningReport(
        sprint=sprint,
        members=entries,
        totals=totals,
        holidays=capacity.holidays,
        settings=capacity.settings,
    )
