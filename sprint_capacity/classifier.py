"""
Sprint Issue Classifier

Derives from raw tracker issues what the planner needs to know: whether an
issue is done, whether it was carried over or added late, how its effort
splits between development and QA, and how much time was logged on it
during the sprint.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Mapping, Optional

from .dates import parse_date, parse_datetime, parse_number, parse_optional_datetime, seconds_to_hours
from .models import (
    DEV_ROLES,
    QA_ROLES,
    ChangeItem,
    ChangelogHistory,
    RawIssue,
    Role,
    SprintWindow,
    WorklogEntry,
)

logger = logging.getLogger(__name__)


# Statuses that count as finished work, compared case-insensitively
DONE_STATUSES = (
    "Done",
    "Deployed Pending Monitoring",
    "Deployed - Monitoring Completed",
    "Not a Bug",
    "Duplicate",
    "Fix Not Needed",
    "Enhancement Completed",
)

_DONE_STATUS_KEYS = frozenset(s.lower() for s in DONE_STATUSES)

SPRINT_FIELD = "Sprint"


class WorkKind(Enum):
    """Which discipline a piece of work belongs to."""
    DEV = "dev"
    QA = "qa"


@dataclass
class ClassifiedIssue:
    """A sprint issue with everything the planner derives from it."""
    key: str
    summary: str
    status: str
    issue_type: str
    assignee_id: Optional[str]
    priority: Optional[str]
    parent_key: Optional[str]
    story_points: Optional[float]
    original_estimate_hours: float
    remaining_estimate_hours: float
    time_spent_hours: float
    dev_estimate_hours: float
    qa_estimate_hours: float
    effective_estimate_hours: float
    work_logged_hours: float
    is_completed: bool = False
    is_subtask: bool = False
    has_subtasks: bool = False
    is_carryover: bool = False
    is_late_addition: bool = False
    due_date: Optional[date] = None
    created: Optional[datetime] = None
    start_date: Optional[date] = None

    @property
    def committed_hours(self) -> float:
        """Remaining estimate plus hours logged during the sprint."""
        return self.remaining_estimate_hours + self.work_logged_hours

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "summary": self.summary,
            "status": self.status,
            "issue_type": self.issue_type,
            "assignee_id": self.assignee_id,
            "priority": self.priority,
            "parent_key": self.parent_key,
            "story_points": self.story_points,
            "original_estimate": self.original_estimate_hours,
            "remaining_estimate": self.remaining_estimate_hours,
            "time_spent": self.time_spent_hours,
            "dev_estimate": self.dev_estimate_hours,
            "qa_estimate": self.qa_estimate_hours,
            "effective_estimate": self.effective_estimate_hours,
            "work_logged": self.work_logged_hours,
            "is_completed": self.is_completed,
            "is_subtask": self.is_subtask,
            "has_subtasks": self.has_subtasks,
            "is_carryover": self.is_carryover,
            "is_late_addition": self.is_late_addition,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "created": self.created.isoformat() if self.created else None,
            "start_date": self.start_date.isoformat() if self.start_date else None,
        }


@dataclass
class SprintTransition:
    """The changelog item that put an issue into the sprint."""
    added_at: datetime
    item: ChangeItem

    @property
    def came_from_other_sprint(self) -> bool:
        return bool(self.item.from_id) and bool(self.item.from_string)


def is_completed_status(status: Optional[str]) -> bool:
    return (status or "").strip().lower() in _DONE_STATUS_KEYS


def _names_sprint(sprint_list: Optional[str], sprint_name: str) -> bool:
    """True if a changelog sprint value ("Sprint 9, Sprint 10") names the sprint."""
    if not sprint_list or not sprint_name:
        return False
    wanted = sprint_name.strip()
    return any(part.strip() == wanted for part in sprint_list.split(","))


def find_sprint_transition(
    changelog: Iterable[ChangelogHistory],
    sprint_name: str,
) -> Optional[SprintTransition]:
    """
    Find the first change that moved the issue into the named sprint.

    Histories and their items are scanned in the order the tracker returned
    them and the first match wins, even when the issue later left and
    re-entered the sprint.
    """
    for history in changelog:
        for item in history.items:
            if item.field == SPRINT_FIELD and item.to_id and _names_sprint(item.to_string, sprint_name):
                added_at = parse_datetime(history.created, "changelog created date")
                return SprintTransition(added_at=added_at, item=item)
    return None


def sprint_membership(
    changelog: Iterable[ChangelogHistory],
    created: Optional[datetime],
    sprint: SprintWindow,
) -> tuple[bool, bool]:
    """
    Decide whether an issue is a carryover or a late addition.

    A late addition entered the sprint after it started. A carryover was
    moved in from another sprint before it started. The two never overlap.

    Returns:
        (is_carryover, is_late_addition)
    """
    transition = find_sprint_transition(changelog, sprint.name)

    if transition is not None:
        if transition.added_at > sprint.start:
            return False, True
        return transition.came_from_other_sprint, False

    if created is not None and created > sprint.start:
        return False, True
    return False, False


def work_kind(summary: Optional[str], assignee_role: Optional[Role]) -> WorkKind:
    """
    Classify a subtask as development or QA work.

    Summary prefix or assignee role decide; development is checked first and
    anything unrecognised counts as development.
    """
    text = (summary or "").strip().lower()
    if text.startswith("dev") or assignee_role in DEV_ROLES:
        return WorkKind.DEV
    if text.startswith("qa") or assignee_role in QA_ROLES:
        return WorkKind.QA
    return WorkKind.DEV


def sprint_logged_hours(worklogs: Iterable[WorklogEntry], sprint: SprintWindow) -> float:
    """
    Hours logged on calendar days inside the sprint.

    Future sprints have no logged work. The issue's lifetime time spent is
    never used here since it spans every sprint the issue has been in.
    """
    if sprint.is_future:
        return 0.0

    start, end = sprint.start_date, sprint.end_date
    total = 0.0
    for worklog in worklogs:
        started = parse_date(worklog.started, "worklog started date")
        if start <= started <= end:
            total += seconds_to_hours(worklog.time_spent_seconds, "worklog timeSpentSeconds")
    return total


def _original_hours(issue: RawIssue) -> float:
    return seconds_to_hours(issue.original_estimate_seconds, f"originalEstimate of {issue.key}")


def split_estimates(
    issue: RawIssue,
    subtasks: list[RawIssue],
    member_roles: Mapping[str, Role],
) -> tuple[float, float]:
    """
    Split an issue's estimate into (dev hours, qa hours).

    A subtask puts its own estimate into its bucket. A parent sums its
    direct subtasks per bucket. A parent without subtasks is not split and
    yields (0, 0).
    """
    if issue.is_subtask_type:
        hours = _original_hours(issue)
        kind = work_kind(issue.summary, member_roles.get(issue.assignee_id or ""))
        return (hours, 0.0) if kind == WorkKind.DEV else (0.0, hours)

    dev = qa = 0.0
    for subtask in subtasks:
        hours = _original_hours(subtask)
        if work_kind(subtask.summary, member_roles.get(subtask.assignee_id or "")) == WorkKind.DEV:
            dev += hours
        else:
            qa += hours
    return dev, qa


def classify_issue(
    issue: RawIssue,
    sprint: SprintWindow,
    member_roles: Mapping[str, Role],
    worklogs: Iterable[WorklogEntry] = (),
    subtasks: Optional[list[RawIssue]] = None,
) -> ClassifiedIssue:
    """
    Classify one issue against the sprint.

    Args:
        issue: Raw tracker issue
        sprint: Validated sprint window (its name identifies sprint changes)
        member_roles: Role of every roster member by account id
        worklogs: Worklogs of this issue
        subtasks: Direct subtasks of this issue found in the sprint

    Raises:
        ValidationError: if a date or number on the issue is malformed
    """
    sprint = sprint.validate()
    subtasks = subtasks or []
    original = _original_hours(issue)
    remaining = seconds_to_hours(issue.remaining_estimate_seconds, f"remainingEstimate of {issue.key}")
    time_spent = seconds_to_hours(issue.time_spent_seconds, f"timeSpent of {issue.key}")
    story_points = None
    if issue.story_points is not None:
        story_points = parse_number(issue.story_points, f"storyPoints of {issue.key}")
    created = parse_optional_datetime(issue.created, f"created date of {issue.key}")

    is_carryover, is_late = sprint_membership(issue.changelog, created, sprint)
    dev, qa = split_estimates(issue, subtasks, member_roles)
    split_total = dev + qa

    return ClassifiedIssue(
        key=issue.key,
        summary=issue.summary,
        status=issue.status,
        issue_type=issue.issue_type,
        assignee_id=issue.assignee_id,
        priority=issue.priority,
        parent_key=issue.parent_key,
        story_points=story_points,
        original_estimate_hours=original,
        remaining_estimate_hours=remaining,
        time_spent_hours=time_spent,
        dev_estimate_hours=dev,
        qa_estimate_hours=qa,
        effective_estimate_hours=split_total if split_total > 0 else original,
        work_logged_hours=sprint_logged_hours(worklogs, sprint),
        is_completed=is_completed_status(issue.status),
        is_subtask=issue.is_subtask_type,
        has_subtasks=bool(subtasks) and not issue.is_subtask_type,
        is_carryover=is_carryover,
        is_late_addition=is_late,
        due_date=issue.due_date,
        created=created,
        start_date=issue.start_date,
    )


def index_subtasks(issues: Iterable[RawIssue]) -> dict[str, list[RawIssue]]:
    """Group subtasks by parent key, keeping their order."""
    by_parent: dict[str, list[RawIssue]] = {}
    for issue in issues:
        if issue.is_subtask_type and issue.parent_key:
            by_parent.setdefault(issue.parent_key, []).append(issue)
    return by_parent


def classify_issues(
    issues: Iterable[RawIssue],
    sprint: SprintWindow,
    member_roles: Mapping[str, Role],
    worklogs_by_issue: Optional[Mapping[str, list[WorklogEntry]]] = None,
    exclude_done: bool = False,
) -> list[ClassifiedIssue]:
    """
    Classify every issue of a sprint.

    Args:
        issues: All issues in the sprint, subtasks included
        sprint: Sprint window
        member_roles: Role of every roster member by account id
        worklogs_by_issue: Worklogs keyed by issue key
        exclude_done: Drop completed issues from the result

    Returns:
        Classified issues in input order
    """
    sprint = sprint.validate()
    issues = list(issues)
    worklogs_by_issue = worklogs_by_issue or {}
    subtasks_by_parent = index_subtasks(issues)

    classified = []
    for issue in issues:
        if exclude_done and is_completed_status(issue.status):
            continue
        classified.append(classify_issue(
            issue,
            sprint,
            member_roles,
            worklogs=worklogs_by_issue.get(issue.key, []),
            subtasks=subtasks_by_parent.get(issue.key),
        ))

    logger.debug("Classified %d issues for sprint %r", len(classified), sprint.name)
    return classified
