"""
Sprint Retrospective

Looks back at a sprint: what was committed at the start, what got done,
what was added mid-sprint and what is overdue, for the sprint as a whole
and separately for tech stories and production issues.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional

from .classifier import (
    ClassifiedIssue,
    classify_issues,
    find_sprint_transition,
    is_completed_status,
)
from .dates import parse_datetime, round_half_up
from .models import ChangelogHistory, RawIssue, SprintSettings, SprintWindow, TeamMember

logger = logging.getLogger(__name__)


TECH_STORY_TYPES = frozenset({"Story", "Task", "Technical Task"})
PRODUCTION_ISSUE_TYPES = frozenset({"Bug", "Incident", "Production Issue"})

# Tech stories follow the standard workflow; any of these in the status means done
TECH_DONE_KEYWORDS = ("done", "closed", "resolved", "complete")

STATUS_FIELD = "status"


def is_production_issue(issue_type: Optional[str]) -> bool:
    return issue_type in PRODUCTION_ISSUE_TYPES


def is_retro_completed(status: Optional[str], issue_type: Optional[str]) -> bool:
    """
    Whether a status counts as finished for this kind of issue.

    Production issues use the bug workflow's done statuses. Everything else
    counts as done once its status mentions done, closed, resolved or
    complete.
    """
    if is_production_issue(issue_type):
        return is_completed_status(status)
    text = (status or "").strip().lower()
    return any(keyword in text for keyword in TECH_DONE_KEYWORDS)


def find_completion(changelog: Iterable[ChangelogHistory], issue_type: Optional[str]) -> Optional[datetime]:
    """When the issue first moved into a finished status, or None."""
    for history in changelog:
        for item in history.items:
            if item.field == STATUS_FIELD and is_retro_completed(item.to_string, issue_type):
                return parse_datetime(history.created, "changelog created date")
    return None


@dataclass
class RetroIssue:
    """A sprint issue as seen at the retrospective."""
    issue: ClassifiedIssue
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    is_completed_before_sprint: bool = False
    added_to_sprint_at: Optional[datetime] = None
    is_overdue: bool = False

    @property
    def key(self) -> str:
        return self.issue.key

    @property
    def is_subtask(self) -> bool:
        return self.issue.is_subtask

    @property
    def is_late_addition(self) -> bool:
        return self.issue.is_late_addition

    def to_dict(self) -> dict:
        data = self.issue.to_dict()
        data.update({
            "is_completed": self.is_completed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "is_completed_before_sprint": self.is_completed_before_sprint,
            "added_to_sprint_at": self.added_to_sprint_at.isoformat() if self.added_to_sprint_at else None,
            "is_overdue": self.is_overdue,
        })
        return data


@dataclass
class RetroSummary:
    """Commitment and completion counts for a group of parent issues."""
    committed_story_points: float = 0.0
    committed_tickets: int = 0
    total_tickets_at_end: int = 0
    completed_story_points: float = 0.0
    completed_tickets: int = 0
    mid_sprint_additions: int = 0
    overdue_tickets: int = 0
    total_estimated_hours: float = 0.0
    total_logged_hours: float = 0.0

    @property
    def incomplete_tickets(self) -> int:
        return self.total_tickets_at_end - self.completed_tickets

    @property
    def completion_rate(self) -> int:
        if self.total_tickets_at_end > 0:
            return round_half_up(self.completed_tickets / self.total_tickets_at_end * 100)
        return 0

    @classmethod
    def of(cls, issues: Iterable[RetroIssue]) -> "RetroSummary":
        summary = cls()
        for retro in issues:
            points = retro.issue.story_points or 0.0
            summary.total_tickets_at_end += 1
            summary.total_estimated_hours += retro.issue.original_estimate_hours
            summary.total_logged_hours += retro.issue.time_spent_hours
            if retro.is_late_addition:
                summary.mid_sprint_additions += 1
            else:
                summary.committed_tickets += 1
                summary.committed_story_points += points
            if retro.is_completed:
                summary.completed_tickets += 1
                summary.completed_story_points += points
            if retro.is_overdue:
                summary.overdue_tickets += 1
        return summary

    def to_dict(self) -> dict:
        return {
            "committed_story_points": self.committed_story_points,
            "committed_tickets": self.committed_tickets,
            "total_tickets_at_end": self.total_tickets_at_end,
            "completed_story_points": self.completed_story_points,
            "completed_tickets": self.completed_tickets,
            "incomplete_tickets": self.incomplete_tickets,
            "mid_sprint_additions": self.mid_sprint_additions,
            "overdue_tickets": self.overdue_tickets,
            "completion_rate": self.completion_rate,
            "total_estimated_hours": self.total_estimated_hours,
            "total_logged_hours": self.total_logged_hours,
        }


@dataclass
class SprintRetro:
    """Retrospective of one sprint."""
    sprint: SprintWindow
    issues: list[RetroIssue] = field(default_factory=list)
    settings: SprintSettings = field(default_factory=SprintSettings)

    @property
    def parent_issues(self) -> list[RetroIssue]:
        return [i for i in self.issues if not i.is_subtask]

    @property
    def tech_stories(self) -> list[RetroIssue]:
        return [i for i in self.parent_issues if i.issue.issue_type in TECH_STORY_TYPES]

    @property
    def production_issues(self) -> list[RetroIssue]:
        return [i for i in self.parent_issues if is_production_issue(i.issue.issue_type)]

    @property
    def subtasks_by_parent(self) -> dict[str, list[RetroIssue]]:
        by_parent: dict[str, list[RetroIssue]] = {}
        for retro in self.issues:
            if retro.is_subtask and retro.issue.parent_key:
                by_parent.setdefault(retro.issue.parent_key, []).append(retro)
        return by_parent

    @property
    def summary(self) -> RetroSummary:
        """Totals over parent issues; subtasks are never counted."""
        return RetroSummary.of(self.parent_issues)

    def to_dict(self) -> dict:
        summary = self.summary.to_dict()
        summary["tech_stories"] = RetroSummary.of(self.tech_stories).to_dict()
        summary["production_issues"] = RetroSummary.of(self.production_issues).to_dict()
        return {
            "sprint": self.sprint.to_dict(),
            "issues": [i.to_dict() for i in self.issues],
            "tech_stories": [i.to_dict() for i in self.tech_stories],
            "production_issues": [i.to_dict() for i in self.production_issues],
            "subtasks_by_parent": {
                key: [i.to_dict() for i in subtasks] for key, subtasks in self.subtasks_by_parent.items()
            },
            "summary": summary,
            "hours_per_day": self.settings.hours_per_day,
        }


def retro_issue(raw: RawIssue, classified: ClassifiedIssue, sprint: SprintWindow, today: date) -> RetroIssue:
    """Add completion, sprint entry and overdue details to a classified issue."""
    completed = is_retro_completed(classified.status, classified.issue_type)

    completed_at = None
    if completed:
        completed_at = find_completion(raw.changelog, classified.issue_type)

    transition = find_sprint_transition(raw.changelog, sprint.name)
    if transition is not None:
        added_at = transition.added_at
    elif classified.is_late_addition:
        added_at = classified.created
    else:
        added_at = None

    return RetroIssue(
        issue=classified,
        is_completed=completed,
        completed_at=completed_at,
        is_completed_before_sprint=completed_at is not None and completed_at < sprint.start,
        added_to_sprint_at=added_at,
        is_overdue=not completed and classified.due_date is not None and classified.due_date < today,
    )


def build_sprint_retro(
    members: Iterable[TeamMember],
    sprint: SprintWindow,
    issues: Iterable[RawIssue],
    settings: Optional[SprintSettings] = None,
    today: Optional[date] = None,
) -> SprintRetro:
    """
    Build the retrospective of a sprint.

    Args:
        members: Roster (roles decide how subtask estimates split)
        sprint: Sprint window
        issues: All issues in the sprint, subtasks included
        settings: Sprint settings (hours per day is passed through)
        today: Day overdue is measured against; defaults to today

    Raises:
        ValidationError: if any date or number in the input is malformed
    """
    sprint = sprint.validate()
    settings = (settings or SprintSettings()).validate()
    today = today or date.today()
    issues = list(issues)

    roles = {m.account_id: m.role for m in members}
    classified = classify_issues(issues, sprint, roles)
    retro_issues = [
        retro_issue(raw, issue, sprint, today)
        for raw, issue in zip(issues, classified)
    ]

    retro = SprintRetro(sprint=sprint, issues=retro_issues, settings=settings)
    logger.debug(
        "Retro for sprint %r: %d issues, %d tech stories, %d production issues",
        sprint.name, len(retro_issues), len(retro.tech_stories), len(retro.production_issues),
    )
    return retro
