"""
Work Aggregator

Groups classified sprint issues by assignee and totals their hours.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from .classifier import ClassifiedIssue
from .models import TeamMember

UNASSIGNED = "unassigned"


@dataclass
class MemberWork:
    """Work assigned to one member (or to nobody) in a sprint."""
    account_id: str
    display_name: str
    issues: list[ClassifiedIssue] = field(default_factory=list)
    total_estimated_hours: float = 0.0
    total_remaining_hours: float = 0.0
    total_logged_hours: float = 0.0
    total_committed_hours: float = 0.0

    @property
    def issue_count(self) -> int:
        return len(self.issues)

    def add(self, issue: ClassifiedIssue) -> None:
        """Add an issue. Late additions count like any other issue here."""
        self.issues.append(issue)
        self.total_estimated_hours += issue.original_estimate_hours
        self.total_remaining_hours += issue.remaining_estimate_hours
        self.total_logged_hours += issue.work_logged_hours
        self.total_committed_hours += issue.committed_hours

    def to_dict(self) -> dict:
        return {
            "issue_count": self.issue_count,
            "total_estimated_hours": self.total_estimated_hours,
            "total_remaining_hours": self.total_remaining_hours,
            "total_logged_hours": self.total_logged_hours,
            "work_allocated": self.total_committed_hours,
            "issues": [issue.to_dict() for issue in self.issues],
        }


def aggregate_work(
    issues: Iterable[ClassifiedIssue],
    members: Iterable[TeamMember],
) -> dict[str, MemberWork]:
    """
    Bucket issues by assignee.

    There is one bucket per roster member plus an "unassigned" bucket.
    Issues with no assignee, or assigned to someone outside the roster,
    land in "unassigned"; every issue ends up in exactly one bucket.

    Returns:
        Buckets keyed by account id, roster order first, "unassigned" last
    """
    buckets: dict[str, MemberWork] = {
        m.account_id: MemberWork(account_id=m.account_id, display_name=m.display_name)
        for m in members
    }
    buckets[UNASSIGNED] = MemberWork(account_id=UNASSIGNED, display_name="Unassigned")

    for issue in issues:
        buckets[_bucket_key(issue.assignee_id, buckets)].add(issue)

    return buckets


def _bucket_key(assignee_id: Optional[str], buckets: dict[str, MemberWork]) -> str:
    if assignee_id and assignee_id != UNASSIGNED and assignee_id in buckets:
        return assignee_id
    return UNASSIGNED
