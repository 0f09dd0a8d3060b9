"""
Sprint Capacity Planner

Works out team availability, committed work and utilization for a sprint
from Jira issues and HR time-off data.
"""

__version__ = "1.0.0"

from .errors import (
    CapacityPlannerError,
    ValidationError,
    NotConfiguredError,
    IntegrationError
)

from .models import (
    Role,
    SprintState,
    TeamMember,
    Holiday,
    Leave,
    SprintWindow,
    SprintSettings,
    ChangeItem,
    ChangelogHistory,
    WorklogEntry,
    RawIssue,
    DEFAULT_ROLE_ALLOCATION
)

from .availability import (
    MemberAvailability,
    TeamCapacity,
    working_days_between,
    member_availability,
    team_capacity
)

from .classifier import (
    ClassifiedIssue,
    DONE_STATUSES,
    classify_issue,
    classify_issues,
    find_sprint_transition
)

from .aggregator import (
    MemberWork,
    UNASSIGNED,
    aggregate_work
)

from .planner import (
    MemberPlanningEntry,
    PlanningTotals,
    SprintPlanningReport,
    assemble_planning,
    build_sprint_report
)

from .retro import (
    RetroIssue,
    RetroSummary,
    SprintRetro,
    build_sprint_retro
)

__all__ = [
    # Version
    "__version__",

    # Errors
    "CapacityPlannerError",
    "ValidationError",
    "NotConfiguredError",
    "IntegrationError",

    # Inputs
    "Role",
    "SprintState",
    "TeamMember",
    "Holiday",
    "Leave",
    "SprintWindow",
    "SprintSettings",
    "ChangeItem",
    "ChangelogHistory",
    "WorklogEntry",
    "RawIssue",
    "DEFAULT_ROLE_ALLOCATION",

    # Availability
    "MemberAvailability",
    "TeamCapacity",
    "working_days_between",
    "member_availability",
    "team_capacity",

    # Classifier
    "ClassifiedIssue",
    "DONE_STATUSES",
    "classify_issue",
    "classify_issues",
    "find_sprint_transition",

    # Aggregator
    "MemberWork",
    "UNASSIGNED",
    "aggregate_work",

    # Planner
    "MemberPlanningEntry",
    "PlanningTotals",
    "SprintPlanningReport",
    "assemble_planning",
    "build_sprint_report",

    # Retrospective
    "RetroIssue",
    "RetroSummary",
    "SprintRetro",
    "build_sprint_retro",
]
