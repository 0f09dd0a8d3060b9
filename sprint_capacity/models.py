"""
Input records for the planning engine.

These are the shapes the roster store, the HR system and the issue tracker
hand to the engine. Optional external fields are resolved to explicit
defaults here, at the boundary, so the engine never has to guess.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Optional

from .dates import parse_date, parse_datetime, parse_number
from .errors import ValidationError


class Role(Enum):
    """Team member roles."""
    DEVELOPER = "Developer"
    QA = "QA"
    DEV_LEAD = "Dev Lead"
    QA_LEAD = "QA Lead"
    SPRINT_HEAD = "Sprint Head"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Role":
        """Parse a role name. Blank means Developer; "DevLead" == "Dev Lead"."""
        if isinstance(value, Role):
            return value
        if value is None or not str(value).strip():
            return cls.DEVELOPER

        wanted = str(value).replace(" ", "").replace("_", "").lower()
        for role in cls:
            if role.value.replace(" ", "").lower() == wanted:
                return role
        raise ValidationError(f"Unknown role: {value!r}", "role")


# Share of a member's available hours that counts toward sprint capacity
DEFAULT_ROLE_ALLOCATION: dict[Role, float] = {
    Role.DEVELOPER: 1.0,
    Role.QA: 1.0,
    Role.DEV_LEAD: 0.5,
    Role.QA_LEAD: 0.5,
    Role.SPRINT_HEAD: 0.0,
}

DEV_ROLES = frozenset({Role.DEVELOPER, Role.DEV_LEAD})
QA_ROLES = frozenset({Role.QA, Role.QA_LEAD})


class SprintState(Enum):
    """Sprint lifecycle state as reported by the tracker."""
    FUTURE = "future"
    ACTIVE = "active"
    CLOSED = "closed"

    @classmethod
    def parse(cls, value) -> "SprintState":
        if isinstance(value, SprintState):
            return value
        try:
            return cls(str(value or "active").lower())
        except ValueError:
            raise ValidationError(f"Unknown sprint state: {value!r}", "state") from None


@dataclass
class TeamMember:
    """A roster entry."""
    account_id: str
    display_name: str
    role: Role = Role.DEVELOPER
    role_allocation: Optional[float] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    board_ids: list[int] = field(default_factory=list)

    def __post_init__(self):
        self.role = Role.parse(self.role)

    @property
    def allocation(self) -> float:
        """Explicit allocation, or the default for the member's role."""
        if self.role_allocation is None:
            return DEFAULT_ROLE_ALLOCATION[self.role]
        allocation = parse_number(self.role_allocation, f"roleAllocation of {self.account_id}")
        if not 0.0 <= allocation <= 1.0:
            raise ValidationError(
                f"roleAllocation of {self.account_id} must be between 0 and 1, got {allocation}",
                "roleAllocation",
            )
        return allocation

    def works_on_board(self, board_id: Optional[int]) -> bool:
        """Members without board assignments belong to every board."""
        if board_id is None or not self.board_ids:
            return True
        return board_id in self.board_ids

    @classmethod
    def from_dict(cls, data: dict) -> "TeamMember":
        account_id = data.get("accountId")
        if not account_id:
            raise ValidationError("Team member is missing accountId", "accountId")

        allocation = data.get("roleAllocation")
        return cls(
            account_id=account_id,
            display_name=data.get("displayName") or account_id,
            role=Role.parse(data.get("role")),
            role_allocation=None if allocation is None else parse_number(allocation, "roleAllocation"),
            email=data.get("email") or data.get("emailAddress"),
            avatar_url=data.get("avatarUrl"),
            board_ids=[int(b["boardId"]) for b in data.get("boardAssignments") or [] if "boardId" in b],
        )

    def to_dict(self) -> dict:
        return {
            "accountId": self.account_id,
            "displayName": self.display_name,
            "role": self.role.value,
            "roleAllocation": self.role_allocation,
            "email": self.email,
            "avatarUrl": self.avatar_url,
            "boardAssignments": [{"boardId": b} for b in self.board_ids],
        }


@dataclass
class Holiday:
    """A company holiday."""
    id: str
    name: str
    date: date

    @classmethod
    def from_dict(cls, data: dict) -> "Holiday":
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name") or "Holiday",
            date=parse_date(data.get("date"), "holiday date"),
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "date": self.date.isoformat()}


@dataclass
class Leave:
    """A leave period for one team member (both ends inclusive)."""
    id: str
    account_id: str
    start_date: date
    end_date: date
    is_half_day: bool = False
    is_unplanned: bool = False
    reason: Optional[str] = None

    def overlaps(self, start: date, end: date) -> bool:
        return not (self.end_date < start or self.start_date > end)

    @classmethod
    def from_dict(cls, data: dict) -> "Leave":
        start = parse_date(data.get("startDate"), "leave startDate")
        end = parse_date(data.get("endDate") or data.get("startDate"), "leave endDate")
        if end < start:
            raise ValidationError("leave end date is before start date", "endDate")

        return cls(
            id=str(data.get("id", "")),
            account_id=data.get("accountId") or "",
            start_date=start,
            end_date=end,
            is_half_day=bool(data.get("isHalfDay", False)),
            is_unplanned=bool(data.get("isUnplanned", False)),
            reason=data.get("reason"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "accountId": self.account_id,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "isHalfDay": self.is_half_day,
            "isUnplanned": self.is_unplanned,
            "reason": self.reason,
        }


@dataclass
class SprintWindow:
    """The sprint being planned."""
    start: datetime
    end: datetime
    state: SprintState = SprintState.ACTIVE
    name: str = ""
    id: Optional[int] = None
    configured_working_days: Optional[int] = None

    @property
    def start_date(self) -> date:
        return self.start.date()

    @property
    def end_date(self) -> date:
        return self.end.date()

    @property
    def is_future(self) -> bool:
        return self.state == SprintState.FUTURE

    def validate(self) -> "SprintWindow":
        """
        Return a copy with dates normalised to aware datetimes.

        Raises:
            ValidationError: on missing dates or an end before the start
        """
        start = parse_datetime(self.start, "sprint start date")
        end = parse_datetime(self.end, "sprint end date")
        if end < start:
            raise ValidationError("sprint end date is before start date", "endDate")

        working_days = self.configured_working_days
        if working_days is not None:
            days = parse_number(working_days, "configured working days")
            if days < 0 or days != int(days):
                raise ValidationError(
                    f"configured working days must be a non-negative whole number, got {days}",
                    "configuredWorkingDays",
                )
            working_days = int(days)

        return replace(
            self,
            start=start,
            end=end,
            state=SprintState.parse(self.state),
            configured_working_days=working_days,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "state": self.state.value,
            "start_date": self.start.isoformat(),
            "end_date": self.end.isoformat(),
        }


@dataclass
class SprintSettings:
    """Sprint-level planning settings."""
    hours_per_day: float = 8.0
    default_sprint_days: int = 8

    def validate(self) -> "SprintSettings":
        """Return a copy with numeric fields checked and normalised."""
        hours_per_day = parse_number(self.hours_per_day, "hoursPerDay", 8.0)
        if hours_per_day < 0:
            raise ValidationError("hoursPerDay must not be negative", "hoursPerDay")
        days = parse_number(self.default_sprint_days, "defaultSprintDays", 8)
        if days < 0 or days != int(days):
            raise ValidationError(
                f"defaultSprintDays must be a non-negative whole number, got {days}",
                "defaultSprintDays",
            )
        return replace(self, hours_per_day=hours_per_day, default_sprint_days=int(days))

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "SprintSettings":
        data = data or {}
        hours_per_day = data.get("hoursPerDay")
        sprint_days = data.get("defaultSprintDays")
        settings = cls(
            hours_per_day=8.0 if hours_per_day is None else hours_per_day,
            default_sprint_days=8 if sprint_days is None else sprint_days,
        )
        return settings.validate()

    def to_dict(self) -> dict:
        return {"hoursPerDay": self.hours_per_day, "defaultSprintDays": self.default_sprint_days}


@dataclass
class ChangeItem:
    """One field change inside a changelog history entry."""
    field: str
    from_id: Optional[str] = None
    from_string: Optional[str] = None
    to_id: Optional[str] = None
    to_string: Optional[str] = None


@dataclass
class ChangelogHistory:
    """A changelog entry: the changes made together at one moment."""
    created: datetime
    items: list[ChangeItem] = field(default_factory=list)


@dataclass
class WorklogEntry:
    """Time logged against an issue."""
    started: datetime
    time_spent_seconds: float = 0
    author_account_id: Optional[str] = None


@dataclass
class RawIssue:
    """An issue as delivered by the tracker, before classification."""
    key: str
    summary: str = ""
    status: str = ""
    issue_type: str = "Task"
    is_subtask_type: bool = False
    assignee_id: Optional[str] = None
    assignee_name: Optional[str] = None
    original_estimate_seconds: Optional[float] = None
    remaining_estimate_seconds: Optional[float] = None
    time_spent_seconds: Optional[float] = None
    story_points: Optional[float] = None
    parent_key: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[date] = None
    created: Optional[datetime] = None
    start_date: Optional[date] = None
    changelog: list[ChangelogHistory] = field(default_factory=list)
