"""
Sprint Availability Calculator

Works out how many hours each team member can give to a sprint after
weekends, holidays, leaves and their role allocation.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from .dates import DateLike, is_weekday, iter_days, parse_date, parse_number
from .errors import ValidationError
from .models import Holiday, Leave, SprintSettings, SprintWindow, TeamMember

logger = logging.getLogger(__name__)


@dataclass
class MemberAvailability:
    """Availability of one member for one sprint."""
    total_working_days: int
    holiday_days: int
    leave_days: float
    available_days: float
    available_hours: float
    allocated_hours: float
    role_allocation: float
    leaves: list[Leave] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total_days": self.total_working_days,
            "holiday_days": self.holiday_days,
            "leave_days": self.leave_days,
            "available_days": self.available_days,
            "available_hours": self.available_hours,
            "allocated_hours": self.allocated_hours,
            "role_allocation": self.role_allocation,
            "leaves": [leave.to_dict() for leave in self.leaves],
        }


@dataclass
class MemberCapacity:
    """A roster member paired with their availability."""
    member: TeamMember
    availability: MemberAvailability


@dataclass
class TeamCapacity:
    """Availability of the whole roster for one sprint."""
    members: list[MemberCapacity] = field(default_factory=list)
    holidays: list[Holiday] = field(default_factory=list)
    settings: SprintSettings = field(default_factory=SprintSettings)

    @property
    def total_capacity(self) -> float:
        """Sum of allocated hours."""
        return sum(m.availability.allocated_hours for m in self.members)

    @property
    def total_available_days(self) -> float:
        return sum(m.availability.available_days for m in self.members)


def _holiday_dates(holidays: Iterable[Holiday]) -> set[date]:
    return {parse_date(h.date, f"date of holiday {h.name!r}") for h in holidays}


def working_days_between(start: DateLike, end: DateLike, holidays: Iterable[Holiday] = ()) -> int:
    """
    Count weekdays in [start, end] that are not holidays.

    Days are compared by calendar date, so timestamps on either end count
    the whole day they fall on.
    """
    start_day = parse_date(start, "start date")
    end_day = parse_date(end, "end date")
    off = _holiday_dates(holidays)
    return sum(1 for day in iter_days(start_day, end_day) if is_weekday(day) and day not in off)


def holidays_in_window(holidays: Iterable[Holiday], start: DateLike, end: DateLike) -> list[Holiday]:
    """Holidays whose date falls inside [start, end]."""
    start_day = parse_date(start, "start date")
    end_day = parse_date(end, "end date")
    return [
        h for h in holidays
        if start_day <= parse_date(h.date, f"date of holiday {h.name!r}") <= end_day
    ]


def holiday_days_in_window(holidays: Iterable[Holiday], start: DateLike, end: DateLike) -> int:
    """Holidays in the window that land on a weekday. Weekend holidays cost nothing."""
    return sum(1 for h in holidays_in_window(holidays, start, end) if is_weekday(parse_date(h.date, "holiday date")))


def leave_days_in_window(
    leaves: Iterable[Leave],
    account_id: str,
    start: DateLike,
    end: DateLike,
    holidays: Iterable[Holiday] = (),
) -> tuple[float, list[Leave]]:
    """
    Leave days a member takes inside the window.

    Each leave is clipped to the window. A half-day leave counts 0.5
    regardless of its span; any other leave counts its working days.

    Returns:
        (leave days, leaves that overlap the window)
    """
    start_day = parse_date(start, "start date")
    end_day = parse_date(end, "end date")
    holidays = list(holidays)

    member_leaves = []
    total = 0.0
    for leave in leaves:
        if leave.account_id != account_id:
            continue
        leave_start = parse_date(leave.start_date, f"startDate of leave {leave.id}")
        leave_end = parse_date(leave.end_date, f"endDate of leave {leave.id}")
        if leave_end < start_day or leave_start > end_day:
            continue

        member_leaves.append(leave)
        if leave.is_half_day:
            total += 0.5
        else:
            total += working_days_between(max(leave_start, start_day), min(leave_end, end_day), holidays)

    return total, member_leaves


def member_availability(
    member: TeamMember,
    sprint_start: DateLike,
    sprint_end: DateLike,
    holidays: Iterable[Holiday],
    leaves: Iterable[Leave],
    configured_working_days: Optional[int] = None,
    hours_per_day: float = 8.0,
    default_sprint_days: int = 8,
) -> MemberAvailability:
    """
    Calculate one member's availability for a sprint.

    The sprint length comes from configuration, not the calendar: a two
    week sprint may be planned as 8 working days.

    Args:
        member: Roster entry
        sprint_start: First day of the sprint
        sprint_end: Last day of the sprint
        holidays: Company holidays (any range; filtered here)
        leaves: Leaves of the whole team (filtered to this member)
        configured_working_days: Sprint length override
        hours_per_day: Working hours in a day
        default_sprint_days: Sprint length when no override is given

    Returns:
        MemberAvailability
    """
    holidays = list(holidays)
    hours_per_day = parse_number(hours_per_day, "hoursPerDay")
    if configured_working_days is None:
        configured_working_days = default_sprint_days
    total_working_days = int(parse_number(configured_working_days, "configured working days"))

    holiday_days = holiday_days_in_window(holidays, sprint_start, sprint_end)
    leave_days, member_leaves = leave_days_in_window(
        leaves, member.account_id, sprint_start, sprint_end, holidays
    )

    available_days = max(0, total_working_days - holiday_days - leave_days)
    available_hours = available_days * hours_per_day
    role_allocation = member.allocation
    allocated_hours = available_hours * role_allocation

    logger.debug(
        "Member %s: total=%s holidays=%s leaves=%s available=%s role=%s allocation=%s allocated=%sh",
        member.display_name, total_working_days, holiday_days, leave_days,
        available_days, member.role.value, role_allocation, allocated_hours,
    )

    return MemberAvailability(
        total_working_days=total_working_days,
        holiday_days=holiday_days,
        leave_days=leave_days,
        available_days=available_days,
        available_hours=available_hours,
        allocated_hours=allocated_hours,
        role_allocation=role_allocation,
        leaves=member_leaves,
    )


def team_capacity(
    members: Iterable[TeamMember],
    sprint: SprintWindow,
    holidays: Iterable[Holiday],
    leaves: Iterable[Leave],
    settings: Optional[SprintSettings] = None,
) -> TeamCapacity:
    """
    Calculate availability for every roster member, in roster order.

    Raises:
        ValidationError: if two roster entries share an account id
    """
    members = list(members)
    seen = set()
    for member in members:
        if member.account_id in seen:
            raise ValidationError(f"Duplicate team member: {member.account_id}", "accountId")
        seen.add(member.account_id)

    sprint = sprint.validate()
    settings = (settings or SprintSettings()).validate()
    sprint_holidays = holidays_in_window(holidays, sprint.start, sprint.end)
    leaves = list(leaves)

    capacities = [
        MemberCapacity(
            member=member,
            availability=member_availability(
                member,
                sprint.start,
                sprint.end,
                sprint_holidays,
                leaves,
                configured_working_days=sprint.configured_working_days,
                hours_per_day=settings.hours_per_day,
                default_sprint_days=settings.default_sprint_days,
            ),
        )
        for member in members
    ]

    return TeamCapacity(members=capacities, holidays=sprint_holidays, settings=settings)
