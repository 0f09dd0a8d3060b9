"""
Sprint planning service.

Fetches everything the planning engine needs from Jira, the HR system and
the local store, then runs the engine.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from .dates import last_working_day
from .errors import CapacityPlannerError, IntegrationError, NotConfiguredError
from .integrations import HRClient, HRLeave, JiraClient, UserWorklog, parse_sprint
from .models import Holiday, Leave, SprintState, TeamMember
from .planner import SprintPlanningReport, build_sprint_report
from .retro import SprintRetro, build_sprint_retro
from .store import PlanningRepository

logger = logging.getLogger(__name__)


@dataclass
class DailyWorklogs:
    """What one person logged on one day."""
    account_id: str
    day: date
    worklogs: list[UserWorklog] = field(default_factory=list)

    @property
    def total_hours(self) -> float:
        return sum(w.hours for w in self.worklogs)

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "work_logs": [w.to_dict() for w in self.worklogs],
            "summary": {
                "date": self.day.isoformat(),
                "count": len(self.worklogs),
                "total_hours": round(self.total_hours, 2),
            },
        }


def match_hr_leaves(hr_leaves: Iterable[HRLeave], members: Iterable[TeamMember]) -> list[Leave]:
    """
    Attach HR leaves to roster members by email.

    Leaves of people who are not on the roster are dropped.
    """
    by_email = {m.email.lower(): m.account_id for m in members if m.email}

    leaves = []
    for hr_leave in hr_leaves:
        account_id = by_email.get((hr_leave.employee_email or "").lower())
        if account_id is None:
            logger.debug("Skipping HR leave %s for %s: not on the roster", hr_leave.id, hr_leave.employee_email)
            continue
        leaves.append(Leave(
            id=hr_leave.id,
            account_id=account_id,
            start_date=hr_leave.start_date,
            end_date=hr_leave.end_date,
            is_half_day=hr_leave.is_half_day,
            reason=hr_leave.reason,
        ))
    return leaves


class PlanningService:
    """
    Builds sprint planning reports from live data.

    Usage:
        service = PlanningService(repository, jira=JiraClient(...), hr=HRClient(...))
        report = await service.sprint_report(42, board_id=7)
    """

    def __init__(
        self,
        repository: PlanningRepository,
        jira: Optional[JiraClient] = None,
        hr: Optional[HRClient] = None,
        worklog_concurrency: int = 10,
    ):
        self.repository = repository
        self.jira = jira
        self.hr = hr
        self.worklog_concurrency = worklog_concurrency

    def _require_jira(self) -> JiraClient:
        if self.jira is None:
            raise NotConfiguredError("Jira not configured")
        return self.jira

    async def load_time_off(
        self,
        members: list[TeamMember],
        start: date,
        end: date,
    ) -> tuple[list[Holiday], list[Leave]]:
        """
        Holidays and leaves for a date range.

        The HR system is the source when it is configured and reachable;
        otherwise the locally stored records are used.
        """
        if self.hr is not None and self.hr.is_configured():
            try:
                holidays = await self.hr.get_holidays(start, end)
                hr_leaves = await self.hr.get_leaves(start, end)
                return holidays, match_hr_leaves(hr_leaves, members)
            except (IntegrationError, NotConfiguredError) as e:
                logger.warning("HR system unavailable, using stored holidays and leaves: %s", e)

        return self.repository.get_holidays(), self.repository.get_leaves()

    async def sprint_report(
        self,
        sprint_id: int,
        board_id: Optional[int] = None,
        exclude_done: bool = False,
    ) -> SprintPlanningReport:
        """
        Build the planning report for one sprint.

        Args:
            sprint_id: Jira sprint ID
            board_id: Limit the roster to members assigned to this board
            exclude_done: Leave completed issues out of the report
        """
        jira = self._require_jira()
        sprint = parse_sprint(await jira.get_sprint(sprint_id))
        members = self.repository.get_team_members(board_id)
        settings = self.repository.get_sprint_settings()

        holidays, leaves = await self.load_time_off(members, sprint.start_date, sprint.end_date)
        issues = await jira.get_sprint_issues(sprint_id)

        worklogs = {}
        if sprint.state != SprintState.FUTURE:
            worklogs = await jira.get_worklogs_for_issues(
                [issue.key for issue in issues], concurrency=self.worklog_concurrency
            )

        report = build_sprint_report(
            members=members,
            sprint=sprint,
            holidays=holidays,
            leaves=leaves,
            issues=issues,
            worklogs_by_issue=worklogs,
            settings=settings,
            exclude_done=exclude_done,
        )

        logger.info(
            "Calculated sprint capacity for %r: %d issues, %d members",
            sprint.name, len(issues), len(report.members),
        )
        return report

    async def board_summary(self, board_id: int, state: str = "active,future") -> list[dict]:
        """
        Planning totals for every sprint of a board.

        A sprint that cannot be planned gets an "error" entry instead of
        failing the whole summary.
        """
        jira = self._require_jira()
        sprints = await jira.get_sprints(board_id, state)

        async def summarize(sprint: dict) -> dict:
            summary = {
                "id": sprint.get("id"),
                "name": sprint.get("name"),
                "state": sprint.get("state"),
                "start_date": sprint.get("startDate"),
                "end_date": sprint.get("endDate"),
            }
            try:
                report = await self.sprint_report(sprint["id"], board_id=board_id)
            except CapacityPlannerError as e:
                logger.warning("Could not plan sprint %s: %s", sprint.get("name"), e)
                return {"sprint": summary, "error": str(e)}
            return {"sprint": summary, "totals": report.totals.to_dict()}

        summaries = await asyncio.gather(*(summarize(s) for s in sprints))
        logger.info("Fetched board summary for %s: %d sprints", board_id, len(summaries))
        return list(summaries)

    async def sprint_retro(
        self,
        sprint_id: int,
        board_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> SprintRetro:
        """
        Build the retrospective of one sprint.

        Args:
            sprint_id: Jira sprint ID
            board_id: Limit the roster (used for subtask roles) to this board
            today: Day overdue tickets are measured against
        """
        jira = self._require_jira()
        sprint = parse_sprint(await jira.get_sprint(sprint_id))
        members = self.repository.get_team_members(board_id)
        issues = await jira.get_sprint_issues(sprint_id)

        retro = build_sprint_retro(
            members=members,
            sprint=sprint,
            issues=issues,
            settings=self.repository.get_sprint_settings(),
            today=today,
        )

        logger.info(
            "Fetched retro data for %r: %d issues, %d tech stories, %d production issues",
            sprint.name, len(retro.issues), len(retro.tech_stories), len(retro.production_issues),
        )
        return retro

    async def user_worklogs(
        self,
        account_id: str,
        day: Optional[date] = None,
        project_key: Optional[str] = None,
    ) -> DailyWorklogs:
        """Worklogs a person started on a day; the last working day by default."""
        jira = self._require_jira()
        day = day or last_working_day(date.today())

        worklogs = await jira.get_user_worklogs_for_date(
            account_id, day, project_key=project_key, concurrency=self.worklog_concurrency
        )
        daily = DailyWorklogs(account_id=account_id, day=day, worklogs=worklogs)

        logger.info("Fetched %d worklogs for %s on %s (%.2fh)", len(worklogs), account_id, day, daily.total_hours)
        return daily
