"""
Jira Integration for Sprint Capacity Planner

Pulls boards, sprints, sprint issues (with changelog) and worklogs from Jira
and turns them into planner input records.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional

import httpx

from ..dates import (
    parse_date,
    parse_datetime,
    parse_number,
    parse_optional_date,
    parse_optional_datetime,
    seconds_to_hours,
)
from ..errors import IntegrationError, NotConfiguredError, ValidationError
from ..models import ChangeItem, ChangelogHistory, RawIssue, SprintState, SprintWindow, WorklogEntry

logger = logging.getLogger(__name__)

# Story points live in a different custom field depending on the Jira site
STORY_POINT_FIELDS = (
    "customfield_10016",
    "customfield_10026",
    "customfield_10004",
    "customfield_10034",
    "Story Points",
    "storyPoints",
)

START_DATE_FIELD = "customfield_12939"

PAGE_SIZE = 100

# worklog/list accepts at most this many ids per call
WORKLOG_BATCH_SIZE = 1000

# Worklogs are often written down days later; scan updates this far back
WORKLOG_LOOKBACK_DAYS = 7

ISSUE_HEADLINE_FIELDS = "summary,status,issuetype,project"


def parse_sprint(data: dict, configured_working_days: Optional[int] = None) -> SprintWindow:
    """
    Build a SprintWindow from an Agile API sprint.

    Raises:
        ValidationError: if the sprint has no start or end date
    """
    name = data.get("name", "")
    if not data.get("startDate"):
        raise ValidationError(f"sprint {name!r} has no start date", "startDate")
    if not data.get("endDate"):
        raise ValidationError(f"sprint {name!r} has no end date", "endDate")

    return SprintWindow(
        id=data.get("id"),
        name=name,
        state=SprintState.parse(data.get("state")),
        start=parse_datetime(data["startDate"], "sprint start date"),
        end=parse_datetime(data["endDate"], "sprint end date"),
        configured_working_days=configured_working_days,
    ).validate()


def _story_points(fields: dict) -> Optional[float]:
    for name in STORY_POINT_FIELDS:
        value = fields.get(name)
        if value:
            return parse_number(value, f"story points ({name})")
    return None


def parse_changelog(data: Optional[dict]) -> list[ChangelogHistory]:
    """Changelog histories in the order Jira returned them."""
    histories = []
    for history in (data or {}).get("histories") or []:
        items = [
            ChangeItem(
                field=item.get("field", ""),
                from_id=item.get("from"),
                from_string=item.get("fromString"),
                to_id=item.get("to"),
                to_string=item.get("toString"),
            )
            for item in history.get("items") or []
        ]
        histories.append(ChangelogHistory(
            created=parse_datetime(history.get("created"), "changelog created date"),
            items=items,
        ))
    return histories


def parse_issue(data: dict) -> RawIssue:
    """Build a RawIssue from a Jira issue with expanded changelog."""
    key = data.get("key", "")
    fields = data.get("fields") or {}
    assignee = fields.get("assignee") or {}
    issue_type = fields.get("issuetype") or {}
    parent = fields.get("parent") or {}
    priority = fields.get("priority") or {}
    status = fields.get("status") or {}

    return RawIssue(
        key=key,
        summary=fields.get("summary") or "",
        status=status.get("name") or "",
        issue_type=issue_type.get("name") or "Task",
        is_subtask_type=issue_type.get("subtask") is True,
        assignee_id=assignee.get("accountId"),
        assignee_name=assignee.get("displayName"),
        original_estimate_seconds=parse_number(fields.get("timeoriginalestimate"), f"originalEstimate of {key}"),
        remaining_estimate_seconds=parse_number(fields.get("timeestimate"), f"remainingEstimate of {key}"),
        time_spent_seconds=parse_number(fields.get("timespent"), f"timeSpent of {key}"),
        story_points=_story_points(fields),
        parent_key=parent.get("key"),
        priority=priority.get("name"),
        due_date=parse_optional_date(fields.get("duedate"), f"due date of {key}"),
        created=parse_optional_datetime(fields.get("created"), f"created date of {key}"),
        start_date=parse_optional_date(fields.get(START_DATE_FIELD), f"start date of {key}"),
        changelog=parse_changelog(data.get("changelog")),
    )


def parse_worklogs(data: dict) -> list[WorklogEntry]:
    """Worklog entries from an issue worklog response."""
    entries = []
    for worklog in (data or {}).get("worklogs") or []:
        author = worklog.get("author") or {}
        entries.append(WorklogEntry(
            started=parse_datetime(worklog.get("started"), "worklog started date"),
            time_spent_seconds=parse_number(worklog.get("timeSpentSeconds"), "worklog timeSpentSeconds"),
            author_account_id=author.get("accountId"),
        ))
    return entries


@dataclass
class UserWorklog:
    """Time one person logged on an issue, with the issue's headline fields."""
    id: str
    issue_key: str
    issue_summary: str
    started: datetime
    time_spent_seconds: float = 0
    time_spent: Optional[str] = None
    issue_type: Optional[str] = None
    issue_status: Optional[str] = None
    comment: str = ""

    @property
    def hours(self) -> float:
        return seconds_to_hours(self.time_spent_seconds, "worklog timeSpentSeconds")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "issue_key": self.issue_key,
            "issue_summary": self.issue_summary,
            "issue_type": self.issue_type,
            "issue_status": self.issue_status,
            "started": self.started.isoformat(),
            "time_spent_seconds": self.time_spent_seconds,
            "time_spent": self.time_spent,
            "comment": self.comment,
        }


def worklog_comment(comment: Any) -> str:
    """First line of text of a worklog comment (plain or Atlassian document format)."""
    if isinstance(comment, str):
        return comment
    blocks = (comment or {}).get("content") or []
    inline = (blocks[0].get("content") or []) if blocks else []
    return (inline[0].get("text") or "") if inline else ""


def parse_user_worklog(worklog: dict, issue: dict) -> UserWorklog:
    fields = issue.get("fields") or {}
    return UserWorklog(
        id=str(worklog.get("id", "")),
        issue_key=issue.get("key", ""),
        issue_summary=fields.get("summary") or "",
        issue_type=(fields.get("issuetype") or {}).get("name"),
        issue_status=(fields.get("status") or {}).get("name"),
        started=parse_datetime(worklog.get("started"), "worklog started date"),
        time_spent_seconds=parse_number(worklog.get("timeSpentSeconds"), "worklog timeSpentSeconds"),
        time_spent=worklog.get("timeSpent"),
        comment=worklog_comment(worklog.get("comment")),
    )


def _authored_on(worklog: dict, account_id: str, day: date) -> bool:
    """True if the worklog is by this person and started on this calendar day."""
    author = worklog.get("author") or {}
    if not worklog.get("started") or author.get("accountId") != account_id:
        return False
    return parse_date(worklog["started"], "worklog started date") == day


class JiraClient:
    """
    Jira Cloud API client for fetching sprint and issue data.

    Usage:
        client = JiraClient(
            url="https://company.atlassian.net",
            email="user@company.com",
            token="api_token"
        )
        sprint = parse_sprint(await client.get_sprint(42))
        issues = await client.get_sprint_issues(42)
    """

    def __init__(
        self,
        url: Optional[str] = None,
        email: Optional[str] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.url = (url or "").rstrip("/")
        self.email = email
        self.token = token
        self.transport = transport
        self.timeout = timeout

        if not all([self.url, self.email, self.token]):
            raise NotConfiguredError(
                "Jira credentials required. Set JIRA_BASE_URL, JIRA_EMAIL, JIRA_API_TOKEN env vars "
                "or pass them as parameters."
            )

        self.auth = (self.email, self.token)

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Any:
        """Make authenticated request to Jira."""
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            try:
                response = await client.request(
                    method,
                    f"{self.url}{path}",
                    auth=self.auth,
                    params=params,
                    json=json,
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise IntegrationError("jira", f"{method} {path} returned {e.response.status_code}") from e
            except httpx.HTTPError as e:
                raise IntegrationError("jira", f"{method} {path} failed: {e}") from e
            return response.json() if response.content else {}

    async def get_boards(self, project: Optional[str] = None) -> list[dict]:
        """Get all boards, optionally for one project."""
        boards = []
        start_at = 0
        while True:
            params = {"startAt": start_at, "maxResults": 50}
            if project:
                params["projectKeyOrId"] = project
            result = await self._request("GET", "/rest/agile/1.0/board", params)
            values = result.get("values", [])
            boards.extend(values)
            start_at += len(values)
            if result.get("isLast", True) or not values:
                return boards

    async def get_sprints(self, board_id: int, state: str = "active,future") -> list[dict]:
        """
        Get sprints for a board.

        Args:
            board_id: Jira board ID
            state: Comma separated states (active, closed, future)
        """
        result = await self._request("GET", f"/rest/agile/1.0/board/{board_id}/sprint", {"state": state})
        return result.get("values", [])

    async def get_sprint(self, sprint_id: int) -> dict:
        return await self._request("GET", f"/rest/agile/1.0/sprint/{sprint_id}")

    async def get_sprint_issues(self, sprint_id: int, page_size: int = PAGE_SIZE) -> list[RawIssue]:
        """
        Get every issue in a sprint, changelog included.

        Jira may return fewer issues per page than asked for, so paging
        follows the reported total and stops early only on an empty page.
        """
        issues = []
        start_at = 0
        while True:
            result = await self._request(
                "GET",
                f"/rest/agile/1.0/sprint/{sprint_id}/issue",
                {"startAt": start_at, "maxResults": page_size, "fields": "*all", "expand": "changelog"},
            )
            page = result.get("issues", [])
            issues.extend(parse_issue(issue) for issue in page)
            start_at += len(page)
            total = result.get("total")
            if not page or (total is not None and start_at >= total):
                break

        logger.debug("Fetched %d issues for sprint %s", len(issues), sprint_id)
        return issues

    async def get_worklogs(self, issue_key: str) -> list[WorklogEntry]:
        result = await self._request("GET", f"/rest/api/3/issue/{issue_key}/worklog")
        return parse_worklogs(result)

    async def get_worklogs_for_issues(
        self,
        issue_keys: list[str],
        concurrency: int = 10,
    ) -> dict[str, list[WorklogEntry]]:
        """
        Fetch worklogs for many issues concurrently.

        An issue whose worklogs cannot be fetched is left out, which the
        planner reads as "nothing logged".
        """
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def fetch(key: str):
            async with semaphore:
                try:
                    return key, await self.get_worklogs(key)
                except IntegrationError as e:
                    logger.debug("Could not fetch worklogs for %s: %s", key, e)
                    return key, []

        results = await asyncio.gather(*(fetch(key) for key in issue_keys))
        return {key: worklogs for key, worklogs in results if worklogs}

    async def get_updated_worklog_ids(self, since: datetime) -> list[int]:
        """IDs of worklogs created or updated since a moment."""
        ids = []
        since_ms = int(since.timestamp() * 1000)
        while True:
            result = await self._request("GET", "/rest/api/3/worklog/updated", {"since": since_ms})
            values = result.get("values", [])
            ids.extend(value["worklogId"] for value in values if "worklogId" in value)
            if result.get("lastPage", True) or not values or result.get("until") is None:
                return ids
            since_ms = result["until"]

    async def get_worklogs_by_id(self, worklog_ids: list[int]) -> list[dict]:
        """Full worklog records for a list of worklog IDs."""
        worklogs = []
        for start in range(0, len(worklog_ids), WORKLOG_BATCH_SIZE):
            batch = worklog_ids[start:start + WORKLOG_BATCH_SIZE]
            worklogs.extend(await self._request("POST", "/rest/api/3/worklog/list", json={"ids": batch}) or [])
        return worklogs

    async def get_issue(self, issue_id_or_key: str, fields: str = ISSUE_HEADLINE_FIELDS) -> dict:
        return await self._request("GET", f"/rest/api/3/issue/{issue_id_or_key}", {"fields": fields})

    async def _get_issues(self, issue_ids: list[str], concurrency: int) -> dict[str, dict]:
        """Issues by id; issues that cannot be fetched are left out."""
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def fetch(issue_id: str):
            async with semaphore:
                try:
                    return issue_id, await self.get_issue(issue_id)
                except IntegrationError as e:
                    logger.debug("Could not fetch issue %s: %s", issue_id, e)
                    return issue_id, None

        results = await asyncio.gather(*(fetch(i) for i in dict.fromkeys(issue_ids)))
        return {issue_id: issue for issue_id, issue in results if issue is not None}

    async def get_user_worklogs_for_date(
        self,
        account_id: str,
        day: date,
        project_key: Optional[str] = None,
        concurrency: int = 10,
    ) -> list[UserWorklog]:
        """
        Worklogs one person started on a calendar day, oldest first.

        Worklogs updated during the week before the day are scanned, so
        entries written down late are still found. When the updated-worklog
        feed is unavailable the person's recent issues are searched instead.

        Args:
            account_id: Jira account ID of the author
            day: Calendar day the work was started on
            project_key: Only keep worklogs on issues of this project
            concurrency: Parallel issue lookups
        """
        since = datetime.combine(day - timedelta(days=WORKLOG_LOOKBACK_DAYS), time.min, tzinfo=timezone.utc)
        try:
            ids = await self.get_updated_worklog_ids(since)
            records = await self.get_worklogs_by_id(ids)
        except IntegrationError as e:
            logger.warning("Updated worklog feed unavailable, searching issues instead: %s", e)
            return await self._search_user_worklogs(account_id, day, project_key)

        records = [record for record in records if _authored_on(record, account_id, day)]
        issues = await self._get_issues([str(record.get("issueId")) for record in records], concurrency)

        worklogs = []
        for record in records:
            issue = issues.get(str(record.get("issueId")))
            if issue is None:
                continue
            project = ((issue.get("fields") or {}).get("project") or {}).get("key")
            if project_key and project != project_key:
                continue
            worklogs.append(parse_user_worklog(record, issue))

        worklogs.sort(key=lambda w: w.started)
        logger.debug("Found %d worklogs by %s on %s", len(worklogs), account_id, day)
        return worklogs

    async def _search_user_worklogs(
        self,
        account_id: str,
        day: date,
        project_key: Optional[str] = None,
    ) -> list[UserWorklog]:
        """Worklogs on the latest issues the person is assignee or reporter of."""
        jql = f'assignee = "{account_id}" OR reporter = "{account_id}"'
        if project_key:
            jql = f'({jql}) AND project = "{project_key}"'
        jql += " ORDER BY updated DESC"

        result = await self._request(
            "GET",
            "/rest/api/3/search/jql",
            {"jql": jql, "maxResults": 50, "fields": ISSUE_HEADLINE_FIELDS},
        )

        worklogs = []
        for issue in result.get("issues", []):
            try:
                data = await self._request("GET", f"/rest/api/3/issue/{issue['key']}/worklog")
            except IntegrationError as e:
                logger.debug("Could not fetch worklogs for %s: %s", issue.get("key"), e)
                continue
            worklogs.extend(
                parse_user_worklog(record, issue)
                for record in data.get("worklogs") or []
                if _authored_on(record, account_id, day)
            )

        worklogs.sort(key=lambda w: w.started)
        return worklogs
