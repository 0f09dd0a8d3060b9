"""
Shared fixtures for planner tests.
"""

import json
import re
from datetime import datetime, timezone

import httpx
import pytest

from sprint_capacity.classifier import ClassifiedIssue
from sprint_capacity.integrations import HRClient, JiraClient
from sprint_capacity.models import Role, SprintState, SprintWindow, TeamMember
from sprint_capacity.store import MemoryStore, PlanningRepository


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def sprint() -> SprintWindow:
    """Two-week sprint, Monday 2024-01-01 to Friday 2024-01-12."""
    return SprintWindow(
        id=5,
        name="Sprint 5",
        state=SprintState.ACTIVE,
        start=utc(2024, 1, 1, 9, 0),
        end=utc(2024, 1, 12, 17, 0),
    )


@pytest.fixture
def roster() -> list[TeamMember]:
    return [
        TeamMember(account_id="alice", display_name="Alice", role=Role.DEVELOPER),
        TeamMember(account_id="quinn", display_name="Quinn", role=Role.QA),
        TeamMember(account_id="sam", display_name="Sam", role=Role.SPRINT_HEAD),
    ]


@pytest.fixture
def base_issue() -> ClassifiedIssue:
    """An empty, unassigned, non-subtask issue to derive cases from with replace()."""
    return ClassifiedIssue(
        key="ISSUE-1",
        summary="Issue",
        status="To Do",
        issue_type="Task",
        assignee_id=None,
        priority=None,
        parent_key=None,
        story_points=None,
        original_estimate_hours=0.0,
        remaining_estimate_hours=0.0,
        time_spent_hours=0.0,
        dev_estimate_hours=0.0,
        qa_estimate_hours=0.0,
        effective_estimate_hours=0.0,
        work_logged_hours=0.0,
    )


def jira_issue(key: str, assignee: str = None, remaining_hours: float = 0, created: str = "2023-12-20T10:00:00.000+0000",
               status: str = "In Progress") -> dict:
    return {
        "key": key,
        "fields": {
            "summary": f"Work on {key}",
            "status": {"name": status},
            "issuetype": {"name": "Task", "subtask": False},
            "assignee": {"accountId": assignee, "displayName": assignee.title()} if assignee else None,
            "timeestimate": int(remaining_hours * 3600),
            "timeoriginalestimate": int(remaining_hours * 3600),
            "created": created,
        },
        "changelog": {"histories": []},
    }


def headline(issue_id: str, key: str, project: str, status: str) -> dict:
    return {
        "id": issue_id,
        "key": key,
        "fields": {
            "summary": f"Work on {key}",
            "status": {"name": status},
            "issuetype": {"name": "Task"},
            "project": {"key": project},
        },
    }


class FakeJira:
    """Serves a small Jira site through httpx.MockTransport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.failing_worklogs: set[str] = set()
        self.max_page_size = None
        self.fail_worklog_feed = False
        self.sprints = {
            5: {"id": 5, "name": "Sprint 5", "state": "active",
                "startDate": "2024-01-01T09:00:00.000Z", "endDate": "2024-01-12T17:00:00.000Z"},
            6: {"id": 6, "name": "Sprint 6", "state": "future",
                "startDate": "2024-01-15T09:00:00.000Z", "endDate": "2024-01-26T17:00:00.000Z"},
            8: {"id": 8, "name": "Sprint 8", "state": "future"},
        }
        self.board_sprints = {7: [self.sprints[5], self.sprints[8]]}
        self.boards = [{"id": 7, "name": "APP board", "location": {"projectKey": "APP"}}]
        self.issues = {
            5: [
                jira_issue("APP-1", "alice", remaining_hours=4),
                jira_issue("APP-2", "quinn", remaining_hours=3),
                jira_issue("APP-3", remaining_hours=1, created="2024-01-03T10:00:00.000+0000"),
            ],
            6: [jira_issue("APP-4", "alice", remaining_hours=5)],
            8: [],
        }
        self.worklogs = {
            "APP-1": [{
                "started": "2024-01-02T10:00:00.000+0000",
                "timeSpentSeconds": 7200,
                "author": {"accountId": "alice"},
            }],
        }
        self.headlines = {
            "10001": headline("10001", "APP-1", "APP", "In Progress"),
            "10002": headline("10002", "OPS-9", "OPS", "Done"),
        }
        # Everything the updated-worklog feed knows about
        self.worklog_records = [
            {"id": "9001", "issueId": "10001", "author": {"accountId": "alice"},
             "started": "2024-01-05T15:00:00.000+0000", "timeSpentSeconds": 5400, "timeSpent": "1h 30m",
             "comment": {"type": "doc", "content": [{"type": "paragraph",
                                                     "content": [{"type": "text", "text": "Reviewed PR"}]}]}},
            {"id": "9000", "issueId": "10002", "author": {"accountId": "alice"},
             "started": "2024-01-05T09:00:00.000+0000", "timeSpentSeconds": 3600, "timeSpent": "1h"},
            {"id": "9002", "issueId": "10001", "author": {"accountId": "quinn"},
             "started": "2024-01-05T11:00:00.000+0000", "timeSpentSeconds": 3600},
            {"id": "9003", "issueId": "10001", "author": {"accountId": "alice"},
             "started": "2024-01-04T10:00:00.000+0000", "timeSpentSeconds": 3600},
        ]

    def fill_sprint(self, sprint_id: int, count: int) -> None:
        """Replace a sprint's issues with APP-1..APP-<count>, one hour each for Alice."""
        self.issues[sprint_id] = [jira_issue(f"APP-{n}", "alice", remaining_hours=1) for n in range(1, count + 1)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        match = re.fullmatch(r"/rest/agile/1.0/sprint/(\d+)", path)
        if match:
            sprint = self.sprints.get(int(match.group(1)))
            return httpx.Response(200, json=sprint) if sprint else httpx.Response(404)

        match = re.fullmatch(r"/rest/agile/1.0/sprint/(\d+)/issue", path)
        if match:
            issues = self.issues.get(int(match.group(1)), [])
            start_at = int(request.url.params.get("startAt", 0))
            max_results = int(request.url.params.get("maxResults", 50))
            if self.max_page_size:
                max_results = min(max_results, self.max_page_size)
            page = issues[start_at:start_at + max_results]
            return httpx.Response(200, json={"issues": page, "startAt": start_at, "total": len(issues)})

        match = re.fullmatch(r"/rest/agile/1.0/board/(\d+)/sprint", path)
        if match:
            return httpx.Response(200, json={"values": self.board_sprints.get(int(match.group(1)), [])})

        if path == "/rest/agile/1.0/board":
            return httpx.Response(200, json={"values": self.boards, "isLast": True})

        match = re.fullmatch(r"/rest/api/3/issue/([^/]+)/worklog", path)
        if match:
            key = match.group(1)
            if key in self.failing_worklogs:
                return httpx.Response(500)
            return httpx.Response(200, json={"worklogs": self.worklogs.get(key, [])})

        if path == "/rest/api/3/worklog/updated":
            if self.fail_worklog_feed:
                return httpx.Response(500)
            values = [{"worklogId": int(r["id"])} for r in self.worklog_records]
            return httpx.Response(200, json={"values": values, "lastPage": True})

        if path == "/rest/api/3/worklog/list" and request.method == "POST":
            wanted = {str(i) for i in json.loads(request.content)["ids"]}
            return httpx.Response(200, json=[r for r in self.worklog_records if r["id"] in wanted])

        if path == "/rest/api/3/search/jql":
            return httpx.Response(200, json={"issues": [self.headlines["10001"]]})

        match = re.fullmatch(r"/rest/api/3/issue/([^/]+)", path)
        if match:
            issue = self.headlines.get(match.group(1))
            return httpx.Response(200, json=issue) if issue else httpx.Response(404)

        return httpx.Response(404)

    def client(self) -> JiraClient:
        return JiraClient(
            url="https://jira.example.com",
            email="bot@example.com",
            token="secret",
            transport=httpx.MockTransport(self.handler),
        )


class FakeHR:
    """Serves Zoho People holidays and leaves through httpx.MockTransport."""

    def __init__(self, fail_token: bool = False):
        self.fail_token = fail_token
        self.token_requests = 0
        self.holidays = [{"Id": 1, "Name": "New Year", "Date": "2024-01-01"}]
        self.leaves = {
            "100": {
                "ApprovalStatus": "Approved",
                "From": "04-Jan-2024",
                "To": "05-Jan-2024",
                "TeamEmailID": "ALICE@example.com",
                "Employee": "Alice",
                "Leavetype": "Casual Leave",
                "Days": {"04-Jan-2024": {"LeaveCount": "1.0"}, "05-Jan-2024": {"LeaveCount": "1.0"}},
            },
            "101": {
                "ApprovalStatus": "Pending",
                "From": "08-Jan-2024",
                "To": "08-Jan-2024",
                "TeamEmailID": "quinn@example.com",
            },
            "102": {
                "ApprovalStatus": "Approved",
                "From": "01-Mar-2024",
                "To": "01-Mar-2024",
                "TeamEmailID": "quinn@example.com",
            },
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/oauth/v2/token":
            self.token_requests += 1
            if self.fail_token:
                return httpx.Response(500)
            return httpx.Response(200, json={"access_token": "zoho-token", "expires_in": 3600})

        if request.headers.get("Authorization") != "Zoho-oauthtoken zoho-token":
            return httpx.Response(401)
        if path == "/people/api/leave/v2/holidays/get":
            return httpx.Response(200, json={"data": self.holidays})
        if path == "/api/v2/leavetracker/leaves/records":
            return httpx.Response(200, json={"records": self.leaves})
        return httpx.Response(404)

    def client(self) -> HRClient:
        return HRClient(
            client_id="client",
            client_secret="secret",
            refresh_token="refresh",
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def fake_jira() -> FakeJira:
    return FakeJira()


@pytest.fixture
def fake_hr() -> FakeHR:
    return FakeHR()


@pytest.fixture
def repository() -> PlanningRepository:
    """Roster of two with one stored leave for Alice on 2024-01-03."""
    return PlanningRepository(MemoryStore({
        "teamMembers": [
            {"accountId": "alice", "displayName": "Alice", "role": "Developer",
             "email": "alice@example.com", "boardAssignments": [{"boardId": 7}]},
            {"accountId": "quinn", "displayName": "Quinn", "role": "QA", "email": "quinn@example.com"},
        ],
        "leaves": [
            {"id": "l1", "accountId": "alice", "startDate": "2024-01-03", "endDate": "2024-01-03"},
        ],
    }))
