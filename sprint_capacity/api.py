"""
FastAPI Backend for Sprint Capacity Planner

Provides the REST API for the planning dashboard and its settings.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import Config
from .dates import parse_date
from .errors import IntegrationError, NotConfiguredError, ValidationError
from .integrations import HRClient, JiraClient
from .log import configure_logging
from .service import PlanningService
from .store import JsonFileStore, PlanningRepository
from .visualizer import TextReporter

logger = logging.getLogger(__name__)


# Pydantic models for API
class BoardAssignment(BaseModel):
    boardId: int


class TeamMemberIn(BaseModel):
    accountId: str
    displayName: str
    role: Optional[str] = None
    roleAllocation: Optional[float] = None
    email: Optional[str] = None
    avatarUrl: Optional[str] = None
    boardAssignments: list[BoardAssignment] = []


class TeamMemberUpdate(BaseModel):
    displayName: Optional[str] = None
    role: Optional[str] = None
    roleAllocation: Optional[float] = None
    email: Optional[str] = None
    avatarUrl: Optional[str] = None
    boardAssignments: Optional[list[BoardAssignment]] = None


class HolidayIn(BaseModel):
    name: str
    date: str


class LeaveIn(BaseModel):
    accountId: str
    startDate: str
    endDate: str
    isHalfDay: bool = False
    isUnplanned: bool = False
    reason: Optional[str] = None


class LeaveUpdate(BaseModel):
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    isHalfDay: Optional[bool] = None
    isUnplanned: Optional[bool] = None
    reason: Optional[str] = None


class SprintConfigIn(BaseModel):
    hoursPerDay: Optional[float] = None
    defaultSprintDays: Optional[int] = None


class BoardIn(BaseModel):
    id: int
    name: Optional[str] = None
    projectKey: Optional[str] = None


def build_service(config: Config, repository: PlanningRepository) -> PlanningService:
    """Wire clients from configuration; missing Jira credentials leave Jira unset."""
    jira = None
    if config.jira_configured:
        jira = JiraClient(url=config.jira_url, email=config.jira_email, token=config.jira_token)

    hr = HRClient(
        client_id=config.zoho_client_id,
        client_secret=config.zoho_client_secret,
        refresh_token=config.zoho_refresh_token,
        base_url=config.zoho_url,
        accounts_url=config.zoho_accounts_url,
    )
    return PlanningService(repository, jira=jira, hr=hr, worklog_concurrency=config.worklog_concurrency)


def create_app(
    config: Optional[Config] = None,
    repository: Optional[PlanningRepository] = None,
    service: Optional[PlanningService] = None,
) -> FastAPI:
    """
    Create the API application.

    The store and the service are created here (or passed in) and shared by
    all requests for the lifetime of the app.
    """
    config = config or Config()
    repository = repository or PlanningRepository(JsonFileStore(config.db_path))
    service = service or build_service(config, repository)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        configure_logging(config.log_level)
        logger.info("Sprint Capacity Planner API starting up")
        yield
        logger.info("Sprint Capacity Planner API shutting down")

    app = FastAPI(
        title="Sprint Capacity Planner",
        description="API for sprint capacity planning and utilization",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        logger.error("Invalid input for %s: %s", request.url.path, exc.message)
        return JSONResponse(status_code=422, content=exc.to_dict())

    @app.exception_handler(NotConfiguredError)
    async def not_configured_handler(request: Request, exc: NotConfiguredError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(IntegrationError)
    async def integration_error_handler(request: Request, exc: IntegrationError):
        logger.error("Upstream failure for %s: %s", request.url.path, exc)
        return JSONResponse(status_code=502, content={"error": str(exc)})

    # Health check
    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "integrations": {
                "jira": service.jira is not None,
                "hr": service.hr is not None and service.hr.is_configured(),
            }
        }

    # Capacity endpoints
    @app.get("/api/capacity/sprint/{sprint_id}")
    async def get_sprint_capacity(sprint_id: int, board_id: Optional[int] = None, exclude_done: bool = False):
        """Full planning report for a sprint."""
        report = await service.sprint_report(sprint_id, board_id=board_id, exclude_done=exclude_done)
        return report.to_dict()

    @app.get("/api/capacity/board/{board_id}/summary")
    async def get_board_summary(board_id: int, state: str = "active,future"):
        """Planning totals for every sprint of a board."""
        return await service.board_summary(board_id, state)

    @app.get("/api/reports/sprint/{sprint_id}/text")
    async def get_sprint_text_report(sprint_id: int, board_id: Optional[int] = None):
        """Text report of a sprint plan."""
        report = await service.sprint_report(sprint_id, board_id=board_id)
        return {"report": TextReporter.planning_report(report)}

    # Retrospective
    @app.get("/api/retro/sprint/{sprint_id}")
    async def get_sprint_retro(sprint_id: int, board_id: Optional[int] = None):
        """Retrospective of a sprint: commitment, completion, additions, overdue."""
        retro = await service.sprint_retro(sprint_id, board_id=board_id)
        return retro.to_dict()

    # Worklogs
    @app.get("/api/jira/users/{account_id}/worklogs")
    async def get_user_worklogs(
        account_id: str,
        day: Optional[str] = Query(None, alias="date"),
        project_key: Optional[str] = None,
    ):
        """Worklogs a person started on a day (the last working day by default)."""
        worklog_day = parse_date(day, "date") if day else None
        daily = await service.user_worklogs(account_id, day=worklog_day, project_key=project_key)
        return daily.to_dict()

    # Team members
    @app.get("/api/config/team")
    async def list_team(board_id: Optional[int] = None):
        return [m.to_dict() for m in repository.get_team_members(board_id)]

    @app.post("/api/config/team")
    async def add_team_member(member: TeamMemberIn):
        members = repository.add_team_member(member.model_dump())
        logger.info("Added team member %s", member.accountId)
        return [m.to_dict() for m in members]

    @app.put("/api/config/team/{account_id}")
    async def update_team_member(account_id: str, updates: TeamMemberUpdate):
        member = repository.update_team_member(account_id, updates.model_dump(exclude_none=True))
        if member is None:
            raise HTTPException(status_code=404, detail=f"Team member {account_id} not found")
        logger.info("Updated team member %s", account_id)
        return member.to_dict()

    @app.delete("/api/config/team/{account_id}")
    async def remove_team_member(account_id: str):
        members = repository.remove_team_member(account_id)
        logger.info("Removed team member %s", account_id)
        return [m.to_dict() for m in members]

    # Holidays
    @app.get("/api/config/holidays")
    async def list_holidays():
        return [h.to_dict() for h in repository.get_holidays()]

    @app.post("/api/config/holidays")
    async def add_holiday(holiday: HolidayIn):
        return [h.to_dict() for h in repository.add_holiday(holiday.model_dump())]

    @app.delete("/api/config/holidays/{holiday_id}")
    async def remove_holiday(holiday_id: str):
        return [h.to_dict() for h in repository.remove_holiday(holiday_id)]

    # Leaves
    @app.get("/api/config/leaves")
    async def list_leaves():
        return [l.to_dict() for l in repository.get_leaves()]

    @app.post("/api/config/leaves")
    async def add_leave(leave: LeaveIn):
        return [l.to_dict() for l in repository.add_leave(leave.model_dump())]

    @app.put("/api/config/leaves/{leave_id}")
    async def update_leave(leave_id: str, updates: LeaveUpdate):
        leave = repository.update_leave(leave_id, updates.model_dump(exclude_none=True))
        if leave is None:
            raise HTTPException(status_code=404, detail=f"Leave {leave_id} not found")
        return leave.to_dict()

    @app.delete("/api/config/leaves/{leave_id}")
    async def remove_leave(leave_id: str):
        return [l.to_dict() for l in repository.remove_leave(leave_id)]

    # Sprint settings
    @app.get("/api/config/sprint")
    async def get_sprint_config():
        return repository.get_sprint_settings().to_dict()

    @app.put("/api/config/sprint")
    async def update_sprint_config(updates: SprintConfigIn):
        return repository.update_sprint_settings(updates.model_dump(exclude_none=True)).to_dict()

    # Saved boards
    @app.get("/api/config/boards")
    async def list_boards():
        return repository.get_saved_boards()

    @app.post("/api/config/boards")
    async def save_board(board: BoardIn):
        return repository.save_board(board.model_dump(exclude_none=True))

    return app


app = create_app()


# Run with: uvicorn sprint_capacity.api:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
