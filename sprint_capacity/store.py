"""
Planning data store.

Team roster, holidays, leaves, sprint settings and saved boards live in a
small key-value document. The store is created by the caller and handed to
the service layer; the planning engine itself only ever sees plain data.
"""

import copy
import json
import logging
import os
import threading
import uuid
from typing import Any, Optional, Protocol

from .models import Holiday, Leave, SprintSettings, TeamMember

logger = logging.getLogger(__name__)

DEFAULT_DATA = {
    "teamMembers": [],
    "holidays": [],
    "leaves": [],
    "sprintConfig": {
        "defaultSprintDays": 8,
        "hoursPerDay": 8,
    },
    "boards": [],
}


class DocumentStore(Protocol):
    """Minimal key-value interface the repository needs."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class MemoryStore:
    """In-process store, mostly for tests."""

    def __init__(self, data: Optional[dict] = None):
        self._data = copy.deepcopy(DEFAULT_DATA)
        self._data.update(copy.deepcopy(data or {}))

    def get(self, key: str, default: Any = None) -> Any:
        return copy.deepcopy(self._data.get(key, default))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)


class JsonFileStore:
    """
    Store backed by a single JSON file.

    The file (and its directory) is created with default content on first
    use. Every call re-reads the file so edits made by hand are picked up.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _ensure_exists(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if not os.path.exists(self.path):
            logger.info("Creating planning store at %s", self.path)
            self._write(DEFAULT_DATA)

    def _read(self) -> dict:
        self._ensure_exists()
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)

    def _write(self, data: dict) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)


def _new_id() -> str:
    return uuid.uuid4().hex


class PlanningRepository:
    """
    Typed access to the planning document.

    Usage:
        repo = PlanningRepository(JsonFileStore("data/db.json"))
        repo.add_team_member({"accountId": "abc", "displayName": "Alice"})
        members = repo.get_team_members(board_id=12)
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    # Team members

    def _raw_members(self) -> list[dict]:
        return self.store.get("teamMembers") or []

    def get_team_members(self, board_id: Optional[int] = None) -> list[TeamMember]:
        """Roster in stored order, optionally limited to one board."""
        members = [TeamMember.from_dict(m) for m in self._raw_members()]
        return [m for m in members if m.works_on_board(board_id)]

    def add_team_member(self, member: dict) -> list[TeamMember]:
        """Add a member, or update the one with the same account id."""
        TeamMember.from_dict(member)
        raw = self._raw_members()
        existing = next((m for m in raw if m.get("accountId") == member["accountId"]), None)
        if existing is not None:
            existing.update(member)
        else:
            raw.append({**member, "id": _new_id()})
        self.store.set("teamMembers", raw)
        return [TeamMember.from_dict(m) for m in raw]

    def update_team_member(self, account_id: str, updates: dict) -> Optional[TeamMember]:
        raw = self._raw_members()
        member = next((m for m in raw if m.get("accountId") == account_id), None)
        if member is None:
            return None
        candidate = {**member, **updates, "accountId": account_id}
        updated = TeamMember.from_dict(candidate)
        member.update(candidate)
        self.store.set("teamMembers", raw)
        return updated

    def remove_team_member(self, account_id: str) -> list[TeamMember]:
        raw = [m for m in self._raw_members() if m.get("accountId") != account_id]
        self.store.set("teamMembers", raw)
        return [TeamMember.from_dict(m) for m in raw]

    # Holidays

    def get_holidays(self) -> list[Holiday]:
        return [Holiday.from_dict(h) for h in self.store.get("holidays") or []]

    def add_holiday(self, holiday: dict) -> list[Holiday]:
        record = {**holiday, "id": _new_id()}
        Holiday.from_dict(record)
        raw = (self.store.get("holidays") or []) + [record]
        self.store.set("holidays", raw)
        return [Holiday.from_dict(h) for h in raw]

    def remove_holiday(self, holiday_id: str) -> list[Holiday]:
        raw = [h for h in self.store.get("holidays") or [] if str(h.get("id")) != holiday_id]
        self.store.set("holidays", raw)
        return [Holiday.from_dict(h) for h in raw]

    # Leaves

    def get_leaves(self) -> list[Leave]:
        return [Leave.from_dict(l) for l in self.store.get("leaves") or []]

    def add_leave(self, leave: dict) -> list[Leave]:
        record = {**leave, "id": _new_id()}
        Leave.from_dict(record)
        raw = (self.store.get("leaves") or []) + [record]
        self.store.set("leaves", raw)
        return [Leave.from_dict(l) for l in raw]

    def update_leave(self, leave_id: str, updates: dict) -> Optional[Leave]:
        raw = self.store.get("leaves") or []
        leave = next((l for l in raw if str(l.get("id")) == leave_id), None)
        if leave is None:
            return None
        candidate = {**leave, **updates, "id": leave["id"]}
        updated = Leave.from_dict(candidate)
        leave.update(candidate)
        self.store.set("leaves", raw)
        return updated

    def remove_leave(self, leave_id: str) -> list[Leave]:
        raw = [l for l in self.store.get("leaves") or [] if str(l.get("id")) != leave_id]
        self.store.set("leaves", raw)
        return [Leave.from_dict(l) for l in raw]

    # Sprint settings

    def get_sprint_settings(self) -> SprintSettings:
        return SprintSettings.from_dict(self.store.get("sprintConfig") or DEFAULT_DATA["sprintConfig"])

    def update_sprint_settings(self, updates: dict) -> SprintSettings:
        merged = {**(self.store.get("sprintConfig") or {}), **updates}
        settings = SprintSettings.from_dict(merged)
        self.store.set("sprintConfig", merged)
        return settings

    # Boards

    def get_saved_boards(self) -> list[dict]:
        return self.store.get("boards") or []

    def save_board(self, board: dict) -> list[dict]:
        boards = self.get_saved_boards()
        existing = next((b for b in boards if b.get("id") == board.get("id")), None)
        if existing is not None:
            existing.update(board)
        else:
            boards.append(board)
        self.store.set("boards", boards)
        return boards
