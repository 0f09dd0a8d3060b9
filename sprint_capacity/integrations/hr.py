"""
HR System Integration for Sprint Capacity Planner

Pulls company holidays and approved leaves from Zoho People.
"""

import logging
import re
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

import httpx

from ..dates import parse_date, parse_number
from ..errors import IntegrationError, NotConfiguredError, ValidationError
from ..models import Holiday

logger = logging.getLogger(__name__)

# Zoho's default date format, e.g. "15-Jan-2025"
HR_DATE_FORMAT = "%d-%b-%Y"

_DAY_MONTH_YEAR = re.compile(r"^\d{1,2}-[A-Za-z]{3}-\d{4}$")

# Refresh the access token this many seconds before it expires
TOKEN_REFRESH_MARGIN = 300


def parse_hr_date(value: Optional[str]) -> Optional[date]:
    """Parse "15-Jan-2025" or an ISO date."""
    if not value:
        return None
    text = value.strip()
    if _DAY_MONTH_YEAR.match(text):
        try:
            return datetime.strptime(text, HR_DATE_FORMAT).date()
        except ValueError:
            raise ValidationError(f"Invalid HR date: {value!r}", "date") from None
    return parse_date(text, "HR date")


def is_half_day_leave(record: dict) -> bool:
    """A leave is a half day if its unit says so or any day counts less than 1."""
    if record.get("Unit") == "Half day":
        return True
    for day in (record.get("Days") or {}).values():
        if parse_number(day.get("LeaveCount"), "LeaveCount") < 1:
            return True
    return False


@dataclass
class HRLeave:
    """An approved leave as the HR system reports it, keyed by employee email."""
    id: str
    employee_email: Optional[str]
    employee_name: Optional[str]
    start_date: date
    end_date: date
    is_half_day: bool = False
    reason: Optional[str] = None
    leave_type: Optional[str] = None


class HRClient:
    """
    Zoho People API client.

    Uses the OAuth refresh-token flow and caches the access token until
    shortly before it expires.

    Usage:
        client = HRClient(client_id="...", client_secret="...", refresh_token="...")
        if client.is_configured():
            holidays = await client.get_holidays(start, end)
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        refresh_token: Optional[str] = None,
        base_url: str = "https://people.zoho.com",
        accounts_url: str = "https://accounts.zoho.com",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.base_url = base_url.rstrip("/")
        self.accounts_url = accounts_url.rstrip("/")
        self.transport = transport
        self.timeout = timeout

        self._access_token: Optional[str] = None
        self._token_expiry = 0.0

    def is_configured(self) -> bool:
        return all([self.client_id, self.client_secret, self.refresh_token])

    async def _get_access_token(self) -> str:
        """Return a cached access token or refresh it."""
        if self._access_token and time.monotonic() < self._token_expiry:
            return self._access_token

        if not self.is_configured():
            raise NotConfiguredError(
                "Zoho credentials not configured. Set ZOHO_CLIENT_ID, ZOHO_CLIENT_SECRET "
                "and ZOHO_REFRESH_TOKEN."
            )

        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            try:
                response = await client.post(
                    f"{self.accounts_url}/oauth/v2/token",
                    params={
                        "refresh_token": self.refresh_token,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "grant_type": "refresh_token",
                    },
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise IntegrationError("zoho", f"token refresh failed: {e}") from e

        data = response.json()
        if data.get("error"):
            raise IntegrationError("zoho", f"token refresh failed: {data['error']}")

        self._access_token = data["access_token"]
        self._token_expiry = time.monotonic() + int(data.get("expires_in", 3600)) - TOKEN_REFRESH_MARGIN
        logger.debug("Zoho access token refreshed")
        return self._access_token

    async def _request(self, path: str, params: Optional[dict] = None) -> dict:
        token = await self._get_access_token()
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            try:
                response = await client.get(
                    f"{self.base_url}{path}",
                    headers={"Authorization": f"Zoho-oauthtoken {token}"},
                    params=params,
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise IntegrationError("zoho", f"GET {path} failed: {e}") from e
            return response.json()

    async def get_holidays(self, from_date: date, to_date: date) -> list[Holiday]:
        """Company holidays between two dates."""
        result = await self._request(
            "/people/api/leave/v2/holidays/get",
            {"from": from_date.isoformat(), "to": to_date.isoformat(), "dateFormat": "yyyy-MM-dd"},
        )

        holidays = []
        for index, item in enumerate(result.get("data") or []):
            holiday_date = parse_hr_date(item.get("Date"))
            if holiday_date is None:
                continue
            holidays.append(Holiday(
                id=f"zoho-holiday-{item.get('Id', index)}-{holiday_date.isoformat()}",
                name=item.get("Name") or item.get("Holiday") or "Holiday",
                date=holiday_date,
            ))

        logger.info("Fetched %d holidays from Zoho", len(holidays))
        return holidays

    async def get_leaves(self, from_date: date, to_date: date) -> list[HRLeave]:
        """Approved leaves overlapping [from_date, to_date]."""
        result = await self._request("/api/v2/leavetracker/leaves/records")

        leaves = []
        for record_id, record in (result.get("records") or {}).items():
            if record.get("ApprovalStatus") != "Approved":
                continue
            start = parse_hr_date(record.get("From"))
            end = parse_hr_date(record.get("To"))
            if start is None or end is None or start > to_date or end < from_date:
                continue

            leaves.append(HRLeave(
                id=f"zoho-leave-{record_id}",
                employee_email=record.get("TeamEmailID") or record.get("EmployeeEmail"),
                employee_name=record.get("Employee") or record.get("EmployeeName"),
                start_date=start,
                end_date=end,
                is_half_day=is_half_day_leave(record),
                reason=record.get("Reason") or record.get("Leavetype"),
                leave_type=record.get("Leavetype"),
            ))

        logger.info("Fetched %d leaves from Zoho", len(leaves))
        return leaves
