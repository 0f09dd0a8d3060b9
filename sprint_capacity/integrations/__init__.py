"""
Sprint Capacity Planner - Integrations

This module provides integrations with external services:
- Jira: Boards, sprints, issues with changelog, worklogs
- Zoho People: Holidays and approved leaves
"""

from .jira import JiraClient, UserWorklog, parse_issue, parse_sprint, parse_worklogs
from .hr import HRClient, HRLeave, parse_hr_date

__all__ = [
    # Jira
    "JiraClient",
    "UserWorklog",
    "parse_issue",
    "parse_sprint",
    "parse_worklogs",

    # HR
    "HRClient",
    "HRLeave",
    "parse_hr_date",
]
