"""
Error types for the Sprint Capacity Planner.
"""

from typing import Optional


class CapacityPlannerError(Exception):
    """Base class for all planner errors."""


class ValidationError(CapacityPlannerError, ValueError):
    """
    Raised when an input to the planning engine is malformed.

    The message names the offending input so a failed computation reports
    one clear cause instead of a partially populated report.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        return {"error": self.message, "field": self.field}


class NotConfiguredError(CapacityPlannerError):
    """Raised when an integration is used without credentials."""


class IntegrationError(CapacityPlannerError):
    """Raised when an upstream service (issue tracker, HR system) fails."""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service
