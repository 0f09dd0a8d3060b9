"""
Configuration for the Sprint Capacity Planner.

Settings come from an optional YAML file and are overridden by environment
variables.
"""

import os
from typing import Optional

import yaml

DEFAULT_CONFIG_PATH = "config/config.yaml"
DEFAULT_DB_PATH = "data/db.json"


def _strip_quotes(value: Optional[str]) -> Optional[str]:
    """Tokens pasted into .env files sometimes keep their quotes."""
    if value is None:
        return None
    return value.strip().strip("'\"")


class Config:
    """Load configuration from config.yaml and environment."""

    ENV_MAPPING = {
        "JIRA_BASE_URL": ("jira", "url"),
        "JIRA_EMAIL": ("jira", "email"),
        "JIRA_API_TOKEN": ("jira", "token"),
        "ZOHO_PEOPLE_URL": ("zoho", "url"),
        "ZOHO_ACCOUNTS_URL": ("zoho", "accounts_url"),
        "ZOHO_CLIENT_ID": ("zoho", "client_id"),
        "ZOHO_CLIENT_SECRET": ("zoho", "client_secret"),
        "ZOHO_REFRESH_TOKEN": ("zoho", "refresh_token"),
        "CAPACITY_DB_PATH": ("storage", "path"),
        "LOG_LEVEL": ("logging", "level"),
    }

    def __init__(self, config_path: Optional[str] = None, environ: Optional[dict] = None):
        self.config_path = config_path or os.getenv("CAPACITY_CONFIG", DEFAULT_CONFIG_PATH)
        self.config = {}

        if os.path.exists(self.config_path):
            with open(self.config_path) as f:
                self.config = yaml.safe_load(f) or {}

        self._load_env(os.environ if environ is None else environ)

    def _load_env(self, environ):
        """Load configuration from environment variables."""
        for env_var, (section, key) in self.ENV_MAPPING.items():
            value = environ.get(env_var)
            if value:
                self.config.setdefault(section, {})[key] = value

    def get(self, section: str, key: str, default=None):
        """Get configuration value."""
        return (self.config.get(section) or {}).get(key, default)

    @property
    def jira_url(self) -> Optional[str]:
        url = self.get("jira", "url")
        return url.rstrip("/") if url else None

    @property
    def jira_email(self) -> Optional[str]:
        return self.get("jira", "email")

    @property
    def jira_token(self) -> Optional[str]:
        return _strip_quotes(self.get("jira", "token"))

    @property
    def jira_configured(self) -> bool:
        return all([self.jira_url, self.jira_email, self.jira_token])

    @property
    def zoho_url(self) -> str:
        return self.get("zoho", "url", "https://people.zoho.com")

    @property
    def zoho_accounts_url(self) -> str:
        return self.get("zoho", "accounts_url", "https://accounts.zoho.com")

    @property
    def zoho_client_id(self) -> Optional[str]:
        return self.get("zoho", "client_id")

    @property
    def zoho_client_secret(self) -> Optional[str]:
        return _strip_quotes(self.get("zoho", "client_secret"))

    @property
    def zoho_refresh_token(self) -> Optional[str]:
        return _strip_quotes(self.get("zoho", "refresh_token"))

    @property
    def db_path(self) -> str:
        return self.get("storage", "path", DEFAULT_DB_PATH)

    @property
    def log_level(self) -> str:
        return str(self.get("logging", "level", "INFO")).upper()

    @property
    def worklog_concurrency(self) -> int:
        return int(self.get("jira", "worklog_concurrency", 10))
