"""Timetable client configuration loaded from environment variables.

Endpoint paths default to the ones observed on the upstream portal. They are
undocumented and change without notice, so every one of them can be
overridden from the environment or a .env file.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class TimetableConfig(BaseSettings):
    """Timetable client configuration loaded from environment variables.

    Settings are loaded from environment variables with sensible defaults.
    For local development, create a .env file in the project root.
    """

    # Upstream portal (unofficial, HTML + ad hoc JSON endpoints)
    portal_url: str = Field(
        default="https://timetable.sruniv.com",
        description="Base URL of the academic timetable portal",
    )
    portal_page_path: str = Field(
        default="/batchReport",
        description="Page fetched to obtain session cookies and the CSRF token",
    )
    years_path: str = Field(
        default="/get-yearbpublic",
        description="GET endpoint listing batch records for a degree",
    )
    years_post_paths: list[str] = Field(
        default=["/getYearByDegreePublic", "/get-yearbpublic"],
        description="POST endpoints tried in order when the years GET is empty",
    )
    batches_post_paths: list[str] = Field(
        default=["/getBatchByYearPublic", "/get-batchbpublic"],
        description="POST endpoints tried in order for batches of a degree+year",
    )
    batches_path: str = Field(
        default="/get-batchbpublic",
        description="GET endpoint listing batches for a degree+year",
    )
    search_path: str = Field(
        default="/searchBatchReport2Public",
        description="POST endpoint returning the weekly timetable",
    )

    # HTTP settings
    user_agent: str = Field(
        default="Mozilla/5.0",
        description="User-Agent sent to the portal",
    )
    request_timeout_seconds: float = Field(
        default=20.0,
        description="Timeout for each HTTP request to the portal",
    )
    session_retry_attempts: int = Field(
        default=2,
        description="Attempts at session acquisition before giving up",
    )
    session_retry_wait_seconds: float = Field(
        default=1.0,
        description="Fixed wait between session acquisition attempts",
    )

    # Reminders
    state_dir: str = Field(
        default="data/state",
        description="Directory for persisted reminder state (one file per profile)",
    )
    reminder_lead_minutes: int = Field(
        default=10,
        description="Minutes before class start at which a reminder fires",
    )
    notified_retention_days: int = Field(
        default=7,
        description="Days after a class instance before its notified marker is pruned",
    )

    # Push registry (external collaborator)
    push_server_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the push subscription server",
    )

    # HTTP surface
    server_host: str = Field(default="127.0.0.1", description="Bind host for serve.py")
    server_port: int = Field(default=8000, description="Bind port for serve.py")

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "TIMETABLE_",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def page_url(self) -> str:
        return f"{self.portal_url}{self.portal_page_path}"

    def url(self, path: str) -> str:
        """Join an endpoint path onto the portal base URL."""
        return f"{self.portal_url}{path}"


# Singleton pattern
_config: TimetableConfig | None = None


def get_config() -> TimetableConfig:
    """Get the timetable configuration singleton.

    Returns:
        TimetableConfig: Timetable configuration instance
    """
    global _config
    if _config is None:
        _config = TimetableConfig()
    return _config
