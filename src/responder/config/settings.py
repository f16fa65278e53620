"""
Settings configuration for the Incident Responder using Pydantic Settings.

Environment variables are used for configuration, with optional .env file support.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(default="Incident Responder", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, description="Server port")

    # PagerDuty settings
    pagerduty_webhook_secret: str | None = Field(
        default=None,
        description="Secret for validating PagerDuty V3 webhook signatures",
    )

    # Slack settings
    slack_bot_token: str | None = Field(
        default=None,
        description="Slack bot token (xoxb-...) used for chat.postMessage/chat.update",
    )
    slack_signing_secret: str | None = Field(
        default=None,
        description="Slack signing secret for verifying interactive callbacks",
    )
    slack_api_url: str = Field(
        default="https://slack.com/api",
        description="Base URL of the Slack Web API",
    )

    # GitHub settings
    github_token: str | None = Field(
        default=None,
        description="GitHub token used for cloning, pushing and pull requests",
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        description="Base URL of the GitHub REST API",
    )
    git_author_name: str = Field(
        default="Incident Responder Bot",
        description="Author name used for automated fix commits",
    )
    git_author_email: str = Field(
        default="incident-responder@users.noreply.github.com",
        description="Author email used for automated fix commits",
    )

    # Datadog settings
    datadog_api_key: str | None = Field(
        default=None,
        description="Datadog API key",
    )
    datadog_app_key: str | None = Field(
        default=None,
        description="Datadog Application key",
    )
    datadog_site: str = Field(
        default="datadoghq.com",
        description="Datadog site (e.g., datadoghq.com, datadoghq.eu)",
    )

    # Diagnostic agent CLI settings
    anthropic_api_key: str | None = Field(
        default=None,
        description="API key passed through to the agent CLI process",
    )
    agent_cli_path: str = Field(
        default="claude",
        description="Executable of the diagnostic agent CLI",
    )
    agent_timeout_seconds: float = Field(
        default=300.0,
        description="Hard wall-clock timeout for a single agent invocation",
    )
    agent_kill_grace_seconds: float = Field(
        default=5.0,
        description="Seconds between SIGTERM and SIGKILL after a timeout",
    )
    agent_max_turns: int = Field(
        default=25,
        description="Maximum number of agent turns per invocation",
    )

    # Storage settings
    service_registry_path: str = Field(
        default="data/services.json",
        description="Path to the service configuration JSON file",
    )
    incident_store_path: str = Field(
        default="data/incidents.json",
        description="Path to the incident records JSON file",
    )
    queue_journal_path: str | None = Field(
        default="data/queue.json",
        description="Path to the pending job journal. Disabled when empty.",
    )
    repos_dir: str = Field(
        default="repos",
        description="Directory holding local repository clones",
    )
    scratch_dir: str = Field(
        default="tmp",
        description="Directory for per-invocation prompt files",
    )

    # Queue settings
    queue_concurrency: int = Field(
        default=2,
        description="Number of incidents processed simultaneously",
    )
    queue_rate_limit_max: int = Field(
        default=5,
        description="Maximum job starts per rate limit window",
    )
    queue_rate_limit_window_seconds: float = Field(
        default=60.0,
        description="Length of the rolling rate limit window",
    )
    queue_max_retries: int = Field(
        default=3,
        description="Retries of a failed job before it is discarded",
    )
    queue_backoff_seconds: float = Field(
        default=30.0,
        description="Initial retry delay, doubled on every further attempt",
    )

    # Pipeline settings
    min_remediation_confidence: float = Field(
        default=0.3,
        description="Minimum diagnosis confidence required to open a pull request",
    )
    log_lookback_minutes: int = Field(
        default=5,
        description="Minutes of logs fetched before the alert time",
    )
    log_lookahead_minutes: int = Field(
        default=2,
        description="Minutes of logs fetched after the alert time",
    )
    log_max_lines: int = Field(
        default=200,
        description="Maximum number of log lines fetched per incident",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
