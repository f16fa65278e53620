"""Data models for service configuration and inbound alerts."""

import uuid
from typing import Literal

from pydantic import BaseModel, Field


class ServiceConfig(BaseModel):
    """Routing configuration for one monitored service.

    This model maps a PagerDuty service to the GitHub repository holding its
    code, the Slack channel where responders are notified, and the log source
    used to collect evidence.
    """

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Internal identifier of the service configuration",
    )
    name: str = Field(
        ...,
        description="Human readable service name",
    )
    pagerduty_service_id: str = Field(
        ...,
        description="PagerDuty service ID. Unique among active configurations.",
    )
    repo_owner: str = Field(
        ...,
        description="GitHub organization or user owning the repository",
    )
    repo_name: str = Field(
        ...,
        description="GitHub repository name",
    )
    default_branch: str = Field(
        default="main",
        description="Branch fixes are based on and pull requests target",
    )
    slack_channel_id: str = Field(
        ...,
        description="Slack channel receiving incident updates",
    )
    log_source: Literal["mock", "datadog"] = Field(
        default="mock",
        description="Log source used to fetch evidence for this service",
    )
    log_query: str | None = Field(
        default=None,
        description="Optional extra query appended to the log search",
    )
    active: bool = Field(
        default=True,
        description="Inactive configurations are ignored by the ingestor",
    )


class ServiceConfigUpdate(BaseModel):
    """Payload for creating or replacing a service configuration via the API."""

    name: str
    pagerduty_service_id: str
    repo_owner: str
    repo_name: str
    default_branch: str = "main"
    slack_channel_id: str
    log_source: Literal["mock", "datadog"] = "mock"
    log_query: str | None = None


class AlertService(BaseModel):
    """Service reference carried by a PagerDuty incident."""

    id: str = "unknown"
    name: str = "unknown"


class PagerDutyAlert(BaseModel):
    """A triggered PagerDuty incident, normalized from the V3 webhook payload."""

    id: str = Field(
        ...,
        description="PagerDuty incident ID, used for deduplication",
    )
    title: str = Field(
        ...,
        description="Incident title",
    )
    urgency: Literal["high", "low"] = Field(
        default="high",
        description="PagerDuty urgency",
    )
    status: str = Field(
        default="triggered",
        description="PagerDuty incident status",
    )
    service: AlertService = Field(
        default_factory=AlertService,
        description="The PagerDuty service that raised the incident",
    )
    created_at: str = Field(
        ...,
        description="ISO 8601 timestamp of when the incident was triggered",
    )
    html_url: str = Field(
        default="",
        description="Link to the incident in PagerDuty",
    )
    alert_details: list[str] = Field(
        default_factory=list,
        description="Free-text alert details",
    )
