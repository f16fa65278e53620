"""Data models for incidents, diagnoses and queue jobs."""

from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from responder.registry.models import PagerDutyAlert, ServiceConfig


class IncidentStatus(StrEnum):
    """Lifecycle status of an incident."""

    RECEIVED = "RECEIVED"
    FETCHING_LOGS = "FETCHING_LOGS"
    DIAGNOSING = "DIAGNOSING"
    GENERATING_FIX = "GENERATING_FIX"
    CREATING_PR = "CREATING_PR"
    NOTIFYING = "NOTIFYING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({IncidentStatus.COMPLETED, IncidentStatus.FAILED})

# Forward edges of the lifecycle. GENERATING_FIX and CREATING_PR are skipped
# when remediation is declined, so DIAGNOSING may jump straight to NOTIFYING.
_TRANSITIONS: dict[IncidentStatus, frozenset[IncidentStatus]] = {
    IncidentStatus.RECEIVED: frozenset({IncidentStatus.FETCHING_LOGS}),
    IncidentStatus.FETCHING_LOGS: frozenset({IncidentStatus.DIAGNOSING}),
    IncidentStatus.DIAGNOSING: frozenset(
        {IncidentStatus.GENERATING_FIX, IncidentStatus.NOTIFYING}
    ),
    IncidentStatus.GENERATING_FIX: frozenset({IncidentStatus.CREATING_PR}),
    IncidentStatus.CREATING_PR: frozenset({IncidentStatus.NOTIFYING}),
    IncidentStatus.NOTIFYING: frozenset({IncidentStatus.COMPLETED}),
    IncidentStatus.COMPLETED: frozenset(),
    IncidentStatus.FAILED: frozenset(),
}


def can_transition(current: IncidentStatus, target: IncidentStatus) -> bool:
    """Return True if an incident in ``current`` may move to ``target``.

    FAILED is reachable from every non-terminal status.
    """
    if current.is_terminal:
        return False
    if target == IncidentStatus.FAILED:
        return True
    return target in _TRANSITIONS[current]


class ProposedChange(BaseModel):
    """A single file-level edit proposed by the diagnostic agent."""

    model_config = ConfigDict(frozen=True)

    file_path: str
    diff: str = ""
    explanation: str = ""


class DiagnosisResult(BaseModel):
    """Structured output of one diagnosis pass.

    The raw agent output is always retained so a human can recover the
    analysis even when structured parsing failed.
    """

    model_config = ConfigDict(frozen=True)

    root_cause: str = ""
    affected_files: list[str] = Field(default_factory=list)
    proposed_changes: list[ProposedChange] = Field(default_factory=list)
    risk_assessment: Literal["LOW", "MEDIUM", "HIGH"] = "MEDIUM"
    rollback_plan: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    raw_output: str = ""


class PullRequestRef(BaseModel):
    """Reference to a pull request opened for an incident."""

    url: str
    number: int


class FailureRecord(BaseModel):
    """One failed run of the pipeline for an incident."""

    model_config = ConfigDict(frozen=True)

    status: IncidentStatus = Field(
        ...,
        description="Status the incident was in when the run failed",
    )
    error: str
    failed_at: datetime
    attempt: int = 0


class Incident(BaseModel):
    """One tracked occurrence of a PagerDuty alert and its remediation workflow."""

    id: str = Field(
        ...,
        description="Internal incident ID",
    )
    pagerduty_incident_id: str = Field(
        ...,
        description="External alert ID. Exactly one incident exists per value.",
    )
    title: str
    urgency: str
    service_name: str
    status: IncidentStatus = IncidentStatus.RECEIVED
    slack_channel_id: str | None = None
    slack_message_ts: str | None = Field(
        default=None,
        description="Handle of the Slack message tracking this incident. Set once.",
    )
    diagnosis: DiagnosisResult | None = None
    pr_url: str | None = None
    pr_number: int | None = None
    error_message: str | None = Field(
        default=None,
        description="Error of the most recent failed run. Kept when the incident is retried.",
    )
    failures: list[FailureRecord] = Field(
        default_factory=list,
        description="Append-only history of failed runs",
    )
    attempts: int = Field(
        default=0,
        description="Number of times the pipeline has been started for this incident",
    )
    alert: PagerDutyAlert | None = Field(
        default=None,
        description="Normalized alert, kept so orphaned incidents can be re-enqueued",
    )
    started_at: datetime
    completed_at: datetime | None = Field(
        default=None,
        description="When the incident first reached a terminal status. Written once.",
    )


class IncidentJob(BaseModel):
    """Queue envelope for one incident, keyed by the incident ID."""

    incident_id: str
    alert: PagerDutyAlert
    service_config: ServiceConfig
