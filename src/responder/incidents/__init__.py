"""Incident records, lifecycle and storage."""

from responder.incidents.models import (
    DiagnosisResult,
    FailureRecord,
    Incident,
    IncidentJob,
    IncidentStatus,
    ProposedChange,
    PullRequestRef,
    can_transition,
)
from responder.incidents.store import IncidentStore

__all__ = [
    "DiagnosisResult",
    "FailureRecord",
    "Incident",
    "IncidentJob",
    "IncidentStatus",
    "IncidentStore",
    "ProposedChange",
    "PullRequestRef",
    "can_transition",
]
