"""Incident pipeline worker: work queue and orchestrator."""

from responder.worker.orchestrator import IncidentOrchestrator, build_log_query
from responder.worker.protocols import Notifier, VersionControl
from responder.worker.queue import IncidentQueue, RateLimiter

__all__ = [
    "IncidentOrchestrator",
    "IncidentQueue",
    "Notifier",
    "RateLimiter",
    "VersionControl",
    "build_log_query",
]
