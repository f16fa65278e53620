"""Exception hierarchy for the Incident Responder."""


class ResponderError(Exception):
    """Base class for all Incident Responder errors."""


class InvocationError(ResponderError):
    """The diagnostic agent could not be run or produced no usable output."""


class InvalidTransitionError(ResponderError):
    """An incident was asked to move to a status its lifecycle does not allow."""

    def __init__(self, incident_id: str, current: str, target: str) -> None:
        super().__init__(f"Incident {incident_id}: cannot transition {current} -> {target}")
        self.incident_id = incident_id
        self.current = current
        self.target = target


class IncidentNotFoundError(ResponderError):
    """No incident record exists for the given ID."""


class DuplicateIncidentError(ResponderError):
    """An incident already exists for the given external alert ID."""


class GitCommandError(ResponderError):
    """A git subprocess exited with a non-zero status."""


class LogSourceError(ResponderError):
    """A log source could not be resolved or queried."""


class NotificationError(ResponderError):
    """The chat API rejected a notification request."""
