"""
Incident store.

Durable keyed store of incident records, backed by a JSON file. The store is
also the dedup index for external alert IDs: creating a second incident for
the same PagerDuty incident ID is rejected.
"""

import asyncio
import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from responder.errors import DuplicateIncidentError, IncidentNotFoundError, InvalidTransitionError
from responder.incidents.models import FailureRecord, Incident, IncidentStatus, can_transition

logger = logging.getLogger(__name__)


class IncidentStore:
    """Keyed store of incident records.

    Records are never deleted. Every mutation is written through to the JSON
    file (when a path is configured) before the call returns.
    """

    def __init__(self, store_path: str | None = None) -> None:
        """Initialize the store.

        Args:
            store_path: Path to the JSON file holding incident records.
                        If None, records are kept in memory only.
        """
        self._incidents: dict[str, Incident] = {}
        self._by_external_id: dict[str, str] = {}
        self._store_path = store_path
        self._lock = asyncio.Lock()

        if store_path:
            self._load_from_file(store_path)

    def _load_from_file(self, path: str) -> None:
        file_path = Path(path)
        if not file_path.exists():
            logger.info(f"Incident store file not found, starting empty: {path}")
            return

        try:
            with open(file_path) as f:
                data = json.load(f)

            for record in data:
                incident = Incident.model_validate(record)
                self._incidents[incident.id] = incident
                self._by_external_id[incident.pagerduty_incident_id] = incident.id

            logger.info(f"Loaded {len(self._incidents)} incidents from store")
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse incident store JSON: {e}")

    def _flush(self) -> None:
        if not self._store_path:
            return

        file_path = Path(self._store_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")

        data = [incident.model_dump(mode="json") for incident in self._incidents.values()]
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        tmp_path.replace(file_path)

    async def create(self, incident: Incident) -> Incident:
        """Persist a new incident.

        Raises:
            DuplicateIncidentError: If an incident already exists for the
                same PagerDuty incident ID.
        """
        async with self._lock:
            if incident.pagerduty_incident_id in self._by_external_id:
                raise DuplicateIncidentError(
                    f"Incident already exists for PagerDuty incident {incident.pagerduty_incident_id}"
                )

            self._incidents[incident.id] = incident
            self._by_external_id[incident.pagerduty_incident_id] = incident.id
            self._flush()

        logger.info(f"Created incident {incident.id} ({incident.status})")
        return incident

    async def get(self, incident_id: str) -> Incident | None:
        return self._incidents.get(incident_id)

    async def get_by_external_id(self, pagerduty_incident_id: str) -> Incident | None:
        """Dedup lookup by PagerDuty incident ID."""
        incident_id = self._by_external_id.get(pagerduty_incident_id)
        if incident_id is None:
            return None
        return self._incidents.get(incident_id)

    async def list_incidents(self, limit: int = 50) -> list[Incident]:
        """List the most recently started incidents first."""
        incidents = sorted(self._incidents.values(), key=lambda i: i.started_at, reverse=True)
        return incidents[:limit]

    async def list_by_status(self, status: IncidentStatus) -> list[Incident]:
        return [i for i in self._incidents.values() if i.status == status]

    async def update(self, incident_id: str, **fields: Any) -> Incident:
        """Update fields of an incident without changing its status."""
        if "status" in fields:
            raise ValueError("Use transition() to change an incident's status")
        if fields.keys() & {"completed_at", "failures"}:
            raise ValueError("completed_at and failures are written by transition() only")

        async with self._lock:
            incident = self._require(incident_id)
            updated = incident.model_copy(update=fields)
            self._incidents[incident_id] = updated
            self._flush()

        return updated

    async def transition(
        self,
        incident_id: str,
        status: IncidentStatus,
        **fields: Any,
    ) -> Incident:
        """Move an incident to a new status, persisting extra fields with it.

        completed_at is stamped the first time a terminal status is reached
        and never changed afterwards. Every move to FAILED appends a
        FailureRecord to the incident's failure history.

        Raises:
            IncidentNotFoundError: If the incident does not exist.
            InvalidTransitionError: If the lifecycle does not allow the move.
        """
        async with self._lock:
            incident = self._require(incident_id)
            if not can_transition(incident.status, status):
                raise InvalidTransitionError(incident_id, incident.status, status)

            now = datetime.now(UTC)
            changes = {**fields, "status": status}
            if status.is_terminal and incident.completed_at is None:
                changes["completed_at"] = now
            if status == IncidentStatus.FAILED:
                failure = FailureRecord(
                    status=incident.status,
                    error=fields.get("error_message") or "",
                    failed_at=now,
                    attempt=incident.attempts,
                )
                changes["failures"] = [*incident.failures, failure]

            updated = incident.model_copy(update=changes)
            self._incidents[incident_id] = updated
            self._flush()

        logger.info(f"Incident {incident_id}: {incident.status} -> {status}")
        return updated

    async def reopen(self, incident_id: str) -> Incident:
        """Return a FAILED incident to RECEIVED so a retried job can run it again.

        Only the status changes. The error message, completion time and
        failure history stay on the record.
        """
        async with self._lock:
            incident = self._require(incident_id)
            if incident.status != IncidentStatus.FAILED:
                raise InvalidTransitionError(incident_id, incident.status, IncidentStatus.RECEIVED)

            updated = incident.model_copy(update={"status": IncidentStatus.RECEIVED})
            self._incidents[incident_id] = updated
            self._flush()

        logger.info(f"Incident {incident_id} reopened for retry")
        return updated

    def _require(self, incident_id: str) -> Incident:
        incident = self._incidents.get(incident_id)
        if incident is None:
            raise IncidentNotFoundError(f"Incident not found: {incident_id}")
        return incident

    def __len__(self) -> int:
        return len(self._incidents)
