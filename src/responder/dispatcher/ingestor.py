"""
Webhook ingestion.

Turns a PagerDuty webhook body into at most one incident record and one queued
job. The record is persisted before the job is enqueued, so a job never refers
to an incident that does not exist.
"""

import logging
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from responder.errors import DuplicateIncidentError
from responder.incidents.models import Incident, IncidentJob, IncidentStatus
from responder.incidents.store import IncidentStore
from responder.integrations.pagerduty import parse_pagerduty_event
from responder.registry.service_registry import ServiceRegistry
from responder.worker.queue import IncidentQueue

logger = logging.getLogger(__name__)


class IngestStatus(StrEnum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    UNMONITORED_SERVICE = "unmonitored_service"
    IGNORED = "ignored"


class IngestResult(BaseModel):
    """Outcome of one webhook delivery, returned to PagerDuty as the response body."""

    status: IngestStatus
    incident_id: str | None = None


class WebhookIngestor:
    """Accepts PagerDuty deliveries and hands new incidents to the queue."""

    def __init__(
        self,
        incidents: IncidentStore,
        services: ServiceRegistry,
        queue: IncidentQueue,
    ) -> None:
        self.incidents = incidents
        self.services = services
        self.queue = queue

    async def ingest(self, payload: Any) -> IngestResult:
        """Process one decoded webhook body. Never raises for bad input."""
        alert = parse_pagerduty_event(payload)
        if alert is None:
            return IngestResult(status=IngestStatus.IGNORED)

        existing = await self.incidents.get_by_external_id(alert.id)
        if existing:
            logger.info(f"Duplicate PagerDuty incident {alert.id}, already tracked as {existing.id}")
            return IngestResult(status=IngestStatus.DUPLICATE, incident_id=existing.id)

        service_config = self.services.get_by_pagerduty_id(alert.service.id)
        if service_config is None:
            logger.warning(f"No service config for PagerDuty service {alert.service.id} ({alert.service.name})")
            return IngestResult(status=IngestStatus.UNMONITORED_SERVICE)

        incident = Incident(
            id=str(uuid.uuid4()),
            pagerduty_incident_id=alert.id,
            title=alert.title,
            urgency=alert.urgency,
            service_name=service_config.name,
            status=IncidentStatus.RECEIVED,
            slack_channel_id=service_config.slack_channel_id,
            alert=alert,
            started_at=datetime.now(UTC),
        )

        try:
            await self.incidents.create(incident)
        except DuplicateIncidentError:
            existing = await self.incidents.get_by_external_id(alert.id)
            logger.info(f"Lost create race for PagerDuty incident {alert.id}")
            return IngestResult(
                status=IngestStatus.DUPLICATE,
                incident_id=existing.id if existing else None,
            )

        self.queue.enqueue(
            IncidentJob(incident_id=incident.id, alert=alert, service_config=service_config)
        )

        logger.info(f"Incident {incident.id} queued for {service_config.name}: {alert.title}")
        return IngestResult(status=IngestStatus.ACCEPTED, incident_id=incident.id)

    async def reconcile(self) -> int:
        """Re-enqueue incidents left in RECEIVED without a pending job.

        Returns:
            Number of incidents re-enqueued.
        """
        requeued = 0
        for incident in await self.incidents.list_by_status(IncidentStatus.RECEIVED):
            if self.queue.is_pending(incident.id):
                continue

            if incident.alert is None:
                logger.warning(f"Orphaned incident {incident.id} has no stored alert, skipping")
                continue

            service_config = self.services.get_by_pagerduty_id(incident.alert.service.id)
            if service_config is None:
                logger.warning(f"Orphaned incident {incident.id} has no active service config, skipping")
                continue

            if self.queue.enqueue(
                IncidentJob(incident_id=incident.id, alert=incident.alert, service_config=service_config)
            ):
                requeued += 1

        if requeued:
            logger.info(f"Re-enqueued {requeued} orphaned incidents")
        return requeued
