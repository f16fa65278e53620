"""
FastAPI routes for the Incident Responder service.

Includes the PagerDuty webhook, the Slack interaction endpoint and the JSON
API over incidents and service configurations.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Header, HTTPException, Request
from pydantic import BaseModel

from responder import __version__
from responder.context import AppContext
from responder.dispatcher.ingestor import IngestResult, IngestStatus, WebhookIngestor
from responder.dispatcher.interactions import extract_actions, handle_review_action, parse_interaction_payload
from responder.incidents.models import Incident
from responder.integrations.pagerduty import verify_pagerduty_signature
from responder.integrations.slack import verify_slack_signature
from responder.registry.models import ServiceConfig, ServiceConfigUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    environment: str
    services_registered: int
    queue: dict[str, int]


class IncidentListResponse(BaseModel):
    count: int
    incidents: list[Incident]


class ServiceListResponse(BaseModel):
    count: int
    services: list[ServiceConfig]


def get_context(request: Request) -> AppContext:
    return request.app.state.context


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint.

    Returns the current status of the service and its work queue.
    """
    context = get_context(request)

    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=context.settings.environment,
        services_registered=len(context.services),
        queue=context.queue.stats(),
    )


@router.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with service information."""
    return {
        "service": "Incident Responder",
        "version": __version__,
        "docs": "/docs",
    }


@router.post("/webhooks/pagerduty", response_model=IngestResult, response_model_exclude_none=True)
async def receive_pagerduty_webhook(
    request: Request,
    x_pagerduty_signature: str | None = Header(None),
) -> IngestResult:
    """Receive a PagerDuty V3 webhook.

    Every delivery with a valid signature is acknowledged with 200 so
    PagerDuty does not redeliver; the body reports what happened to it.

    Raises:
        HTTPException: 401 if the signature does not match.
    """
    context = get_context(request)

    body = await request.body()

    if not verify_pagerduty_signature(body, x_pagerduty_signature, context.settings.pagerduty_webhook_secret):
        logger.warning("Invalid PagerDuty webhook signature received")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error(f"Failed to parse webhook payload: {e}")
        return IngestResult(status=IngestStatus.IGNORED)

    ingestor = WebhookIngestor(context.incidents, context.services, context.queue)
    return await ingestor.ingest(payload)


@router.post("/slack/interactions")
async def receive_slack_interaction(
    request: Request,
    background_tasks: BackgroundTasks,
    x_slack_request_timestamp: str | None = Header(None),
    x_slack_signature: str | None = Header(None),
) -> dict[str, Any]:
    """Receive Slack button callbacks.

    Slack expects an acknowledgement within three seconds, so the actions are
    handled in the background.

    Raises:
        HTTPException: 401 if the signature is invalid or stale.
    """
    context = get_context(request)

    body = await request.body()

    if not verify_slack_signature(
        body,
        x_slack_request_timestamp,
        x_slack_signature,
        context.settings.slack_signing_secret,
    ):
        logger.warning("Invalid Slack request signature received")
        raise HTTPException(status_code=401, detail="Invalid request signature")

    payload = parse_interaction_payload(body)
    if payload is None:
        return {"ok": True}

    for action_id, channel_id in extract_actions(payload):
        background_tasks.add_task(handle_review_action, context, action_id, channel_id)

    return {"ok": True}


@router.get("/api/incidents", response_model=IncidentListResponse)
async def list_incidents(request: Request, limit: int = 50) -> IncidentListResponse:
    """List the most recent incidents."""
    incidents = await get_context(request).incidents.list_incidents(limit=limit)
    return IncidentListResponse(count=len(incidents), incidents=incidents)


@router.get("/api/incidents/{incident_id}", response_model=Incident)
async def get_incident(request: Request, incident_id: str) -> Incident:
    incident = await get_context(request).incidents.get(incident_id)
    if incident is None:
        raise HTTPException(status_code=404, detail=f"Incident '{incident_id}' not found")
    return incident


@router.get("/api/services", response_model=ServiceListResponse)
async def list_services(request: Request) -> ServiceListResponse:
    """List all active service configurations."""
    services = get_context(request).services.list_services()
    return ServiceListResponse(count=len(services), services=services)


@router.post("/api/services", response_model=ServiceConfig, status_code=201)
async def register_service(request: Request, payload: ServiceConfigUpdate) -> ServiceConfig:
    """Register a service configuration.

    An active configuration for the same PagerDuty service is replaced.
    """
    registry = get_context(request).services
    return registry.register_service(ServiceConfig(**payload.model_dump()))


@router.put("/api/services/{service_id}", response_model=ServiceConfig)
async def update_service(request: Request, service_id: str, payload: ServiceConfigUpdate) -> ServiceConfig:
    """Replace an existing service configuration.

    Raises:
        HTTPException: If the service is not found.
    """
    registry = get_context(request).services

    if registry.get_service(service_id) is None:
        raise HTTPException(status_code=404, detail=f"Service '{service_id}' not found")

    bound = registry.get_by_pagerduty_id(payload.pagerduty_service_id)
    if bound and bound.id != service_id:
        raise HTTPException(
            status_code=409,
            detail=f"PagerDuty service '{payload.pagerduty_service_id}' is bound to service '{bound.id}'",
        )

    return registry.register_service(ServiceConfig(id=service_id, **payload.model_dump()))


@router.delete("/api/services/{service_id}")
async def deactivate_service(request: Request, service_id: str) -> dict[str, str]:
    """Deactivate a service configuration. Incidents referring to it are kept.

    Raises:
        HTTPException: If the service is not found.
    """
    registry = get_context(request).services

    if not registry.deactivate_service(service_id):
        raise HTTPException(status_code=404, detail=f"Service '{service_id}' not found")

    return {"message": f"Service '{service_id}' deactivated"}
