"""
PagerDuty V3 webhook support: signature verification and event parsing.
"""

import hashlib
import hmac
import json
import logging
from datetime import UTC, datetime
from typing import Any

from responder.registry.models import AlertService, PagerDutyAlert

logger = logging.getLogger(__name__)

TRIGGER_EVENT_TYPE = "incident.triggered"


def verify_pagerduty_signature(
    payload: bytes,
    signature_header: str | None,
    secret: str | None,
) -> bool:
    """Verify the X-PagerDuty-Signature header of a webhook delivery.

    PagerDuty signs the raw body with HMAC-SHA256 and sends one or more
    comma-separated ``v1=<hex>`` signatures (several during secret rotation).

    Args:
        payload: Raw request body.
        signature_header: Signature header from the request.
        secret: Webhook secret.

    Returns:
        True if a signature matches or verification is disabled.
    """
    if not secret:
        # Signature verification disabled
        return True

    if not signature_header:
        return False

    expected = hmac.new(
        secret.encode(),
        payload,
        hashlib.sha256,
    ).hexdigest()

    for candidate in signature_header.split(","):
        candidate = candidate.strip()
        value = candidate[3:] if candidate.startswith("v1=") else candidate
        if hmac.compare_digest(expected, value):
            return True
    return False


def parse_pagerduty_event(body: Any) -> PagerDutyAlert | None:
    """Parse a PagerDuty V3 webhook body into a normalized alert.

    Args:
        body: Decoded JSON body of the webhook.

    Returns:
        The alert for ``incident.triggered`` events, None for any other event
        type or for a payload that cannot be parsed.
    """
    try:
        event = body.get("event") if isinstance(body, dict) else None
        if not event or event.get("event_type") != TRIGGER_EVENT_TYPE:
            logger.debug(
                f"Ignoring non-trigger PagerDuty event: {event.get('event_type') if event else None}"
            )
            return None

        data = event["data"]

        alert_details = []
        details = (data.get("body") or {}).get("details")
        if details:
            alert_details.append(details if isinstance(details, str) else json.dumps(details))

        service = data.get("service") or {}

        return PagerDutyAlert(
            id=data["id"],
            title=data["title"],
            urgency=data.get("urgency") or "high",
            status=data.get("status") or "triggered",
            service=AlertService(
                id=service.get("id") or "unknown",
                name=service.get("summary") or "unknown",
            ),
            created_at=data.get("created_at") or datetime.now(UTC).isoformat(),
            html_url=data.get("html_url") or "",
            alert_details=alert_details,
        )
    except Exception as e:
        logger.error(f"Failed to parse PagerDuty event: {e}")
        return None
