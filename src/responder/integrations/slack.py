"""
Slack notifications for incident progress.

One Slack message tracks each incident: it is posted when processing starts,
updated as phases progress and finally replaced by the summary (with the
Approve/Reject buttons) or a failure notice. Messages are sent through the
Slack Web API with httpx.
"""

import hashlib
import hmac
import logging
import time
from typing import Any

import httpx

from responder.errors import NotificationError
from responder.incidents.models import DiagnosisResult, IncidentStatus

logger = logging.getLogger(__name__)

APPROVE_ACTION_PREFIX = "approve_fix_"
REJECT_ACTION_PREFIX = "reject_fix_"

SIGNATURE_MAX_AGE_SECONDS = 60 * 5

# Slack rejects longer texts with invalid_blocks
MAX_HEADER_CHARS = 150
MAX_SECTION_CHARS = 3000

SEVERITY_EMOJI = {
    "high": ":red_circle:",
    "low": ":large_yellow_circle:",
}

STATUS_MESSAGES = {
    IncidentStatus.FETCHING_LOGS: ":page_facing_up: Fetching logs and stack traces...",
    IncidentStatus.DIAGNOSING: ":brain: Analyzing root cause with the diagnostic agent...",
    IncidentStatus.GENERATING_FIX: ":wrench: Generating code fix...",
    IncidentStatus.CREATING_PR: ":github: Creating draft pull request...",
    IncidentStatus.NOTIFYING: ":white_check_mark: Analysis complete! Preparing summary...",
}


def truncate(text: str, limit: int) -> str:
    """Cut text to at most ``limit`` characters, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def _header(text: str) -> dict[str, Any]:
    return {
        "type": "header",
        "text": {"type": "plain_text", "text": truncate(text, MAX_HEADER_CHARS), "emoji": True},
    }


def _header_block(title: str, urgency: str, prefix: str = "Incident") -> dict[str, Any]:
    icon = "🚨" if urgency == "high" else "⚠️"
    return _header(f"{icon} {prefix}: {title}")


def _text_section(text: str) -> dict[str, Any]:
    return {
        "type": "section",
        "text": {"type": "mrkdwn", "text": truncate(text, MAX_SECTION_CHARS)},
    }


def _severity_fields(urgency: str, service_name: str) -> list[dict[str, str]]:
    emoji = SEVERITY_EMOJI.get(urgency, ":white_circle:")
    return [
        {"type": "mrkdwn", "text": f"*Severity:* {emoji} {urgency.upper()}"},
        {"type": "mrkdwn", "text": f"*Service:* {service_name}"},
    ]


def build_received_blocks(
    incident_id: str,
    title: str,
    urgency: str,
    service_name: str,
) -> list[dict[str, Any]]:
    """Blocks of the initial "Investigating..." message."""
    return [
        _header_block(title, urgency),
        {"type": "section", "fields": _severity_fields(urgency, service_name)},
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": ":mag: *Status:* Investigating... fetching logs and analyzing.",
            },
        },
        {
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": f"Incident ID: `{incident_id}`"}],
        },
    ]


def build_progress_blocks(
    title: str,
    urgency: str,
    service_name: str,
    status: IncidentStatus,
) -> list[dict[str, Any]]:
    """Blocks of the message while a phase is running."""
    return [
        _header_block(title, urgency),
        {"type": "section", "fields": _severity_fields(urgency, service_name)},
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": STATUS_MESSAGES.get(status, f":hourglass_flowing_sand: {status}"),
            },
        },
    ]


def build_summary_blocks(
    incident_id: str,
    title: str,
    urgency: str,
    service_name: str,
    diagnosis: DiagnosisResult,
    pr_url: str | None,
    pagerduty_url: str | None,
    duration_ms: int,
) -> list[dict[str, Any]]:
    """Blocks of the final summary with diagnosis, PR link and action buttons."""
    fields = _severity_fields(urgency, service_name) + [
        {"type": "mrkdwn", "text": f"*Confidence:* {round(diagnosis.confidence * 100)}%"},
        {"type": "mrkdwn", "text": f"*Risk:* {diagnosis.risk_assessment}"},
    ]

    blocks: list[dict[str, Any]] = [
        _header_block(title, urgency, prefix="Incident Response"),
        {"type": "section", "fields": fields},
        {"type": "divider"},
        _text_section(f"*:mag: Root Cause*\n{diagnosis.root_cause}"),
    ]

    if diagnosis.affected_files:
        files = "\n".join(f"• `{path}`" for path in diagnosis.affected_files)
        blocks.append(_text_section(f"*:file_folder: Affected Files*\n{files}"))

    if diagnosis.proposed_changes:
        changes = "\n".join(
            f"• `{change.file_path}`: {change.explanation}" for change in diagnosis.proposed_changes
        )
        blocks.append(_text_section(f"*:wrench: Proposed Fix*\n{changes}"))

    blocks.append({"type": "divider"})

    actions: list[dict[str, Any]] = []
    if pr_url:
        actions.extend(
            [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "View Draft PR", "emoji": True},
                    "url": pr_url,
                    "style": "primary",
                },
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Approve Fix", "emoji": True},
                    "action_id": f"{APPROVE_ACTION_PREFIX}{incident_id}",
                    "style": "primary",
                },
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Reject Fix", "emoji": True},
                    "action_id": f"{REJECT_ACTION_PREFIX}{incident_id}",
                    "style": "danger",
                },
            ]
        )
    if pagerduty_url:
        actions.append(
            {
                "type": "button",
                "text": {"type": "plain_text", "text": "View in PagerDuty", "emoji": True},
                "url": pagerduty_url,
            }
        )
    if actions:
        blocks.append({"type": "actions", "elements": actions})

    duration_sec = round(duration_ms / 1000)
    blocks.append(
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": f":clock1: Diagnosed in {duration_sec}s | Incident ID: `{incident_id}`",
                }
            ],
        }
    )
    return blocks


def build_failure_blocks(incident_id: str, title: str, error_message: str) -> list[dict[str, Any]]:
    """Blocks of the failure notice."""
    return [
        _header(f"❌ Incident Response Failed: {title}"),
        _text_section(
            "The automated responder could not complete analysis.\n"
            f"*Error:* {error_message}\n\nPlease investigate manually."
        ),
        {
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": f"Incident ID: `{incident_id}`"}],
        },
    ]


def verify_slack_signature(
    body: bytes,
    timestamp: str | None,
    signature: str | None,
    secret: str | None,
    now: float | None = None,
) -> bool:
    """Verify the X-Slack-Signature of an interactive callback.

    Args:
        body: Raw request body.
        timestamp: X-Slack-Request-Timestamp header.
        signature: X-Slack-Signature header (``v0=<hex>``).
        secret: Slack signing secret.
        now: Current UNIX time, for tests.

    Returns:
        True if the signature is valid and fresh, or verification is disabled.
    """
    if not secret:
        return True

    if not timestamp or not signature:
        return False

    try:
        sent_at = int(timestamp)
    except ValueError:
        return False

    current = time.time() if now is None else now
    if abs(current - sent_at) > SIGNATURE_MAX_AGE_SECONDS:
        return False

    basestring = f"v0:{timestamp}:".encode() + body
    expected = "v0=" + hmac.new(secret.encode(), basestring, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


class SlackNotifier:
    """Posts and updates incident messages through the Slack Web API."""

    def __init__(
        self,
        bot_token: str | None,
        api_url: str = "https://slack.com/api",
        timeout: float = 30.0,
    ) -> None:
        self.bot_token = bot_token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    async def _call(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{self.api_url}/{method}",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.bot_token or ''}",
                    "Content-Type": "application/json; charset=utf-8",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()

        if not data.get("ok"):
            raise NotificationError(f"Slack {method} failed: {data.get('error', 'unknown_error')}")
        return data

    async def post_incident_received(
        self,
        channel_id: str,
        incident_id: str,
        title: str,
        urgency: str,
        service_name: str,
    ) -> str:
        """Post the initial message and return its handle (message ts)."""
        data = await self._call(
            "chat.postMessage",
            {
                "channel": channel_id,
                "text": f"Incident received: {title}",
                "blocks": build_received_blocks(incident_id, title, urgency, service_name),
            },
        )
        logger.info(f"Posted incident message for {incident_id} to {channel_id}")
        return data["ts"]

    async def update_incident_progress(
        self,
        channel_id: str,
        message_ts: str,
        title: str,
        urgency: str,
        service_name: str,
        status: IncidentStatus,
    ) -> None:
        await self._call(
            "chat.update",
            {
                "channel": channel_id,
                "ts": message_ts,
                "text": f"Incident update: {title} - {status}",
                "blocks": build_progress_blocks(title, urgency, service_name, status),
            },
        )

    async def post_incident_summary(
        self,
        channel_id: str,
        message_ts: str,
        incident_id: str,
        title: str,
        urgency: str,
        service_name: str,
        diagnosis: DiagnosisResult,
        pr_url: str | None,
        pagerduty_url: str | None,
        duration_ms: int,
    ) -> None:
        """Replace the incident message with the final summary."""
        await self._call(
            "chat.update",
            {
                "channel": channel_id,
                "ts": message_ts,
                "text": f"Incident Response Complete: {title}",
                "blocks": build_summary_blocks(
                    incident_id,
                    title,
                    urgency,
                    service_name,
                    diagnosis,
                    pr_url,
                    pagerduty_url,
                    duration_ms,
                ),
            },
        )
        logger.info(f"Posted summary for incident {incident_id}")

    async def post_incident_failure(
        self,
        channel_id: str,
        message_ts: str | None,
        incident_id: str,
        title: str,
        error_message: str,
    ) -> None:
        """Replace the incident message with a failure notice, or post a new one."""
        payload = {
            "channel": channel_id,
            "text": f"Incident Response Failed: {title}",
            "blocks": build_failure_blocks(incident_id, title, error_message),
        }
        if message_ts:
            await self._call("chat.update", {**payload, "ts": message_ts})
        else:
            await self._call("chat.postMessage", payload)

    async def post_message(self, channel_id: str, text: str) -> None:
        """Post a plain text message to a channel."""
        await self._call("chat.postMessage", {"channel": channel_id, "text": text})
