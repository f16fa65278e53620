"""
Slack interactive callbacks for the Approve/Reject buttons on incident summaries.
"""

import json
import logging
from typing import Any
from urllib.parse import parse_qs

from responder.context import AppContext
from responder.integrations.slack import APPROVE_ACTION_PREFIX, REJECT_ACTION_PREFIX

logger = logging.getLogger(__name__)


def parse_interaction_payload(body: bytes) -> dict[str, Any] | None:
    """Decode the form-encoded ``payload`` field of a Slack interaction request."""
    try:
        form = parse_qs(body.decode("utf-8"))
        return json.loads(form["payload"][0])
    except (UnicodeDecodeError, KeyError, IndexError, json.JSONDecodeError) as e:
        logger.warning(f"Malformed Slack interaction payload: {e}")
        return None


def extract_actions(payload: dict[str, Any]) -> list[tuple[str, str | None]]:
    """Return ``(action_id, channel_id)`` pairs for the buttons this service handles."""
    channel_id = (payload.get("channel") or {}).get("id")
    return [
        (action["action_id"], channel_id)
        for action in payload.get("actions") or []
        if str(action.get("action_id", "")).startswith((APPROVE_ACTION_PREFIX, REJECT_ACTION_PREFIX))
    ]


async def handle_review_action(context: AppContext, action_id: str, channel_id: str | None) -> None:
    """Apply an Approve or Reject decision to the incident's pull request.

    Approve converts the draft pull request to ready for review; Reject closes
    it. Either way a short reply is posted to the channel.
    """
    if action_id.startswith(APPROVE_ACTION_PREFIX):
        approve = True
        incident_id = action_id.removeprefix(APPROVE_ACTION_PREFIX)
    else:
        approve = False
        incident_id = action_id.removeprefix(REJECT_ACTION_PREFIX)

    incident = await context.incidents.get(incident_id)
    if incident is None or incident.pr_number is None:
        logger.warning(f"No pull request recorded for incident {incident_id}, ignoring {action_id}")
        return

    service = context.services.get_by_name(incident.service_name)
    if service is None:
        logger.warning(f"No service config for {incident.service_name}, ignoring {action_id}")
        return

    reply_channel = channel_id or incident.slack_channel_id or service.slack_channel_id

    try:
        if approve:
            await context.vcs.mark_ready_for_review(service.repo_owner, service.repo_name, incident.pr_number)
            text = f":white_check_mark: Fix approved. PR #{incident.pr_number} marked ready for review."
        else:
            await context.vcs.close_pr(service.repo_owner, service.repo_name, incident.pr_number)
            text = f":x: Fix rejected. PR #{incident.pr_number} closed."
    except Exception as e:
        logger.error(f"Failed to handle {action_id}: {e}")
        text = f":warning: Could not update PR #{incident.pr_number}: {e}"

    await context.notifier.post_message(reply_channel, text)
    logger.info(f"Handled {action_id} for incident {incident_id}")
