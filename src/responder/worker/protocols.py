"""Collaborator interfaces used by the incident pipeline."""

from collections.abc import Callable
from typing import Protocol

from responder.incidents.models import DiagnosisResult, IncidentStatus, PullRequestRef
from responder.integrations.logs.base import LogSource

LogSourceFactory = Callable[[str], LogSource]


class Notifier(Protocol):
    """Chat notifications for one incident message."""

    async def post_incident_received(
        self,
        channel_id: str,
        incident_id: str,
        title: str,
        urgency: str,
        service_name: str,
    ) -> str: ...

    async def update_incident_progress(
        self,
        channel_id: str,
        message_ts: str,
        title: str,
        urgency: str,
        service_name: str,
        status: IncidentStatus,
    ) -> None: ...

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
    ) -> None: ...

    async def post_incident_failure(
        self,
        channel_id: str,
        message_ts: str | None,
        incident_id: str,
        title: str,
        error_message: str,
    ) -> None: ...

    async def post_message(self, channel_id: str, text: str) -> None: ...


class VersionControl(Protocol):
    """Repository clones, fix branches and pull requests."""

    async def ensure_clone(
        self,
        owner: str,
        repo: str,
        default_branch: str,
        workspace: str | None = None,
    ) -> str: ...

    async def create_fix_branch(self, repo_dir: str, incident_id: str) -> str: ...

    async def commit_and_push(self, repo_dir: str, branch_name: str, message: str) -> None: ...

    async def remove_clone(self, repo_dir: str) -> None: ...

    async def create_draft_pr(
        self,
        owner: str,
        repo: str,
        branch_name: str,
        base_branch: str,
        incident_id: str,
        diagnosis: DiagnosisResult,
        pagerduty_url: str | None,
    ) -> PullRequestRef: ...

    async def mark_ready_for_review(self, owner: str, repo: str, pr_number: int) -> None: ...

    async def close_pr(self, owner: str, repo: str, pr_number: int) -> None: ...
