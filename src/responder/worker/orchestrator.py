"""
Incident pipeline orchestrator.

Drives one incident through its lifecycle:

1. Post (or reuse) the Slack message tracking the incident
2. Fetch logs around the alert time
3. Clone the repository and run the read-only diagnosis pass
4. If the diagnosis passes the remediation gate, apply the fix on a branch
   and open a draft pull request
5. Post the summary to Slack
6. Remove the incident's working clone, whatever the outcome

Each status transition is persisted before the side effects of its phase.
Any failure marks the incident FAILED and is re-raised so the queue retries.
"""

import logging
import time
from datetime import UTC, datetime, timedelta

from ddtrace.llmobs.decorators import workflow

from responder.config.settings import Settings
from responder.diagnosis.gating import should_remediate
from responder.diagnosis.invoker import AgentInvoker
from responder.incidents.models import Incident, IncidentJob, IncidentStatus, PullRequestRef
from responder.incidents.store import IncidentStore
from responder.integrations.logs.base import LogQuery, LogSource
from responder.registry.models import PagerDutyAlert, ServiceConfig
from responder.worker.protocols import LogSourceFactory, Notifier, VersionControl

logger = logging.getLogger(__name__)


def alert_time(alert: PagerDutyAlert) -> datetime:
    """Parse the alert's trigger time, falling back to now when it is not ISO 8601."""
    try:
        parsed = datetime.fromisoformat(alert.created_at)
    except ValueError:
        logger.warning(f"Unparseable alert timestamp {alert.created_at!r}, using current time")
        return datetime.now(UTC)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def build_log_query(alert: PagerDutyAlert, service_config: ServiceConfig, settings: Settings) -> LogQuery:
    """Build the log query covering the window around the alert."""
    triggered_at = alert_time(alert)
    return LogQuery(
        service=service_config.name,
        environment="production",
        start_time=triggered_at - timedelta(minutes=settings.log_lookback_minutes),
        end_time=triggered_at + timedelta(minutes=settings.log_lookahead_minutes),
        severity="ERROR",
        max_lines=settings.log_max_lines,
        extra_query=service_config.log_query,
    )


def build_commit_message(title: str, incident_id: str, root_cause: str) -> str:
    return (
        f"fix: automated incident response for {title}\n\n"
        f"Incident ID: {incident_id}\n"
        f"Root cause: {root_cause[:200]}"
    )


class IncidentOrchestrator:
    """Runs the response pipeline for queued incident jobs."""

    def __init__(
        self,
        settings: Settings,
        incidents: IncidentStore,
        notifier: Notifier,
        vcs: VersionControl,
        invoker: AgentInvoker,
        log_source_factory: LogSourceFactory,
    ) -> None:
        self.settings = settings
        self.incidents = incidents
        self.notifier = notifier
        self.vcs = vcs
        self.invoker = invoker
        self.log_source_factory = log_source_factory

    async def _prepare(self, incident: Incident) -> Incident | None:
        """Bring a delivered incident back to RECEIVED, or None to skip it."""
        if incident.status == IncidentStatus.COMPLETED:
            logger.info(f"Incident {incident.id} already completed, skipping redelivery")
            return None

        if incident.status not in (IncidentStatus.RECEIVED, IncidentStatus.FAILED):
            # Delivered again while a previous run was cut off mid-phase
            incident = await self.incidents.transition(
                incident.id,
                IncidentStatus.FAILED,
                error_message=f"Interrupted during {incident.status}",
            )

        if incident.status == IncidentStatus.FAILED:
            incident = await self.incidents.reopen(incident.id)

        return await self.incidents.update(incident.id, attempts=incident.attempts + 1)

    async def _progress(self, incident: Incident, status: IncidentStatus) -> Incident:
        incident = await self.incidents.transition(incident.id, status)
        if incident.slack_channel_id and incident.slack_message_ts:
            await self.notifier.update_incident_progress(
                incident.slack_channel_id,
                incident.slack_message_ts,
                incident.title,
                incident.urgency,
                incident.service_name,
                status,
            )
        return incident

    @workflow(name="process_incident")
    async def process(self, job: IncidentJob) -> None:
        """Run the full pipeline for one job.

        Raises:
            Exception: Whatever made a phase fail, after the incident has been
                       marked FAILED.
        """
        incident = await self.incidents.get(job.incident_id)
        if incident is None:
            logger.error(f"Incident {job.incident_id} not found, dropping job")
            return

        incident = await self._prepare(incident)
        if incident is None:
            return

        alert = job.alert
        service = job.service_config
        started = time.monotonic()
        repo_dir: str | None = None

        logger.info(
            f"Processing incident {incident.id} for service {service.name} (attempt {incident.attempts})"
        )

        try:
            # Logs
            incident = await self.incidents.transition(incident.id, IncidentStatus.FETCHING_LOGS)
            if not incident.slack_message_ts:
                message_ts = await self.notifier.post_incident_received(
                    service.slack_channel_id,
                    incident.id,
                    alert.title,
                    alert.urgency,
                    service.name,
                )
                incident = await self.incidents.update(
                    incident.id,
                    slack_channel_id=service.slack_channel_id,
                    slack_message_ts=message_ts,
                )
            await self.notifier.update_incident_progress(
                incident.slack_channel_id or service.slack_channel_id,
                incident.slack_message_ts,
                incident.title,
                incident.urgency,
                incident.service_name,
                IncidentStatus.FETCHING_LOGS,
            )

            log_source: LogSource = self.log_source_factory(service.log_source)
            logs = await log_source.fetch_logs(build_log_query(alert, service, self.settings))
            logger.info(
                f"Fetched {logs.raw_lines} log lines and {len(logs.stack_traces)} stack traces "
                f"for incident {incident.id}"
            )

            # Diagnosis
            incident = await self._progress(incident, IncidentStatus.DIAGNOSING)
            repo_dir = await self.vcs.ensure_clone(
                service.repo_owner,
                service.repo_name,
                service.default_branch,
                incident.id,
            )
            diagnosis = await self.invoker.diagnose(alert, logs, service, repo_dir)
            incident = await self.incidents.update(incident.id, diagnosis=diagnosis)
            logger.info(
                f"Diagnosis for incident {incident.id}: confidence={diagnosis.confidence}, "
                f"risk={diagnosis.risk_assessment}, files={len(diagnosis.affected_files)}"
            )

            # Remediation
            pr: PullRequestRef | None = None
            if should_remediate(diagnosis, self.settings.min_remediation_confidence):
                incident = await self._progress(incident, IncidentStatus.GENERATING_FIX)
                branch_name = await self.vcs.create_fix_branch(repo_dir, incident.id)
                await self.invoker.apply_fix(diagnosis.raw_output, service, repo_dir)
                await self.vcs.commit_and_push(
                    repo_dir,
                    branch_name,
                    build_commit_message(alert.title, incident.id, diagnosis.root_cause),
                )

                incident = await self._progress(incident, IncidentStatus.CREATING_PR)
                pr = await self.vcs.create_draft_pr(
                    service.repo_owner,
                    service.repo_name,
                    branch_name,
                    service.default_branch,
                    incident.id,
                    diagnosis,
                    alert.html_url or None,
                )
                incident = await self.incidents.update(incident.id, pr_url=pr.url, pr_number=pr.number)
            else:
                logger.info(
                    f"Skipping fix for incident {incident.id}: confidence {diagnosis.confidence}, "
                    f"{len(diagnosis.proposed_changes)} proposed changes"
                )

            # Summary
            incident = await self._progress(incident, IncidentStatus.NOTIFYING)
            duration_ms = int((time.monotonic() - started) * 1000)
            await self.notifier.post_incident_summary(
                incident.slack_channel_id or service.slack_channel_id,
                incident.slack_message_ts,
                incident.id,
                alert.title,
                alert.urgency,
                service.name,
                diagnosis,
                pr.url if pr else None,
                alert.html_url or None,
                duration_ms,
            )
            await self.incidents.transition(incident.id, IncidentStatus.COMPLETED)

            logger.info(f"Incident {incident.id} completed in {duration_ms}ms (PR: {pr.url if pr else None})")

        except Exception as e:
            logger.error(f"Incident {job.incident_id} processing failed: {e}")
            await self._fail(job, str(e) or type(e).__name__)
            raise
        finally:
            if repo_dir:
                await self._remove_clone(repo_dir)

    async def _remove_clone(self, repo_dir: str) -> None:
        try:
            await self.vcs.remove_clone(repo_dir)
        except Exception as e:
            logger.error(f"Failed to remove clone {repo_dir}: {e}")

    async def _fail(self, job: IncidentJob, error_message: str) -> None:
        incident = await self.incidents.get(job.incident_id)
        if incident is None:
            return

        if not incident.status.is_terminal:
            incident = await self.incidents.transition(
                incident.id,
                IncidentStatus.FAILED,
                error_message=error_message,
            )

        try:
            await self.notifier.post_incident_failure(
                incident.slack_channel_id or job.service_config.slack_channel_id,
                incident.slack_message_ts,
                incident.id,
                job.alert.title,
                error_message,
            )
        except Exception as slack_error:
            logger.error(f"Failed to post failure message to Slack: {slack_error}")
