"""
Application context.

All collaborators are built once at startup and passed explicitly to the
parts that use them; the web layer keeps the context on ``app.state``.
"""

import logging
from dataclasses import dataclass
from functools import partial

from responder.config.settings import Settings
from responder.diagnosis.invoker import AgentInvoker
from responder.incidents.store import IncidentStore
from responder.integrations.github import GitHubClient
from responder.integrations.logs import get_log_source
from responder.integrations.slack import SlackNotifier
from responder.registry.service_registry import ServiceRegistry
from responder.worker.orchestrator import IncidentOrchestrator
from responder.worker.protocols import LogSourceFactory, Notifier, VersionControl
from responder.worker.queue import IncidentQueue

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    services: ServiceRegistry
    incidents: IncidentStore
    notifier: Notifier
    vcs: VersionControl
    invoker: AgentInvoker
    log_source_factory: LogSourceFactory
    orchestrator: IncidentOrchestrator
    queue: IncidentQueue


def build_context(settings: Settings) -> AppContext:
    """Wire the production collaborators from settings."""
    services = ServiceRegistry(settings.service_registry_path)
    incidents = IncidentStore(settings.incident_store_path)
    notifier = SlackNotifier(settings.slack_bot_token, api_url=settings.slack_api_url)
    vcs = GitHubClient(
        settings.github_token,
        repos_dir=settings.repos_dir,
        api_url=settings.github_api_url,
        author_name=settings.git_author_name,
        author_email=settings.git_author_email,
    )
    invoker = AgentInvoker(settings)
    log_source_factory = partial(get_log_source, settings=settings)

    orchestrator = IncidentOrchestrator(
        settings=settings,
        incidents=incidents,
        notifier=notifier,
        vcs=vcs,
        invoker=invoker,
        log_source_factory=log_source_factory,
    )
    queue = IncidentQueue(
        orchestrator.process,
        concurrency=settings.queue_concurrency,
        rate_limit_max=settings.queue_rate_limit_max,
        rate_limit_window=settings.queue_rate_limit_window_seconds,
        max_retries=settings.queue_max_retries,
        backoff_seconds=settings.queue_backoff_seconds,
        journal_path=settings.queue_journal_path,
    )

    logger.info(
        f"Context ready: {len(services)} services, {len(incidents)} incidents on record"
    )

    return AppContext(
        settings=settings,
        services=services,
        incidents=incidents,
        notifier=notifier,
        vcs=vcs,
        invoker=invoker,
        log_source_factory=log_source_factory,
        orchestrator=orchestrator,
        queue=queue,
    )
