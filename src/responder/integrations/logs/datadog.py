"""
Datadog log source.

Queries the Datadog Logs Search API for error logs of a service within the
incident time window, using the official Datadog API client.
"""

import asyncio
import logging
from typing import Any

from datadog_api_client import ApiClient, Configuration
from datadog_api_client.v2.api.logs_api import LogsApi
from datadog_api_client.v2.model.logs_list_request import LogsListRequest
from datadog_api_client.v2.model.logs_list_request_page import LogsListRequestPage
from datadog_api_client.v2.model.logs_query_filter import LogsQueryFilter
from datadog_api_client.v2.model.logs_sort import LogsSort

from responder.errors import LogSourceError
from responder.integrations.logs.base import MAX_STACK_TRACES, LogQuery, LogResult, LogSource

logger = logging.getLogger(__name__)


def build_log_result(entries: list[dict[str, Any]], max_lines: int) -> LogResult:
    """Format log entries and collect up to five distinct stack traces.

    Args:
        entries: Dicts with ``timestamp``, ``status``, ``message`` and an
                 optional ``stack`` key, newest first.
        max_lines: The page size the entries were requested with.
    """
    lines = []
    stack_traces: list[str] = []

    for entry in entries:
        status = entry.get("status") or "ERROR"
        lines.append(f"[{entry.get('timestamp') or ''}] {status} {entry.get('message') or ''}")

        stack = entry.get("stack")
        if stack and stack not in stack_traces:
            stack_traces.append(stack)

    return LogResult(
        logs="\n".join(lines),
        stack_traces=stack_traces[:MAX_STACK_TRACES],
        raw_lines=len(entries),
        truncated=len(entries) >= max_lines,
    )


class DatadogLogSource(LogSource):
    """Log source backed by Datadog Log Management."""

    name = "datadog"

    def __init__(
        self,
        api_key: str | None,
        app_key: str | None,
        site: str = "datadoghq.com",
    ) -> None:
        """Initialize the Datadog log source.

        Args:
            api_key: Datadog API key.
            app_key: Datadog App key.
            site: Datadog site (e.g., datadoghq.com).
        """
        self.configuration = Configuration()
        self.configuration.api_key["apiKeyAuth"] = api_key
        self.configuration.api_key["appKeyAuth"] = app_key
        self.configuration.server_variables["site"] = site

    async def fetch_logs(self, query: LogQuery) -> LogResult:
        filter_parts = [f"service:{query.service}", f"status:{query.severity.lower()}"]
        if query.extra_query:
            filter_parts.append(query.extra_query)
        full_query = " ".join(filter_parts)

        logger.info(
            f"Querying Datadog logs: {full_query} "
            f"from={query.start_time.isoformat()} to={query.end_time.isoformat()}"
        )

        try:
            entries = await asyncio.to_thread(self._list_logs, full_query, query)
        except Exception as e:
            logger.error(f"Error fetching logs from Datadog: {e}")
            raise LogSourceError(f"Datadog API error: {e}") from e

        return build_log_result(entries, query.max_lines)

    def _list_logs(self, full_query: str, query: LogQuery) -> list[dict[str, Any]]:
        with ApiClient(self.configuration) as api_client:
            api_instance = LogsApi(api_client)
            body = LogsListRequest(
                filter=LogsQueryFilter(
                    query=full_query,
                    _from=query.start_time.isoformat(),
                    to=query.end_time.isoformat(),
                ),
                sort=LogsSort.TIMESTAMP_DESCENDING,
                page=LogsListRequestPage(limit=query.max_lines),
            )
            response = api_instance.list_logs(body=body)

        entries = []
        for log in getattr(response, "data", None) or []:
            attr = getattr(log, "attributes", None)
            if attr is None:
                continue

            timestamp = getattr(attr, "timestamp", None)
            custom = getattr(attr, "attributes", None) or {}
            error = custom.get("error") if isinstance(custom, dict) else None

            entries.append(
                {
                    "timestamp": timestamp.isoformat() if timestamp else None,
                    "status": getattr(attr, "status", None),
                    "message": getattr(attr, "message", None),
                    "stack": error.get("stack") if isinstance(error, dict) else None,
                }
            )
        return entries
