"""Pluggable log sources used to collect incident evidence."""

from responder.config.settings import Settings
from responder.errors import LogSourceError
from responder.integrations.logs.base import LogQuery, LogResult, LogSource
from responder.integrations.logs.datadog import DatadogLogSource
from responder.integrations.logs.mock import MockLogSource


def get_log_source(name: str, settings: Settings) -> LogSource:
    """Create the log source registered under ``name``.

    Raises:
        LogSourceError: If no source with that name exists.
    """
    if name == "mock":
        return MockLogSource()
    if name == "datadog":
        return DatadogLogSource(
            api_key=settings.datadog_api_key,
            app_key=settings.datadog_app_key,
            site=settings.datadog_site,
        )
    raise LogSourceError(f"Unknown log source: {name}. Available: mock, datadog")


__all__ = [
    "DatadogLogSource",
    "LogQuery",
    "LogResult",
    "LogSource",
    "MockLogSource",
    "get_log_source",
]
