"""Log source interface and the query/result models shared by all sources."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

MAX_STACK_TRACES = 5


class LogQuery(BaseModel):
    """A time-windowed log search for one service."""

    service: str
    environment: str = "production"
    start_time: datetime
    end_time: datetime
    severity: Literal["ERROR", "WARN", "FATAL"] = "ERROR"
    max_lines: int = 200
    extra_query: str | None = Field(
        default=None,
        description="Source specific filter appended to the search",
    )


class LogResult(BaseModel):
    """Evidence collected for an incident."""

    logs: str = ""
    stack_traces: list[str] = Field(default_factory=list)
    raw_lines: int = 0
    truncated: bool = False


class LogSource(ABC):
    """A pluggable log backend."""

    name: str

    @abstractmethod
    async def fetch_logs(self, query: LogQuery) -> LogResult:
        """Fetch log lines and stack traces matching the query."""
