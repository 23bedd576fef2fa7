"""Abstract source of DNS query log rows."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .config import Settings
from .models import LogQuery, LogRecord


class LogSource(ABC):
    """Backend-agnostic interface for reading DNS query logs, newest first.

    Implementations:
        - TechnitiumSource: Technitium DNS Server query-logs HTTP API
        - PiholeSQLiteSource: reads Pi-hole's FTL database directly
        - OpenSearchSource: reads Pi-hole logs shipped to OpenSearch indices
    """

    @abstractmethod
    async def fetch(self, query: LogQuery) -> list[LogRecord]:
        """Return one page of query log rows; raise SourceUnavailable on failure."""

    async def aclose(self) -> None:
        """Release any held connections."""


def build_log_source(settings: Settings) -> LogSource:
    if settings.log_source == "opensearch":
        from .opensearch_source import OpenSearchSource

        return OpenSearchSource(settings)
    if settings.log_source == "pihole":
        from .sqlite_source import PiholeSQLiteSource

        return PiholeSQLiteSource(settings.pihole_db)

    from .technitium_source import TechnitiumSource

    return TechnitiumSource(
        settings.technitium_api_url,
        settings.technitium_token,
        timeout=settings.request_timeout_seconds,
    )
