"""Technitium DNS Server source: reads the Query Logs (Sqlite) app over HTTP."""

from __future__ import annotations

import httpx
import structlog
from pydantic import ValidationError

from .errors import SourceUnavailable
from .log_source import LogSource
from .models import LogQuery, LogRecord

log = structlog.get_logger()

QUERY_LOGS_APP = "Query Logs (Sqlite)"
QUERY_LOGS_CLASS = "QueryLogsSqlite.App"


class TechnitiumSource(LogSource):
    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._client = httpx.AsyncClient(base_url=self._base_url, timeout=timeout, transport=transport)

    def _params(self, query: LogQuery) -> dict[str, str | int]:
        params: dict[str, str | int] = {
            "token": self._token,
            "name": QUERY_LOGS_APP,
            "classPath": QUERY_LOGS_CLASS,
            "pageNumber": query.page or 1,
            "entriesPerPage": query.limit,
            "descendingOrder": "true",
        }
        if query.client_address:
            params["clientIpAddress"] = query.client_address
        return params

    async def fetch(self, query: LogQuery) -> list[LogRecord]:
        log.info("querying_technitium", url=self._base_url, client=query.client_address, limit=query.limit)

        try:
            resp = await self._client.get("/api/logs/query", params=self._params(query))
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            log.error("technitium_http_error", status=e.response.status_code)
            raise SourceUnavailable(f"Technitium API error: {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            log.exception("technitium_request_failed")
            raise SourceUnavailable(f"Technitium API unreachable: {e}") from e

        if data.get("status") != "ok":
            message = data.get("errorMessage") or data.get("status")
            log.error("technitium_api_error", status=data.get("status"), message=message)
            raise SourceUnavailable(f"Technitium API error: {message}")

        entries = (data.get("response") or {}).get("entries") or []
        try:
            records = [
                LogRecord(
                    sequence_id=e["rowNumber"],
                    timestamp=e["timestamp"],
                    domain=e.get("qname") or "",
                    client_address=e.get("clientIpAddress") or "",
                )
                for e in entries
            ]
        except (KeyError, ValidationError) as e:
            log.exception("technitium_bad_entry")
            raise SourceUnavailable("Technitium API returned malformed log entries") from e

        log.info("technitium_query_complete", entries=len(records))
        return records

    async def aclose(self) -> None:
        await self._client.aclose()
