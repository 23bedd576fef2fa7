"""OpenSearch log source: reads Pi-hole query logs shipped to OpenSearch indices."""

from __future__ import annotations

import asyncio

import structlog
from opensearchpy import OpenSearch
from opensearchpy.exceptions import OpenSearchException
from pydantic import ValidationError

from .config import Settings
from .errors import SourceUnavailable
from .log_source import LogSource
from .models import LogQuery, LogRecord

log = structlog.get_logger()


class OpenSearchSource(LogSource):
    def __init__(self, settings: Settings, client: OpenSearch | None = None) -> None:
        self._index_pattern = f"{settings.opensearch_pihole_index_prefix}-*"
        self._client = client or OpenSearch(
            hosts=[{"host": settings.opensearch_host, "port": settings.opensearch_port}],
            use_ssl=False,
            verify_certs=False,
            timeout=30,
        )

    def _build_query(self, query: LogQuery) -> dict:
        filters: list[dict] = [{"term": {"action.keyword": "query"}}]
        if query.client_address:
            filters.append({"term": {"client_or_target.keyword": query.client_address}})
        return {
            "from": ((query.page or 1) - 1) * query.limit,
            "size": query.limit,
            "sort": [{"@timestamp": {"order": "desc"}}],
            "query": {"bool": {"filter": filters}},
            "_source": ["@timestamp", "domain", "client_or_target"],
        }

    async def fetch(self, query: LogQuery) -> list[LogRecord]:
        return await asyncio.to_thread(self._fetch, query)

    def _fetch(self, query: LogQuery) -> list[LogRecord]:
        log.info("querying_opensearch", index=self._index_pattern, client=query.client_address, limit=query.limit)

        try:
            resp = self._client.search(index=self._index_pattern, body=self._build_query(query))
        except OpenSearchException as e:
            log.exception("opensearch_query_failed")
            raise SourceUnavailable("OpenSearch query failed") from e

        hits = (resp.get("hits") or {}).get("hits") or []
        try:
            records = [
                LogRecord(
                    sequence_id=hit["_id"],
                    timestamp=hit["_source"]["@timestamp"],
                    domain=hit["_source"].get("domain") or "",
                    client_address=hit["_source"].get("client_or_target") or "",
                )
                for hit in hits
            ]
        except (KeyError, TypeError, ValidationError) as e:
            log.exception("opensearch_bad_hit")
            raise SourceUnavailable("OpenSearch returned malformed log documents") from e

        log.info("opensearch_query_complete", entries=len(records))
        return records

    async def aclose(self) -> None:
        await asyncio.to_thread(self._client.close)
