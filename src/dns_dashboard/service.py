"""Application-facing surface: load/refresh the view, enrich it, query the cache."""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from .classifier import Classifier, build_classifier
from .config import Settings
from .errors import DashboardError, SourceUnavailable, StoreUnavailable
from .log_source import LogSource, build_log_source
from .merger import LogView
from .messaging import filter_messaging
from .models import (
    AnalysisRecord,
    AnalysisState,
    EnrichmentReport,
    LogEntry,
    LogQuery,
    RiskLevel,
    ViewUpdate,
)
from .orchestrator import EnrichmentOrchestrator, select_unanalyzed
from .resolver import BulkResolver
from .store import AnalysisStore

log = structlog.get_logger()


class DashboardService:
    def __init__(
        self,
        settings: Settings,
        store: AnalysisStore,
        source: LogSource,
        classifier: Classifier,
    ) -> None:
        self._settings = settings
        self._store = store
        self._source = source
        self._resolver = BulkResolver(store, classifier)
        self._orchestrator = EnrichmentOrchestrator(self._resolver)
        self._retired_sources: list[LogSource] = []
        self._known_clients: set[str] = set()
        self.view = LogView(highlight_seconds=settings.new_entry_highlight_ms / 1000)

    @classmethod
    def from_settings(cls, settings: Settings) -> DashboardService:
        return cls(
            settings,
            AnalysisStore(settings.cache_db),
            build_log_source(settings),
            build_classifier(settings),
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def known_clients(self) -> list[str]:
        return sorted(self._known_clients)

    def reconfigure(
        self,
        settings: Settings,
        *,
        source: LogSource | None = None,
        classifier: Classifier | None = None,
    ) -> None:
        """Swap in clients built from `settings`; calls already in flight keep the old ones."""
        if settings.cache_db != self._store.db_path:
            self._store = AnalysisStore(settings.cache_db)
        self._retired_sources.append(self._source)
        self._source = source or build_log_source(settings)
        self._resolver = BulkResolver(self._store, classifier or build_classifier(settings))
        self._orchestrator = EnrichmentOrchestrator(self._resolver)
        self._settings = settings
        log.info(
            "service_reconfigured",
            log_source=settings.log_source,
            classifier=settings.classifier_provider,
        )

    async def _fetch_entries(
        self, client_address: str | None, limit: int | None
    ) -> tuple[list[LogEntry], str | None]:
        query = LogQuery(
            client_address=client_address or None,
            limit=limit or self._settings.default_limit,
        )
        records = await self._source.fetch(query)
        self._known_clients.update(r.client_address for r in records if r.client_address)

        notice = None
        cached: dict[str, AnalysisRecord] = {}
        try:
            cached = await self._store.get_many(r.domain for r in records if r.domain)
        except StoreUnavailable as e:
            log.warning("hydrate_from_cache_failed", error=str(e))
            notice = "Analysis cache unavailable; showing logs without cached analyses."

        entries = [LogEntry.from_record(r, cached.get(r.domain)) for r in records]
        return entries, notice

    async def load_logs(self, client_address: str | None = None, limit: int | None = None) -> ViewUpdate:
        """Replace the view with a fresh page of logs."""
        try:
            entries, notice = await self._fetch_entries(client_address, limit)
        except SourceUnavailable as e:
            log.warning("log_load_failed", error=str(e))
            return ViewUpdate(entries=self.view.entries, notice=f"Could not load logs: {e}")

        self.view.replace(entries)
        return ViewUpdate(entries=self.view.entries, added=len(entries), notice=notice)

    async def refresh_logs(self, client_address: str | None = None, limit: int | None = None) -> ViewUpdate:
        """Merge the latest page of logs into the view, keeping what is already loaded."""
        try:
            entries, notice = await self._fetch_entries(client_address, limit)
        except SourceUnavailable as e:
            log.warning("log_refresh_failed", error=str(e))
            return ViewUpdate(entries=self.view.entries, notice=f"Could not load logs: {e}")

        before = len(self.view)
        self.view.merge(entries)
        return ViewUpdate(entries=self.view.entries, added=len(self.view) - before, notice=notice)

    async def enrich(self, max_batch: int | None = None) -> EnrichmentReport:
        batch = max_batch or self._settings.enrich_batch_size
        selected = select_unanalyzed(self.view.entries, batch)
        if not selected:
            return EnrichmentReport()

        report = EnrichmentReport(selected=len(selected), domains=len({e.domain for e in selected}))
        try:
            processed = await self._orchestrator.enrich_selected(self.view, selected)
        except DashboardError as e:
            log.warning("enrichment_failed", error=str(e), entries=len(selected))
            report.error = str(e)
            return report

        analyzed = [e for e in processed if e.state is AnalysisState.ANALYZED]
        report.analyzed = len(analyzed)
        high_risk = {e.domain: e.analysis for e in analyzed if e.analysis.risk == RiskLevel.HIGH}
        report.high_risk = list(high_risk.values())
        return report

    async def lookup(self, domain: str) -> AnalysisRecord | None:
        """Cached analysis for one domain; never calls the classifier."""
        return await self._store.get(domain)

    async def lookup_many(self, domains: Iterable[str]) -> dict[str, AnalysisRecord]:
        """Cached analyses for the domains that have one; never calls the classifier."""
        return await self._store.get_many(domains)

    async def analyze(self, domains: Iterable[str]) -> dict[str, AnalysisRecord]:
        """Resolve through cache and classifier, like an enrichment pass without the view."""
        return await self._resolver.resolve(domains)

    def messaging_entries(self) -> list[LogEntry]:
        return filter_messaging(self.view.entries)

    async def aclose(self) -> None:
        self.view.close()
        for source in [*self._retired_sources, self._source]:
            await source.aclose()
        self._retired_sources.clear()
