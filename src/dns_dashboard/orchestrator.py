from __future__ import annotations

from collections.abc import Mapping, Sequence

import structlog

from .merger import LogView
from .models import AnalysisRecord, AnalysisState, LogEntry
from .resolver import BulkResolver

log = structlog.get_logger()


def select_unanalyzed(entries: Sequence[LogEntry], max_batch: int) -> list[LogEntry]:
    """Top-most entries still waiting for analysis, at most `max_batch` of them."""
    if max_batch <= 0:
        return []
    selected: list[LogEntry] = []
    for entry in entries:
        if entry.state is AnalysisState.UNANALYZED and entry.domain:
            selected.append(entry)
            if len(selected) >= max_batch:
                break
    return selected


class EnrichmentOrchestrator:
    """Drives the unanalyzed -> analyzing -> analyzed|unanalyzed cycle for view rows."""

    def __init__(self, resolver: BulkResolver) -> None:
        self._resolver = resolver

    @property
    def resolver(self) -> BulkResolver:
        return self._resolver

    async def enrich_unanalyzed(self, view: LogView, max_batch: int) -> list[LogEntry]:
        """Resolve analyses for up to `max_batch` rows of `view`; returns the view's rows."""
        selected = select_unanalyzed(view.entries, max_batch)
        if selected:
            await self.enrich_selected(view, selected)
        return view.entries

    async def enrich_selected(self, view: LogView, selected: list[LogEntry]) -> list[LogEntry]:
        """Mark `selected` as analyzing, resolve their domains and settle them.

        The marks are set before the first suspension point, so overlapping
        calls never pick the same rows. On any failure the rows this call
        marked go back to unanalyzed and the error is re-raised for the caller
        to surface. Returns `selected`.
        """
        if not selected:
            return selected

        domains = {e.domain for e in selected}
        for entry in selected:
            entry.begin_analysis()
        log.info("enrichment_started", entries=len(selected), domains=len(domains))

        try:
            resolved = await self._resolver.resolve(domains)
        except BaseException:
            self._revert(selected)
            log.warning("enrichment_reverted", entries=len(selected))
            raise

        self._settle(view, selected, resolved)
        log.info("enrichment_complete", entries=len(selected), resolved=len(resolved))
        return selected

    @staticmethod
    def _revert(selected: list[LogEntry]) -> None:
        for entry in selected:
            if entry.state is AnalysisState.ANALYZING:
                entry.abandon_analysis()

    @staticmethod
    def _settle(
        view: LogView,
        selected: list[LogEntry],
        resolved: Mapping[str, AnalysisRecord],
    ) -> None:
        for entry in selected:
            record = resolved.get(entry.domain)
            if record is not None:
                entry.complete_analysis(record)
            elif entry.state is AnalysisState.ANALYZING:
                entry.abandon_analysis()

        # Rows reloaded into the view while the call was in flight are filled
        # in only if no other pass has claimed them.
        marked = {id(e) for e in selected}
        ids = {e.id for e in selected}
        for entry in view.entries:
            if id(entry) in marked or entry.id not in ids:
                continue
            record = resolved.get(entry.domain)
            if record is not None and entry.state is AnalysisState.UNANALYZED:
                entry.complete_analysis(record)
