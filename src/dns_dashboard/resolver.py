from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone

import structlog

from .classifier import Classifier
from .errors import ClassifierUnavailable, EnrichmentFailed
from .models import AnalysisRecord
from .store import AnalysisStore

log = structlog.get_logger()


def unique_domains(domains: Iterable[str]) -> list[str]:
    """Deduplicate while keeping first-seen order; blank names are dropped."""
    return list(dict.fromkeys(d for d in domains if d))


def partition_cached(
    domains: list[str], cached: Mapping[str, AnalysisRecord]
) -> tuple[dict[str, AnalysisRecord], list[str]]:
    """Split domains into cache hits and the misses that still need classifying."""
    hits = {d: cached[d] for d in domains if d in cached}
    misses = [d for d in domains if d not in cached]
    log.info("partitioned_cached", total=len(domains), hits=len(hits), misses=len(misses))
    return hits, misses


class BulkResolver:
    """Resolve domains against the cache, classifying only the misses in one call."""

    def __init__(self, store: AnalysisStore, classifier: Classifier) -> None:
        self._store = store
        self._classifier = classifier

    @property
    def classifier(self) -> Classifier:
        return self._classifier

    async def resolve(self, domains: Iterable[str]) -> dict[str, AnalysisRecord]:
        wanted = unique_domains(domains)
        if not wanted:
            return {}

        cached = await self._store.get_many(wanted)
        hits, misses = partition_cached(wanted, cached)
        if not misses:
            return hits

        log.info("classifying_misses", domains=len(misses))
        try:
            classified = await self._classifier.classify(set(misses))
        except EnrichmentFailed:
            raise
        except ClassifierUnavailable as e:
            raise EnrichmentFailed(f"classification of {len(misses)} domains failed: {e}") from e

        created_at = datetime.now(timezone.utc)
        new_records = {
            d: AnalysisRecord.from_classification(d, classified[d], created_at)
            for d in misses
            if d in classified
        }
        omitted = [d for d in misses if d not in classified]
        if omitted:
            log.warning("classifier_omitted_domains", omitted=omitted)

        await self._store.put_many(new_records)
        log.info("bulk_resolve_complete", hits=len(hits), classified=len(new_records))
        return {**hits, **new_records}
