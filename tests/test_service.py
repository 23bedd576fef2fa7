from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from dns_dashboard.config import Settings
from dns_dashboard.errors import SourceUnavailable, StoreUnavailable
from dns_dashboard.log_source import LogSource
from dns_dashboard.models import AnalysisState, LogQuery, LogRecord, RiskLevel
from dns_dashboard.service import DashboardService

T0 = datetime(2025, 1, 1, 12, tzinfo=timezone.utc)


def _record(seq: int, domain: str, client: str = "10.0.0.1") -> LogRecord:
    return LogRecord(
        sequence_id=seq,
        timestamp=T0 + timedelta(seconds=seq),
        domain=domain,
        client_address=client,
    )


class ScriptedSource(LogSource):
    """Serves queued pages; an exception in the queue is raised instead."""

    def __init__(self, *pages) -> None:
        self.pages = list(pages)
        self.queries: list[LogQuery] = []
        self.closed = False

    async def fetch(self, query: LogQuery) -> list[LogRecord]:
        self.queries.append(query)
        page = self.pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return page

    async def aclose(self) -> None:
        self.closed = True


class FlakyStore:
    """Wraps a real store but fails reads on demand."""

    def __init__(self, inner) -> None:
        self.inner = inner
        self.fail_reads = False
        self.db_path = inner.db_path

    async def get(self, domain):
        return await self.inner.get(domain)

    async def get_many(self, domains):
        if self.fail_reads:
            raise StoreUnavailable("locked")
        return await self.inner.get_many(domains)

    async def put_many(self, records):
        await self.inner.put_many(records)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        cache_db=str(tmp_path / "cache.db"),
        default_limit=25,
        enrich_batch_size=20,
        new_entry_highlight_ms=50,
    )


@pytest.mark.asyncio
async def test_load_hydrates_from_cache_without_classifying(settings, store, fake_classifier, make_record) -> None:
    await store.put("a.com", make_record("a.com", app_name="Cached"))
    source = ScriptedSource([_record(2, "a.com"), _record(1, "b.com", "10.0.0.2")])
    service = DashboardService(settings, store, source, fake_classifier)

    update = await service.load_logs(client_address="")

    assert update.notice is None
    assert update.added == 2
    assert update.entries[0].analysis.app_name == "Cached"
    assert update.entries[0].state is AnalysisState.ANALYZED
    assert update.entries[1].analysis is None
    assert fake_classifier.calls == []
    assert source.queries[0].limit == 25
    assert source.queries[0].client_address is None
    assert service.known_clients == ["10.0.0.1", "10.0.0.2"]
    await service.aclose()


@pytest.mark.asyncio
async def test_refresh_merges_and_marks_new(settings, store, fake_classifier) -> None:
    source = ScriptedSource(
        [_record(1, "a.com")],
        [_record(2, "b.com"), _record(1, "a.com")],
    )
    service = DashboardService(settings, store, source, fake_classifier)

    await service.load_logs()
    update = await service.refresh_logs()

    assert update.added == 1
    assert [(e.id, e.is_new) for e in update.entries] == [(2, True), (1, False)]
    await service.aclose()


@pytest.mark.asyncio
async def test_source_failure_keeps_last_view_and_reports_notice(settings, store, fake_classifier) -> None:
    source = ScriptedSource([_record(1, "a.com")], SourceUnavailable("Technitium API error: 502"))
    service = DashboardService(settings, store, source, fake_classifier)
    await service.load_logs()

    update = await service.refresh_logs()

    assert update.notice is not None and "502" in update.notice
    assert update.added == 0
    assert [e.id for e in service.view.entries] == [1]


@pytest.mark.asyncio
async def test_cache_outage_loads_rows_with_notice(settings, store, fake_classifier) -> None:
    flaky = FlakyStore(store)
    flaky.fail_reads = True
    service = DashboardService(settings, flaky, ScriptedSource([_record(1, "a.com")]), fake_classifier)

    update = await service.load_logs()

    assert update.notice is not None
    assert [e.analysis for e in update.entries] == [None]

    report = await service.enrich()
    assert report.error is not None
    assert fake_classifier.calls == []
    assert service.view.entries[0].state is AnalysisState.UNANALYZED


@pytest.mark.asyncio
async def test_enrich_reports_counts_and_high_risk(settings, store, make_record, fake_classifier) -> None:
    await store.put("bad.example", make_record("bad.example", app_name="Phish", risk=RiskLevel.HIGH))
    source = ScriptedSource([_record(3, "bad.example"), _record(2, "a.com"), _record(1, "a.com")])
    service = DashboardService(settings, store, source, fake_classifier)
    await service.load_logs()
    service.view.entries[0].analysis = None
    service.view.entries[0].state = AnalysisState.UNANALYZED

    report = await service.enrich()

    assert report.selected == 3
    assert report.domains == 2
    assert report.analyzed == 3
    assert [r.domain for r in report.high_risk] == ["bad.example"]
    assert fake_classifier.calls == [{"a.com"}]


@pytest.mark.asyncio
async def test_enrich_failure_is_reported_and_rows_stay_eligible(settings, store, failing_classifier) -> None:
    service = DashboardService(settings, store, ScriptedSource([_record(1, "a.com")]), failing_classifier)
    await service.load_logs()

    report = await service.enrich()

    assert report.error is not None
    assert report.analyzed == 0
    assert service.view.unanalyzed() == service.view.entries


@pytest.mark.asyncio
async def test_enrich_with_nothing_pending_is_empty_report(settings, store, fake_classifier) -> None:
    service = DashboardService(settings, store, ScriptedSource([]), fake_classifier)
    await service.load_logs()

    report = await service.enrich()

    assert report.selected == 0
    assert fake_classifier.calls == []


@pytest.mark.asyncio
async def test_lookup_never_classifies(settings, store, make_record, fake_classifier) -> None:
    await store.put("a.com", make_record("a.com"))
    service = DashboardService(settings, store, ScriptedSource(), fake_classifier)

    assert (await service.lookup("a.com")).domain == "a.com"
    assert await service.lookup("b.com") is None
    assert set(await service.lookup_many(["a.com", "b.com"])) == {"a.com"}
    assert fake_classifier.calls == []


@pytest.mark.asyncio
async def test_analyze_resolves_through_classifier(settings, store, fake_classifier) -> None:
    service = DashboardService(settings, store, ScriptedSource(), fake_classifier)

    result = await service.analyze(["a.com"])

    assert result["a.com"].app_name == "A"
    assert await service.lookup("a.com") == result["a.com"]


@pytest.mark.asyncio
async def test_reconfigure_swaps_clients_and_keeps_view(settings, store, fake_classifier, failing_classifier) -> None:
    old_source = ScriptedSource([_record(1, "a.com")])
    service = DashboardService(settings, store, old_source, failing_classifier)
    await service.load_logs()
    assert (await service.enrich()).error is not None

    new_source = ScriptedSource([_record(2, "b.com")])
    service.reconfigure(settings.model_copy(), source=new_source, classifier=fake_classifier)
    report = await service.enrich()
    await service.refresh_logs()

    assert report.error is None
    assert report.analyzed == 1
    assert [e.id for e in service.view.entries] == [2, 1]
    assert new_source.queries and len(old_source.queries) == 1

    await service.aclose()
    assert old_source.closed and new_source.closed


@pytest.mark.asyncio
async def test_messaging_entries_filters_view(settings, store, fake_classifier) -> None:
    source = ScriptedSource([_record(2, "web.whatsapp.com"), _record(1, "example.org")])
    service = DashboardService(settings, store, source, fake_classifier)
    await service.load_logs()

    assert [e.domain for e in service.messaging_entries()] == ["web.whatsapp.com"]
