from __future__ import annotations

import os
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from pathlib import Path

import pytest

os.environ.setdefault(
    "DNS_DASHBOARD_CONFIG_PATH", str(Path(__file__).resolve().parents[1] / "config.yml")
)

from dns_dashboard.classifier import Classifier  # noqa: E402
from dns_dashboard.errors import ClassifierUnavailable  # noqa: E402
from dns_dashboard.models import (  # noqa: E402
    AnalysisRecord,
    Category,
    Classification,
    LogEntry,
    RiskLevel,
)
from dns_dashboard.store import AnalysisStore  # noqa: E402


class FakeClassifier(Classifier):
    """Records every call; classifies each domain as a Low-risk 'Other' app."""

    def __init__(self, fail: bool = False) -> None:
        self.calls: list[set[str]] = []
        self.fail = fail

    async def classify(self, domains: Iterable[str]) -> dict[str, Classification]:
        requested = set(domains)
        self.calls.append(requested)
        if self.fail:
            raise ClassifierUnavailable("classifier offline")
        return {
            d: Classification(
                app_name=d.split(".")[0].title(),
                category=Category.OTHER,
                risk=RiskLevel.LOW,
                summary=f"Service at {d}.",
            )
            for d in requested
        }


@pytest.fixture
def fake_classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def store(tmp_path: Path) -> AnalysisStore:
    return AnalysisStore(tmp_path / "cache.db")


@pytest.fixture
def make_record() -> Callable[..., AnalysisRecord]:
    def _make(domain: str, app_name: str = "App", risk: RiskLevel = RiskLevel.LOW) -> AnalysisRecord:
        return AnalysisRecord(
            domain=domain,
            app_name=app_name,
            category=Category.OTHER,
            risk=risk,
            summary=f"{app_name} traffic.",
            created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )

    return _make


@pytest.fixture
def make_entry() -> Callable[..., LogEntry]:
    def _make(id: int, domain: str | None = None, client: str = "192.168.1.10") -> LogEntry:
        return LogEntry(
            id=id,
            timestamp=datetime(2025, 1, 1, 12, 0, id % 60, tzinfo=timezone.utc),
            client_address=client,
            domain=domain if domain is not None else f"host{id}.example.com",
        )

    return _make


@pytest.fixture
def failing_classifier() -> FakeClassifier:
    return FakeClassifier(fail=True)
