"""Messaging-app filter: keyword matches from config.yml plus analyzed category."""

from __future__ import annotations

from collections.abc import Iterable
from functools import lru_cache

from .models import Category, LogEntry
from .yaml_config import get_messaging_keywords


@lru_cache(maxsize=1)
def _load() -> frozenset[str]:
    return frozenset(k.lower() for k in get_messaging_keywords())


def is_messaging(entry: LogEntry) -> bool:
    """True if the entry's analysis says Messaging or its domain hits a keyword."""
    analysis = entry.analysis
    if analysis is not None and (
        analysis.category == Category.MESSAGING or "messaging" in analysis.app_name.lower()
    ):
        return True
    domain = entry.domain.lower()
    return any(keyword in domain for keyword in _load())


def filter_messaging(entries: Iterable[LogEntry]) -> list[LogEntry]:
    return [e for e in entries if is_messaging(e)]
