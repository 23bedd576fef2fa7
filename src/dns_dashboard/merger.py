"""Merge incrementally fetched log batches into one newest-first view."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import structlog

from .models import AnalysisState, LogEntry

log = structlog.get_logger()

DEFAULT_HIGHLIGHT_SECONDS = 2.0


def merge_entries(existing: Sequence[LogEntry], incoming: Iterable[LogEntry]) -> list[LogEntry]:
    """Prepend the incoming entries whose id is not in `existing`, tagged `is_new`.

    Existing entries are kept as-is and in order; core fields of an already
    known id are never refreshed from `incoming`.
    """
    seen = {e.id for e in existing}
    fresh: list[LogEntry] = []
    for entry in incoming:
        if entry.id in seen:
            continue
        seen.add(entry.id)
        fresh.append(entry.model_copy(update={"is_new": True}))
    return [*fresh, *existing]


@dataclass
class DecayTimer:
    """Pending `is_new` reset for the entries introduced by one merge."""

    merge_id: int
    entries: list[LogEntry]
    handle: asyncio.TimerHandle


class LogView:
    """The live, deduplicated log view and its highlight timers.

    Must be merged into from within a running event loop.
    """

    def __init__(self, highlight_seconds: float = DEFAULT_HIGHLIGHT_SECONDS) -> None:
        self.entries: list[LogEntry] = []
        self._highlight_seconds = highlight_seconds
        self._timers: dict[int, DecayTimer] = {}
        self._merge_ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def pending_decays(self) -> list[int]:
        return sorted(self._timers)

    def replace(self, entries: Iterable[LogEntry]) -> list[LogEntry]:
        """Full reload: drop the current rows and any pending highlight timers."""
        self.close()
        self.entries = list(entries)
        log.info("view_replaced", entries=len(self.entries))
        return self.entries

    def merge(self, incoming: Iterable[LogEntry]) -> list[LogEntry]:
        before = len(self.entries)
        self.entries = merge_entries(self.entries, incoming)
        added = len(self.entries) - before
        if added:
            self._schedule_decay(self.entries[:added])
        log.info("view_merged", added=added, entries=len(self.entries))
        return self.entries

    def _schedule_decay(self, fresh: list[LogEntry]) -> int:
        merge_id = next(self._merge_ids)
        handle = asyncio.get_running_loop().call_later(
            self._highlight_seconds, self._clear_new, merge_id
        )
        self._timers[merge_id] = DecayTimer(merge_id=merge_id, entries=fresh, handle=handle)
        return merge_id

    def _clear_new(self, merge_id: int) -> None:
        timer = self._timers.pop(merge_id, None)
        if timer is None:
            return
        # Only entries this merge introduced, and only while they are still shown
        live = {id(e) for e in self.entries}
        cleared = 0
        for entry in timer.entries:
            if id(entry) in live and entry.is_new:
                entry.is_new = False
                cleared += 1
        log.debug("highlight_cleared", merge_id=merge_id, cleared=cleared)

    def cancel_decay(self, merge_id: int) -> bool:
        timer = self._timers.pop(merge_id, None)
        if timer is None:
            return False
        timer.handle.cancel()
        return True

    def close(self) -> None:
        for merge_id in list(self._timers):
            self.cancel_decay(merge_id)

    def unanalyzed(self) -> list[LogEntry]:
        return [e for e in self.entries if e.state is AnalysisState.UNANALYZED]

    def known_clients(self) -> list[str]:
        return sorted({e.client_address for e in self.entries if e.client_address})
