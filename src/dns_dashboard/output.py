from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence

from .models import AnalysisRecord, EnrichmentReport, LogEntry
from .yaml_config import get_output_strings


class OutputHandler(ABC):
    @abstractmethod
    def emit_view(self, entries: Sequence[LogEntry]) -> None: ...

    @abstractmethod
    def emit_analyses(self, analyses: Mapping[str, AnalysisRecord | None]) -> None: ...

    @abstractmethod
    def emit_enrichment(self, report: EnrichmentReport) -> None: ...

    @abstractmethod
    def emit_notice(self, message: str) -> None: ...

    @abstractmethod
    def emit_alert(self, record: AnalysisRecord) -> None: ...


def _describe(entry: LogEntry) -> str:
    if entry.analyzing:
        return "Analyzing..."
    if entry.analysis is None:
        return "-"
    a = entry.analysis
    return f"{a.app_name} [{a.category} / {a.risk}] {a.summary}"


class StdoutHandler(OutputHandler):
    def emit_view(self, entries: Sequence[LogEntry]) -> None:
        strings = get_output_strings()
        if not entries:
            print(strings["no_entries_message"])
            return
        print(strings["view_header"])
        for e in entries:
            marker = "*" if e.is_new else " "
            print(
                f"{marker} {e.timestamp:%H:%M:%S} {e.client_address:<15s} "
                f"{e.domain:<40s} {_describe(e)}"
            )

    def emit_analyses(self, analyses: Mapping[str, AnalysisRecord | None]) -> None:
        for domain, record in sorted(analyses.items()):
            if record is None:
                print(f"{domain}: not cached")
            else:
                print(
                    f"{domain}: {record.app_name} [{record.category} / {record.risk}] "
                    f"-- {record.summary}"
                )

    def emit_enrichment(self, report: EnrichmentReport) -> None:
        strings = get_output_strings()
        print(strings["enrichment_template"].format(**report.model_dump(exclude={"high_risk", "error"})))
        if report.error:
            self.emit_notice(f"Enrichment failed: {report.error}")
        for record in report.high_risk:
            self.emit_alert(record)

    def emit_notice(self, message: str) -> None:
        strings = get_output_strings()
        print(f"{strings['notice_prefix']} {message}", file=sys.stderr)

    def emit_alert(self, record: AnalysisRecord) -> None:
        strings = get_output_strings()
        print(
            f"{strings['alert_prefix']} {record.risk.upper()} risk "
            f"domain: {record.domain} ({record.app_name}) -- {record.summary}",
            file=sys.stderr,
        )
