from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class Category(StrEnum):
    MESSAGING = "Messaging"
    VOIP = "VoIP"
    STREAMING = "Streaming"
    SOCIAL = "Social"
    OTHER = "Other"
    RISKY = "Risky"
    UNKNOWN = "Unknown"


class RiskLevel(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    UNKNOWN = "Unknown"


class AnalysisState(StrEnum):
    UNANALYZED = "unanalyzed"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"


def _match_enum(enum_cls: type[StrEnum], value: object) -> object:
    """Case-insensitive lookup; unrecognized strings map to the enum's UNKNOWN."""
    if not isinstance(value, str):
        return value
    wanted = value.strip().lower()
    for member in enum_cls:
        if member.value.lower() == wanted:
            return member
    return enum_cls("Unknown")


class Classification(BaseModel):
    """Classifier verdict for one domain, without cache bookkeeping."""

    app_name: str
    category: Category
    risk: RiskLevel
    summary: str

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, v: object) -> object:
        return _match_enum(Category, v)

    @field_validator("risk", mode="before")
    @classmethod
    def _coerce_risk(cls, v: object) -> object:
        return _match_enum(RiskLevel, v)

    @classmethod
    def unknown(cls, summary: str = "Could not be classified.") -> Classification:
        return cls(
            app_name="Unknown",
            category=Category.UNKNOWN,
            risk=RiskLevel.LOW,
            summary=summary,
        )


class AnalysisRecord(Classification):
    """Cached classification for a domain. One per domain, last writer wins."""

    domain: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_classification(
        cls,
        domain: str,
        classification: Classification,
        created_at: datetime | None = None,
    ) -> AnalysisRecord:
        return cls(
            domain=domain,
            created_at=created_at or datetime.now(timezone.utc),
            **classification.model_dump(),
        )


class DomainClassification(Classification):
    """LLM's classification of one domain within a batch."""

    domain: str


class BatchClassificationResult(BaseModel):
    """Structured output from the LLM for a batch of domains."""

    classifications: list[DomainClassification]


class LogQuery(BaseModel):
    """Filter handed to a log source."""

    client_address: str | None = None
    limit: int = Field(default=50, ge=1)
    page: int | None = Field(default=None, ge=1)


class LogRecord(BaseModel):
    """One DNS query as reported by a log source."""

    sequence_id: int | str
    timestamp: datetime
    domain: str
    client_address: str


class LogEntry(BaseModel):
    """A row of the live log view.

    `analysis` is a snapshot taken when it was attached; it does not follow
    later cache updates.
    """

    id: int | str
    timestamp: datetime
    client_address: str
    domain: str
    analysis: AnalysisRecord | None = None
    state: AnalysisState = AnalysisState.UNANALYZED
    is_new: bool = False

    @classmethod
    def from_record(cls, record: LogRecord, analysis: AnalysisRecord | None = None) -> LogEntry:
        return cls(
            id=record.sequence_id,
            timestamp=record.timestamp,
            client_address=record.client_address,
            domain=record.domain,
            analysis=analysis,
            state=AnalysisState.ANALYZED if analysis else AnalysisState.UNANALYZED,
        )

    @property
    def analyzing(self) -> bool:
        return self.state is AnalysisState.ANALYZING

    def begin_analysis(self) -> None:
        if self.state is AnalysisState.ANALYZING:
            raise ValueError(f"entry {self.id} is already being analyzed")
        self.state = AnalysisState.ANALYZING

    def complete_analysis(self, record: AnalysisRecord | None) -> None:
        """Attach `record`; without one the entry goes back to unanalyzed."""
        if record is None:
            self.abandon_analysis()
            return
        self.analysis = record
        self.state = AnalysisState.ANALYZED

    def abandon_analysis(self) -> None:
        self.state = AnalysisState.ANALYZED if self.analysis else AnalysisState.UNANALYZED


class ViewUpdate(BaseModel):
    """Outcome of a load or refresh of the log view."""

    entries: list[LogEntry]
    added: int = 0
    notice: str | None = None


class EnrichmentReport(BaseModel):
    """Outcome of one enrichment pass."""

    selected: int = 0
    analyzed: int = 0
    domains: int = 0
    high_risk: list[AnalysisRecord] = Field(default_factory=list)
    error: str | None = None
