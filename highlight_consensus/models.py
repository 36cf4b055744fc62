from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

SegmentSource = Literal["text", "heatmap", "curation", "consensus"]
EngineStatus = Literal["success", "partial", "error"]
ProgressEventType = Literal["engine_start", "engine_complete", "consolidating", "complete", "error"]

DEFAULT_REASONING = "No reasoning provided."


@dataclass(slots=True)
class CandidateSegment:
    """A time-ranged highlight candidate, either raw from a producer or merged."""

    start_seconds: float
    end_seconds: float
    score: float | None = None
    source: SegmentSource | None = None
    reasoning: str | None = None
    start_index: int | None = None
    end_index: int | None = None

    @property
    def duration_seconds(self) -> float:
        return self.end_seconds - self.start_seconds


@dataclass(slots=True)
class TranscriptItem:
    """One subtitle line; offsets are in milliseconds."""

    text: str
    offset_ms: int
    duration_ms: int


@dataclass(slots=True)
class ProducerResult:
    """Output of one producer. A set `error` means the producer failed entirely."""

    engine_name: str
    highlights: list[CandidateSegment] = field(default_factory=list)
    error: str | None = None
    processing_log: list[str] = field(default_factory=list)
    transcript: list[TranscriptItem] | None = None


@dataclass(slots=True)
class EngineLogSegment:
    start_seconds: float
    end_seconds: float
    score: float
    reasoning: str
    start_index: int | None = None
    end_index: int | None = None


@dataclass(slots=True)
class EngineLog:
    """Per-producer summary derived by the runner once the producer settles."""

    engine_name: str
    status: EngineStatus
    segments_produced: int
    processing_log: list[str]
    segments: list[EngineLogSegment]
    transcript: list[TranscriptItem] | None = None


@dataclass(slots=True, frozen=True)
class ConsensusLogEntry:
    step: str
    detail: str


@dataclass(slots=True, frozen=True)
class ConsensusReport:
    """Terminal artifact of one run."""

    highlights: tuple[CandidateSegment, ...]
    engine_logs: tuple[EngineLog, ...]
    consensus_log: tuple[ConsensusLogEntry, ...]


@dataclass(slots=True)
class ProgressEvent:
    type: ProgressEventType
    engine_name: str | None = None
    engine_index: int | None = None
    total_engines: int | None = None
    engine_log: EngineLog | None = None
    report: ConsensusReport | None = None
    error: str | None = None
