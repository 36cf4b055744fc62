from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Sequence

from highlight_consensus.models import CandidateSegment, ProducerResult

DEFAULT_MERGE_TOLERANCE_SECONDS = 3.0


@dataclass(slots=True)
class PooledCandidates:
    """Flattened producer output plus one audit line per producer."""

    segments: list[CandidateSegment]
    result_lines: list[str]


def pool_candidates(results: Sequence[ProducerResult]) -> PooledCandidates:
    """Flatten every producer's highlights into one list.

    Segments with a negative start or a non-positive length are discarded and
    counted in the producer's line. Scores are clamped into [0, 1].
    """

    pooled: list[CandidateSegment] = []
    lines: list[str] = []

    for result in results:
        kept = [_normalize(segment) for segment in result.highlights if _is_valid(segment)]
        discarded = len(result.highlights) - len(kept)
        pooled.extend(kept)

        line = f"{result.engine_name}: {len(result.highlights)} segment(s)"
        if discarded:
            line += f" ({discarded} discarded: invalid time range)"
        if result.error:
            line += f" [ERROR: {result.error}]"
        lines.append(line)

    return PooledCandidates(segments=pooled, result_lines=lines)


def sort_chronologically(segments: Sequence[CandidateSegment]) -> list[CandidateSegment]:
    return sorted(segments, key=lambda segment: segment.start_seconds)


def merge_adjacent(
    segments: Sequence[CandidateSegment],
    tolerance_seconds: float = DEFAULT_MERGE_TOLERANCE_SECONDS,
) -> list[CandidateSegment]:
    """Single left-to-right sweep joining overlapping or nearly touching segments.

    A candidate starting no later than ``tolerance_seconds`` after the running
    segment's end is absorbed: the end extends to the furthest end and the
    scores add up, capped at 1.0. The first segment of each run keeps its
    reasoning and transcript indices. Output segments are tagged ``consensus``.
    Input segments are never mutated.
    """

    merged: list[CandidateSegment] = []
    current: CandidateSegment | None = None

    for segment in sort_chronologically(segments):
        if current is None:
            current = replace(segment, source="consensus")
            continue

        if segment.start_seconds <= current.end_seconds + tolerance_seconds:
            current.end_seconds = max(current.end_seconds, segment.end_seconds)
            current.score = min(1.0, (current.score or 0.0) + (segment.score or 0.0))
        else:
            merged.append(current)
            current = replace(segment, source="consensus")

    if current is not None:
        merged.append(current)

    return merged


def _is_valid(segment: CandidateSegment) -> bool:
    return segment.start_seconds >= 0 and segment.end_seconds > segment.start_seconds


def _normalize(segment: CandidateSegment) -> CandidateSegment:
    if segment.score is None:
        return segment
    return replace(segment, score=max(0.0, min(1.0, segment.score)))
