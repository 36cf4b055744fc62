from __future__ import annotations

import asyncio
import logging
import math
from time import perf_counter

from highlight_consensus.config import Settings
from highlight_consensus.ingest.subtitles import number_transcript, parse_json3, transcript_span_seconds
from highlight_consensus.ingest.ytdlp import fetch_auto_subtitles
from highlight_consensus.models import CandidateSegment, ProducerResult, TranscriptItem
from highlight_consensus.scoring.llm_select import LLMSelectionError, select_transcript_spans

logger = logging.getLogger(__name__)

ENGINE_NAME = "Text"
HEURISTIC_BLOCK_SIZE = 5
HEURISTIC_MAX_BLOCKS = 5
MIN_LLM_TRANSCRIPT_CHARS = 50


async def run_text_engine(video_id: str, duration: float, *, settings: Settings) -> ProducerResult:
    """Pick highlights from the spoken transcript, by LLM when available."""

    return await asyncio.to_thread(_run_text_engine_sync, video_id, duration, settings)


def _run_text_engine_sync(video_id: str, duration: float, settings: Settings) -> ProducerResult:
    log: list[str] = []
    try:
        log.append(f"Starting Text Engine for video {video_id} ({duration:g}s)")
        transcript = _fetch_transcript(video_id, settings, log)
        if not transcript:
            log.append("No transcript available, returning structural fallback (10% and 60% marks)")
            return ProducerResult(engine_name=ENGINE_NAME, highlights=structural_fallback(duration), processing_log=log)

        highlights = _llm_highlights(transcript, duration, settings, log)
        if highlights is None:
            highlights = heuristic_highlights(transcript)
            log.append(f"Heuristic produced {len(highlights)} segments")

        return ProducerResult(engine_name=ENGINE_NAME, highlights=highlights, processing_log=log, transcript=transcript)
    except Exception as exc:
        logger.warning("Text engine failed for %s: %s", video_id, exc)
        log.append(f"FATAL ERROR: {exc}")
        return ProducerResult(engine_name=ENGINE_NAME, highlights=[], error=str(exc), processing_log=log)


def _fetch_transcript(video_id: str, settings: Settings, log: list[str]) -> list[TranscriptItem]:
    log.append(f"Calling yt-dlp to extract auto-subtitles ({settings.producers.subtitle_language}, json3)...")
    started_at = perf_counter()
    try:
        payload = fetch_auto_subtitles(video_id, settings.producers)
    except RuntimeError as exc:
        log.append(f"ERROR: subtitle extraction failed: {exc}")
        return []
    log.append(f"yt-dlp completed in {perf_counter() - started_at:.1f}s")

    if payload is None:
        log.append("WARNING: yt-dlp ran but no subtitle file was created")
        return []

    log.append(f"Raw json3 events: {len(payload.get('events', []) or [])}")
    transcript = parse_json3(payload)
    log.append(f"Parsed into {len(transcript)} transcript segments (filtered out metadata/empty)")
    if transcript:
        first, last = transcript[0], transcript[-1]
        log.append(
            f"Transcript covers {first.offset_ms / 1000:.1f}s to {(last.offset_ms + last.duration_ms) / 1000:.1f}s"
        )
    return transcript


def _llm_highlights(
    transcript: list[TranscriptItem],
    duration: float,
    settings: Settings,
    log: list[str],
) -> list[CandidateSegment] | None:
    numbered = number_transcript(transcript)
    log.append(f"Built numbered transcript: {len(numbered)} characters")

    if not settings.llm.enabled:
        log.append("LLM analysis disabled, using heuristic fallback")
        return None
    if len(numbered) <= MIN_LLM_TRANSCRIPT_CHARS:
        log.append("Transcript too short for LLM analysis, using heuristic fallback")
        return None

    log.append(
        f"Sending {min(len(numbered), settings.llm.max_prompt_chars)} chars of transcript to {settings.llm.model}"
    )
    started_at = perf_counter()
    try:
        rows = select_transcript_spans(numbered, duration_seconds=duration, settings=settings.llm)
    except LLMSelectionError as exc:
        log.append(f"WARNING: LLM failed: {exc}. Falling back to heuristics.")
        return None
    log.append(f"LLM responded in {perf_counter() - started_at:.1f}s and selected {len(rows)} segments")

    highlights: list[CandidateSegment] = []
    for row in rows:
        span = transcript_span_seconds(transcript, row["start_id"], row["end_id"])
        if span is None:
            continue
        highlights.append(
            CandidateSegment(
                start_seconds=span[0],
                end_seconds=span[1],
                score=row["score"],
                source="text",
                reasoning=row["reasoning"],
                start_index=row["start_id"],
                end_index=row["end_id"],
            )
        )

    log.append(f"Mapped to {len(highlights)} valid highlight segments")
    for index, segment in enumerate(highlights, start=1):
        log.append(
            f"  Segment {index}: {segment.start_seconds:.1f}s → {segment.end_seconds:.1f}s "
            f"(score: {segment.score:.2f}): {segment.reasoning}"
        )
    return highlights


def heuristic_highlights(transcript: list[TranscriptItem]) -> list[CandidateSegment]:
    """Treat the first few blocks of consecutive subtitle lines as dense speech."""

    highlights: list[CandidateSegment] = []
    for block_start in range(0, len(transcript), HEURISTIC_BLOCK_SIZE):
        if len(highlights) >= HEURISTIC_MAX_BLOCKS:
            break

        block = transcript[block_start : block_start + HEURISTIC_BLOCK_SIZE]
        highlights.append(
            CandidateSegment(
                start_seconds=block[0].offset_ms / 1000,
                end_seconds=(block[-1].offset_ms + block[-1].duration_ms) / 1000,
                score=0.8,
                source="text",
                reasoning="Heuristic: Found dense continuous speech block.",
            )
        )
    return highlights


def structural_fallback(duration: float) -> list[CandidateSegment]:
    early = math.floor(duration * 0.1)
    late = math.floor(duration * 0.6)
    return [
        CandidateSegment(
            start_seconds=early,
            end_seconds=early + 12,
            score=0.6,
            source="text",
            reasoning="No subtitles available. Structural default (10% mark).",
        ),
        CandidateSegment(
            start_seconds=late,
            end_seconds=late + 10,
            score=0.65,
            source="text",
            reasoning="No subtitles available. Structural default (60% mark).",
        ),
    ]
