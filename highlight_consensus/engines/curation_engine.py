from __future__ import annotations

import asyncio
import logging
import math
import re
from dataclasses import dataclass
from typing import Any

from highlight_consensus.config import Settings
from highlight_consensus.ingest.ytdlp import fetch_video_metadata
from highlight_consensus.models import CandidateSegment, ProducerResult

logger = logging.getLogger(__name__)

ENGINE_NAME = "Curation"
CHAPTER_SAMPLE_SECONDS = 10
DESCRIPTION_PREVIEW_CHARS = 200
_TIMESTAMP_LINE = re.compile(r"(?:^|\n)(\d{1,2}:\d{2}(?::\d{2})?)\s+(.+)")


@dataclass(slots=True)
class ChapterMarker:
    start_seconds: float
    title: str
    end_seconds: float | None = None


async def run_curation_engine(video_id: str, duration: float, *, settings: Settings) -> ProducerResult:
    """Use creator curation: native chapters, then description timestamps."""

    return await asyncio.to_thread(_run_curation_engine_sync, video_id, duration, settings)


def _run_curation_engine_sync(video_id: str, duration: float, settings: Settings) -> ProducerResult:
    log: list[str] = []
    try:
        log.append(f"Starting Curation Engine for video {video_id} ({duration:g}s)")
        metadata = _fetch_metadata(video_id, settings, log)
        if metadata is None:
            log.append("Metadata unavailable, using structural fallback")
            highlights = [_structural_default(duration, 0.5, "Video metadata could not be retrieved. Structural default.")]
        else:
            highlights = curation_highlights(metadata, duration, log)
        return ProducerResult(engine_name=ENGINE_NAME, highlights=highlights, processing_log=log)
    except Exception as exc:
        logger.warning("Curation engine failed for %s: %s", video_id, exc)
        log.append(f"FATAL ERROR: {exc}")
        return ProducerResult(engine_name=ENGINE_NAME, highlights=[], error=str(exc), processing_log=log)


def _fetch_metadata(video_id: str, settings: Settings, log: list[str]) -> dict[str, Any] | None:
    log.append("Extracting video metadata with yt-dlp...")
    try:
        metadata = fetch_video_metadata(video_id, settings.producers)
    except RuntimeError as exc:
        log.append(f"ERROR: yt-dlp metadata fetch failed: {exc}")
        return None

    if metadata.get("title"):
        log.append(f'Video title: "{metadata["title"]}"')
    if metadata.get("duration"):
        log.append(f"Video duration: {metadata['duration']}s")
    description = metadata.get("description") or ""
    if description:
        preview = description[:DESCRIPTION_PREVIEW_CHARS].replace("\n", " ")
        ellipsis = "..." if len(description) > DESCRIPTION_PREVIEW_CHARS else ""
        log.append(f'Description preview: "{preview}{ellipsis}"')
    return metadata


def curation_highlights(metadata: dict[str, Any], duration: float, log: list[str]) -> list[CandidateSegment]:
    chapters = [
        ChapterMarker(
            start_seconds=float(chapter["start_time"]),
            end_seconds=float(chapter["end_time"]),
            title=str(chapter.get("title", "")),
        )
        for chapter in metadata.get("chapters") or []
    ]
    if chapters:
        log.append(f"Found {len(chapters)} native chapters via yt-dlp:")
        highlights = []
        for chapter in chapters:
            chapter_length = (chapter.end_seconds or chapter.start_seconds) - chapter.start_seconds
            log.append(
                f'  "{chapter.title}" from {chapter.start_seconds:.0f}s to {chapter.end_seconds:.0f}s '
                f"({chapter_length:.0f}s)"
            )
            highlights.append(
                _chapter_sample(
                    chapter,
                    duration,
                    score=0.9,
                    reasoning=(
                        f'Chapter marker: "{chapter.title}" ({chapter_length:g}s chapter, '
                        f"sampling first {CHAPTER_SAMPLE_SECONDS}s)"
                    ),
                )
            )
        log.append(f"Produced {len(highlights)} highlight segments from chapters")
        return highlights

    log.append("No native chapters found")
    markers = parse_description_timestamps(metadata.get("description") or "")
    if markers:
        log.append(f"Parsed {len(markers)} timestamp markers from description:")
        highlights = []
        for marker in markers:
            log.append(f'  "{marker.title}" @ {marker.start_seconds:g}s')
            highlights.append(
                _chapter_sample(marker, duration, score=0.85, reasoning=f'Description timestamp: "{marker.title}"')
            )
        log.append(f"Produced {len(highlights)} highlight segments from description")
        return highlights

    log.append("No timestamps found in description either, using structural fallback")
    return [_structural_default(duration, 0.7, "No chapters or description timestamps found. Structural default.")]


def parse_description_timestamps(description: str) -> list[ChapterMarker]:
    """Find ``m:ss`` or ``h:mm:ss`` stamps at line starts, each followed by a title."""

    markers: list[ChapterMarker] = []
    for match in _TIMESTAMP_LINE.finditer(description):
        parts = [int(part) for part in match.group(1).split(":")]
        if len(parts) == 3:
            seconds = parts[0] * 3600 + parts[1] * 60 + parts[2]
        else:
            seconds = parts[0] * 60 + parts[1]
        markers.append(ChapterMarker(start_seconds=float(seconds), title=match.group(2).strip()))
    return markers


def _chapter_sample(marker: ChapterMarker, duration: float, *, score: float, reasoning: str) -> CandidateSegment:
    return CandidateSegment(
        start_seconds=marker.start_seconds,
        end_seconds=min(marker.start_seconds + CHAPTER_SAMPLE_SECONDS, duration),
        score=score,
        source="curation",
        reasoning=reasoning,
    )


def _structural_default(duration: float, score: float, reasoning: str) -> CandidateSegment:
    start = math.floor(duration * 0.1)
    return CandidateSegment(
        start_seconds=start,
        end_seconds=start + CHAPTER_SAMPLE_SECONDS,
        score=score,
        source="curation",
        reasoning=reasoning,
    )
