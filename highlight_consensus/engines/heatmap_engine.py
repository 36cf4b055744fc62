from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any

from highlight_consensus.config import Settings
from highlight_consensus.ingest.ytdlp import fetch_video_metadata
from highlight_consensus.models import CandidateSegment, ProducerResult

logger = logging.getLogger(__name__)

ENGINE_NAME = "Heatmap"


async def run_heatmap_engine(video_id: str, duration: float, *, settings: Settings) -> ProducerResult:
    """Use the audience replay heatmap: the most rewatched stretches win."""

    return await asyncio.to_thread(_run_heatmap_engine_sync, video_id, duration, settings)


def _run_heatmap_engine_sync(video_id: str, duration: float, settings: Settings) -> ProducerResult:
    log: list[str] = []
    try:
        log.append(f"Starting Heatmap Engine for video {video_id} ({duration:g}s)")
        log.append("Fetching heatmap data using yt-dlp...")
        started_at = perf_counter()
        metadata = fetch_video_metadata(video_id, settings.producers)
        log.append(f"yt-dlp completed in {perf_counter() - started_at:.1f}s")

        markers = metadata.get("heatmap") or []
        if not markers:
            log.append("No heatmap data available in yt-dlp dump for this video")
            log.append("This can happen for: new videos, private videos, or videos with low view counts")
            raise ValueError("No heatmap data available.")

        highlights = heatmap_highlights(markers, limit=settings.producers.max_heatmap_markers, log=log)
        log.append(f"Produced {len(highlights)} highlight segments")
        return ProducerResult(engine_name=ENGINE_NAME, highlights=highlights, processing_log=log)
    except Exception as exc:
        logger.warning("Heatmap engine failed for %s: %s", video_id, exc)
        log.append(f"ERROR: {exc}")
        return ProducerResult(engine_name=ENGINE_NAME, highlights=[], error=str(exc), processing_log=log)


def heatmap_highlights(markers: list[dict[str, Any]], *, limit: int, log: list[str]) -> list[CandidateSegment]:
    """Top ``limit`` markers by intensity, scored relative to the peak."""

    intensities = [float(marker.get("value") or 0.0) for marker in markers]
    peak = max(intensities)
    log.append(f"Received {len(markers)} heat markers spanning the video")
    log.append(
        f"Intensity range: {min(intensities):.3f} to {peak:.3f} (avg: {sum(intensities) / len(intensities):.3f})"
    )

    ranked = sorted(markers, key=lambda marker: float(marker.get("value") or 0.0), reverse=True)[: max(limit, 0)]
    log.append(f"Selected top {len(ranked)} segments by audience replay intensity:")

    highlights: list[CandidateSegment] = []
    for index, marker in enumerate(ranked, start=1):
        start = float(marker["start_time"])
        end = float(marker["end_time"])
        intensity = float(marker.get("value") or 0.0)
        relative = intensity / peak if peak > 0 else intensity
        log.append(
            f"  #{index}: {start:.1f}s → {end:.1f}s (intensity: {intensity:.3f}, {relative * 100:.1f}% of peak)"
        )
        highlights.append(
            CandidateSegment(
                start_seconds=start,
                end_seconds=end,
                score=min(relative, 1.0),
                source="heatmap",
                reasoning=(
                    f"High audience engagement: {relative * 100:.0f}% replay intensity relative to peak "
                    "(viewers frequently rewatch this section)"
                ),
            )
        )
    return highlights
