from __future__ import annotations

import logging
from typing import Sequence

from highlight_consensus.consensus.merge import (
    DEFAULT_MERGE_TOLERANCE_SECONDS,
    merge_adjacent,
    pool_candidates,
    sort_chronologically,
)
from highlight_consensus.consensus.quota import (
    DEFAULT_JUMPS_PER_MINUTE,
    DEFAULT_TARGET_RATIO,
    compute_quota,
    require_positive_duration,
    select_within_quota,
)
from highlight_consensus.models import ConsensusLogEntry, ConsensusReport, EngineLog, ProducerResult

logger = logging.getLogger(__name__)


def compute_consensus(
    video_id: str,
    duration_seconds: float,
    results: Sequence[ProducerResult],
    *,
    engine_logs: Sequence[EngineLog] = (),
    engine_names: Sequence[str] | None = None,
    target_ratio: float = DEFAULT_TARGET_RATIO,
    merge_tolerance_seconds: float = DEFAULT_MERGE_TOLERANCE_SECONDS,
    jumps_per_minute: int = DEFAULT_JUMPS_PER_MINUTE,
) -> ConsensusReport:
    """Merge all producer candidates into one bounded, chronological playback plan.

    Steps, each appending to the audit trail in this order: start, target,
    engines, one line per producer result, pooled count, merged count, quota,
    final selection and one line per selected jump.
    """

    duration = require_positive_duration(duration_seconds)
    audit: list[ConsensusLogEntry] = []

    def record(step: str, detail: str) -> None:
        audit.append(ConsensusLogEntry(step=step, detail=detail))

    quota = compute_quota(duration, target_ratio=target_ratio, jumps_per_minute=jumps_per_minute)
    names = list(engine_names) if engine_names is not None else [result.engine_name for result in results]

    record("Start", f"Analyzing video {video_id} ({duration:g}s / {duration / 60:.1f} min)")
    record("Target", f"Summary target: {quota.target_seconds:.1f}s ({target_ratio:.0%} of {duration:g}s)")
    record("Engines", f"Running {len(names)} engines: {', '.join(names)}")

    pooled = pool_candidates(results)
    for line in pooled.result_lines:
        record("Engine Result", line)

    chronological = sort_chronologically(pooled.segments)
    record("Pre-merge", f"Total raw segments from all engines: {len(chronological)}")

    merged = merge_adjacent(chronological, tolerance_seconds=merge_tolerance_seconds)
    record(
        "Post-merge",
        f"After merging overlaps ({merge_tolerance_seconds:g}s tolerance): {len(merged)} unique segment(s)",
    )

    record("Quota", f"Max summary: {quota.target_seconds:.1f}s, max jumps: {quota.max_jumps}")

    selection = select_within_quota(merged, quota)
    record("Final", f"Selected {len(selection.segments)} jump(s) totaling {selection.total_seconds:.1f}s")
    for index, segment in enumerate(selection.segments, start=1):
        record(
            f"Jump {index}",
            f"{segment.start_seconds:.1f}s → {segment.end_seconds:.1f}s "
            f"({segment.duration_seconds:.1f}s, score: {segment.score or 0.0:.2f})",
        )

    logger.info(
        "Consensus for %s kept %d jump(s) for %.1fs total",
        video_id,
        len(selection.segments),
        selection.total_seconds,
    )

    return ConsensusReport(
        highlights=tuple(selection.segments),
        engine_logs=tuple(engine_logs),
        consensus_log=tuple(audit),
    )
