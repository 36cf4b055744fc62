from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from highlight_consensus.models import CandidateSegment

DEFAULT_TARGET_RATIO = 0.10
DEFAULT_JUMPS_PER_MINUTE = 10


@dataclass(slots=True, frozen=True)
class SummaryQuota:
    """Soft duration budget and hard jump-count cap for one summary."""

    target_seconds: float
    max_jumps: int


@dataclass(slots=True, frozen=True)
class QuotaSelection:
    segments: list[CandidateSegment]
    total_seconds: float


def require_positive_duration(duration_seconds: float | None) -> float:
    """Reject a missing, non-finite or non-positive video duration."""

    if duration_seconds is None or isinstance(duration_seconds, bool):
        raise ValueError("Video duration is required.")
    duration = float(duration_seconds)
    if not math.isfinite(duration) or duration <= 0:
        raise ValueError(f"Video duration must be a positive number of seconds, got {duration_seconds!r}.")
    return duration


def compute_quota(
    duration_seconds: float,
    *,
    target_ratio: float = DEFAULT_TARGET_RATIO,
    jumps_per_minute: int = DEFAULT_JUMPS_PER_MINUTE,
) -> SummaryQuota:
    """Derive the summary budget: ``ratio`` of the video, ``jumps_per_minute`` per minute of it.

    Rounding strips binary float noise so that, for example, 10% of 600s is
    exactly 60s and allows exactly 10 jumps.
    """

    duration = require_positive_duration(duration_seconds)
    raw_target = duration * target_ratio
    # A positive target stays positive after rounding.
    target_seconds = round(raw_target, 6) or raw_target
    max_jumps = max(1, math.ceil(round((target_seconds / 60) * jumps_per_minute, 9)))
    return SummaryQuota(target_seconds=target_seconds, max_jumps=max_jumps)


def select_within_quota(merged: Sequence[CandidateSegment], quota: SummaryQuota) -> QuotaSelection:
    """Greedy pick by score until the jump cap or the duration target is reached.

    Segments are taken whole. The last pick may overshoot the target by up to
    its own length. Equal scores keep their incoming order (stable sort). The
    selection is returned in chronological order.
    """

    ranked = sorted(merged, key=lambda segment: segment.score or 0.0, reverse=True)

    selected: list[CandidateSegment] = []
    total_seconds = 0.0
    for segment in ranked:
        if len(selected) >= quota.max_jumps or total_seconds >= quota.target_seconds:
            break
        selected.append(segment)
        total_seconds += segment.duration_seconds

    selected.sort(key=lambda segment: segment.start_seconds)
    return QuotaSelection(segments=selected, total_seconds=total_seconds)
