from __future__ import annotations

import pytest

from highlight_consensus.consensus.engine import compute_consensus
from highlight_consensus.models import CandidateSegment, ProducerResult


def _segment(start: float, end: float, score: float | None = None, source: str | None = None) -> CandidateSegment:
    return CandidateSegment(start_seconds=start, end_seconds=end, score=score, source=source)


def _steps(report) -> list[str]:
    return [entry.step for entry in report.consensus_log]


def _detail(report, step: str) -> str:
    return next(entry.detail for entry in report.consensus_log if entry.step == step)


def test_single_strong_candidate_is_kept() -> None:
    results = [
        ProducerResult(engine_name="Text", highlights=[_segment(10, 20, 0.9, "text")]),
        ProducerResult(engine_name="Heatmap", error="No heatmap data available."),
        ProducerResult(engine_name="Curation"),
    ]

    report = compute_consensus("vid", 100, results)

    assert [(segment.start_seconds, segment.end_seconds) for segment in report.highlights] == [(10, 20)]
    assert report.highlights[0].source == "consensus"
    assert report.highlights[0].score == pytest.approx(0.9)


def test_fifteen_disjoint_segments_keep_top_scores_until_target() -> None:
    scores = [0.31, 0.92, 0.15, 0.77, 0.48, 0.66, 0.05, 0.84, 0.59, 0.23, 0.97, 0.11, 0.72, 0.39, 0.88]
    segments = [_segment(index * 20, index * 20 + 10, score) for index, score in enumerate(scores)]
    results = [
        ProducerResult(engine_name="Text", highlights=segments[0:5]),
        ProducerResult(engine_name="Heatmap", highlights=segments[5:10]),
        ProducerResult(engine_name="Curation", highlights=segments[10:15]),
    ]

    report = compute_consensus("vid", 600, results)

    top_six = sorted(segments, key=lambda segment: segment.score, reverse=True)[:6]
    expected_starts = sorted(segment.start_seconds for segment in top_six)
    assert [segment.start_seconds for segment in report.highlights] == expected_starts
    assert len(report.highlights) <= 10
    assert sum(segment.duration_seconds for segment in report.highlights) == pytest.approx(60.0)
    assert _detail(report, "Quota") == "Max summary: 60.0s, max jumps: 10"


def test_all_producers_failing_yields_well_formed_empty_report() -> None:
    results = [
        ProducerResult(engine_name="Text", error="boom"),
        ProducerResult(engine_name="Heatmap", error="No heatmap data available."),
        ProducerResult(engine_name="Curation", error="yt-dlp missing"),
    ]

    report = compute_consensus("vid", 300, results)

    assert report.highlights == ()
    assert _steps(report) == [
        "Start",
        "Target",
        "Engines",
        "Engine Result",
        "Engine Result",
        "Engine Result",
        "Pre-merge",
        "Post-merge",
        "Quota",
        "Final",
    ]
    assert _detail(report, "Pre-merge").endswith(": 0")
    assert _detail(report, "Post-merge").endswith(": 0 unique segment(s)")
    assert _detail(report, "Final") == "Selected 0 jump(s) totaling 0.0s"


def test_audit_trail_records_every_step_in_order() -> None:
    results = [
        ProducerResult(engine_name="Text", highlights=[_segment(10, 20, 0.5), _segment(22, 30, 0.4)]),
        ProducerResult(engine_name="Heatmap", highlights=[_segment(100, 110, 0.6)]),
        ProducerResult(engine_name="Curation", error="no metadata"),
    ]

    report = compute_consensus("abc123", 600, results)

    assert _steps(report) == [
        "Start",
        "Target",
        "Engines",
        "Engine Result",
        "Engine Result",
        "Engine Result",
        "Pre-merge",
        "Post-merge",
        "Quota",
        "Final",
        "Jump 1",
        "Jump 2",
    ]
    details = {entry.step: entry.detail for entry in report.consensus_log}
    assert details["Start"] == "Analyzing video abc123 (600s / 10.0 min)"
    assert details["Target"] == "Summary target: 60.0s (10% of 600s)"
    assert details["Engines"] == "Running 3 engines: Text, Heatmap, Curation"
    assert details["Pre-merge"] == "Total raw segments from all engines: 3"
    assert details["Post-merge"] == "After merging overlaps (3s tolerance): 2 unique segment(s)"
    assert details["Final"] == "Selected 2 jump(s) totaling 30.0s"
    assert details["Jump 1"] == "10.0s → 30.0s (20.0s, score: 0.90)"
    assert details["Jump 2"] == "100.0s → 110.0s (10.0s, score: 0.60)"
    engine_lines = [entry.detail for entry in report.consensus_log if entry.step == "Engine Result"]
    assert engine_lines[2] == "Curation: 0 segment(s) [ERROR: no metadata]"


def test_explicit_engine_names_are_recorded() -> None:
    report = compute_consensus("vid", 60, [], engine_names=["Text", "Heatmap", "Curation"])

    assert _detail(report, "Engines") == "Running 3 engines: Text, Heatmap, Curation"
    assert report.highlights == ()


@pytest.mark.parametrize("duration", [0, -10])
def test_non_positive_duration_is_rejected(duration: float) -> None:
    with pytest.raises(ValueError, match="duration"):
        compute_consensus("vid", duration, [])


def test_tiny_video_still_gets_one_jump() -> None:
    results = [ProducerResult(engine_name="Text", highlights=[_segment(0.0, 0.000001, 0.5)])]

    report = compute_consensus("vid", 0.000004, results)

    assert len(report.highlights) == 1
    assert _detail(report, "Quota").endswith("max jumps: 1")


def test_all_zero_scores_select_deterministically() -> None:
    results = [
        ProducerResult(engine_name="Text", highlights=[_segment(50, 60), _segment(0, 10)]),
        ProducerResult(engine_name="Heatmap", highlights=[_segment(200, 210)]),
    ]

    first = compute_consensus("vid", 100, results)
    second = compute_consensus("vid", 100, results)

    assert first.highlights == second.highlights
    assert [segment.start_seconds for segment in first.highlights] == [0]


def test_report_invariants_hold_for_mixed_input() -> None:
    segments = [
        _segment(0, 4, 0.3),
        _segment(5, 9, 0.2),
        _segment(30, 31, 0.9),
        _segment(29, 45, 0.1),
        _segment(100, 100, 0.9),
        _segment(300, 340, 0.05),
        _segment(500, 505, 0.6),
    ]
    results = [ProducerResult(engine_name="Mixed", highlights=segments)]

    report = compute_consensus("vid", 1800, results)

    starts = [segment.start_seconds for segment in report.highlights]
    assert all(segment.start_seconds < segment.end_seconds for segment in report.highlights)
    assert starts == sorted(starts)
    assert len(set(starts)) == len(starts)
    assert len(report.highlights) <= 30
