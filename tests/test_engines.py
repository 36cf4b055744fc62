from __future__ import annotations

import asyncio

import pytest

from highlight_consensus.config import LLMSettings, Settings
from highlight_consensus.engines import curation_engine, heatmap_engine, text_engine
from highlight_consensus.engines.registry import default_engines
from highlight_consensus.scoring.llm_select import LLMSelectionError


def _json3(lines: list[tuple[int, int, str]]) -> dict:
    return {
        "events": [
            {"tStartMs": start, "dDurationMs": duration, "segs": [{"utf8": text}]} for start, duration, text in lines
        ]
    }


def _long_lines(count: int) -> list[tuple[int, int, str]]:
    return [(index * 2000, 2000, f"sentence number {index} of the talk") for index in range(count)]


def test_default_engines_declare_three_producers_in_order() -> None:
    assert [engine.name for engine in default_engines(Settings())] == ["Text", "Heatmap", "Curation"]


def test_text_engine_maps_llm_ids_to_seconds(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(text_engine, "fetch_auto_subtitles", lambda *_: _json3(_long_lines(10)))
    monkeypatch.setattr(
        text_engine,
        "select_transcript_spans",
        lambda *_args, **_kwargs: [
            {"start_id": 2, "end_id": 4, "score": 0.8, "reasoning": "core claim"},
            {"start_id": 42, "end_id": 43, "score": 0.9, "reasoning": "hallucinated"},
        ],
    )

    result = asyncio.run(text_engine.run_text_engine("vid", 120, settings=Settings()))

    assert result.error is None
    assert len(result.highlights) == 1
    segment = result.highlights[0]
    assert (segment.start_seconds, segment.end_seconds) == pytest.approx((4.0, 10.0))
    assert (segment.start_index, segment.end_index) == (2, 4)
    assert segment.source == "text"
    assert result.transcript is not None and len(result.transcript) == 10


def test_text_engine_falls_back_to_heuristic_when_llm_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(text_engine, "fetch_auto_subtitles", lambda *_: _json3(_long_lines(30)))

    def _fail(*_args, **_kwargs):
        raise LLMSelectionError("LLM selection failed: connection refused")

    monkeypatch.setattr(text_engine, "select_transcript_spans", _fail)

    result = asyncio.run(text_engine.run_text_engine("vid", 120, settings=Settings()))

    assert len(result.highlights) == 5
    assert result.highlights[0].start_seconds == 0.0
    assert result.highlights[0].end_seconds == pytest.approx(10.0)
    assert all(segment.score == pytest.approx(0.8) for segment in result.highlights)
    assert any("Falling back to heuristics" in line for line in result.processing_log)


def test_text_engine_skips_llm_when_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(text_engine, "fetch_auto_subtitles", lambda *_: _json3(_long_lines(7)))
    monkeypatch.setattr(
        text_engine,
        "select_transcript_spans",
        lambda *_args, **_kwargs: pytest.fail("LLM must not be called"),
    )

    result = asyncio.run(text_engine.run_text_engine("vid", 120, settings=Settings(llm=LLMSettings(enabled=False))))

    assert [(segment.start_seconds, segment.end_seconds) for segment in result.highlights] == [(0.0, 10.0), (10.0, 14.0)]


def test_text_engine_structural_fallback_without_subtitles(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(text_engine, "fetch_auto_subtitles", lambda *_: None)

    result = asyncio.run(text_engine.run_text_engine("vid", 305, settings=Settings()))

    assert [(segment.start_seconds, segment.end_seconds, segment.score) for segment in result.highlights] == [
        (30, 42, 0.6),
        (183, 193, 0.65),
    ]
    assert result.transcript is None
    assert result.error is None


def test_heatmap_engine_scores_relative_to_peak(monkeypatch: pytest.MonkeyPatch) -> None:
    markers = [
        {"start_time": 0.0, "end_time": 5.0, "value": 0.2},
        {"start_time": 5.0, "end_time": 10.0, "value": 0.8},
        {"start_time": 10.0, "end_time": 15.0, "value": 0.4},
    ]
    monkeypatch.setattr(heatmap_engine, "fetch_video_metadata", lambda *_: {"heatmap": markers})

    result = asyncio.run(heatmap_engine.run_heatmap_engine("vid", 15, settings=Settings()))

    assert [segment.start_seconds for segment in result.highlights] == [5.0, 10.0, 0.0]
    assert [segment.score for segment in result.highlights] == pytest.approx([1.0, 0.5, 0.25])
    assert all(segment.source == "heatmap" for segment in result.highlights)


def test_heatmap_engine_keeps_only_top_markers(monkeypatch: pytest.MonkeyPatch) -> None:
    markers = [{"start_time": index, "end_time": index + 1, "value": index / 20} for index in range(20)]
    monkeypatch.setattr(heatmap_engine, "fetch_video_metadata", lambda *_: {"heatmap": markers})

    result = asyncio.run(heatmap_engine.run_heatmap_engine("vid", 20, settings=Settings()))

    assert len(result.highlights) == 10
    assert result.highlights[0].start_seconds == 19


def test_heatmap_engine_reports_missing_heatmap_as_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(heatmap_engine, "fetch_video_metadata", lambda *_: {"title": "new upload"})

    result = asyncio.run(heatmap_engine.run_heatmap_engine("vid", 60, settings=Settings()))

    assert result.error == "No heatmap data available."
    assert result.highlights == []


def test_heatmap_engine_reports_ytdlp_failure_as_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(*_args):
        raise RuntimeError("yt-dlp timed out after 30s.")

    monkeypatch.setattr(heatmap_engine, "fetch_video_metadata", _fail)

    result = asyncio.run(heatmap_engine.run_heatmap_engine("vid", 60, settings=Settings()))

    assert result.error == "yt-dlp timed out after 30s."
    assert result.processing_log[-1] == "ERROR: yt-dlp timed out after 30s."


def test_curation_engine_samples_native_chapters(monkeypatch: pytest.MonkeyPatch) -> None:
    metadata = {
        "title": "Talk",
        "chapters": [
            {"start_time": 0.0, "end_time": 60.0, "title": "Intro"},
            {"start_time": 60.0, "end_time": 125.0, "title": "Outro"},
        ],
    }
    monkeypatch.setattr(curation_engine, "fetch_video_metadata", lambda *_: metadata)

    result = asyncio.run(curation_engine.run_curation_engine("vid", 65, settings=Settings()))

    assert [(segment.start_seconds, segment.end_seconds) for segment in result.highlights] == [(0.0, 10.0), (60.0, 65)]
    assert all(segment.score == pytest.approx(0.9) for segment in result.highlights)


def test_curation_engine_parses_description_timestamps(monkeypatch: pytest.MonkeyPatch) -> None:
    description = "Links below\n0:00 Intro\n1:05 The main idea\n1:02:03 Wrap up\nnot 9:99x a stamp"
    monkeypatch.setattr(curation_engine, "fetch_video_metadata", lambda *_: {"description": description})

    result = asyncio.run(curation_engine.run_curation_engine("vid", 4000, settings=Settings()))

    assert [segment.start_seconds for segment in result.highlights] == [0.0, 65.0, 3723.0]
    assert all(segment.score == pytest.approx(0.85) for segment in result.highlights)
    assert result.highlights[1].reasoning == 'Description timestamp: "The main idea"'


def test_curation_engine_structural_default_without_markers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(curation_engine, "fetch_video_metadata", lambda *_: {"description": "no stamps"})

    result = asyncio.run(curation_engine.run_curation_engine("vid", 600, settings=Settings()))

    assert [(segment.start_seconds, segment.end_seconds, segment.score) for segment in result.highlights] == [
        (60, 70, 0.7)
    ]


def test_curation_engine_falls_back_when_metadata_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(*_args):
        raise RuntimeError("yt-dlp executable was not found.")

    monkeypatch.setattr(curation_engine, "fetch_video_metadata", _fail)

    result = asyncio.run(curation_engine.run_curation_engine("vid", 600, settings=Settings()))

    assert result.error is None
    assert [segment.score for segment in result.highlights] == [0.5]


def test_parse_description_timestamps_handles_hours() -> None:
    markers = curation_engine.parse_description_timestamps("10:00 Ten\n1:00:00 Hour")

    assert [(marker.start_seconds, marker.title) for marker in markers] == [(600.0, "Ten"), (3600.0, "Hour")]
