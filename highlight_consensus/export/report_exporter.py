from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any

from highlight_consensus.models import (
    CandidateSegment,
    ConsensusReport,
    EngineLog,
    ProducerResult,
    ProgressEvent,
    TranscriptItem,
)

_SEGMENT_SOURCES = {"text", "heatmap", "curation", "consensus"}


def segment_to_payload(segment: CandidateSegment) -> dict[str, Any]:
    payload: dict[str, Any] = {"start": segment.start_seconds, "end": segment.end_seconds}
    optional = {
        "score": segment.score,
        "source": segment.source,
        "reasoning": segment.reasoning,
        "startIndex": segment.start_index,
        "endIndex": segment.end_index,
    }
    payload.update({key: value for key, value in optional.items() if value is not None})
    return payload


def engine_log_to_payload(log: EngineLog) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "engineName": log.engine_name,
        "status": log.status,
        "segmentsProduced": log.segments_produced,
        "processingLog": list(log.processing_log),
        "segments": [
            {
                "start": segment.start_seconds,
                "end": segment.end_seconds,
                "score": segment.score,
                "reasoning": segment.reasoning,
                **({"startIndex": segment.start_index} if segment.start_index is not None else {}),
                **({"endIndex": segment.end_index} if segment.end_index is not None else {}),
            }
            for segment in log.segments
        ],
    }
    if log.transcript is not None:
        payload["transcript"] = [_transcript_item_to_payload(item) for item in log.transcript]
    return payload


def report_to_payload(report: ConsensusReport) -> dict[str, Any]:
    return {
        "highlights": [segment_to_payload(segment) for segment in report.highlights],
        "engineLogs": [engine_log_to_payload(log) for log in report.engine_logs],
        "consensusLog": [{"step": entry.step, "detail": entry.detail} for entry in report.consensus_log],
    }


def event_to_payload(event: ProgressEvent) -> dict[str, Any]:
    """Transport-agnostic event shape; ``complete`` carries the flattened report."""

    payload: dict[str, Any] = {"type": event.type}
    if event.engine_name is not None:
        payload["engineName"] = event.engine_name
    if event.engine_index is not None:
        payload["engineIndex"] = event.engine_index
    if event.total_engines is not None:
        payload["totalEngines"] = event.total_engines
    if event.engine_log is not None:
        payload["engineLog"] = engine_log_to_payload(event.engine_log)
    if event.report is not None:
        payload.update(report_to_payload(event.report))
    if event.error is not None:
        payload["error"] = event.error
    return payload


def load_producer_results(path: str | Path) -> list[ProducerResult]:
    """Load producer results saved as a JSON array of ``{engineName, highlights, ...}`` objects."""

    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError("Producer results must be a JSON array.")

    results: list[ProducerResult] = []
    for idx, row in enumerate(payload, start=1):
        if not isinstance(row, dict):
            raise ValueError(f"Producer result {idx} must be an object.")
        highlights = row.get("highlights", [])
        if not isinstance(highlights, list):
            raise ValueError(f"Producer result {idx} highlights must be an array.")
        results.append(
            ProducerResult(
                engine_name=str(row.get("engineName", f"Engine {idx}")),
                highlights=[_segment_from_payload(item, idx) for item in highlights],
                error=str(row["error"]) if row.get("error") else None,
                processing_log=[str(line) for line in row.get("processingLog", [])],
                transcript=[_transcript_item_from_payload(item, idx) for item in row["transcript"]]
                if row.get("transcript")
                else None,
            )
        )

    return results


def export_report(
    report: ConsensusReport,
    output_dir: str | Path,
    *,
    basename: str = "consensus_report",
) -> dict[str, Path]:
    """Write the full report as JSON and the playback plan as CSV."""

    resolved_output_dir = Path(output_dir)
    resolved_output_dir.mkdir(parents=True, exist_ok=True)

    json_path = resolved_output_dir / f"{basename}.json"
    csv_path = resolved_output_dir / f"{basename}_plan.csv"

    json_path.write_text(json.dumps(report_to_payload(report), indent=2, ensure_ascii=False), encoding="utf-8")
    _write_plan_csv(report, csv_path)

    return {
        "json": json_path,
        "csv": csv_path,
    }


def _write_plan_csv(report: ConsensusReport, path: Path) -> None:
    fields = ["jump", "start_seconds", "end_seconds", "duration_seconds", "score", "confidence", "reasoning"]

    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fields)
        writer.writeheader()
        for idx, segment in enumerate(report.highlights, start=1):
            score = segment.score or 0.0
            writer.writerow(
                {
                    "jump": idx,
                    "start_seconds": f"{segment.start_seconds:.3f}",
                    "end_seconds": f"{segment.end_seconds:.3f}",
                    "duration_seconds": f"{segment.duration_seconds:.3f}",
                    "score": f"{score:.4f}",
                    "confidence": _confidence_label(score),
                    "reasoning": segment.reasoning or "",
                }
            )


def _segment_from_payload(row: Any, result_idx: int) -> CandidateSegment:
    if not isinstance(row, dict):
        raise ValueError(f"Producer result {result_idx} contains a highlight that is not an object.")
    if "start" not in row or "end" not in row:
        raise ValueError(f"Producer result {result_idx} contains a highlight without start/end.")
    source = row.get("source")
    if source is not None and source not in _SEGMENT_SOURCES:
        raise ValueError(f"Unknown highlight source '{source}' in producer result {result_idx}.")
    return CandidateSegment(
        start_seconds=float(row["start"]),
        end_seconds=float(row["end"]),
        score=float(row["score"]) if row.get("score") is not None else None,
        source=source,
        reasoning=str(row["reasoning"]) if row.get("reasoning") is not None else None,
        start_index=int(row["startIndex"]) if row.get("startIndex") is not None else None,
        end_index=int(row["endIndex"]) if row.get("endIndex") is not None else None,
    )


def _transcript_item_to_payload(item: TranscriptItem) -> dict[str, Any]:
    return {"text": item.text, "offset": item.offset_ms, "duration": item.duration_ms}


def _transcript_item_from_payload(row: Any, result_idx: int) -> TranscriptItem:
    if not isinstance(row, dict) or not {"text", "offset", "duration"} <= row.keys():
        raise ValueError(f"Producer result {result_idx} contains a transcript item without text/offset/duration.")
    return TranscriptItem(text=str(row["text"]), offset_ms=int(row["offset"]), duration_ms=int(row["duration"]))


def _confidence_label(score: float) -> str:
    if score >= 0.8:
        return "high"
    if score >= 0.6:
        return "medium"
    return "low"
