from __future__ import annotations

from typing import Any

from highlight_consensus.models import TranscriptItem


def parse_json3(payload: dict[str, Any]) -> list[TranscriptItem]:
    """Flatten yt-dlp json3 subtitle events into transcript items.

    Events without text segments, append-only continuation events and blank
    lines are skipped.
    """

    items: list[TranscriptItem] = []
    for event in payload.get("events", []) or []:
        segs = event.get("segs")
        if not segs or event.get("aAppend"):
            continue

        text = "".join(str(seg.get("utf8", "")) for seg in segs).strip()
        if not text:
            continue

        items.append(
            TranscriptItem(
                text=text,
                offset_ms=int(event.get("tStartMs", 0) or 0),
                duration_ms=int(event.get("dDurationMs", 0) or 0),
            )
        )

    return items


def number_transcript(transcript: list[TranscriptItem]) -> str:
    """Render ``[ID:i] [t s] text`` lines so an LLM can point back at items."""

    return "\n".join(
        f"[ID:{index}] [{item.offset_ms / 1000:.1f}s] {item.text}" for index, item in enumerate(transcript)
    )


def transcript_span_seconds(transcript: list[TranscriptItem], start_index: int, end_index: int) -> tuple[float, float] | None:
    """Map an inclusive item range to seconds; the end is clipped to the next item's start."""

    if not 0 <= start_index < len(transcript):
        return None

    start_item = transcript[start_index]
    end_item = transcript[end_index] if 0 <= end_index < len(transcript) else start_item
    end_ms = end_item.offset_ms + end_item.duration_ms
    if 0 <= end_index + 1 < len(transcript):
        end_ms = min(end_ms, transcript[end_index + 1].offset_ms)

    return start_item.offset_ms / 1000, end_ms / 1000
