from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any
from urllib import request
from urllib.error import HTTPError, URLError

from highlight_consensus.config import LLMSettings

PROMPT_TEMPLATE_PATH = Path(__file__).resolve().parent / "prompts" / "text_highlights_prompt.txt"
SUPPORTED_PROVIDERS = {"ollama"}
DEFAULT_SCORE = 0.9
DEFAULT_REASONING = "Selected by LLM semantic analysis."
_FENCE_PATTERN = re.compile(r"```(?:json)?")


class LLMSelectionError(RuntimeError):
    """Raised when the LLM gives no usable selection after all retries."""


def select_transcript_spans(
    numbered_transcript: str,
    *,
    duration_seconds: float,
    settings: LLMSettings,
) -> list[dict[str, Any]]:
    """Ask the local LLM for the most important transcript spans.

    Returns validated rows ``{start_id, end_id, score, reasoning}``. Malformed
    responses are retried up to ``settings.max_retries`` times; the last
    failure is raised as LLMSelectionError.
    """

    if settings.provider not in SUPPORTED_PROVIDERS:
        raise LLMSelectionError(f"Unsupported LLM provider: {settings.provider!r}.")

    prompt = _format_prompt(
        numbered_transcript[: max(settings.max_prompt_chars, 0)],
        duration_seconds=duration_seconds,
    )

    last_error: Exception | None = None
    for _ in range(max(0, settings.max_retries) + 1):
        try:
            response_text = _request_ollama(
                endpoint=settings.endpoint,
                model=settings.model,
                prompt=prompt,
                timeout_seconds=settings.timeout_seconds,
            )
            return _validate_selection(json.loads(_strip_fences(response_text)))
        except (json.JSONDecodeError, ValueError, HTTPError, URLError, TimeoutError, OSError, KeyError, TypeError) as exc:
            last_error = exc
            continue

    raise LLMSelectionError(f"LLM selection failed: {last_error}") from last_error


def _format_prompt(numbered_transcript: str, *, duration_seconds: float) -> str:
    template = PROMPT_TEMPLATE_PATH.read_text(encoding="utf-8").strip()
    header = template.replace("{duration_seconds}", f"{duration_seconds:g}")
    return f"{header}\n\nTranscript:\n{numbered_transcript}\n"


def _request_ollama(*, endpoint: str, model: str, prompt: str, timeout_seconds: int) -> str:
    body = json.dumps(
        {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
        }
    ).encode("utf-8")

    req = request.Request(
        f"{endpoint.rstrip('/')}/api/generate",
        data=body,
        method="POST",
        headers={"Content-Type": "application/json"},
    )

    with request.urlopen(req, timeout=timeout_seconds) as response:
        payload = json.loads(response.read().decode("utf-8"))

    content = payload.get("response")
    if not isinstance(content, str):
        raise ValueError("Ollama response missing JSON text in 'response' field.")
    return content


def _strip_fences(text: str) -> str:
    return _FENCE_PATTERN.sub("", text).strip()


def _validate_selection(payload: Any) -> list[dict[str, Any]]:
    # Ollama's JSON mode wraps arrays in an object; accept {"highlights": [...]} too.
    if isinstance(payload, dict):
        payload = payload.get("highlights", payload.get("segments"))
    if not isinstance(payload, list):
        raise ValueError("LLM output must be a JSON array of highlight objects.")

    rows: list[dict[str, Any]] = []
    for item in payload:
        if not isinstance(item, dict):
            raise ValueError("Each highlight must be a JSON object.")
        if isinstance(item["start_id"], bool) or isinstance(item["end_id"], bool):
            raise ValueError("start_id and end_id must be integers.")

        score = _coerce_score(item.get("score"))
        reasoning = item.get("reasoning")
        rows.append(
            {
                "start_id": int(item["start_id"]),
                "end_id": int(item["end_id"]),
                "score": score,
                "reasoning": reasoning.strip() if isinstance(reasoning, str) and reasoning.strip() else DEFAULT_REASONING,
            }
        )

    return rows


def _coerce_score(raw_value: Any) -> float:
    try:
        score = float(raw_value)
    except (TypeError, ValueError):
        return DEFAULT_SCORE
    if score <= 0:
        return DEFAULT_SCORE
    return min(score, 1.0)
