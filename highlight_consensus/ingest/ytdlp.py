from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from typing import Any

from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError

from highlight_consensus.config import ProducerSettings

logger = logging.getLogger(__name__)

WATCH_URL_TEMPLATE = "https://www.youtube.com/watch?v={video_id}"


def video_url(video_id: str) -> str:
    return WATCH_URL_TEMPLATE.format(video_id=video_id)


def fetch_video_metadata(video_id: str, settings: ProducerSettings) -> dict[str, Any]:
    """Extract the full yt-dlp info dict (heatmap, chapters, description) without downloading media."""

    info = _extract_info(video_url(video_id), _base_options(settings), download=False)
    if not isinstance(info, dict):
        raise RuntimeError("yt-dlp returned no metadata for this video.")
    return info


def fetch_auto_subtitles(video_id: str, settings: ProducerSettings) -> dict[str, Any] | None:
    """Fetch auto-generated subtitles in json3 format; None when yt-dlp wrote no subtitle file."""

    language = settings.subtitle_language
    with tempfile.TemporaryDirectory(prefix="yt-sub-") as tmp_dir:
        options = {
            **_base_options(settings),
            "writeautomaticsub": True,
            "subtitleslangs": [language],
            "subtitlesformat": "json3",
            "outtmpl": str(Path(tmp_dir) / "%(id)s"),
        }
        # skip_download keeps the media out while subtitles are still written.
        info = _extract_info(video_url(video_id), options, download=True) or {}

        subtitle_path = Path(tmp_dir) / f"{info.get('id', video_id)}.{language}.json3"
        if not subtitle_path.exists():
            logger.info("No %s auto-subtitles written for %s", language, video_id)
            return None

        try:
            return json.loads(subtitle_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise RuntimeError(f"Subtitle file is not valid json3: {subtitle_path.name}") from exc


def _base_options(settings: ProducerSettings) -> dict[str, Any]:
    return {
        "quiet": True,
        "no_warnings": True,
        "skip_download": True,
        "noplaylist": True,
        "socket_timeout": settings.timeout_seconds,
    }


def _extract_info(url: str, options: dict[str, Any], *, download: bool) -> dict[str, Any] | None:
    try:
        with YoutubeDL(options) as ydl:
            return ydl.extract_info(url, download=download)
    except DownloadError as exc:
        raise RuntimeError(f"yt-dlp failed for {url}: {exc}") from exc
