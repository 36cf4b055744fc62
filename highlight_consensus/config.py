from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = Path("configs/default.yaml")
ENV_PREFIX = "HIGHLIGHT_CONSENSUS_"


class ConsensusSettings(BaseModel):
    target_ratio: float = 0.10
    merge_tolerance_seconds: float = 3.0
    jumps_per_minute: int = 10


class ProducerSettings(BaseModel):
    timeout_seconds: int = 30
    subtitle_language: str = "en"
    max_heatmap_markers: int = 10


class LLMSettings(BaseModel):
    enabled: bool = True
    provider: str = "ollama"
    model: str = "qwen2.5:7b-instruct-q4_K_M"
    endpoint: str = "http://localhost:11434"
    timeout_seconds: int = 60
    max_retries: int = 1
    max_prompt_chars: int = 80000


class LoggingSettings(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    consensus: ConsensusSettings = Field(default_factory=ConsensusSettings)
    producers: ProducerSettings = Field(default_factory=ProducerSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load typed settings from YAML with environment-variable overrides.

    An explicitly requested file must exist; the default path may be absent,
    in which case built-in defaults apply.
    """

    resolved_path = Path(config_path or os.getenv(f"{ENV_PREFIX}CONFIG") or DEFAULT_CONFIG_PATH)
    if resolved_path.exists():
        raw_config = yaml.safe_load(resolved_path.read_text(encoding="utf-8")) or {}
    elif resolved_path != DEFAULT_CONFIG_PATH:
        raise FileNotFoundError(f"Config file not found: {resolved_path}")
    else:
        raw_config = {}

    data = Settings.model_validate(raw_config).model_dump(mode="python")
    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_PREFIX) or key == f"{ENV_PREFIX}CONFIG":
            continue
        path = [part.lower() for part in key[len(ENV_PREFIX) :].split("__")]
        _apply_override(data, path, raw_value)

    return Settings.model_validate(data)


def _apply_override(data: dict[str, Any], path: list[str], raw_value: str) -> None:
    # Unknown sections or keys are ignored rather than created.
    section: Any = data
    for segment in path[:-1]:
        section = section.get(segment) if isinstance(section, dict) else None
    if not isinstance(section, dict) or path[-1] not in section:
        return

    section[path[-1]] = _coerce_value(raw_value, section[path[-1]])


def _coerce_value(raw_value: str, existing_value: Any) -> Any:
    if isinstance(existing_value, bool):
        return raw_value.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(existing_value, int):
        return int(raw_value)
    if isinstance(existing_value, float):
        return float(raw_value)
    if isinstance(existing_value, list | dict):
        return json.loads(raw_value)
    return raw_value
