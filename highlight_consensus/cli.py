from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer

from highlight_consensus.config import DEFAULT_CONFIG_PATH, Settings, load_settings
from highlight_consensus.consensus.engine import compute_consensus
from highlight_consensus.engines.registry import default_engines
from highlight_consensus.export.report_exporter import (
    event_to_payload,
    export_report,
    load_producer_results,
    report_to_payload,
)
from highlight_consensus.logging_config import configure_logging
from highlight_consensus.models import ConsensusReport, ProgressEvent
from highlight_consensus.runner import build_engine_log, run_engines

app = typer.Typer(help="Multi-engine video highlight consensus.")
config_app = typer.Typer(help="Configuration commands.")

app.add_typer(config_app, name="config")

logger = logging.getLogger(__name__)

_CONFIG_OPTION = typer.Option(
    DEFAULT_CONFIG_PATH,
    "--config",
    "-c",
    envvar="HIGHLIGHT_CONSENSUS_CONFIG",
    help="Path to YAML configuration file.",
)


def _bootstrap(config_path: Path) -> Settings:
    settings = load_settings(config_path)
    configure_logging(settings.logging)
    logger.debug("Loaded runtime settings from %s", config_path)
    return settings


def _echo_progress(event: ProgressEvent) -> None:
    if event.type == "engine_start":
        typer.echo(f"[{event.engine_index + 1}/{event.total_engines}] {event.engine_name} engine...", err=True)
    elif event.type == "engine_complete" and event.engine_log is not None:
        log = event.engine_log
        typer.echo(
            f"[{event.engine_index + 1}/{event.total_engines}] {event.engine_name} engine done "
            f"({log.status}, {log.segments_produced} segment(s))",
            err=True,
        )
    elif event.type == "consolidating":
        typer.echo(f"Consolidating {event.total_engines} engine result(s)...", err=True)


def _stream_event(event: ProgressEvent) -> None:
    typer.echo(json.dumps(event_to_payload(event), ensure_ascii=False))


def _emit_report(report: ConsensusReport, output_dir: Path | None, basename: str) -> None:
    payload = report_to_payload(report)
    if output_dir is not None:
        exported = export_report(report, output_dir, basename=basename)
        payload["outputs"] = {key: str(path) for key, path in exported.items()}
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


@config_app.command("show")
def show_config(config_path: Path = _CONFIG_OPTION) -> None:
    """Print resolved runtime configuration."""

    settings = _bootstrap(config_path)
    typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


@app.command("run")
def run_video(
    video_id: str,
    duration: float = typer.Option(..., "--duration", "-d", help="Known video duration in seconds."),
    stream: bool = typer.Option(False, help="Print every progress event as one JSON line instead of a summary."),
    output_dir: Path | None = typer.Option(None, "--output-dir", "-o", help="Also export JSON/CSV artifacts here."),
    basename: str = typer.Option("consensus_report", help="Base filename for exported artifacts."),
    config_path: Path = _CONFIG_OPTION,
) -> None:
    """Run every engine for one video and print the consensus report."""

    settings = _bootstrap(config_path)
    try:
        report = asyncio.run(
            run_engines(
                video_id,
                duration,
                default_engines(settings),
                on_progress=_stream_event if stream else _echo_progress,
                consensus=settings.consensus,
            )
        )
    except (RuntimeError, ValueError) as exc:
        logger.error("Highlight run failed: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if stream:
        if output_dir is not None:
            export_report(report, output_dir, basename=basename)
        return
    _emit_report(report, output_dir, basename)


@app.command("consensus")
def consensus_from_file(
    results_path: Path = typer.Argument(..., help="JSON array of saved producer results."),
    video_id: str = typer.Option(..., "--video-id", help="Video id recorded in the audit trail."),
    duration: float = typer.Option(..., "--duration", "-d", help="Known video duration in seconds."),
    output_dir: Path | None = typer.Option(None, "--output-dir", "-o", help="Also export JSON/CSV artifacts here."),
    basename: str = typer.Option("consensus_report", help="Base filename for exported artifacts."),
    config_path: Path = _CONFIG_OPTION,
) -> None:
    """Rerun only the consensus step over producer results saved earlier."""

    settings = _bootstrap(config_path)
    try:
        results = load_producer_results(results_path)
        report = compute_consensus(
            video_id,
            duration,
            results,
            engine_logs=[build_engine_log(result) for result in results],
            target_ratio=settings.consensus.target_ratio,
            merge_tolerance_seconds=settings.consensus.merge_tolerance_seconds,
            jumps_per_minute=settings.consensus.jumps_per_minute,
        )
    except (OSError, RuntimeError, ValueError) as exc:
        logger.error("Consensus failed: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    _emit_report(report, output_dir, basename)


if __name__ == "__main__":
    app()
