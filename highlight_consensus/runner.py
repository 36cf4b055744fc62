from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Sequence

from highlight_consensus.config import ConsensusSettings
from highlight_consensus.consensus.engine import compute_consensus
from highlight_consensus.consensus.quota import require_positive_duration
from highlight_consensus.models import (
    DEFAULT_REASONING,
    ConsensusReport,
    EngineLog,
    EngineLogSegment,
    EngineStatus,
    ProducerResult,
    ProgressEvent,
)

logger = logging.getLogger(__name__)

ProducerCall = Callable[[str, float], Awaitable[ProducerResult]]
ProgressCallback = Callable[[ProgressEvent], None]


@dataclass(slots=True, frozen=True)
class EngineSpec:
    """A named producer: ``run(video_id, duration)`` resolves to a ProducerResult."""

    name: str
    run: ProducerCall


def derive_status(result: ProducerResult) -> EngineStatus:
    if result.error:
        return "error"
    if not result.highlights:
        return "partial"
    return "success"


def build_engine_log(result: ProducerResult) -> EngineLog:
    """Summarize a settled producer, defaulting absent scores and reasoning."""

    return EngineLog(
        engine_name=result.engine_name,
        status=derive_status(result),
        segments_produced=len(result.highlights),
        processing_log=list(result.processing_log),
        segments=[
            EngineLogSegment(
                start_seconds=segment.start_seconds,
                end_seconds=segment.end_seconds,
                score=segment.score or 0.0,
                reasoning=segment.reasoning or DEFAULT_REASONING,
                start_index=segment.start_index,
                end_index=segment.end_index,
            )
            for segment in result.highlights
        ],
        transcript=result.transcript,
    )


async def run_engines(
    video_id: str,
    duration_seconds: float,
    engines: Sequence[EngineSpec],
    *,
    on_progress: ProgressCallback | None = None,
    cancel_event: asyncio.Event | None = None,
    consensus: ConsensusSettings | None = None,
) -> ConsensusReport:
    """Run every producer concurrently, report each as it settles, then consolidate once.

    A producer that fails, by returning an error or by raising, never stops
    the others. Consolidation starts only after all producers have settled.
    If ``cancel_event`` is set (or this coroutine is cancelled) before then,
    outstanding producers are abandoned and ``asyncio.CancelledError``
    propagates without a report.
    """

    duration = require_positive_duration(duration_seconds)
    consensus = consensus or ConsensusSettings()
    emit = on_progress or _ignore_progress
    total = len(engines)

    logger.info("Starting %d engine(s) for %s (%gs)", total, video_id, duration)
    for index, engine in enumerate(engines):
        emit(ProgressEvent(type="engine_start", engine_name=engine.name, engine_index=index, total_engines=total))

    tasks = {
        asyncio.create_task(_settle(engine, video_id, duration), name=f"engine:{engine.name}"): index
        for index, engine in enumerate(engines)
    }
    cancel_waiter = asyncio.create_task(cancel_event.wait()) if cancel_event is not None else None

    results: list[ProducerResult] = []
    engine_logs: list[EngineLog] = []
    pending = set(tasks)
    try:
        while pending:
            waitables = (pending | {cancel_waiter}) if cancel_waiter is not None else pending
            done, _ = await asyncio.wait(waitables, return_when=asyncio.FIRST_COMPLETED)
            if cancel_event is not None and cancel_event.is_set():
                raise asyncio.CancelledError(f"Analysis of {video_id} cancelled by caller")

            for task in sorted(done, key=tasks.__getitem__):
                pending.discard(task)
                index = tasks[task]
                result = replace(
                    task.result(),
                    highlights=list(task.result().highlights),
                    processing_log=list(task.result().processing_log),
                )
                results.append(result)

                log = build_engine_log(result)
                engine_logs.append(log)
                logger.info(
                    "Engine %s finished: %s (%d segment(s))",
                    engines[index].name,
                    log.status,
                    log.segments_produced,
                )
                emit(
                    ProgressEvent(
                        type="engine_complete",
                        engine_name=engines[index].name,
                        engine_index=index,
                        total_engines=total,
                        engine_log=log,
                    )
                )

        if cancel_event is not None and cancel_event.is_set():
            raise asyncio.CancelledError(f"Analysis of {video_id} cancelled by caller")
    finally:
        for task in pending:
            task.cancel()
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    emit(ProgressEvent(type="consolidating", total_engines=total))
    try:
        report = compute_consensus(
            video_id,
            duration,
            results,
            engine_logs=engine_logs,
            engine_names=[engine.name for engine in engines],
            target_ratio=consensus.target_ratio,
            merge_tolerance_seconds=consensus.merge_tolerance_seconds,
            jumps_per_minute=consensus.jumps_per_minute,
        )
    except Exception as exc:
        logger.error("Consolidation failed for %s: %s", video_id, exc)
        emit(ProgressEvent(type="error", error=str(exc)))
        raise

    emit(ProgressEvent(type="complete", report=report))
    return report


async def _settle(engine: EngineSpec, video_id: str, duration: float) -> ProducerResult:
    try:
        result = await engine.run(video_id, duration)
        if not isinstance(result, ProducerResult):
            raise TypeError(f"Engine {engine.name} returned {type(result).__name__}, expected ProducerResult")
        return result
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        message = str(exc) or type(exc).__name__
        logger.warning("Engine %s raised; treating as failed: %s", engine.name, message)
        return ProducerResult(
            engine_name=engine.name,
            highlights=[],
            error=message,
            processing_log=[f"FATAL ERROR: {message}"],
        )


def _ignore_progress(event: ProgressEvent) -> None:
    return None
