from __future__ import annotations

from functools import partial

from highlight_consensus.config import Settings
from highlight_consensus.engines.curation_engine import run_curation_engine
from highlight_consensus.engines.heatmap_engine import run_heatmap_engine
from highlight_consensus.engines.text_engine import run_text_engine
from highlight_consensus.runner import EngineSpec


def default_engines(settings: Settings) -> list[EngineSpec]:
    """The three producers, in declaration order Text, Heatmap, Curation."""

    return [
        EngineSpec(name="Text", run=partial(run_text_engine, settings=settings)),
        EngineSpec(name="Heatmap", run=partial(run_heatmap_engine, settings=settings)),
        EngineSpec(name="Curation", run=partial(run_curation_engine, settings=settings)),
    ]
