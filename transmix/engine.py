from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import Any, Dict, Optional

from transmix.catalog import ContentHints, LayerCandidates, SourceCatalog, SourceLike
from transmix.config import MixSettings
from transmix.dsp.adaptive.pipeline import Decoder, build_episode_plan
from transmix.dsp.adaptive.layer_assembly import DurationProbe
from transmix.dsp.analysis.spectral import CancelToken
from transmix.dsp_engine.ffmpeg_render import render_graph

logger = logging.getLogger("transmix.engine")


def process_episode(
    voice_source: SourceLike,
    output_path: str | Path,
    *,
    candidates: Optional[LayerCandidates] = None,
    catalog: Optional[SourceCatalog] = None,
    hints: Optional[ContentHints] = None,
    settings: Optional[MixSettings] = None,
    decoder: Optional[Decoder] = None,
    probe: Optional[DurationProbe] = None,
    cancel: Optional[CancelToken] = None,
    rng: Optional[random.Random] = None,
    ffmpeg_bin: str = "ffmpeg",
    measure: bool = True,
) -> Dict[str, Any]:
    """Plan and render one episode.

    Candidates come from ``candidates`` when given, otherwise from
    ``catalog`` resolved against ``hints``. Returns the output path, the
    measured loudness and the plan (profile, layers, graph, metadata).
    """

    settings = settings or MixSettings.from_env()
    if candidates is None and catalog is not None:
        candidates = catalog.candidates_for(hints)

    plan = build_episode_plan(
        voice_source,
        candidates,
        hints=hints,
        settings=settings,
        decoder=decoder,
        probe=probe,
        cancel=cancel,
        rng=rng,
    )
    result = render_graph(plan.graph, output_path, ffmpeg_bin=ffmpeg_bin, measure=measure)

    logger.info("[ENGINE] Episode rendered to %s (%.2fs)", result.output_path, plan.graph.duration)
    return {
        "output_file": str(result.output_path),
        "lufs": result.integrated_lufs,
        "true_peak": result.true_peak_dbfs,
        **plan.to_dict(),
    }
