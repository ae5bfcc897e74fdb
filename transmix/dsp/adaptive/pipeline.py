"""Per-episode planning pipeline.

This module does *not* render audio. For one voice recording it:
- decodes the voice to PCM blocks and builds its frequency profile
- assembles the timed layer list from the catalog candidates
- compiles the mix graph (complementary EQ, ducking, mastering)
- prepares episode metadata for show notes

The stages run strictly in order. The returned plan is handed to a render
backend (``transmix.dsp_engine.ffmpeg_render``) by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

import logging
import random

import numpy as np

from transmix.catalog import ContentHints, LayerCandidates, SourceLike, as_source
from transmix.config import MixSettings
from transmix.dsp.adaptive.layer_assembly import AudioLayer, DurationProbe, LayerAssembler
from transmix.dsp.analysis.spectral import CancelToken, FrequencyProfile, SpectralAnalyzer
from transmix.dsp.graph.compiler import MixGraphCompiler
from transmix.dsp.graph.model import FilterGraph
from transmix.dsp_engine.decode import PcmStream, open_pcm_stream, probe_duration
from transmix.errors import PipelineCancelled

logger = logging.getLogger("transmix.adaptive.pipeline")


Decoder = Callable[[str], PcmStream]


@dataclass
class EpisodePlan:
    profile: FrequencyProfile
    layers: Tuple[AudioLayer, ...]
    graph: FilterGraph
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "profile": self.profile.to_dict(),
            "layers": [layer.to_dict() for layer in self.layers],
            "graph": self.graph.to_dict(),
            "metadata": dict(self.metadata),
        }


def _check_cancel(cancel: Optional[CancelToken], stage: str) -> None:
    if cancel is not None and cancel.is_set():
        logger.warning("[PIPELINE] Cancelled before %s", stage)
        raise PipelineCancelled(f"Cancelled before {stage}")


def analyze_voice(
    blocks: Iterable[Any],
    sample_rate: int,
    frame_size: int = 2048,
    cancel: Optional[CancelToken] = None,
) -> FrequencyProfile:
    """Profile the voice, degrading to the neutral profile on numeric failure.

    Decode errors coming out of ``blocks`` propagate: losing the voice
    source is fatal, a bad spectrum is not.
    """

    analyzer = SpectralAnalyzer(sample_rate=sample_rate, frame_size=frame_size)
    try:
        with np.errstate(invalid="raise", over="raise"):
            profile = analyzer.analyze(blocks, cancel=cancel)
    except (FloatingPointError, ValueError) as exc:
        logger.warning("[PIPELINE] Voice analysis failed (%s); using neutral profile", exc)
        return FrequencyProfile.neutral()

    bands = profile.average_energy_by_band
    if not np.all(np.isfinite([profile.dominant_frequency, bands.low, bands.mid, bands.high])):
        logger.warning("[PIPELINE] Voice analysis produced non-finite values; using neutral profile")
        return FrequencyProfile.neutral()
    return profile


def generate_metadata(
    hints: Optional[ContentHints],
    profile: FrequencyProfile,
    duration: float,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Episode metadata for podcast platforms and show notes."""

    hints = hints or ContentHints()
    now = now or datetime.now(timezone.utc)
    location = hints.location or "Unknown Location"
    mood = hints.mood or "Mysterious"
    return {
        "title": f"Lost Transmission: {location} - {mood}",
        "description": (
            f"Miles Wandr discovers mysterious signals from {hints.location or 'an unknown location'}, "
            f"revealing a {hints.mood or 'mysterious'} story. Recorded: {now.strftime('%B %d, %Y')}"
        ),
        "duration": round(float(duration), 2),
        "location": hints.location,
        "mood": hints.mood,
        "keywords": ", ".join(hints.keywords),
        "sentiment": hints.sentiment,
        "vocal_profile": (
            f"Dominant Freq: {profile.dominant_frequency:.2f}Hz, "
            f"Mid Energy: {profile.average_energy_by_band.mid:.4f}"
        ),
        "timestamp": now.isoformat(),
    }


def build_episode_plan(
    voice_source: SourceLike,
    candidates: Optional[LayerCandidates] = None,
    *,
    hints: Optional[ContentHints] = None,
    settings: Optional[MixSettings] = None,
    decoder: Optional[Decoder] = None,
    probe: Optional[DurationProbe] = None,
    cancel: Optional[CancelToken] = None,
    rng: Optional[random.Random] = None,
) -> EpisodePlan:
    """Top-level function: voice source + candidates -> renderable plan.

    ``decoder`` and ``probe`` default to the soundfile adapters; pass
    ``decode_with_ffmpeg`` / ``probe_duration_ffprobe`` for compressed
    inputs.
    """

    settings = settings or MixSettings()
    decoder = decoder or open_pcm_stream
    probe = probe or probe_duration
    voice_ref = as_source(voice_source)

    _check_cancel(cancel, "decode")
    stream = decoder(voice_ref.uri)

    profile = analyze_voice(
        stream.blocks,
        stream.sample_rate,
        frame_size=settings.processing.frame_size,
        cancel=cancel,
    )
    _check_cancel(cancel, "layer assembly")

    assembler = LayerAssembler(probe=probe, settings=settings, rng=rng)
    layers = assembler.assemble(voice_ref, candidates)
    _check_cancel(cancel, "graph compilation")

    graph = MixGraphCompiler(settings).compile(layers, profile)
    metadata = generate_metadata(hints, profile, graph.duration)

    logger.info(
        "[PIPELINE] Planned episode for %s: %d layers, %d buses, %.2fs, dominant=%.2f Hz",
        voice_ref.uri,
        len(layers),
        len(graph.nodes),
        graph.duration,
        profile.dominant_frequency,
    )
    return EpisodePlan(profile=profile, layers=layers, graph=graph, metadata=metadata)
