"""Layer timeline assembly.

Turns the voice source plus per-role candidates into the ordered list of
timed layers the graph compiler consumes:

    voice, structural-intro, structural-outro, ambience, music,
    transmission-effect

Every layer carries a known duration. A candidate whose duration cannot
be probed aborts the request with ``SourceUnavailable`` because fades,
loops and ducking downstream are all computed from it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence, Tuple

import logging
import math
import random

from transmix.catalog import LayerCandidates, SourceLike, SourceRef, as_source
from transmix.config import MixSettings
from transmix.errors import DecodeFailure, SourceUnavailable

logger = logging.getLogger("transmix.adaptive.layers")


LayerRole = Literal[
    "voice",
    "ambience",
    "music",
    "transmission-effect",
    "structural-intro",
    "structural-outro",
]

LAYER_ROLES = (
    "voice",
    "ambience",
    "music",
    "transmission-effect",
    "structural-intro",
    "structural-outro",
)

VOICE_FADE_IN = 0.5
VOICE_FADE_OUT = 1.0
INTRO_FADE_OUT = 0.5
OUTRO_FADE_IN = 0.5
OUTRO_OVERLAP = 1.0
EFFECT_FADE_IN = 0.1
EFFECT_FADE_OUT = 0.5

DurationProbe = Callable[[str], Optional[float]]


@dataclass(frozen=True)
class AudioLayer:
    role: LayerRole
    source: Any
    duration: float
    volume: float = 1.0
    fade_in: float = 0.0
    fade_out: float = 0.0
    loop: bool = False
    start_offset: float = 0.0

    def __post_init__(self) -> None:
        if self.role not in LAYER_ROLES:
            raise ValueError(f"Unknown layer role: {self.role}")
        if not math.isfinite(self.duration) or self.duration < 0:
            raise ValueError(f"{self.role} layer needs a known duration, got {self.duration}")
        if self.start_offset < 0:
            raise ValueError(f"{self.role} layer start_offset must be >= 0")
        if self.fade_in < 0 or self.fade_out < 0:
            raise ValueError(f"{self.role} layer fades must be >= 0")
        # small epsilon for fades rescaled to fit a short source
        if self.duration > 0 and self.fade_in + self.fade_out > self.duration + 1e-9:
            raise ValueError(
                f"{self.role} layer fades ({self.fade_in}+{self.fade_out}s) exceed duration {self.duration}s"
            )

    @property
    def end(self) -> float:
        return self.start_offset + self.duration

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "source": str(getattr(self.source, "uri", self.source)),
            "duration": self.duration,
            "volume": self.volume,
            "fade_in": self.fade_in,
            "fade_out": self.fade_out,
            "loop": self.loop,
            "start_offset": self.start_offset,
        }


def fit_fades(fade_in: float, fade_out: float, duration: float) -> Tuple[float, float]:
    """Shrink both fades proportionally when they do not fit ``duration``."""

    total = fade_in + fade_out
    if duration <= 0 or total <= duration:
        return fade_in, fade_out
    scale = duration / total
    return fade_in * scale, fade_out * scale


class LayerAssembler:
    """Resolves candidates into concrete, timed ``AudioLayer`` records.

    ``probe`` returns a source duration in seconds (or ``None`` when it is
    unknown) and is only called for sources without a catalog duration.
    ``rng`` picks among ambience/music/effect candidates; pass a seeded
    ``random.Random`` for reproducible episodes.
    """

    def __init__(
        self,
        probe: DurationProbe,
        settings: Optional[MixSettings] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.probe = probe
        self.settings = settings or MixSettings()
        self.rng = rng or random.Random()

    def assemble(self, voice_source: SourceLike, candidates: Optional[LayerCandidates] = None) -> Tuple[AudioLayer, ...]:
        candidates = candidates or LayerCandidates()
        mixing = self.settings.mixing
        layers: List[AudioLayer] = []

        voice_ref = as_source(voice_source)
        voice_duration = self._duration_of(voice_ref, "voice")
        fade_in, fade_out = fit_fades(VOICE_FADE_IN, VOICE_FADE_OUT, voice_duration)
        layers.append(
            AudioLayer(
                role="voice",
                source=voice_ref,
                duration=voice_duration,
                volume=mixing.voice_volume,
                fade_in=fade_in,
                fade_out=fade_out,
            )
        )

        if candidates.intro is not None:
            duration = self._duration_of(candidates.intro, "structural-intro")
            _, fade_out = fit_fades(0.0, INTRO_FADE_OUT, duration)
            layers.append(
                AudioLayer(
                    role="structural-intro",
                    source=candidates.intro,
                    duration=duration,
                    volume=mixing.intro_volume,
                    fade_out=fade_out,
                )
            )

        if candidates.outro is not None:
            duration = self._duration_of(candidates.outro, "structural-outro")
            fade_in, _ = fit_fades(OUTRO_FADE_IN, 0.0, duration)
            layers.append(
                AudioLayer(
                    role="structural-outro",
                    source=candidates.outro,
                    duration=duration,
                    volume=mixing.outro_volume,
                    fade_in=fade_in,
                    start_offset=max(0.0, voice_duration - OUTRO_OVERLAP),
                )
            )

        ambience = self._pick(candidates.ambience)
        if ambience is not None:
            layers.append(
                self._bed_layer(
                    "ambience", ambience, mixing.ambience_volume, mixing.ambience_fade_in, mixing.ambience_fade_out
                )
            )

        music = self._pick(candidates.music)
        if music is not None:
            layers.append(
                self._bed_layer("music", music, mixing.music_volume, mixing.music_fade_in, mixing.music_fade_out)
            )

        effect = self._pick(candidates.effects)
        if effect is not None:
            duration = self._duration_of(effect, "transmission-effect")
            fade_in, fade_out = fit_fades(EFFECT_FADE_IN, EFFECT_FADE_OUT, duration)
            layers.append(
                AudioLayer(
                    role="transmission-effect",
                    source=effect,
                    duration=duration,
                    volume=mixing.transmission_effect_volume,
                    fade_in=fade_in,
                    fade_out=fade_out,
                )
            )

        for layer in layers:
            logger.info(
                "[LAYERS] %s source=%s duration=%.2fs volume=%.2f fades=%.2f/%.2f loop=%s start=%.2fs",
                layer.role,
                layer.source,
                layer.duration,
                layer.volume,
                layer.fade_in,
                layer.fade_out,
                layer.loop,
                layer.start_offset,
            )
        return tuple(layers)

    def _bed_layer(
        self, role: LayerRole, ref: SourceRef, volume: float, fade_in: float, fade_out: float
    ) -> AudioLayer:
        duration = self._duration_of(ref, role)
        fade_in, fade_out = fit_fades(fade_in, fade_out, duration)
        return AudioLayer(
            role=role,
            source=ref,
            duration=duration,
            volume=volume,
            fade_in=fade_in,
            fade_out=fade_out,
            loop=True,
        )

    def _pick(self, pool: Sequence[SourceRef]) -> Optional[SourceRef]:
        if not pool:
            return None
        return self.rng.choice(list(pool))

    def _duration_of(self, ref: SourceRef, role: str) -> float:
        duration = ref.duration
        if duration is None:
            try:
                duration = self.probe(ref.uri)
            except SourceUnavailable as exc:
                if exc.role is not None:
                    raise
                raise SourceUnavailable(ref.uri, role, exc.detail) from exc
            except (DecodeFailure, OSError, RuntimeError, ValueError) as exc:
                raise SourceUnavailable(ref.uri, role, str(exc)) from exc

        if duration is None:
            raise SourceUnavailable(ref.uri, role, "duration could not be determined")
        duration = float(duration)
        if not math.isfinite(duration) or duration <= 0:
            raise SourceUnavailable(ref.uri, role, f"invalid duration {duration}")
        return duration
