"""Mix graph compiler.

Builds a single filter graph from the assembled layers:

1. voice bus: gain, fade envelope and the static voice EQ
2. one bus per background layer: loop/gain/fades/offset followed by the
   complementary EQ planned from the voice profile
3. ``backgrounds``: sum of all background buses (longest wins)
4. ``ducked``: backgrounds sidechain-compressed by the voice bus
5. ``premaster``: voice + ducked beds, running for the voice duration or
   to the end of a structural outro tail
6. ``out``: loudness normalisation and limiter

Without a frequency profile the EQ stage is skipped and background buses
only carry their level/fade operations.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence

import logging

from transmix.config import MixSettings
from transmix.dsp.adaptive.adaptive_eq import EqPlan, plan_background_eq
from transmix.dsp.adaptive.layer_assembly import AudioLayer, fit_fades
from transmix.dsp.analysis.spectral import FrequencyProfile
from transmix.dsp.graph.model import (
    FilterGraph,
    GraphBuilder,
    Operation,
    OutputFormat,
    equalizer,
    fade,
    gain,
)
from transmix.errors import GraphConstructionError

logger = logging.getLogger("transmix.graph.compiler")


VOICE_BUS = "voice"
BACKGROUNDS_BUS = "backgrounds"
DUCKED_BUS = "ducked"
PREMASTER_BUS = "premaster"
TERMINAL_BUS = "out"

# amix dropout transition (seconds) when the beds stop under the voice
DROPOUT_TRANSITION = 2.0

EqPlanner = Callable[[FrequencyProfile, str, str], EqPlan]


def _envelope(layer: AudioLayer, length: float) -> List[Operation]:
    fade_in, fade_out = fit_fades(layer.fade_in, layer.fade_out, length)
    ops: List[Operation] = []
    if fade_in > 0:
        ops.append(fade("in", 0.0, fade_in))
    if fade_out > 0:
        ops.append(fade("out", max(0.0, length - fade_out), fade_out))
    return ops


class MixGraphCompiler:
    def __init__(self, settings: Optional[MixSettings] = None, eq_planner: Optional[EqPlanner] = None) -> None:
        self.settings = settings or MixSettings()
        self.eq_planner = eq_planner or plan_background_eq

    def output_format(self) -> OutputFormat:
        p = self.settings.processing
        return OutputFormat(
            container=p.container,
            codec=p.codec,
            bitrate=p.bitrate,
            channels=p.channels,
            sample_rate=p.sample_rate,
        )

    def compile(
        self,
        layers: Sequence[AudioLayer],
        profile: Optional[FrequencyProfile] = None,
    ) -> FilterGraph:
        voices = [layer for layer in layers if layer.role == "voice"]
        if len(voices) != 1:
            raise GraphConstructionError(f"Expected exactly one voice layer, got {len(voices)}")
        voice = voices[0]
        backgrounds = [layer for layer in layers if layer.role != "voice"]

        builder = GraphBuilder(self.output_format())

        voice_end = self._add_voice_bus(builder, voice)

        bed_buses: List[str] = []
        bed_durations: List[float] = []
        for index, layer in enumerate(backgrounds):
            name, duration = self._add_background_bus(builder, index, layer, voice_end, profile)
            bed_buses.append(name)
            bed_durations.append(duration)

        premaster_duration = voice_end
        for layer in backgrounds:
            if layer.role == "structural-outro":
                premaster_duration = max(premaster_duration, layer.end)

        if bed_buses:
            bed = self._add_bed_mix(builder, bed_buses, max(bed_durations))
            if self.settings.ducking.enabled:
                bed = self._add_ducking(builder, bed, max(bed_durations))
            extends = premaster_duration > voice_end
            builder.add_bus(
                PREMASTER_BUS,
                [
                    Operation(
                        "sum",
                        {
                            "inputs": 2,
                            "duration": "longest" if extends else "first",
                            "dropout_transition": DROPOUT_TRANSITION,
                            "end": premaster_duration,
                        },
                    )
                ],
                premaster_duration,
                inputs=[VOICE_BUS, bed],
            )
        else:
            builder.add_bus(PREMASTER_BUS, [Operation("passthrough")], premaster_duration, inputs=[VOICE_BUS])

        builder.add_bus(TERMINAL_BUS, self._mastering_ops(), premaster_duration, inputs=[PREMASTER_BUS])

        graph = builder.build()
        logger.info(
            "[GRAPH] Compiled %d buses (%d background, ducking=%s, eq=%s) duration=%.2fs",
            len(graph.nodes),
            len(backgrounds),
            self.settings.ducking.enabled,
            profile is not None,
            graph.duration,
        )
        return graph

    def _add_voice_bus(self, builder: GraphBuilder, voice: AudioLayer) -> float:
        src = builder.add_source(voice.source)
        ops: List[Operation] = [gain(voice.volume)]
        ops.extend(_envelope(voice, voice.duration))

        voice_eq = self.settings.voice_eq
        if voice_eq.enabled:
            ops.append(equalizer(voice_eq.frequency_hz, voice_eq.gain_db, width_hz=voice_eq.width_hz))
        if voice.start_offset > 0:
            ops.append(Operation("delay", {"seconds": voice.start_offset}))

        builder.add_bus(VOICE_BUS, ops, voice.end, source=src, role="voice")
        return voice.end

    def _add_background_bus(
        self,
        builder: GraphBuilder,
        index: int,
        layer: AudioLayer,
        voice_end: float,
        profile: Optional[FrequencyProfile],
    ) -> tuple[str, float]:
        src = builder.add_source(layer.source)

        # looping beds run until the voice ends
        length = layer.duration
        if layer.loop and voice_end > layer.start_offset:
            length = voice_end - layer.start_offset

        ops: List[Operation] = []
        if layer.loop:
            ops.append(Operation("loop", {"source_duration": layer.duration, "until": length}))
        ops.append(gain(layer.volume))
        ops.extend(_envelope(layer, length))
        if layer.start_offset > 0:
            ops.append(Operation("delay", {"seconds": layer.start_offset}))

        base = f"bg{index}"
        name = f"{base}_volfade"
        if profile is not None:
            plan = self.eq_planner(profile, layer.role, base)
            ops.extend(plan.filters)
            name = plan.output_bus

        duration = layer.start_offset + length
        builder.add_bus(name, ops, duration, source=src, role=layer.role)
        return name, duration

    def _add_bed_mix(self, builder: GraphBuilder, buses: List[str], duration: float) -> str:
        if len(buses) == 1:
            op = Operation("passthrough")
        else:
            op = Operation("sum", {"inputs": len(buses), "duration": "longest"})
        return builder.add_bus(BACKGROUNDS_BUS, [op], duration, inputs=buses)

    def _add_ducking(self, builder: GraphBuilder, bed: str, duration: float) -> str:
        ducking = self.settings.ducking
        op = Operation(
            "sidechain_compress",
            {
                "threshold_db": ducking.threshold_db,
                "ratio": ducking.ratio,
                "attack_ms": ducking.attack_ms,
                "release_ms": ducking.release_ms,
            },
        )
        return builder.add_bus(DUCKED_BUS, [op], duration, inputs=[bed, VOICE_BUS])

    def _mastering_ops(self) -> List[Operation]:
        mastering = self.settings.mastering
        processing = self.settings.processing
        ops: List[Operation] = []
        if mastering.normalize_loudness:
            ops.append(
                Operation(
                    "loudness_normalize",
                    {
                        "target_lufs": processing.target_lufs,
                        "true_peak_db": processing.true_peak_db,
                        "loudness_range": processing.loudness_range,
                    },
                )
            )
        if mastering.limiter_enabled:
            ops.append(
                Operation(
                    "limiter",
                    {
                        "threshold_db": mastering.limiter_threshold_db,
                        "attack_ms": mastering.limiter_attack_ms,
                        "release_ms": mastering.limiter_release_ms,
                    },
                )
            )
        return ops or [Operation("passthrough")]


def compile_mix_graph(
    layers: Sequence[AudioLayer],
    profile: Optional[FrequencyProfile] = None,
    settings: Optional[MixSettings] = None,
) -> FilterGraph:
    return MixGraphCompiler(settings).compile(layers, profile)
