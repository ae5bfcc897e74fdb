"""Complementary EQ for background layers.

Carves space for the narration in every non-voice layer using the voice
frequency profile. The result is a deterministic filter chain that the
graph compiler appends to the layer's bus.

Rule set:
- Always high-pass at 90 Hz to keep rumble and mud out of the beds
- Notch -4 dB at the voice's dominant frequency when it sits between
  100 Hz and 5 kHz (Q derived from a fixed 1500 Hz reference)
- Otherwise fall back to a broad -4 dB scoop at 2 kHz
- Ambience and music get an extra -3 dB cut at 5 kHz to keep sustained
  beds from crowding vocal presence and sibilance
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import logging

from transmix.dsp.analysis.spectral import FrequencyProfile
from transmix.dsp.graph.model import Operation, equalizer, highpass

logger = logging.getLogger("transmix.adaptive.eq")


HIGHPASS_HZ = 90.0
NOTCH_GAIN_DB = -4.0
NOTCH_MIN_HZ = 100.0
NOTCH_MAX_HZ = 5000.0
NOTCH_REFERENCE_HZ = 1500.0
FALLBACK_NOTCH_HZ = 2000.0
FALLBACK_NOTCH_Q = 0.8
PRESENCE_CUT_HZ = 5000.0
PRESENCE_CUT_DB = -3.0

SUSTAINED_ROLES = frozenset({"ambience", "music"})


@dataclass(frozen=True)
class EqPlan:
    filters: Tuple[Operation, ...]
    output_bus: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filters": [op.to_dict() for op in self.filters],
            "output_bus": self.output_bus,
        }


def q_from_bandwidth(center_hz: float, bandwidth_hz: float) -> float:
    """Q = center / bandwidth, or 1.0 for a zero bandwidth."""

    if bandwidth_hz == 0:
        return 1.0
    return center_hz / bandwidth_hz


def notch_q(dominant_hz: float) -> float:
    """Q for the voice notch: narrower for higher centre frequencies."""

    if dominant_hz == 0:
        return 1.0
    return NOTCH_REFERENCE_HZ / dominant_hz


def plan_background_eq(
    profile: Optional[FrequencyProfile],
    role: str,
    input_bus: str = "bg",
) -> EqPlan:
    """Build the complementary EQ chain for one background layer."""

    filters: List[Operation] = [highpass(HIGHPASS_HZ)]

    dominant = float(profile.dominant_frequency) if profile is not None else 0.0

    if NOTCH_MIN_HZ < dominant < NOTCH_MAX_HZ:
        q = notch_q(dominant)
        filters.append(equalizer(dominant, NOTCH_GAIN_DB, q=q))
        logger.info(
            "[EQ] role=%s notch %.2f Hz (Q=%.2f, %.1f dB) at voice dominant frequency",
            role,
            dominant,
            q,
            NOTCH_GAIN_DB,
        )
    else:
        filters.append(equalizer(FALLBACK_NOTCH_HZ, NOTCH_GAIN_DB, q=FALLBACK_NOTCH_Q))
        logger.info(
            "[EQ] role=%s dominant %.2f Hz outside notch range, using %.0f Hz fallback scoop",
            role,
            dominant,
            FALLBACK_NOTCH_HZ,
        )

    if role in SUSTAINED_ROLES:
        cut_q = q_from_bandwidth(PRESENCE_CUT_HZ, PRESENCE_CUT_HZ)
        filters.append(equalizer(PRESENCE_CUT_HZ, PRESENCE_CUT_DB, q=cut_q))
        logger.info("[EQ] role=%s presence cut %.1f dB at 5 kHz", role, PRESENCE_CUT_DB)

    return EqPlan(filters=tuple(filters), output_bus=f"{input_bus}_eq")
