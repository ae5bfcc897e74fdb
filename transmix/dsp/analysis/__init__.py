"""Analysis layer.

Frequency profiling of the narration track, consumed by the adaptive EQ
planner.
"""

from .spectral import (
    BandEnergy,
    FrequencyProfile,
    SpectralAnalyzer,
    analyze_samples,
)

__all__ = [
    "BandEnergy",
    "FrequencyProfile",
    "SpectralAnalyzer",
    "analyze_samples",
]
