"""Voice frequency profiling.

Splits a mono PCM stream into non-overlapping frames, takes the magnitude
spectrum of each frame and averages the per-bin magnitudes over the whole
recording. The averaged spectrum yields:

- the dominant frequency inside the vocal band (80 Hz - 8 kHz)
- mean magnitude for the low (<= 500 Hz), mid (<= 5 kHz) and high
  (<= 8 kHz) bands
- the five strongest bins inside the vocal band

Silence, empty input and cancelled runs all produce the neutral profile
instead of an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

import logging

import numpy as np
from scipy import fft as sp_fft

logger = logging.getLogger("transmix.analysis.spectral")


VOCAL_BAND_MIN_HZ = 80.0
VOCAL_BAND_MAX_HZ = 8000.0
LOW_BAND_END_HZ = 500.0
MID_BAND_END_HZ = 5000.0
PEAK_COUNT = 5


class CancelToken(Protocol):
    def is_set(self) -> bool:
        ...


@dataclass(frozen=True)
class BandEnergy:
    low: float = 0.0
    mid: float = 0.0
    high: float = 0.0


@dataclass(frozen=True)
class FrequencyProfile:
    """Aggregated spectrum summary of a voice recording.

    ``peak_frequencies`` holds ``(frequency_hz, magnitude)`` pairs sorted by
    magnitude, strongest first.
    """

    dominant_frequency: float = 0.0
    average_energy_by_band: BandEnergy = field(default_factory=BandEnergy)
    peak_frequencies: Tuple[Tuple[float, float], ...] = ()

    @classmethod
    def neutral(cls) -> "FrequencyProfile":
        return cls()

    @property
    def is_neutral(self) -> bool:
        return self == FrequencyProfile.neutral()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dominant_frequency": self.dominant_frequency,
            "average_energy_by_band": {
                "low": self.average_energy_by_band.low,
                "mid": self.average_energy_by_band.mid,
                "high": self.average_energy_by_band.high,
            },
            "peak_frequencies": [
                {"frequency": freq, "magnitude": mag} for freq, mag in self.peak_frequencies
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FrequencyProfile":
        bands = data.get("average_energy_by_band") or {}
        peaks = data.get("peak_frequencies") or []
        return cls(
            dominant_frequency=float(data.get("dominant_frequency", 0.0)),
            average_energy_by_band=BandEnergy(
                low=float(bands.get("low", 0.0)),
                mid=float(bands.get("mid", 0.0)),
                high=float(bands.get("high", 0.0)),
            ),
            peak_frequencies=tuple(
                (float(p["frequency"]), float(p["magnitude"])) for p in peaks
            ),
        )


def _is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


class SpectralAnalyzer:
    """Streaming magnitude-spectrum accumulator.

    Call :meth:`feed` with sample blocks of any length and :meth:`finish`
    once the stream ends. ``finish`` also analyzes the trailing partial
    frame (zero-padded) and resets the analyzer for the next recording.
    """

    def __init__(self, sample_rate: int = 44100, frame_size: int = 2048) -> None:
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        if not _is_power_of_two(frame_size):
            raise ValueError(f"frame_size must be a power of two, got {frame_size}")
        self.sample_rate = int(sample_rate)
        self.frame_size = int(frame_size)
        self._bins = self.frame_size // 2
        self.reset()

    @property
    def bin_width_hz(self) -> float:
        return self.sample_rate / self.frame_size

    @property
    def bin_frequencies(self) -> np.ndarray:
        return np.arange(self._bins, dtype=np.float64) * self.bin_width_hz

    @property
    def frames_analyzed(self) -> int:
        return self._frames

    def reset(self) -> None:
        self._pending = np.zeros(0, dtype=np.float32)
        self._magnitude_sum = np.zeros(self._bins, dtype=np.float64)
        self._frames = 0

    def feed(self, samples: Any) -> None:
        block = np.asarray(samples, dtype=np.float32).reshape(-1)
        if block.size == 0:
            return
        buf = np.concatenate([self._pending, block]) if self._pending.size else block

        n_full = buf.size // self.frame_size
        if n_full:
            frames = buf[: n_full * self.frame_size].reshape(n_full, self.frame_size)
            self._accumulate(frames)
        self._pending = buf[n_full * self.frame_size :].copy()

    def finish(self) -> FrequencyProfile:
        if self._pending.size:
            tail = np.zeros((1, self.frame_size), dtype=np.float32)
            tail[0, : self._pending.size] = self._pending
            self._accumulate(tail)

        profile = self._build_profile()
        logger.info(
            "[ANALYSIS] frames=%d dominant=%.2f Hz low=%.4f mid=%.4f high=%.4f peaks=%d",
            self._frames,
            profile.dominant_frequency,
            profile.average_energy_by_band.low,
            profile.average_energy_by_band.mid,
            profile.average_energy_by_band.high,
            len(profile.peak_frequencies),
        )
        self.reset()
        return profile

    def analyze(
        self,
        blocks: Iterable[Any],
        cancel: Optional[CancelToken] = None,
    ) -> FrequencyProfile:
        """Consume ``blocks`` and return the averaged profile.

        A set ``cancel`` token at any point discards the partial state and
        returns the neutral profile.
        """

        self.reset()
        for block in blocks:
            if cancel is not None and cancel.is_set():
                return self._cancelled()
            self.feed(block)
        if cancel is not None and cancel.is_set():
            return self._cancelled()
        return self.finish()

    def _cancelled(self) -> FrequencyProfile:
        logger.warning(
            "[ANALYSIS] Cancelled after %d frames, returning neutral profile", self._frames
        )
        self.reset()
        return FrequencyProfile.neutral()

    def _accumulate(self, frames: np.ndarray) -> None:
        spectrum = sp_fft.rfft(frames, n=self.frame_size, axis=1)
        magnitudes = np.abs(spectrum[:, : self._bins])
        self._magnitude_sum += magnitudes.sum(axis=0, dtype=np.float64)
        self._frames += frames.shape[0]

    def _build_profile(self) -> FrequencyProfile:
        if self._frames == 0:
            return FrequencyProfile.neutral()

        avg = self._magnitude_sum / self._frames
        freqs = self.bin_frequencies

        vocal_idx = np.flatnonzero((freqs >= VOCAL_BAND_MIN_HZ) & (freqs <= VOCAL_BAND_MAX_HZ))

        dominant = 0.0
        if vocal_idx.size:
            best = int(vocal_idx[np.argmax(avg[vocal_idx])])
            if avg[best] > 0.0:
                dominant = float(freqs[best])

        bands = BandEnergy(
            low=round(_band_mean(avg, (freqs > 0.0) & (freqs <= LOW_BAND_END_HZ)), 4),
            mid=round(_band_mean(avg, (freqs > LOW_BAND_END_HZ) & (freqs <= MID_BAND_END_HZ)), 4),
            high=round(_band_mean(avg, (freqs > MID_BAND_END_HZ) & (freqs <= VOCAL_BAND_MAX_HZ)), 4),
        )

        peaks: List[Tuple[float, float]] = []
        if vocal_idx.size:
            # stable sort keeps the lower bin first on equal magnitude
            order = vocal_idx[np.argsort(-avg[vocal_idx], kind="stable")]
            for i in order:
                if len(peaks) == PEAK_COUNT or avg[i] <= 0.0:
                    break
                peaks.append((round(float(freqs[i]), 2), round(float(avg[i]), 4)))

        return FrequencyProfile(
            dominant_frequency=round(dominant, 2),
            average_energy_by_band=bands,
            peak_frequencies=tuple(peaks),
        )


def _band_mean(avg: np.ndarray, mask: np.ndarray) -> float:
    if not np.any(mask):
        return 0.0
    return float(avg[mask].mean())


def analyze_samples(
    samples: Any,
    sample_rate: int = 44100,
    frame_size: int = 2048,
    cancel: Optional[CancelToken] = None,
) -> FrequencyProfile:
    """One-shot helper for an in-memory mono signal."""

    analyzer = SpectralAnalyzer(sample_rate=sample_rate, frame_size=frame_size)
    return analyzer.analyze([samples], cancel=cancel)
