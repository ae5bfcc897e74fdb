"""Loudness measurement for rendered episodes.

pyloudnorm stays isolated here; the graph compiler only emits loudness
targets and never touches samples.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

import numpy as np
import pyloudnorm as pyln

logger = logging.getLogger("transmix.engine.analysis")


@dataclass
class LoudnessStats:
  integrated_lufs: float
  true_peak_dbfs: float


@lru_cache(maxsize=16)
def _meter_for_sr(sr: int) -> pyln.Meter:
  return pyln.Meter(sr)


def measure_loudness(x: np.ndarray, sr: int) -> LoudnessStats:
  mono = x.mean(axis=0) if x.ndim > 1 else x
  mono = mono.astype(np.float32)
  if mono.size == 0:
    return LoudnessStats(integrated_lufs=float("-inf"), true_peak_dbfs=float("-inf"))

  try:
    integrated = float(_meter_for_sr(sr).integrated_loudness(mono))
  except ValueError as exc:
    # pyloudnorm refuses signals shorter than one gating block
    logger.warning("[LOUDNESS] integrated loudness unavailable (%s), using RMS", exc)
    rms = float(np.sqrt(np.mean(np.square(mono)) + 1e-12))
    integrated = 20.0 * np.log10(max(rms, 1e-6))

  peak = float(np.max(np.abs(mono)) + 1e-9)
  return LoudnessStats(integrated_lufs=integrated, true_peak_dbfs=20.0 * np.log10(peak))
