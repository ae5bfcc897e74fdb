"""PCM decode and duration probing.

The analyzer only ever sees mono float32 blocks. ``open_pcm_stream`` reads
them with soundfile (WAV/FLAC/OGG); ``decode_with_ffmpeg`` pipes any
container through ffmpeg as raw s16le at a fixed sample rate.
"""
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List

import numpy as np
import soundfile as sf

from transmix.errors import DecodeFailure, SourceUnavailable

logger = logging.getLogger("transmix.engine.decode")

DEFAULT_BLOCK_SIZE = 65536
_S16_SCALE = 32768.0


@dataclass
class PcmStream:
  sample_rate: int
  blocks: Iterator[np.ndarray]


def _to_mono(block: np.ndarray) -> np.ndarray:
  if block.ndim == 1:
    return block.astype(np.float32)
  return block.mean(axis=1).astype(np.float32)


def open_pcm_stream(path: str | Path, block_size: int = DEFAULT_BLOCK_SIZE, role: str = "voice") -> PcmStream:
  """Open ``path`` for block-wise mono decoding.

  Raises ``DecodeFailure`` if the file is missing or unreadable. Errors
  raised while iterating the blocks are wrapped the same way.
  """
  path = Path(path)
  try:
    info = sf.info(str(path))
  except (sf.LibsndfileError, RuntimeError, OSError) as exc:
    raise DecodeFailure(str(path), role, str(exc)) from exc

  def _blocks() -> Iterator[np.ndarray]:
    try:
      for block in sf.blocks(str(path), blocksize=block_size, dtype="float32", always_2d=True):
        yield _to_mono(block)
    except (sf.LibsndfileError, RuntimeError, OSError) as exc:
      raise DecodeFailure(str(path), role, str(exc)) from exc

  logger.info("[DECODE] %s: %d Hz, %d ch, %.2fs", path, info.samplerate, info.channels, info.duration)
  return PcmStream(sample_rate=int(info.samplerate), blocks=_blocks())


def probe_duration(path: str | Path) -> float:
  """Duration in seconds, or ``SourceUnavailable`` when it cannot be read."""
  try:
    info = sf.info(str(path))
  except (sf.LibsndfileError, RuntimeError, OSError) as exc:
    raise SourceUnavailable(str(path), None, str(exc)) from exc
  if info.samplerate <= 0 or info.frames <= 0:
    raise SourceUnavailable(str(path), None, "no audio frames")
  return float(info.frames) / float(info.samplerate)


def probe_duration_ffprobe(path: str | Path, ffprobe_bin: str = "ffprobe") -> float:
  """Container duration via ffprobe, for formats libsndfile cannot open."""
  cmd: List[str] = [
    ffprobe_bin,
    "-v",
    "error",
    "-show_entries",
    "format=duration",
    "-of",
    "default=noprint_wrappers=1:nokey=1",
    str(path),
  ]
  try:
    proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
  except OSError as exc:
    raise SourceUnavailable(str(path), None, f"ffprobe not runnable: {exc}") from exc
  if proc.returncode != 0:
    raise SourceUnavailable(str(path), None, proc.stderr.decode(errors="ignore")[:2000])
  text = proc.stdout.decode(errors="ignore").strip()
  try:
    return float(text)
  except ValueError as exc:
    raise SourceUnavailable(str(path), None, f"unparseable duration {text!r}") from exc


def decode_with_ffmpeg(
  path: str | Path,
  sample_rate: int = 44100,
  block_size: int = DEFAULT_BLOCK_SIZE,
  role: str = "voice",
  ffmpeg_bin: str = "ffmpeg",
) -> PcmStream:
  """Decode through ffmpeg to mono s16le and yield normalised float blocks."""
  cmd: List[str] = [
    ffmpeg_bin,
    "-v",
    "error",
    "-i",
    str(path),
    "-vn",
    "-ac",
    "1",
    "-ar",
    str(sample_rate),
    "-acodec",
    "pcm_s16le",
    "-f",
    "s16le",
    "-",
  ]

  def _blocks() -> Iterator[np.ndarray]:
    try:
      proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except OSError as exc:
      raise DecodeFailure(str(path), role, f"ffmpeg not runnable: {exc}") from exc

    leftover = b""
    chunk_bytes = block_size * 2
    try:
      while True:
        chunk = proc.stdout.read(chunk_bytes)
        if not chunk:
          break
        chunk = leftover + chunk
        usable = len(chunk) - (len(chunk) % 2)
        leftover = chunk[usable:]
        if usable:
          yield np.frombuffer(chunk[:usable], dtype="<i2").astype(np.float32) / _S16_SCALE
    finally:
      proc.stdout.close()
      stderr = proc.stderr.read() if proc.stderr is not None else b""
      returncode = proc.wait()

    if returncode != 0:
      raise DecodeFailure(str(path), role, stderr.decode(errors="ignore")[:4000])

  return PcmStream(sample_rate=int(sample_rate), blocks=_blocks())


def read_mono(path: str | Path, role: str = "voice") -> tuple[np.ndarray, int]:
  """Read a whole file as mono float32 (used for loudness checks)."""
  try:
    data, sr = sf.read(str(path), dtype="float32", always_2d=True)
  except (sf.LibsndfileError, RuntimeError, OSError) as exc:
    raise DecodeFailure(str(path), role, str(exc)) from exc
  return _to_mono(data), int(sr)
