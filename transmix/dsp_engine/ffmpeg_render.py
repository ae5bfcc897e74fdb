"""FFmpeg render backend.

Serialises a ``FilterGraph`` into an ffmpeg ``-filter_complex`` expression
and shells out to ffmpeg to materialise the episode. The graph itself
knows nothing about ffmpeg syntax; everything backend-specific lives here.
"""
from __future__ import annotations

import logging
import math
import subprocess
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from transmix.dsp.graph.model import BusNode, FilterGraph, Operation
from transmix.errors import DecodeFailure, GraphConstructionError, RenderFailure

from .analysis import measure_loudness
from .decode import read_mono

logger = logging.getLogger("transmix.engine.render")

# sidechaincompress / alimiter accepted ranges (linear)
_SC_THRESHOLD_MIN = 0.000976563
_LIMIT_MIN = 0.0625


@dataclass
class RenderResult:
  output_path: Path
  integrated_lufs: Optional[float] = None
  true_peak_dbfs: Optional[float] = None


def _num(value: float) -> str:
  value = round(float(value), 4)
  if value == int(value):
    return str(int(value))
  return f"{value:.4f}".rstrip("0").rstrip(".")


def _db_to_lin(db: float) -> float:
  return 10 ** (float(db) / 20.0)


def _filter_for(op: Operation, sample_rate: int) -> str:
  p = op.params
  kind = op.kind
  if kind == "gain":
    return f"volume={_num(p['volume'])}"
  if kind == "highpass":
    return f"highpass=f={_num(p['frequency'])}"
  if kind == "bandpass":
    return f"bandpass=f={_num(p['frequency'])}:width_type=q:width={_num(p['q'])}"
  if kind == "equalizer":
    if "q" in p:
      width = f"width_type=q:width={_num(p['q'])}"
    else:
      width = f"width_type=h:width={_num(p['width_hz'])}"
    return f"equalizer=f={_num(p['frequency'])}:{width}:g={_num(p['gain_db'])}"
  if kind == "fade":
    return f"afade=t={p['direction']}:st={_num(p['start'])}:d={_num(p['duration'])}"
  if kind == "delay":
    return f"adelay=delays={int(round(p['seconds'] * 1000))}:all=1"
  if kind == "loop":
    size = max(1, int(math.ceil(p["source_duration"] * sample_rate)))
    return f"aloop=loop=-1:size={size},asetpts=N/SR/TB,atrim=end={_num(p['until'])}"
  if kind == "sum":
    expr = f"amix=inputs={p['inputs']}:duration={p.get('duration', 'longest')}"
    if "dropout_transition" in p:
      expr += f":dropout_transition={_num(p['dropout_transition'])}"
    if p.get("duration") == "longest" and "end" in p:
      expr += f",atrim=end={_num(p['end'])}"
    return expr
  if kind == "sidechain_compress":
    threshold = max(_SC_THRESHOLD_MIN, min(1.0, _db_to_lin(p["threshold_db"])))
    return (
      f"sidechaincompress=threshold={threshold:.6f}:ratio={_num(p['ratio'])}"
      f":attack={_num(p['attack_ms'])}:release={_num(p['release_ms'])}"
    )
  if kind == "loudness_normalize":
    return (
      f"loudnorm=I={_num(p['target_lufs'])}:TP={_num(p['true_peak_db'])}"
      f":LRA={_num(p['loudness_range'])}"
    )
  if kind == "limiter":
    limit = max(_LIMIT_MIN, min(1.0, _db_to_lin(p["threshold_db"])))
    return (
      f"alimiter=level_in=1:level_out=1:limit={limit:.6f}"
      f":attack={_num(p['attack_ms'])}:release={_num(p['release_ms'])}"
    )
  if kind == "passthrough":
    return "anull"
  raise GraphConstructionError(f"No ffmpeg filter for operation {kind}")


def to_filter_complex(graph: FilterGraph) -> str:
  """Render the graph as ffmpeg filter_complex text.

  Buses consumed more than once (the voice feeds both the ducker and the
  final sum) are fanned out with ``asplit``.
  """
  graph.validate()
  sample_rate = graph.output.sample_rate
  uses = Counter(bus for node in graph.nodes for bus in node.inputs)
  labels: Dict[str, Iterator[str]] = {}
  chains: List[str] = []

  for node in graph.nodes:
    chains.append(_node_chain(node, labels, sample_rate))
    count = uses.get(node.name, 0)
    if count > 1:
      split_labels = [f"{node.name}_{i}" for i in range(count)]
      chains.append(f"[{node.name}]asplit={count}" + "".join(f"[{lbl}]" for lbl in split_labels))
      labels[node.name] = iter(split_labels)
    else:
      labels[node.name] = iter([node.name])

  return ";".join(chains)


def _node_chain(node: BusNode, labels: Dict[str, Iterator[str]], sample_rate: int) -> str:
  prefix = ""
  if node.source is not None:
    inputs = f"[{node.source}:a]"
    filters = [f"aresample={sample_rate}"]
  else:
    input_labels = [next(labels[bus]) for bus in node.inputs]
    if any(op.kind == "sidechain_compress" for op in node.operations) and len(input_labels) == 2:
      # sidechaincompress ends with its shorter input; pad the key to the bed length
      key = f"{node.name}_key"
      prefix = f"[{input_labels[1]}]apad=whole_dur={_num(node.duration)}[{key}];"
      input_labels[1] = key
    inputs = "".join(f"[{label}]" for label in input_labels)
    filters = []
  filters.extend(_filter_for(op, sample_rate) for op in node.operations)
  if not filters:
    filters.append("anull")
  return f"{prefix}{inputs}{','.join(filters)}[{node.name}]"


def build_ffmpeg_command(graph: FilterGraph, output_path: str | Path, ffmpeg_bin: str = "ffmpeg") -> List[str]:
  cmd: List[str] = [ffmpeg_bin, "-y", "-hide_banner"]
  for source in graph.sources:
    cmd.extend(["-i", str(getattr(source, "uri", source))])

  out = graph.output
  cmd.extend(["-filter_complex", to_filter_complex(graph), "-map", f"[{graph.terminal.name}]"])
  cmd.extend(["-c:a", out.codec])
  if out.bitrate:
    cmd.extend(["-b:a", out.bitrate])
  cmd.extend(["-ac", str(out.channels), "-ar", str(out.sample_rate), str(output_path)])
  return cmd


def render_graph(
  graph: FilterGraph,
  output_path: str | Path,
  ffmpeg_bin: str = "ffmpeg",
  measure: bool = True,
) -> RenderResult:
  """Run ffmpeg over ``graph`` and optionally measure the result."""
  output_path = Path(output_path)
  cmd = build_ffmpeg_command(graph, output_path, ffmpeg_bin=ffmpeg_bin)
  logger.info("[RENDER] %d inputs -> %s (%.2fs)", len(graph.sources), output_path, graph.duration)
  logger.debug("[RENDER] ffmpeg command: %s", " ".join(cmd))

  try:
    proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
  except OSError as exc:
    raise RenderFailure(f"ffmpeg not runnable: {exc}") from exc
  if proc.returncode != 0:
    stderr = proc.stderr.decode(errors="ignore")[:4000]
    raise RenderFailure(f"ffmpeg failed: {stderr}", returncode=proc.returncode, stderr=stderr)

  result = RenderResult(output_path=output_path)
  if measure:
    try:
      samples, sr = read_mono(output_path, role="episode")
    except DecodeFailure as exc:
      logger.warning("[RENDER] Rendered file could not be measured: %s", exc)
      return result
    stats = measure_loudness(samples, sr)
    result.integrated_lufs = stats.integrated_lufs
    result.true_peak_dbfs = stats.true_peak_dbfs
    logger.info(
      "[RENDER] %s integrated=%.2f LUFS peak=%.2f dBFS",
      output_path,
      stats.integrated_lufs,
      stats.true_peak_dbfs,
    )
  return result
