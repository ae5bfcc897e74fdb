"""Process-level adapters around the mix graph.

Decoding voice/layer audio into PCM blocks, probing durations, rendering a
compiled graph with ffmpeg and measuring the rendered loudness.
"""
from .decode import PcmStream, decode_with_ffmpeg, open_pcm_stream, probe_duration
from .ffmpeg_render import RenderResult, build_ffmpeg_command, render_graph, to_filter_complex

__all__ = [
  "PcmStream",
  "RenderResult",
  "build_ffmpeg_command",
  "decode_with_ffmpeg",
  "open_pcm_stream",
  "probe_duration",
  "render_graph",
  "to_filter_complex",
]
