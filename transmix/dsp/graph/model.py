"""Typed filter-graph description.

The graph is a list of named buses in topological order. Each bus reads
either one raw layer source or one or more earlier buses, applies an
ordered list of primitive operations and publishes a single output. The
structure is backend-neutral; ``transmix.dsp_engine.ffmpeg_render`` turns
it into an ffmpeg ``-filter_complex`` expression.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple

from transmix.errors import GraphConstructionError


OpKind = Literal[
    "gain",
    "highpass",
    "bandpass",
    "equalizer",
    "fade",
    "delay",
    "loop",
    "sidechain_compress",
    "sum",
    "loudness_normalize",
    "limiter",
    "passthrough",
]

OP_KINDS = frozenset(
    {
        "gain",
        "highpass",
        "bandpass",
        "equalizer",
        "fade",
        "delay",
        "loop",
        "sidechain_compress",
        "sum",
        "loudness_normalize",
        "limiter",
        "passthrough",
    }
)

# Operations that combine more than one input bus.
MULTI_INPUT_OPS = frozenset({"sum", "sidechain_compress"})


@dataclass(frozen=True)
class Operation:
    kind: OpKind
    params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.kind not in OP_KINDS:
            raise ValueError(f"Unknown operation kind: {self.kind}")

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "params": dict(self.params)}


def gain(volume: float) -> Operation:
    return Operation("gain", {"volume": float(volume)})


def highpass(frequency_hz: float) -> Operation:
    return Operation("highpass", {"frequency": float(frequency_hz)})


def bandpass(frequency_hz: float, q: float) -> Operation:
    return Operation("bandpass", {"frequency": float(frequency_hz), "q": float(q)})


def equalizer(frequency_hz: float, gain_db: float, *, q: Optional[float] = None, width_hz: Optional[float] = None) -> Operation:
    """Parametric bell/notch. Width is given either as Q or in Hz."""

    if (q is None) == (width_hz is None):
        raise ValueError("equalizer needs exactly one of q or width_hz")
    params: Dict[str, Any] = {"frequency": float(frequency_hz), "gain_db": float(gain_db)}
    if q is not None:
        params["q"] = float(q)
    else:
        params["width_hz"] = float(width_hz)  # type: ignore[arg-type]
    return Operation("equalizer", params)


def fade(direction: Literal["in", "out"], start: float, duration: float) -> Operation:
    return Operation("fade", {"direction": direction, "start": float(start), "duration": float(duration)})


@dataclass(frozen=True)
class OutputFormat:
    container: str = "mp3"
    codec: str = "libmp3lame"
    bitrate: str = "192k"
    channels: int = 2
    sample_rate: int = 44100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "container": self.container,
            "codec": self.codec,
            "bitrate": self.bitrate,
            "channels": self.channels,
            "sample_rate": self.sample_rate,
        }


@dataclass(frozen=True)
class BusNode:
    """One named signal point.

    ``source`` is the index into :attr:`FilterGraph.sources` for nodes that
    read a raw layer; otherwise ``inputs`` lists the consumed buses in
    order (for ducking: programme first, sidechain key second).
    """

    name: str
    operations: Tuple[Operation, ...]
    duration: float
    inputs: Tuple[str, ...] = ()
    source: Optional[int] = None
    role: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "inputs": list(self.inputs),
            "source": self.source,
            "role": self.role,
            "duration": self.duration,
            "operations": [op.to_dict() for op in self.operations],
        }


@dataclass(frozen=True)
class FilterGraph:
    nodes: Tuple[BusNode, ...]
    sources: Tuple[Any, ...]
    output: OutputFormat = field(default_factory=OutputFormat)

    @property
    def bus_names(self) -> List[str]:
        return [node.name for node in self.nodes]

    @property
    def terminal(self) -> BusNode:
        return self.nodes[-1]

    @property
    def duration(self) -> float:
        return self.terminal.duration

    def bus(self, name: str) -> BusNode:
        for node in self.nodes:
            if node.name == name:
                return node
        raise KeyError(name)

    def consumers(self, name: str) -> List[str]:
        return [node.name for node in self.nodes if name in node.inputs]

    def terminal_buses(self) -> List[str]:
        consumed = {bus for node in self.nodes for bus in node.inputs}
        return [node.name for node in self.nodes if node.name not in consumed]

    def validate(self) -> None:
        """Check ordering, naming and terminal invariants.

        Raises ``GraphConstructionError`` on the first violation.
        """

        if not self.nodes:
            raise GraphConstructionError("Filter graph has no buses")

        produced: set[str] = set()
        for node in self.nodes:
            if node.name in produced:
                raise GraphConstructionError(f"Duplicate bus name: {node.name}")
            if node.source is not None:
                if node.inputs:
                    raise GraphConstructionError(f"Bus {node.name} reads both a source and buses")
                if not 0 <= node.source < len(self.sources):
                    raise GraphConstructionError(f"Bus {node.name} reads unknown source #{node.source}")
            elif not node.inputs:
                raise GraphConstructionError(f"Bus {node.name} has no input")
            for bus in node.inputs:
                if bus not in produced:
                    raise GraphConstructionError(f"Bus {node.name} consumes {bus} before it is produced")
            produced.add(node.name)

        terminals = self.terminal_buses()
        if terminals != [self.terminal.name]:
            raise GraphConstructionError(f"Expected exactly one terminal bus, found {terminals}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "buses": [node.to_dict() for node in self.nodes],
            "sources": [str(getattr(src, "uri", src)) for src in self.sources],
            "terminal": self.terminal.name,
            "duration": self.duration,
            "output": self.output.to_dict(),
        }


class GraphBuilder:
    """Accumulates bus nodes and refuses dangling references as they are added."""

    def __init__(self, output: Optional[OutputFormat] = None) -> None:
        self._nodes: List[BusNode] = []
        self._sources: List[Any] = []
        self._names: set[str] = set()
        self._output = output or OutputFormat()

    def add_source(self, handle: Any) -> int:
        self._sources.append(handle)
        return len(self._sources) - 1

    def add_bus(
        self,
        name: str,
        operations: Sequence[Operation],
        duration: float,
        *,
        inputs: Sequence[str] = (),
        source: Optional[int] = None,
        role: Optional[str] = None,
    ) -> str:
        if name in self._names:
            raise GraphConstructionError(f"Duplicate bus name: {name}")
        for bus in inputs:
            if bus not in self._names:
                raise GraphConstructionError(f"Bus {name} consumes unknown bus {bus}")
        if source is not None and not 0 <= source < len(self._sources):
            raise GraphConstructionError(f"Bus {name} reads unknown source #{source}")
        self._nodes.append(
            BusNode(
                name=name,
                operations=tuple(operations),
                duration=float(duration),
                inputs=tuple(inputs),
                source=source,
                role=role,
            )
        )
        self._names.add(name)
        return name

    def build(self) -> FilterGraph:
        graph = FilterGraph(nodes=tuple(self._nodes), sources=tuple(self._sources), output=self._output)
        graph.validate()
        return graph
