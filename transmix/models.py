"""Request/response models for the HTTP surface.

These mirror the frozen dataclasses of the mixer core; conversion to the
core types happens in ``to_*`` helpers so ``main.py`` stays thin.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from transmix.catalog import SourceRef
from transmix.dsp.adaptive.layer_assembly import AudioLayer
from transmix.dsp.analysis.spectral import BandEnergy, FrequencyProfile


class BandEnergyModel(BaseModel):
    low: float = 0.0
    mid: float = 0.0
    high: float = 0.0


class PeakModel(BaseModel):
    frequency: float
    magnitude: float


class FrequencyProfileModel(BaseModel):
    dominant_frequency: float = Field(default=0.0, ge=0.0)
    average_energy_by_band: BandEnergyModel = Field(default_factory=BandEnergyModel)
    peak_frequencies: List[PeakModel] = Field(default_factory=list)

    def to_profile(self) -> FrequencyProfile:
        bands = self.average_energy_by_band
        return FrequencyProfile(
            dominant_frequency=self.dominant_frequency,
            average_energy_by_band=BandEnergy(low=bands.low, mid=bands.mid, high=bands.high),
            peak_frequencies=tuple((p.frequency, p.magnitude) for p in self.peak_frequencies),
        )


class EqPlanRequest(BaseModel):
    profile: Optional[FrequencyProfileModel] = None
    role: Literal["ambience", "music", "transmission-effect", "structural-intro", "structural-outro"]
    input_bus: str = "bg"


class OperationModel(BaseModel):
    kind: str
    params: Dict[str, Any] = Field(default_factory=dict)


class EqPlanResponse(BaseModel):
    filters: List[OperationModel]
    output_bus: str


class LayerModel(BaseModel):
    role: Literal[
        "voice",
        "ambience",
        "music",
        "transmission-effect",
        "structural-intro",
        "structural-outro",
    ]
    source: str
    duration: float = Field(gt=0.0)
    volume: float = 1.0
    fade_in: float = Field(default=0.0, ge=0.0)
    fade_out: float = Field(default=0.0, ge=0.0)
    loop: bool = False
    start_offset: float = Field(default=0.0, ge=0.0)

    def to_layer(self) -> AudioLayer:
        return AudioLayer(
            role=self.role,
            source=SourceRef(uri=self.source, duration=self.duration),
            duration=self.duration,
            volume=self.volume,
            fade_in=self.fade_in,
            fade_out=self.fade_out,
            loop=self.loop,
            start_offset=self.start_offset,
        )


class CompileRequest(BaseModel):
    layers: List[LayerModel]
    profile: Optional[FrequencyProfileModel] = None
    settings: Optional[Dict[str, Dict[str, Any]]] = None


class BusModel(BaseModel):
    name: str
    inputs: List[str]
    source: Optional[int] = None
    role: Optional[str] = None
    duration: float
    operations: List[OperationModel]


class GraphModel(BaseModel):
    buses: List[BusModel]
    sources: List[str]
    terminal: str
    duration: float
    output: Dict[str, Any]


class CompileResponse(BaseModel):
    graph: GraphModel
    filter_complex: str
    ffmpeg_args: List[str]
