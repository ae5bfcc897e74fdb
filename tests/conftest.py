import numpy as np
import pytest

from transmix.dsp.adaptive.layer_assembly import AudioLayer
from transmix.dsp.analysis.spectral import BandEnergy, FrequencyProfile


SR = 44100
FRAME = 2048


class Flag:
    def __init__(self, value=False):
        self.value = value

    def is_set(self):
        return self.value


def bin_tone(bin_index, seconds=1.0, amplitude=0.5, sr=SR, frame=FRAME):
    """Sine centred exactly on an FFT bin of the analysis frame."""
    freq = bin_index * sr / frame
    t = np.arange(int(sr * seconds)) / sr
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32), freq


@pytest.fixture
def probe_table():
    durations = {
        "voice.wav": 60.0,
        "intro.wav": 5.0,
        "outro.wav": 8.0,
        "forest.wav": 30.0,
        "eerie.wav": 45.0,
        "static.wav": 3.0,
    }

    def probe(uri):
        return durations.get(uri)

    probe.durations = durations
    return probe


@pytest.fixture
def voice_profile():
    return FrequencyProfile(
        dominant_frequency=150.0,
        average_energy_by_band=BandEnergy(low=1.2, mid=0.4, high=0.05),
        peak_frequencies=((150.0, 3.1), (301.46, 1.7)),
    )


@pytest.fixture
def scenario_layers():
    return [
        AudioLayer(role="voice", source="voice.wav", duration=60.0, fade_in=0.5, fade_out=1.0),
        AudioLayer(role="ambience", source="forest.wav", duration=30.0, volume=0.15, fade_in=1.0, fade_out=1.0, loop=True),
        AudioLayer(role="music", source="eerie.wav", duration=30.0, volume=0.1, fade_in=2.0, fade_out=2.0, loop=True),
    ]
