import random

import pytest

from transmix.catalog import LayerCandidates, SourceRef
from transmix.config import MixSettings
from transmix.dsp.adaptive.layer_assembly import AudioLayer, LayerAssembler, fit_fades
from transmix.errors import DecodeFailure, SourceUnavailable


def _full_candidates():
    return LayerCandidates.build(
        ambience=["forest.wav"],
        music=["eerie.wav"],
        effects=["static.wav"],
        intro="intro.wav",
        outro="outro.wav",
    )


def test_layer_order_and_timing(probe_table):
    layers = LayerAssembler(probe_table).assemble("voice.wav", _full_candidates())

    assert [layer.role for layer in layers] == [
        "voice",
        "structural-intro",
        "structural-outro",
        "ambience",
        "music",
        "transmission-effect",
    ]
    voice, intro, outro, ambience, music, effect = layers

    assert (voice.duration, voice.fade_in, voice.fade_out) == (60.0, 0.5, 1.0)
    assert (intro.start_offset, intro.fade_in, intro.fade_out) == (0.0, 0.0, 0.5)
    assert outro.start_offset == 59.0
    assert outro.fade_in == 0.5
    assert ambience.loop and music.loop
    assert not effect.loop
    assert (ambience.volume, ambience.fade_in, ambience.fade_out) == (0.15, 1.0, 1.0)
    assert (music.volume, music.fade_in, music.fade_out) == (0.1, 2.0, 2.0)
    assert (effect.volume, effect.fade_in, effect.fade_out) == (0.2, 0.1, 0.5)


def test_voice_only(probe_table):
    layers = LayerAssembler(probe_table).assemble("voice.wav")
    assert [layer.role for layer in layers] == ["voice"]


def test_catalog_duration_skips_probe():
    def probe(uri):
        raise AssertionError(f"unexpected probe of {uri}")

    layers = LayerAssembler(probe).assemble(SourceRef("voice.wav", 12.0))
    assert layers[0].duration == 12.0


def test_unprobeable_source_is_unavailable(probe_table):
    candidates = LayerCandidates.build(ambience=["missing.wav"])
    with pytest.raises(SourceUnavailable) as info:
        LayerAssembler(probe_table).assemble("voice.wav", candidates)
    assert info.value.role == "ambience"
    assert info.value.source == "missing.wav"


def test_probe_errors_are_wrapped():
    def probe(uri):
        if uri == "voice.wav":
            return 10.0
        raise DecodeFailure(uri, None, "bad header")

    with pytest.raises(SourceUnavailable) as info:
        LayerAssembler(probe).assemble("voice.wav", LayerCandidates.build(music=["broken.mp3"]))
    assert info.value.role == "music"
    assert "bad header" in str(info.value)


def test_zero_duration_is_rejected():
    with pytest.raises(SourceUnavailable):
        LayerAssembler(lambda uri: 0.0).assemble("voice.wav")


def test_short_effect_fades_are_scaled(probe_table):
    probe_table.durations["blip.wav"] = 0.3
    layers = LayerAssembler(probe_table).assemble("voice.wav", LayerCandidates.build(effects=["blip.wav"]))
    effect = layers[-1]
    assert effect.fade_in == pytest.approx(0.05)
    assert effect.fade_out == pytest.approx(0.25)


def test_seeded_rng_is_reproducible(probe_table):
    pool = ["a.wav", "b.wav", "c.wav", "d.wav"]
    for name in pool:
        probe_table.durations[name] = 20.0
    candidates = LayerCandidates.build(ambience=pool, music=pool)

    first = LayerAssembler(probe_table, rng=random.Random(7)).assemble("voice.wav", candidates)
    second = LayerAssembler(probe_table, rng=random.Random(7)).assemble("voice.wav", candidates)
    assert first == second


def test_mixing_settings_drive_volumes(probe_table):
    settings = MixSettings.from_mapping({"mixing": {"ambience_volume": 0.3}})
    layers = LayerAssembler(probe_table, settings).assemble("voice.wav", LayerCandidates.build(ambience=["forest.wav"]))
    assert layers[-1].volume == 0.3


def test_audio_layer_validation():
    with pytest.raises(ValueError):
        AudioLayer(role="narrator", source="x", duration=1.0)
    with pytest.raises(ValueError):
        AudioLayer(role="music", source="x", duration=1.0, fade_in=0.8, fade_out=0.8)
    with pytest.raises(ValueError):
        AudioLayer(role="music", source="x", duration=float("nan"))


def test_fit_fades():
    assert fit_fades(1.0, 1.0, 10.0) == (1.0, 1.0)
    assert fit_fades(2.0, 2.0, 2.0) == (1.0, 1.0)
