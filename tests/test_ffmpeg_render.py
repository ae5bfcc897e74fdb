import subprocess

import pytest

from transmix.config import MixSettings
from transmix.dsp.graph.compiler import compile_mix_graph
from transmix.dsp.adaptive.layer_assembly import AudioLayer
from transmix.dsp_engine import ffmpeg_render
from transmix.dsp_engine.ffmpeg_render import build_ffmpeg_command, render_graph, to_filter_complex
from transmix.errors import RenderFailure


@pytest.fixture
def graph(scenario_layers, voice_profile):
    return compile_mix_graph(scenario_layers, voice_profile)


def test_filter_complex_chains(graph):
    chains = to_filter_complex(graph).split(";")

    assert chains[0] == (
        "[0:a]aresample=44100,volume=1,afade=t=in:st=0:d=0.5,afade=t=out:st=59:d=1,"
        "equalizer=f=3000:width_type=h:width=200:g=2[voice]"
    )
    assert chains[1] == "[voice]asplit=2[voice_0][voice_1]"
    assert chains[2].startswith("[1:a]aresample=44100,aloop=loop=-1:size=1323000,asetpts=N/SR/TB,atrim=end=60,volume=0.15")
    assert "highpass=f=90,equalizer=f=150:width_type=q:width=10:g=-4" in chains[2]
    assert chains[2].endswith("[bg0_eq]")
    assert chains[4] == "[bg0_eq][bg1_eq]amix=inputs=2:duration=longest[backgrounds]"
    assert chains[5] == "[voice_0]apad=whole_dur=60[ducked_key]"
    assert chains[6] == (
        "[backgrounds][ducked_key]sidechaincompress=threshold=0.063096:ratio=4:attack=5:release=250[ducked]"
    )
    assert chains[7] == "[voice_1][ducked]amix=inputs=2:duration=first:dropout_transition=2[premaster]"
    assert chains[8].startswith("[premaster]loudnorm=I=-16:TP=-1.5:LRA=7,alimiter=")
    assert chains[8].endswith("[out]")


def test_ducking_key_is_padded_through_outro_tail(scenario_layers, voice_profile):
    outro = AudioLayer(role="structural-outro", source="outro.wav", duration=8.0, fade_in=0.5, start_offset=59.0)
    graph = compile_mix_graph(scenario_layers + [outro], voice_profile)
    chains = to_filter_complex(graph).split(";")

    assert graph.bus("ducked").duration == 67.0
    assert "[voice_0]apad=whole_dur=67[ducked_key]" in chains
    ducking = next(c for c in chains if c.endswith("[ducked]"))
    assert ducking.startswith("[backgrounds][ducked_key]sidechaincompress=")
    premaster = next(c for c in chains if c.endswith("[premaster]"))
    assert premaster == "[voice_1][ducked]amix=inputs=2:duration=longest:dropout_transition=2,atrim=end=67[premaster]"


def test_no_key_padding_without_ducking(scenario_layers, voice_profile):
    settings = MixSettings.from_mapping({"ducking": {"enabled": False}})
    graph = compile_mix_graph(scenario_layers, voice_profile, settings)
    assert "apad" not in to_filter_complex(graph)


def test_voice_only_is_not_split():
    graph = compile_mix_graph([AudioLayer(role="voice", source="v.wav", duration=5.0)])
    text = to_filter_complex(graph)
    assert "asplit" not in text
    assert "[voice]anull[premaster]" in text


def test_command_line(graph):
    cmd = build_ffmpeg_command(graph, "episode.mp3")
    assert cmd[:3] == ["ffmpeg", "-y", "-hide_banner"]
    assert [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-i"] == ["voice.wav", "forest.wav", "eerie.wav"]
    assert cmd[cmd.index("-map") + 1] == "[out]"
    assert cmd[cmd.index("-c:a") + 1] == "libmp3lame"
    assert cmd[-1] == "episode.mp3"


def test_render_failure_carries_stderr(graph, monkeypatch, tmp_path):
    def fake_run(cmd, stdout, stderr):
        return subprocess.CompletedProcess(cmd, 1, b"", b"Invalid filter graph")

    monkeypatch.setattr(ffmpeg_render.subprocess, "run", fake_run)
    with pytest.raises(RenderFailure) as info:
        render_graph(graph, tmp_path / "out.mp3")
    assert info.value.returncode == 1
    assert "Invalid filter graph" in info.value.stderr


def test_missing_ffmpeg_is_render_failure(graph, tmp_path):
    with pytest.raises(RenderFailure):
        render_graph(graph, tmp_path / "out.mp3", ffmpeg_bin=str(tmp_path / "no-such-ffmpeg"))


def test_render_success_without_measurement(graph, monkeypatch, tmp_path):
    calls = []

    def fake_run(cmd, stdout, stderr):
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 0, b"", b"")

    monkeypatch.setattr(ffmpeg_render.subprocess, "run", fake_run)
    result = render_graph(graph, tmp_path / "out.mp3", measure=False)

    assert result.output_path == tmp_path / "out.mp3"
    assert result.integrated_lufs is None
    assert calls[0][-1] == str(tmp_path / "out.mp3")
