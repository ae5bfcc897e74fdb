import pytest
from fastapi.testclient import TestClient

from transmix import __version__
from transmix.main import app


@pytest.fixture
def client():
    return TestClient(app)


SCENARIO = {
    "layers": [
        {"role": "voice", "source": "voice.wav", "duration": 60, "fade_in": 0.5, "fade_out": 1.0},
        {"role": "ambience", "source": "forest.wav", "duration": 30, "volume": 0.15, "fade_in": 1, "fade_out": 1, "loop": True},
        {"role": "music", "source": "eerie.wav", "duration": 30, "volume": 0.1, "fade_in": 2, "fade_out": 2, "loop": True},
    ],
    "profile": {"dominant_frequency": 150.0},
}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": __version__}


def test_eq_plan(client):
    response = client.post("/eq-plan", json={"profile": {"dominant_frequency": 150.0}, "role": "ambience", "input_bus": "bg0"})
    assert response.status_code == 200
    body = response.json()
    assert body["output_bus"] == "bg0_eq"
    assert [f["kind"] for f in body["filters"]] == ["highpass", "equalizer", "equalizer"]
    assert body["filters"][1]["params"]["q"] == 10.0


def test_eq_plan_rejects_voice_role(client):
    response = client.post("/eq-plan", json={"role": "voice"})
    assert response.status_code == 422


def test_compile_scenario(client):
    response = client.post("/compile", json=SCENARIO)
    assert response.status_code == 200
    body = response.json()

    assert [bus["name"] for bus in body["graph"]["buses"]] == [
        "voice",
        "bg0_eq",
        "bg1_eq",
        "backgrounds",
        "ducked",
        "premaster",
        "out",
    ]
    assert body["graph"]["duration"] == 60.0
    assert "sidechaincompress" in body["filter_complex"]
    assert body["ffmpeg_args"][-1] == "episode.mp3"


def test_compile_with_settings(client):
    payload = dict(SCENARIO, settings={"ducking": {"enabled": False}})
    body = client.post("/compile", json=payload).json()
    assert "ducked" not in [bus["name"] for bus in body["graph"]["buses"]]


def test_compile_rejects_unknown_setting(client):
    payload = dict(SCENARIO, settings={"ducking": {"knee": 3}})
    response = client.post("/compile", json=payload)
    assert response.status_code == 422
    assert response.json()["detail"]["error"] == "INVALID_MIX_REQUEST"


def test_compile_without_voice(client):
    payload = {"layers": SCENARIO["layers"][1:]}
    response = client.post("/compile", json=payload)
    assert response.status_code == 422
    assert response.json()["detail"]["error"] == "GRAPH_CONSTRUCTION_FAILED"


def test_compile_rejects_overlong_fades(client):
    payload = {"layers": [{"role": "voice", "source": "v.wav", "duration": 1.0, "fade_in": 1.0, "fade_out": 1.0}]}
    response = client.post("/compile", json=payload)
    assert response.status_code == 422
    assert response.json()["detail"]["error"] == "INVALID_MIX_REQUEST"


@pytest.mark.parametrize("role", ["voice", "ambience"])
def test_compile_rejects_zero_length_layer(client, role):
    layers = [dict(layer) for layer in SCENARIO["layers"]]
    target = next(layer for layer in layers if layer["role"] == role)
    target.update(duration=0, fade_in=0, fade_out=0)

    response = client.post("/compile", json={"layers": layers})
    assert response.status_code == 422
