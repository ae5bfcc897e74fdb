import pytest

from transmix.dsp.graph.model import BusNode, FilterGraph, GraphBuilder, Operation, equalizer, gain
from transmix.errors import GraphConstructionError


def test_unknown_operation_kind():
    with pytest.raises(ValueError):
        Operation("reverb")


def test_equalizer_needs_one_width():
    with pytest.raises(ValueError):
        equalizer(1000.0, -3.0)
    with pytest.raises(ValueError):
        equalizer(1000.0, -3.0, q=1.0, width_hz=100.0)


def test_builder_rejects_duplicates_and_unknown_inputs():
    builder = GraphBuilder()
    src = builder.add_source("v.wav")
    builder.add_bus("voice", [gain(1.0)], 10.0, source=src)

    with pytest.raises(GraphConstructionError):
        builder.add_bus("voice", [gain(1.0)], 10.0, source=src)
    with pytest.raises(GraphConstructionError):
        builder.add_bus("mix", [Operation("sum", {"inputs": 2})], 10.0, inputs=["voice", "music"])
    with pytest.raises(GraphConstructionError):
        builder.add_bus("bed", [gain(0.1)], 10.0, source=5)


def test_two_terminals_fail_validation():
    builder = GraphBuilder()
    builder.add_bus("a", [gain(1.0)], 1.0, source=builder.add_source("a.wav"))
    builder.add_bus("b", [gain(1.0)], 1.0, source=builder.add_source("b.wav"))
    with pytest.raises(GraphConstructionError):
        builder.build()


def test_forward_reference_fails_validation():
    graph = FilterGraph(
        nodes=(
            BusNode("out", (Operation("passthrough"),), 1.0, inputs=("voice",)),
            BusNode("voice", (gain(1.0),), 1.0, source=0),
        ),
        sources=("v.wav",),
    )
    with pytest.raises(GraphConstructionError):
        graph.validate()


def test_graph_to_dict(scenario_layers, voice_profile):
    from transmix.dsp.graph.compiler import compile_mix_graph

    data = compile_mix_graph(scenario_layers, voice_profile).to_dict()
    assert data["terminal"] == "out"
    assert data["sources"] == ["voice.wav", "forest.wav", "eerie.wav"]
    assert data["buses"][0]["operations"][0] == {"kind": "gain", "params": {"volume": 1.0}}
