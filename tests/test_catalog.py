from transmix.catalog import ContentHints, SourceCatalog, SourceRef, as_source


CATALOG = SourceCatalog.from_mapping(
    {
        "locations": {
            "Desert": ["desert_wind.wav"],
            "unknown": [{"uri": "hum.wav", "duration": 40}],
        },
        "moods": {
            "hopeful": ["sunrise.wav"],
            "mysterious": ["drone.wav", "pulse.wav"],
        },
        "effects": {"static": ["crackle.wav"]},
        "intro": ["intro.wav", "intro_alt.wav"],
        "outro": ["outro.wav"],
    }
)


def test_candidates_for_known_labels():
    candidates = CATALOG.candidates_for(ContentHints(location="desert", mood="Hopeful"))

    assert candidates.ambience == (SourceRef("desert_wind.wav"),)
    assert candidates.music == (SourceRef("sunrise.wav"),)
    assert candidates.effects == (SourceRef("crackle.wav"),)
    assert candidates.intro == SourceRef("intro.wav")
    assert candidates.outro == SourceRef("outro.wav")


def test_unknown_labels_fall_back():
    candidates = CATALOG.candidates_for(ContentHints(location="atlantis", mood="angry"))

    assert candidates.ambience == (SourceRef("hum.wav", 40.0),)
    assert [ref.uri for ref in candidates.music] == ["drone.wav", "pulse.wav"]


def test_missing_hints_use_defaults():
    candidates = CATALOG.candidates_for()
    assert candidates.ambience[0].uri == "hum.wav"


def test_empty_catalog_yields_no_candidates():
    candidates = SourceCatalog.from_mapping({}).candidates_for(ContentHints(location="desert"))
    assert candidates.ambience == ()
    assert candidates.intro is None


def test_as_source():
    assert as_source("a.wav") == SourceRef("a.wav")
    assert as_source({"uri": "b.wav", "duration": "2.5"}) == SourceRef("b.wav", 2.5)
    assert str(SourceRef("c.wav")) == "c.wav"
