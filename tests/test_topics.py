from datetime import date

from talkwatch.topics import default_classifier, keyword_classifier, valid_area_ids
from talkwatch.types import NormalizedEpisode


def _episode(title="", description=""):
    return NormalizedEpisode("atalay", date(2025, 10, 6), title=title, description=description)


def test_keywords_map_to_political_areas():
    episode = _episode(
        title="Folge 1",
        description="Pinar Atalay spricht mit Friedrich Merz über die Rente und den Krieg in der Ukraine.",
    )

    assert keyword_classifier(episode) == (3, 5)


def test_keywords_match_word_prefixes_only():
    assert keyword_classifier(_episode(title="Energiepreise und Klimaschutz")) == (1,)
    # "Zu Gast" must not read as gas supply
    assert keyword_classifier(_episode(description="Zu Gast: Markus Söder")) == ()
    assert keyword_classifier(_episode()) == ()


def test_valid_area_ids_drops_unknown_values():
    assert valid_area_ids([7, "2", 2, 42, None]) == (2, 7)


def test_default_classifier_from_env(monkeypatch):
    monkeypatch.delenv("TOPIC_CLASSIFIER", raising=False)
    assert default_classifier() is keyword_classifier

    monkeypatch.setenv("TOPIC_CLASSIFIER", "off")
    assert default_classifier() is None
