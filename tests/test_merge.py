from datetime import date

import pytest
from sqlalchemy import create_engine, text

from talkwatch.merge import PersistenceFault, reconcile, reresolve_pending
from talkwatch.normalize import EntityNormalizer
from talkwatch.reference import ReferenceTable
from talkwatch.store import EpisodeStore
from talkwatch.types import APPEARANCE_PENDING, APPEARANCE_RESOLVED, Politician


def _count(engine, sql):
    with engine.begin() as conn:
        return conn.execute(text(sql)).scalar_one()


def test_reconcile_is_idempotent(store, normalizer, make_raw):
    episode = normalizer.normalize(make_raw(guests=["Markus Söder", "Friedrich Merz"], title="Folge 1"))

    assert reconcile(store, episode) == "inserted"
    assert reconcile(store, episode) == "unchanged"

    assert _count(store.engine, "SELECT COUNT(*) FROM episodes") == 1
    assert _count(store.engine, "SELECT COUNT(*) FROM guest_appearances") == 2


def test_same_natural_key_from_separate_runs_is_one_row(store, reference, make_raw):
    raw = make_raw(guests=["Markus Söder"])

    reconcile(store, EntityNormalizer(reference).normalize(raw))
    reconcile(store, EntityNormalizer(reference).normalize(raw))

    assert _count(store.engine, "SELECT COUNT(*) FROM episodes") == 1


def test_added_guest_updates_episode(store, normalizer, make_raw):
    first = normalizer.normalize(make_raw(guests=["Markus Söder"]))
    second = normalizer.normalize(make_raw(guests=["Markus Söder", "Sahra Wagenknecht"]))

    assert reconcile(store, first) == "inserted"
    assert reconcile(store, second) == "updated"

    rows = store.list_guest_appearances(store.find_episode_by_natural_key("lanz", date(2025, 3, 5))["episode_id"])
    assert [r["politician_id"] for r in rows] == [101, 103]


def test_missing_guest_is_retained(store, normalizer, make_raw):
    reconcile(store, normalizer.normalize(make_raw(guests=["Markus Söder", "Friedrich Merz"])))

    outcome = reconcile(store, normalizer.normalize(make_raw(guests=["Friedrich Merz"])))

    assert outcome == "unchanged"
    assert _count(store.engine, "SELECT COUNT(*) FROM guest_appearances") == 2


def test_title_and_source_url_updates(store, normalizer, make_raw):
    reconcile(store, normalizer.normalize(make_raw(guests=["Markus Söder"])))

    outcome = reconcile(
        store,
        normalizer.normalize(
            make_raw(guests=["Markus Söder"], title="Neuer Titel", source_url="https://www.zdf.de/x")
        ),
    )

    existing = store.find_episode_by_natural_key("lanz", date(2025, 3, 5))
    assert outcome == "updated"
    assert existing["title"] == "Neuer Titel"
    assert existing["source_url"] == "https://www.zdf.de/x"
    assert existing["air_date"] == date(2025, 3, 5)


def test_empty_title_does_not_overwrite(store, normalizer, make_raw):
    reconcile(store, normalizer.normalize(make_raw(title="Alt")))

    assert reconcile(store, normalizer.normalize(make_raw(title=""))) == "unchanged"
    assert store.find_episode_by_natural_key("lanz", date(2025, 3, 5))["title"] == "Alt"


def test_unresolved_guest_becomes_pending_marker(store, normalizer, make_raw):
    reconcile(store, normalizer.normalize(make_raw(guests=["Jöns Müller-X", "Markus Söder"])))

    pending = store.list_pending_appearances()
    assert len(pending) == 1
    assert pending[0]["raw_name"] == "Jöns Müller-X"
    assert pending[0]["appearance_key"] == "u:jons muller x"
    statuses = {r["status"] for r in store.list_guest_appearances(pending[0]["episode_id"])}
    assert statuses == {APPEARANCE_PENDING, APPEARANCE_RESOLVED}


def test_dry_run_writes_nothing(store, normalizer, make_raw):
    episode = normalizer.normalize(make_raw(guests=["Markus Söder"]))

    assert reconcile(store, episode, dry_run=True) == "inserted"
    assert _count(store.engine, "SELECT COUNT(*) FROM episodes") == 0

    reconcile(store, episode)
    more = normalizer.normalize(make_raw(guests=["Markus Söder", "Friedrich Merz"]))
    assert reconcile(store, more, dry_run=True) == "updated"
    assert _count(store.engine, "SELECT COUNT(*) FROM guest_appearances") == 1


def test_natural_key_race_retries_as_update(monkeypatch, store, normalizer, make_raw):
    # Another writer inserted the episode (without guests) after our lookup
    store.insert_episode(normalizer.normalize(make_raw()))
    original = EpisodeStore.find_episode_by_natural_key
    calls = []

    def racing_find(self, *key):
        calls.append(key)
        if len(calls) == 1:
            return None
        return original(self, *key)

    monkeypatch.setattr(EpisodeStore, "find_episode_by_natural_key", racing_find)

    outcome = reconcile(store, normalizer.normalize(make_raw(guests=["Markus Söder"])))

    assert outcome == "updated"
    assert len(calls) == 2
    assert _count(store.engine, "SELECT COUNT(*) FROM episodes") == 1
    assert _count(store.engine, "SELECT COUNT(*) FROM guest_appearances") == 1


def test_unreachable_store_raises_persistence_fault(tmp_path, normalizer, make_raw):
    broken = EpisodeStore(
        create_engine(f"sqlite+pysqlite:///{tmp_path / 'missing' / 'nope.db'}", future=True)
    )

    with pytest.raises(PersistenceFault):
        reconcile(broken, normalizer.normalize(make_raw(guests=["Markus Söder"])))


def test_reresolve_pending_links_new_politician(store, reference, normalizer, make_raw):
    reconcile(store, normalizer.normalize(make_raw(guests=["Jöns Müller-X"])))
    corrected = EntityNormalizer(
        ReferenceTable(politicians=reference.politicians + (Politician(301, "Jöns Müller-X", 1, "SPD"),)),
        threshold=90,
    )

    summary = reresolve_pending(store, corrected)

    assert summary == {"checked": 1, "resolved": 1, "merged": 0, "still_pending": 0}
    assert store.list_pending_appearances() == []
    episode_id = store.find_episode_by_natural_key("lanz", date(2025, 3, 5))["episode_id"]
    [row] = store.list_guest_appearances(episode_id)
    assert row["politician_id"] == 301
    assert row["appearance_key"] == "p:301"
    assert row["status"] == APPEARANCE_RESOLVED


def test_reresolve_pending_drops_marker_when_link_exists(store, reference, normalizer, make_raw):
    reconcile(store, normalizer.normalize(make_raw(guests=["Markus Söder", "Dr. M. Söder-Ministerpräsident"])))
    overrides = dict(reference.overrides)
    overrides["Dr. M. Söder-Ministerpräsident"] = reference.by_id(101)
    corrected = EntityNormalizer(ReferenceTable(politicians=reference.politicians, overrides=overrides))

    summary = reresolve_pending(store, corrected)

    assert summary["merged"] == 1
    episode_id = store.find_episode_by_natural_key("lanz", date(2025, 3, 5))["episode_id"]
    assert [r["appearance_key"] for r in store.list_guest_appearances(episode_id)] == ["p:101"]


def test_reresolve_keeps_still_unknown_names(store, normalizer, make_raw):
    reconcile(store, normalizer.normalize(make_raw(guests=["Jöns Müller-X"])))

    summary = reresolve_pending(store, normalizer)

    assert summary["still_pending"] == 1
    assert len(store.list_pending_appearances()) == 1


def _titles(engine):
    with engine.begin() as conn:
        return conn.execute(text("SELECT slug, title FROM episodes ORDER BY episode_id")).all()


def test_episode_first_seen_alone_keeps_its_row_when_a_sibling_appears(store, normalizer, make_raw):
    d = date(2025, 2, 12)
    a = make_raw("phoenix-runde", d, ["Markus Söder"], title="Runde A", source_episode_id="runde-a")
    b = make_raw("phoenix-runde", d, ["Friedrich Merz"], title="Runde B", source_episode_id="runde-b")

    [first] = normalizer.normalize_batch([a])
    assert reconcile(store, first) == "inserted"
    outcomes = [reconcile(store, e) for e in normalizer.normalize_batch([a, b])]

    assert outcomes == ["unchanged", "inserted"]
    assert _titles(store.engine) == [("", "Runde A"), ("runde-b", "Runde B")]


def test_episode_first_seen_with_a_sibling_keeps_its_row_when_alone(store, normalizer, make_raw):
    d = date(2025, 2, 12)
    a = make_raw("phoenix-runde", d, title="Runde A", source_episode_id="runde-a")
    b = make_raw("phoenix-runde", d, title="Runde B", source_episode_id="runde-b")

    for episode in normalizer.normalize_batch([a, b]):
        reconcile(store, episode)
    [alone] = normalizer.normalize_batch([b])

    assert reconcile(store, alone) == "unchanged"
    assert _count(store.engine, "SELECT COUNT(*) FROM episodes") == 2


def test_recrawl_after_reference_fix_converts_pending_marker(store, reference, normalizer, make_raw):
    raw = make_raw(guests=["Jöns Müller-X"])
    reconcile(store, normalizer.normalize(raw))
    corrected = EntityNormalizer(
        ReferenceTable(politicians=reference.politicians + (Politician(301, "Jöns Müller-X", 1, "SPD"),)),
        threshold=90,
    )

    assert reconcile(store, corrected.normalize(raw)) == "updated"

    episode_id = store.find_episode_by_natural_key("lanz", date(2025, 3, 5))["episode_id"]
    [row] = store.list_guest_appearances(episode_id)
    assert (row["appearance_key"], row["politician_id"], row["status"]) == ("p:301", 301, APPEARANCE_RESOLVED)
    assert store.list_pending_appearances() == []
    assert reconcile(store, corrected.normalize(raw)) == "unchanged"


def test_recrawl_drops_pending_marker_when_politician_already_linked(store, reference, normalizer, make_raw):
    reconcile(store, normalizer.normalize(make_raw(guests=["Markus Söder", "Söder, Dr. Markus"])))
    overrides = dict(reference.overrides)
    overrides["Söder, Dr. Markus"] = reference.by_id(101)
    corrected = EntityNormalizer(ReferenceTable(politicians=reference.politicians, overrides=overrides))

    outcome = reconcile(store, corrected.normalize(make_raw(guests=["Söder, Dr. Markus"])))

    assert outcome == "updated"
    episode_id = store.find_episode_by_natural_key("lanz", date(2025, 3, 5))["episode_id"]
    assert [r["appearance_key"] for r in store.list_guest_appearances(episode_id)] == ["p:101"]


def test_classifier_links_political_areas(store, normalizer, make_raw):
    episode = normalizer.normalize(make_raw(title="Streit um die Rente"))

    assert reconcile(store, episode, classifier=lambda e: [5]) == "inserted"
    episode_id = store.find_episode_by_natural_key("lanz", date(2025, 3, 5))["episode_id"]
    assert store.list_episode_political_areas(episode_id) == [5]

    assert reconcile(store, episode, classifier=lambda e: [5]) == "unchanged"
    assert reconcile(store, episode, classifier=lambda e: [5, 3, 99, "x"]) == "updated"
    assert store.list_episode_political_areas(episode_id) == [3, 5]


def test_classifier_is_not_written_on_dry_run(store, normalizer, make_raw):
    episode = normalizer.normalize(make_raw())
    reconcile(store, episode)

    assert reconcile(store, episode, dry_run=True, classifier=lambda e: [1]) == "updated"
    assert _count(store.engine, "SELECT COUNT(*) FROM episode_political_areas") == 0
