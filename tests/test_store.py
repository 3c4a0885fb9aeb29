from datetime import date

import pytest

from talkwatch.store import PersistenceConflict


def test_latest_air_date_per_show(store, normalizer, make_raw):
    assert store.latest_air_date("lanz") is None

    for d in (date(2025, 1, 7), date(2025, 2, 4), date(2024, 12, 3)):
        store.insert_episode(normalizer.normalize(make_raw(air_date=d)))
    store.insert_episode(normalizer.normalize(make_raw(show_id="illner", air_date=date(2025, 3, 1))))

    assert store.latest_air_date("lanz") == date(2025, 2, 4)
    assert store.latest_air_date("illner") == date(2025, 3, 1)


def test_duplicate_natural_key_raises_conflict(store, normalizer, make_raw):
    episode = normalizer.normalize(make_raw())
    store.insert_episode(episode)

    with pytest.raises(PersistenceConflict):
        store.insert_episode(episode)


def test_duplicate_appearance_is_reported_not_raised(store, normalizer, make_raw):
    episode = normalizer.normalize(make_raw(guests=["Markus Söder"]))
    episode_id = store.insert_episode(episode)

    assert store.insert_guest_appearance(episode_id, episode.appearances[0]) is True
    assert store.insert_guest_appearance(episode_id, episode.appearances[0]) is False
    assert len(store.list_guest_appearances(episode_id)) == 1


def test_update_episode_rejects_unknown_fields(store, normalizer, make_raw):
    episode_id = store.insert_episode(normalizer.normalize(make_raw()))

    with pytest.raises(ValueError):
        store.update_episode(episode_id, air_date=date(2025, 1, 1))


def test_transaction_rolls_back_on_error(store, normalizer, make_raw):
    with pytest.raises(RuntimeError):
        with store.transaction() as tx:
            tx.insert_episode(normalizer.normalize(make_raw()))
            raise RuntimeError("abort")

    assert store.find_episode_by_natural_key("lanz", date(2025, 3, 5)) is None


def test_table_counts(store, normalizer, make_raw):
    episode = normalizer.normalize(make_raw(guests=["Markus Söder", "Jöns Müller-X"]))
    episode_id = store.insert_episode(episode)
    for appearance in episode.appearances:
        store.insert_guest_appearance(episode_id, appearance)

    counts = store.table_counts()

    assert counts["episodes"] == 1
    assert counts["guest_appearances"] == 2
    assert counts["pending_review"] == 1
    assert counts["politicians"] == 6
