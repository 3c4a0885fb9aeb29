import os
import sys
from datetime import date

import pytest
from sqlalchemy import create_engine

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from talkwatch.normalize import EntityNormalizer  # noqa: E402
from talkwatch.reference import ReferenceTable, upsert_politicians  # noqa: E402
from talkwatch.schema import apply_schema  # noqa: E402
from talkwatch.store import EpisodeStore  # noqa: E402
from talkwatch.types import Politician, RawEpisode  # noqa: E402

POLITICIANS = (
    Politician(101, "Markus Söder", 3, "CSU", (3,)),
    Politician(102, "Friedrich Merz", 2, "CDU", (2, 3)),
    Politician(103, "Sahra Wagenknecht", 9, "BSW", (4,)),
    Politician(104, "Annalena Baerbock", 5, "Bündnis 90/Die Grünen", (3,)),
    Politician(201, "Thomas Müller", 1, "SPD"),
    Politician(202, "Thomas Müller", 2, "CDU"),
)


@pytest.fixture()
def reference():
    return ReferenceTable(politicians=POLITICIANS)


@pytest.fixture()
def normalizer(reference):
    return EntityNormalizer(reference, threshold=90)


@pytest.fixture()
def sqlite_engine(tmp_path):
    # File-backed so worker threads share one database
    eng = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'talkwatch.db'}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    apply_schema(eng)
    upsert_politicians(eng, POLITICIANS)
    return eng


@pytest.fixture()
def store(sqlite_engine):
    return EpisodeStore(sqlite_engine)


@pytest.fixture()
def make_raw():
    def _make(show_id="lanz", air_date=date(2025, 3, 5), guests=(), **kwargs):
        return RawEpisode(show_id=show_id, air_date=air_date, guests=tuple(guests), **kwargs)

    return _make
