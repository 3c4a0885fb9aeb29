"""Reference data: politicians, parties and political areas.

The crawl pipeline only reads these tables. Politicians get into them through
an explicit operator action (``sync_politicians``, which imports from the
abgeordnetenwatch.de API), never as a side effect of a crawl.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

import requests
from sqlalchemy import text as sql_text
from sqlalchemy.engine import Engine

from .schema_router import table
from .types import Politician

logger = logging.getLogger("talkwatch")

ABGEORDNETENWATCH_URL = "https://www.abgeordnetenwatch.de/api/v2"

# (area_id, label, display color)
POLITICAL_AREAS: list[tuple[int, str, str]] = [
    (1, "Energie, Klima und Versorgungssicherheit", "#2e7d32"),
    (2, "Wirtschaft, Innovation und Wettbewerbsfähigkeit", "#1565c0"),
    (3, "Sicherheit, Verteidigung und Außenpolitik", "#c62828"),
    (4, "Migration, Integration und gesellschaftlicher Zusammenhalt", "#ef6c00"),
    (5, "Haushalt, öffentliche Finanzen und Sozialpolitik", "#6a1b9a"),
    (6, "Digitalisierung, Medien und Demokratie", "#00838f"),
    (7, "Kultur, Identität und Erinnerungspolitik", "#8d6e63"),
]

# abgeordnetenwatch lists several Bavarian CSU politicians under Bayernpartei
PARTY_CORRECTIONS: Dict[str, tuple[int, str]] = {
    "Bayernpartei": (3, "CSU"),
}

# Names the API resolves ambiguously or not at all, keyed by source spelling.
POLITICIAN_OVERRIDES: Dict[str, Politician] = {
    "Manfred Weber": Politician(28910, "Manfred Weber", 3, "CSU"),
    "Michael Kretschmer": Politician(79225, "Michael Kretschmer", 2, "CDU"),
    "Philipp Türmer": Politician(999001, "Philipp Türmer", 1, "SPD"),
    "Jan van": Politician(78952, "Jan van Aken", 8, "Die Linke"),
    "Wolfram Weimer": Politician(9998, "Wolfram Weimer", 2, "CDU"),
}


@dataclass(frozen=True)
class ReferenceTable:
    """Read-only snapshot of the politician reference data for one run."""

    politicians: tuple[Politician, ...] = ()
    overrides: Dict[str, Politician] = field(default_factory=lambda: dict(POLITICIAN_OVERRIDES))

    def by_id(self, politician_id: int) -> Optional[Politician]:
        for p in self.politicians:
            if p.politician_id == politician_id:
                return p
        return None


def correct_party(party_id: Optional[int], party_name: Optional[str]) -> tuple[Optional[int], Optional[str]]:
    if party_name in PARTY_CORRECTIONS:
        return PARTY_CORRECTIONS[party_name]
    return party_id, party_name


def load_reference_table(engine: Engine) -> ReferenceTable:
    politicians_t = table(engine, "politicians")
    parties_t = table(engine, "parties")
    areas_t = table(engine, "politician_political_areas")

    with engine.begin() as conn:
        rows = (
            conn.execute(
                sql_text(
                    f"""
                    SELECT p.politician_id, p.name, p.party_id, pa.name AS party_name
                    FROM {politicians_t} p
                    LEFT JOIN {parties_t} pa ON pa.party_id = p.party_id
                    ORDER BY p.politician_id
                    """
                )
            )
            .mappings()
            .all()
        )
        area_rows = conn.execute(
            sql_text(
                f"SELECT politician_id, area_id FROM {areas_t} ORDER BY politician_id, area_id"
            )
        ).all()

    areas: Dict[int, list[int]] = {}
    for politician_id, area_id in area_rows:
        areas.setdefault(int(politician_id), []).append(int(area_id))

    politicians = []
    for row in rows:
        party_id, party_name = correct_party(row["party_id"], row["party_name"])
        politicians.append(
            Politician(
                politician_id=int(row["politician_id"]),
                name=row["name"],
                party_id=party_id,
                party_name=party_name,
                area_ids=tuple(areas.get(int(row["politician_id"]), ())),
            )
        )
    logger.info("Loaded reference table: %s politicians", len(politicians))
    return ReferenceTable(politicians=tuple(politicians))


def lookup_politician_by_name(engine: Engine, candidate: str) -> Optional[Politician]:
    """Exact (canonicalized) lookup against the current reference table."""
    from .normalize import EntityNormalizer

    return EntityNormalizer(load_reference_table(engine)).lookup(candidate)


def list_political_area_colors(engine: Engine | None = None) -> Dict[int, str]:
    if engine is None:
        return {area_id: color for area_id, _, color in POLITICAL_AREAS}
    with engine.begin() as conn:
        rows = conn.execute(
            sql_text(f"SELECT area_id, color FROM {table(engine, 'political_areas')} ORDER BY area_id")
        ).all()
    return {int(area_id): color for area_id, color in rows}


def upsert_parties(engine: Engine, parties: Iterable[tuple[int, str]]) -> int:
    rows = [{"party_id": pid, "name": name} for pid, name in parties]
    if not rows:
        return 0
    with engine.begin() as conn:
        conn.execute(
            sql_text(
                f"""
                INSERT INTO {table(engine, 'parties')} (party_id, name)
                VALUES (:party_id, :name)
                ON CONFLICT (party_id) DO UPDATE SET name = EXCLUDED.name
                """
            ),
            rows,
        )
    return len(rows)


def upsert_politicians(engine: Engine, politicians: Iterable[Politician]) -> int:
    """Insert or refresh reference politicians (and their political areas)."""
    politicians = list(politicians)
    if not politicians:
        return 0
    upsert_parties(
        engine,
        sorted({(p.party_id, p.party_name) for p in politicians if p.party_id is not None and p.party_name}),
    )
    with engine.begin() as conn:
        conn.execute(
            sql_text(
                f"""
                INSERT INTO {table(engine, 'politicians')} (politician_id, name, party_id)
                VALUES (:politician_id, :name, :party_id)
                ON CONFLICT (politician_id) DO UPDATE SET
                  name = EXCLUDED.name,
                  party_id = EXCLUDED.party_id
                """
            ),
            [
                {"politician_id": p.politician_id, "name": p.name, "party_id": p.party_id}
                for p in politicians
            ],
        )
        area_rows = [
            {"politician_id": p.politician_id, "area_id": area_id}
            for p in politicians
            for area_id in p.area_ids
        ]
        if area_rows:
            conn.execute(
                sql_text(
                    f"""
                    INSERT INTO {table(engine, 'politician_political_areas')} (politician_id, area_id)
                    VALUES (:politician_id, :area_id)
                    ON CONFLICT (politician_id, area_id) DO NOTHING
                    """
                ),
                area_rows,
            )
    return len(politicians)


def _politician_from_api(row: Dict[str, Any]) -> Optional[Politician]:
    politician_id = row.get("id")
    name = row.get("label") or " ".join(
        part for part in (row.get("first_name"), row.get("last_name")) if part
    )
    if not politician_id or not name:
        return None
    party = row.get("party") or {}
    party_id, party_name = correct_party(party.get("id"), party.get("label"))
    return Politician(int(politician_id), name, party_id, party_name)


def sync_politicians(
    engine: Engine,
    *,
    session: requests.Session | None = None,
    base_url: str | None = None,
    page_size: int = 1000,
    max_pages: int | None = None,
    timeout: int = 20,
) -> Dict[str, int]:
    """Import politicians from the abgeordnetenwatch.de API into the reference tables."""
    base_url = (base_url or os.getenv("ABGEORDNETENWATCH_URL") or ABGEORDNETENWATCH_URL).rstrip("/")
    session = session or requests.Session()

    fetched: list[Politician] = []
    pages = 0
    start = 0
    while max_pages is None or pages < max_pages:
        r = session.get(
            f"{base_url}/politicians",
            params={"range_start": start, "range_end": page_size},
            timeout=timeout,
        )
        r.raise_for_status()
        payload = r.json()
        rows = payload.get("data") or []
        pages += 1
        fetched.extend(p for p in (_politician_from_api(row) for row in rows) if p)

        total = ((payload.get("meta") or {}).get("result") or {}).get("total")
        start += len(rows)
        if not rows or len(rows) < page_size or (total is not None and start >= int(total)):
            break

    written = upsert_politicians(engine, fetched)
    logger.info("Reference sync complete (pages=%s, politicians=%s)", pages, written)
    return {"pages": pages, "politicians": written}
