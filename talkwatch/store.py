"""Persistence for episodes and guest appearances.

All SQL lives here. SQLAlchemy errors never leave this module: unique-key
violations become ``PersistenceConflict``, everything else ``PersistenceFault``.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from typing import Any, Iterable, Iterator, Optional

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .schema_router import is_postgres, table
from .types import (
    APPEARANCE_PENDING,
    APPEARANCE_RESOLVED,
    NormalizedEpisode,
    NormalizedGuestAppearance,
)

logger = logging.getLogger("talkwatch")


class PersistenceConflict(RuntimeError):
    """A concurrent writer inserted the same unique key first."""


class PersistenceFault(RuntimeError):
    """The store is unreachable or refused the write."""


def _as_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class EpisodeStore:
    """Store access bound to an engine, or to one open transaction."""

    def __init__(self, engine: Engine, conn: Connection | None = None):
        self.engine = engine
        self._conn = conn

    @contextmanager
    def _translate(self) -> Iterator[None]:
        try:
            yield
        except IntegrityError as exc:
            raise PersistenceConflict(str(exc.orig or exc)) from exc
        except SQLAlchemyError as exc:
            raise PersistenceFault(f"{type(exc).__name__}: {exc}") from exc

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        with self._translate():
            if self._conn is not None:
                yield self._conn
            else:
                with self.engine.begin() as conn:
                    yield conn

    @contextmanager
    def transaction(self) -> Iterator["EpisodeStore"]:
        """Yield a store whose calls share one transaction (rolled back on error)."""
        if self._conn is not None:
            yield self
            return
        with self._translate():
            with self.engine.begin() as conn:
                yield EpisodeStore(self.engine, conn)

    def _date_param(self, value: date) -> Any:
        return value if is_postgres(self.engine) else value.isoformat()

    def _t(self, name: str) -> str:
        return table(self.engine, name)

    def find_episode_by_natural_key(
        self, show_id: str, air_date: date, slug: str = ""
    ) -> Optional[dict[str, Any]]:
        with self._connect() as conn:
            row = (
                conn.execute(
                    sql_text(
                        f"""
                        SELECT episode_id, show_id, air_date, slug, title, source_episode_id, source_url
                        FROM {self._t('episodes')}
                        WHERE show_id = :show_id AND air_date = :air_date AND slug = :slug
                        """
                    ),
                    {"show_id": show_id, "air_date": self._date_param(air_date), "slug": slug},
                )
                .mappings()
                .first()
            )
        if row is None:
            return None
        out = dict(row)
        out["air_date"] = _as_date(out["air_date"])
        return out

    def list_episodes_on_date(self, show_id: str, air_date: date) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = (
                conn.execute(
                    sql_text(
                        f"""
                        SELECT episode_id, show_id, air_date, slug, title, source_episode_id, source_url
                        FROM {self._t('episodes')}
                        WHERE show_id = :show_id AND air_date = :air_date
                        ORDER BY episode_id
                        """
                    ),
                    {"show_id": show_id, "air_date": self._date_param(air_date)},
                )
                .mappings()
                .all()
            )
        out = [dict(r) for r in rows]
        for row in out:
            row["air_date"] = _as_date(row["air_date"])
        return out

    def insert_episode(self, episode: NormalizedEpisode) -> int:
        with self._connect() as conn:
            conn.execute(
                sql_text(
                    f"""
                    INSERT INTO {self._t('episodes')}
                    (show_id, air_date, slug, title, source_episode_id, source_url)
                    VALUES (:show_id, :air_date, :slug, :title, :source_episode_id, :source_url)
                    """
                ),
                {
                    "show_id": episode.show_id,
                    "air_date": self._date_param(episode.air_date),
                    "slug": episode.slug,
                    "title": episode.title,
                    "source_episode_id": episode.source_episode_id,
                    "source_url": episode.source_url,
                },
            )
            episode_id = conn.execute(
                sql_text(
                    f"""
                    SELECT episode_id FROM {self._t('episodes')}
                    WHERE show_id = :show_id AND air_date = :air_date AND slug = :slug
                    """
                ),
                {
                    "show_id": episode.show_id,
                    "air_date": self._date_param(episode.air_date),
                    "slug": episode.slug,
                },
            ).scalar_one()
        return int(episode_id)

    def update_episode(self, episode_id: int, **fields: Any) -> None:
        allowed = {"title", "source_episode_id", "source_url"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update episode fields: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{k} = :{k}" for k in sorted(fields))
        with self._connect() as conn:
            conn.execute(
                sql_text(
                    f"""
                    UPDATE {self._t('episodes')}
                    SET {assignments}, updated_at = CURRENT_TIMESTAMP
                    WHERE episode_id = :episode_id
                    """
                ),
                {**fields, "episode_id": episode_id},
            )

    def insert_guest_appearance(self, episode_id: int, appearance: NormalizedGuestAppearance) -> bool:
        """Insert one appearance row; False when the key already exists for the episode."""
        with self._connect() as conn:
            result = conn.execute(
                sql_text(
                    f"""
                    INSERT INTO {self._t('guest_appearances')}
                    (episode_id, appearance_key, politician_id, party_id, raw_name, status, match_score, match_method)
                    VALUES (:episode_id, :appearance_key, :politician_id, :party_id, :raw_name, :status, :match_score, :match_method)
                    ON CONFLICT (episode_id, appearance_key) DO NOTHING
                    """
                ),
                {
                    "episode_id": episode_id,
                    "appearance_key": appearance.appearance_key,
                    "politician_id": appearance.politician_id,
                    "party_id": appearance.party_id,
                    "raw_name": appearance.raw_name,
                    "status": APPEARANCE_RESOLVED if appearance.resolved else APPEARANCE_PENDING,
                    "match_score": appearance.score,
                    "match_method": appearance.method,
                },
            )
        return result.rowcount == 1

    def list_guest_appearances(self, episode_id: int) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = (
                conn.execute(
                    sql_text(
                        f"""
                        SELECT appearance_id, episode_id, appearance_key, politician_id, party_id,
                               raw_name, status, match_score, match_method
                        FROM {self._t('guest_appearances')}
                        WHERE episode_id = :episode_id
                        ORDER BY appearance_id
                        """
                    ),
                    {"episode_id": episode_id},
                )
                .mappings()
                .all()
            )
        return [dict(r) for r in rows]

    def insert_episode_political_areas(self, episode_id: int, area_ids: Iterable[int]) -> int:
        """Link political areas to an episode; returns how many links were new."""
        added = 0
        with self._connect() as conn:
            for area_id in area_ids:
                result = conn.execute(
                    sql_text(
                        f"""
                        INSERT INTO {self._t('episode_political_areas')} (episode_id, area_id)
                        VALUES (:episode_id, :area_id)
                        ON CONFLICT (episode_id, area_id) DO NOTHING
                        """
                    ),
                    {"episode_id": episode_id, "area_id": int(area_id)},
                )
                added += result.rowcount
        return added

    def list_episode_political_areas(self, episode_id: int) -> list[int]:
        with self._connect() as conn:
            values = conn.execute(
                sql_text(
                    f"""
                    SELECT area_id FROM {self._t('episode_political_areas')}
                    WHERE episode_id = :episode_id
                    ORDER BY area_id
                    """
                ),
                {"episode_id": episode_id},
            ).scalars().all()
        return [int(v) for v in values]

    def latest_air_date(self, show_id: str) -> Optional[date]:
        with self._connect() as conn:
            value = conn.execute(
                sql_text(f"SELECT MAX(air_date) FROM {self._t('episodes')} WHERE show_id = :show_id"),
                {"show_id": show_id},
            ).scalar()
        return _as_date(value)

    def list_pending_appearances(self, limit: int | None = None) -> list[dict[str, Any]]:
        query = f"""
            SELECT appearance_id, episode_id, appearance_key, raw_name
            FROM {self._t('guest_appearances')}
            WHERE status = :status
            ORDER BY appearance_id
        """
        params: dict[str, Any] = {"status": APPEARANCE_PENDING}
        if limit is not None:
            query += " LIMIT :limit"
            params["limit"] = int(limit)
        with self._connect() as conn:
            rows = conn.execute(sql_text(query), params).mappings().all()
        return [dict(r) for r in rows]

    def resolve_pending_appearance(self, appearance_id: int, appearance: NormalizedGuestAppearance) -> None:
        if not appearance.resolved:
            raise ValueError("Cannot resolve a pending appearance to an unresolved match")
        with self._connect() as conn:
            conn.execute(
                sql_text(
                    f"""
                    UPDATE {self._t('guest_appearances')}
                    SET appearance_key = :appearance_key,
                        politician_id = :politician_id,
                        party_id = :party_id,
                        status = :status,
                        match_score = :match_score,
                        match_method = :match_method
                    WHERE appearance_id = :appearance_id
                    """
                ),
                {
                    "appearance_id": appearance_id,
                    "appearance_key": appearance.appearance_key,
                    "politician_id": appearance.politician_id,
                    "party_id": appearance.party_id,
                    "status": APPEARANCE_RESOLVED,
                    "match_score": appearance.score,
                    "match_method": appearance.method,
                },
            )

    def delete_appearance(self, appearance_id: int) -> None:
        with self._connect() as conn:
            conn.execute(
                sql_text(f"DELETE FROM {self._t('guest_appearances')} WHERE appearance_id = :appearance_id"),
                {"appearance_id": appearance_id},
            )

    def table_counts(self) -> dict[str, int]:
        out: dict[str, int] = {}
        with self._connect() as conn:
            for name in ("episodes", "guest_appearances", "episode_political_areas", "politicians"):
                out[name] = int(conn.execute(sql_text(f"SELECT COUNT(*) FROM {self._t(name)}")).scalar_one())
            out["pending_review"] = int(
                conn.execute(
                    sql_text(f"SELECT COUNT(*) FROM {self._t('guest_appearances')} WHERE status = :status"),
                    {"status": APPEARANCE_PENDING},
                ).scalar_one()
            )
        return out
