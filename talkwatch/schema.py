"""Store DDL for PostgreSQL (production) and SQLite (development, tests)."""
from __future__ import annotations

import logging

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Engine

from .reference import POLITICAL_AREAS
from .schema_router import is_postgres, store_schema, table
from .shows import SHOWS

logger = logging.getLogger("talkwatch")

REQUIRED_TABLES = (
    "shows",
    "parties",
    "politicians",
    "political_areas",
    "politician_political_areas",
    "episodes",
    "guest_appearances",
    "episode_political_areas",
    "crawl_runs",
)


def _types(engine: Engine) -> dict[str, str]:
    if is_postgres(engine):
        return {
            "serial": "BIGSERIAL PRIMARY KEY",
            "date": "date",
            "ts": "timestamptz",
            "now": "now()",
            "bool": "boolean",
            "false": "false",
            "json": "jsonb",
        }
    return {
        "serial": "INTEGER PRIMARY KEY AUTOINCREMENT",
        "date": "TEXT",
        "ts": "TEXT",
        "now": "CURRENT_TIMESTAMP",
        "bool": "INTEGER",
        "false": "0",
        "json": "TEXT",
    }


def schema_statements(engine: Engine) -> list[str]:
    t = {name: table(engine, name) for name in REQUIRED_TABLES}
    ty = _types(engine)
    stmts: list[str] = []
    if is_postgres(engine):
        stmts.append(f"CREATE SCHEMA IF NOT EXISTS {store_schema()}")

    stmts += [
        f"""
        CREATE TABLE IF NOT EXISTS {t['shows']} (
          show_id text PRIMARY KEY,
          display_name text NOT NULL,
          url_template text NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t['parties']} (
          party_id integer PRIMARY KEY,
          name text NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t['politicians']} (
          politician_id integer PRIMARY KEY,
          name text NOT NULL,
          party_id integer
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t['political_areas']} (
          area_id integer PRIMARY KEY,
          label text NOT NULL,
          color text NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t['politician_political_areas']} (
          politician_id integer NOT NULL,
          area_id integer NOT NULL,
          PRIMARY KEY (politician_id, area_id)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t['episodes']} (
          episode_id {ty['serial']},
          show_id text NOT NULL,
          air_date {ty['date']} NOT NULL,
          slug text NOT NULL DEFAULT '',
          title text NOT NULL DEFAULT '',
          source_episode_id text,
          source_url text,
          created_at {ty['ts']} NOT NULL DEFAULT {ty['now']},
          updated_at {ty['ts']} NOT NULL DEFAULT {ty['now']},
          UNIQUE (show_id, air_date, slug)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t['guest_appearances']} (
          appearance_id {ty['serial']},
          episode_id integer NOT NULL REFERENCES {t['episodes']} (episode_id),
          appearance_key text NOT NULL,
          politician_id integer,
          party_id integer,
          raw_name text NOT NULL,
          status text NOT NULL,
          match_score real,
          match_method text,
          created_at {ty['ts']} NOT NULL DEFAULT {ty['now']},
          UNIQUE (episode_id, appearance_key)
        )
        """,
        f"""
        CREATE INDEX IF NOT EXISTS ix_guest_appearances_status
          ON {t['guest_appearances']} (status)
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t['episode_political_areas']} (
          episode_id integer NOT NULL REFERENCES {t['episodes']} (episode_id),
          area_id integer NOT NULL,
          PRIMARY KEY (episode_id, area_id)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {t['crawl_runs']} (
          run_id text NOT NULL,
          show_id text NOT NULL,
          mode text NOT NULL,
          started_at {ty['ts']} NOT NULL,
          finished_at {ty['ts']},
          status text NOT NULL,
          dry_run {ty['bool']} NOT NULL DEFAULT {ty['false']},
          rows_inserted integer NOT NULL DEFAULT 0,
          rows_updated integer NOT NULL DEFAULT 0,
          rows_unchanged integer NOT NULL DEFAULT 0,
          unresolved_count integer NOT NULL DEFAULT 0,
          last_error text,
          details_json {ty['json']},
          PRIMARY KEY (run_id, show_id)
        )
        """,
    ]
    return [s.strip() for s in stmts]


def seed_reference_rows(engine: Engine) -> None:
    """Mirror the configured shows and political areas into the store."""
    with engine.begin() as conn:
        conn.execute(
            sql_text(
                f"""
                INSERT INTO {table(engine, 'shows')} (show_id, display_name, url_template)
                VALUES (:show_id, :display_name, :url_template)
                ON CONFLICT (show_id) DO UPDATE SET
                  display_name = EXCLUDED.display_name,
                  url_template = EXCLUDED.url_template
                """
            ),
            [
                {
                    "show_id": s.show_id,
                    "display_name": s.display_name,
                    "url_template": s.url_template,
                }
                for s in SHOWS.values()
            ],
        )
        conn.execute(
            sql_text(
                f"""
                INSERT INTO {table(engine, 'political_areas')} (area_id, label, color)
                VALUES (:area_id, :label, :color)
                ON CONFLICT (area_id) DO UPDATE SET
                  label = EXCLUDED.label,
                  color = EXCLUDED.color
                """
            ),
            [
                {"area_id": area_id, "label": label, "color": color}
                for area_id, label, color in POLITICAL_AREAS
            ],
        )


def apply_schema(engine: Engine) -> None:
    stmts = schema_statements(engine)
    with engine.begin() as conn:
        for stmt in stmts:
            conn.exec_driver_sql(stmt)
    seed_reference_rows(engine)
    logger.info("Schema applied (%s statements, dialect=%s)", len(stmts), engine.dialect.name)
