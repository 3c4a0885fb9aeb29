from __future__ import annotations

import json
import logging
import os
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Engine

from .schema_router import is_postgres, table

logger = logging.getLogger("talkwatch")

TERMINAL_STATUSES = ("success", "partial", "failure", "skipped")


def scraper_dry_run_enabled() -> bool:
    return os.getenv("SCRAPER_DRY_RUN", "0").strip().lower() in {
        "1",
        "true",
        "yes",
        "on",
    }


def new_run_id() -> str:
    return str(uuid.uuid4())


def log_event(event: str, **payload: Any) -> None:
    logger.info(
        "CRAWL_%s %s", event, json.dumps(payload, default=str, sort_keys=True)
    )


def _ensure_runs_table(engine: Engine) -> None:
    from .schema import schema_statements

    stmts = [
        s
        for s in schema_statements(engine)
        if s.startswith("CREATE SCHEMA") or "crawl_runs" in s
    ]
    with engine.begin() as conn:
        for stmt in stmts:
            conn.exec_driver_sql(stmt)


def _ts(engine: Engine, value: datetime | None) -> Any:
    if value is None or is_postgres(engine):
        return value
    return value.isoformat()


def upsert_run(
    engine: Engine,
    *,
    run_id: str,
    show_id: str,
    mode: str,
    status: str,
    dry_run: bool,
    started_at: datetime,
    rows_inserted: int = 0,
    rows_updated: int = 0,
    rows_unchanged: int = 0,
    unresolved_count: int = 0,
    last_error: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    _ensure_runs_table(engine)
    runs_t = table(engine, "crawl_runs")
    details_expr = "CAST(:details AS jsonb)" if is_postgres(engine) else ":details"
    finished_at = utc_now() if status in TERMINAL_STATUSES else None
    with engine.begin() as conn:
        conn.execute(
            sql_text(
                f"""
                INSERT INTO {runs_t}
                (run_id, show_id, mode, started_at, finished_at, status, dry_run,
                 rows_inserted, rows_updated, rows_unchanged, unresolved_count, last_error, details_json)
                VALUES (:run_id, :show_id, :mode, :started_at, :finished_at, :status, :dry_run,
                 :rows_inserted, :rows_updated, :rows_unchanged, :unresolved_count, :last_error, {details_expr})
                ON CONFLICT (run_id, show_id) DO UPDATE SET
                  finished_at = EXCLUDED.finished_at,
                  status = EXCLUDED.status,
                  dry_run = EXCLUDED.dry_run,
                  rows_inserted = EXCLUDED.rows_inserted,
                  rows_updated = EXCLUDED.rows_updated,
                  rows_unchanged = EXCLUDED.rows_unchanged,
                  unresolved_count = EXCLUDED.unresolved_count,
                  last_error = EXCLUDED.last_error,
                  details_json = EXCLUDED.details_json
                """
            ),
            {
                "run_id": run_id,
                "show_id": show_id,
                "mode": mode,
                "started_at": _ts(engine, started_at),
                "finished_at": _ts(engine, finished_at),
                "status": status,
                "dry_run": dry_run,
                "rows_inserted": rows_inserted,
                "rows_updated": rows_updated,
                "rows_unchanged": rows_unchanged,
                "unresolved_count": unresolved_count,
                "last_error": last_error,
                "details": json.dumps(details or {}, default=str),
            },
        )


def latest_status(engine: Engine) -> list[dict[str, Any]]:
    """Most recent crawl_runs row per show."""
    _ensure_runs_table(engine)
    runs_t = table(engine, "crawl_runs")
    with engine.begin() as conn:
        rows = (
            conn.execute(
                sql_text(
                    f"""
                SELECT r.show_id, r.run_id, r.mode, r.started_at, r.finished_at, r.status,
                       r.dry_run, r.rows_inserted, r.rows_updated, r.rows_unchanged,
                       r.unresolved_count, r.last_error, r.details_json
                FROM {runs_t} r
                JOIN (
                  SELECT show_id, MAX(started_at) AS started_at
                  FROM {runs_t}
                  GROUP BY show_id
                ) x ON x.show_id = r.show_id AND x.started_at = r.started_at
                ORDER BY r.show_id
                """
                )
            )
            .mappings()
            .all()
        )
    out: list[dict[str, Any]] = []
    for row in rows:
        data = dict(row)
        data["dry_run"] = bool(data["dry_run"])
        if isinstance(data["details_json"], str):
            data["details_json"] = json.loads(data["details_json"] or "{}")
        data["last_success"] = (
            data["finished_at"] if data["status"] == "success" else None
        )
        out.append(data)
    return out


class StepTimer:
    def __init__(self) -> None:
        self.started = time.perf_counter()

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started) * 1000)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
