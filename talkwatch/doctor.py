from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import inspect
from sqlalchemy import text as sql_text
from sqlalchemy.engine import Engine

from .db import check_db_connectivity
from .schema import REQUIRED_TABLES
from .schema_router import is_postgres, store_schema, table

logger = logging.getLogger("talkwatch")

STALE_AFTER = timedelta(days=7)


@dataclass
class DoctorReport:
    ok: bool
    failures: list[str]
    warnings: list[str]

    def to_dict(self) -> dict:
        return {"ok": self.ok, "failures": self.failures, "warnings": self.warnings}


def _check_env() -> tuple[list[str], list[str]]:
    failures: list[str] = []
    warnings: list[str] = []
    required_any = [
        "DATABASE_URL",
        "DATABASE_PRIVATE_URL",
        "POSTGRES_URL",
        "POSTGRESQL_URL",
    ]
    if not any(os.getenv(k) for k in required_any):
        failures.append("Missing database URL env (DATABASE_URL or supported aliases)")

    if not os.getenv("TZ"):
        warnings.append("TZ is not set")

    return failures, warnings


def _check_playwright() -> list[str]:
    warnings: list[str] = []
    try:
        import playwright  # noqa: F401
    except ImportError:
        warnings.append("Playwright package not installed")
    return warnings


def _parse_ts(value) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _check_required_tables(engine: Engine) -> tuple[list[str], list[str]]:
    failures: list[str] = []
    warnings: list[str] = []
    schema = store_schema() if is_postgres(engine) else None
    existing = set(inspect(engine).get_table_names(schema=schema))
    for name in REQUIRED_TABLES:
        if name not in existing:
            failures.append(f"Missing required table: {table(engine, name)}")
    if "crawl_runs" not in existing:
        return failures, warnings

    with engine.begin() as conn:
        freshness_rows = conn.execute(
            sql_text(
                f"""
                SELECT show_id, MAX(started_at) AS last_run
                FROM {table(engine, 'crawl_runs')}
                GROUP BY show_id
                ORDER BY show_id
                """
            )
        ).all()
        pending = 0
        if "guest_appearances" in existing:
            pending = conn.execute(
                sql_text(
                    f"SELECT COUNT(*) FROM {table(engine, 'guest_appearances')} WHERE status = 'pending_review'"
                )
            ).scalar_one()

    if not freshness_rows:
        warnings.append("No crawl_runs history found")
    else:
        cutoff = datetime.now(timezone.utc) - STALE_AFTER
        for show_id, last_run in freshness_rows:
            last = _parse_ts(last_run)
            if last is not None and last < cutoff:
                warnings.append(f"Crawl stale >7d: {show_id}")

    if pending:
        warnings.append(f"{pending} guest appearance(s) pending review")

    return failures, warnings


def run_doctor(engine: Engine) -> DoctorReport:
    failures, warnings = _check_env()

    try:
        check_db_connectivity(engine)
    except Exception as exc:
        failures.append(f"DB connectivity failed: {type(exc).__name__}: {exc}")
        report = DoctorReport(ok=False, failures=failures, warnings=warnings)
        _log_report(report)
        return report

    table_failures, table_warnings = _check_required_tables(engine)
    failures.extend(table_failures)
    warnings.extend(table_warnings)
    warnings.extend(_check_playwright())

    require_ssl = os.getenv("REQUIRE_DB_SSL", "0").strip().lower() in {
        "1",
        "true",
        "yes",
        "on",
    }
    sslmode = os.getenv("DB_SSLMODE", "").strip()
    if require_ssl and not sslmode:
        warnings.append(
            "REQUIRE_DB_SSL=1 set without DB_SSLMODE; defaulting to sslmode=require"
        )

    report = DoctorReport(ok=not failures, failures=failures, warnings=warnings)
    _log_report(report)
    return report


def _log_report(report: DoctorReport) -> None:
    if report.ok:
        logger.info("Doctor OK")
    else:
        logger.error("Doctor FAIL")

    for item in report.failures:
        logger.error("DOCTOR_FAIL %s", item)
    for item in report.warnings:
        logger.warning("DOCTOR_WARN %s", item)
