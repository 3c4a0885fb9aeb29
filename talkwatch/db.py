import os

from sqlalchemy import create_engine, text as sql_text
from sqlalchemy.engine import Engine, make_url

_DB_URL_ALIASES = (
    "DATABASE_URL",
    "DATABASE_PRIVATE_URL",
    "POSTGRES_URL",
    "POSTGRESQL_URL",
)

_TRUTHY = {"1", "true", "yes", "on"}


def _resolve_database_url() -> str:
    for key in _DB_URL_ALIASES:
        value = os.getenv(key)
        if value:
            return value
    raise RuntimeError(
        "DATABASE_URL is not set (checked aliases: " + ", ".join(_DB_URL_ALIASES) + ")"
    )


def get_engine(db_url: str | None = None) -> Engine:
    url = make_url(db_url or _resolve_database_url())

    # Supabase and Railway hand out postgres:// and postgresql:// URLs
    if url.drivername in ("postgres", "postgresql"):
        url = url.set(drivername="postgresql+psycopg")

    if url.drivername.startswith("sqlite"):
        # The orchestrator reconciles from worker threads
        return create_engine(
            url, future=True, connect_args={"check_same_thread": False}
        )

    query = dict(url.query)
    sslmode = query.get("sslmode")
    explicit_sslmode = os.getenv("DB_SSLMODE", "").strip()
    require_ssl = os.getenv("REQUIRE_DB_SSL", "0").strip().lower() in _TRUTHY
    if not sslmode and explicit_sslmode:
        query["sslmode"] = explicit_sslmode
    elif not sslmode and require_ssl:
        query["sslmode"] = "require"
    if query != dict(url.query):
        url = url.set(query=query)

    return create_engine(url, pool_pre_ping=True, future=True)


def check_db_connectivity(engine: Engine) -> None:
    with engine.begin() as conn:
        conn.execute(sql_text("SELECT 1"))
