from __future__ import annotations

import os

from sqlalchemy.engine import Engine


def store_schema() -> str:
    return os.getenv("TALKWATCH_SCHEMA", "talkwatch").strip() or "talkwatch"


def is_postgres(engine: Engine) -> bool:
    return engine.dialect.name.startswith("postgres")


def table(engine: Engine, name: str) -> str:
    """Schema-qualified table name on PostgreSQL, bare name elsewhere."""
    if is_postgres(engine):
        return f"{store_schema()}.{name}"
    return name
