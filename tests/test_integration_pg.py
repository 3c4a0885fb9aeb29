import os

import pytest


def test_pg_lifecycle_smoke(monkeypatch):
    db_url = os.getenv("DATABASE_URL", "")
    integration_required = os.getenv("INTEGRATION_TEST", "0") == "1"

    if "postgres" not in db_url:
        if integration_required:
            pytest.fail(
                "INTEGRATION_TEST=1 requires DATABASE_URL to point to PostgreSQL"
            )
        pytest.skip("DATABASE_URL is not configured for PostgreSQL")

    from datetime import date

    from talkwatch.db import get_engine
    from talkwatch.doctor import run_doctor
    from talkwatch.orchestrator import run_crawl
    from talkwatch.run import cmd_init, cmd_reresolve, cmd_status
    from talkwatch.types import RawEpisode

    class OneEpisode:
        async def extract(self, show, since=None):
            return [RawEpisode(show.show_id, date(2000, 1, 1), "Smoke", ("Jöns Müller-X",))]

    monkeypatch.setenv("TALKWATCH_SCHEMA", "talkwatch_smoke")
    engine = get_engine()

    cmd_init(engine)
    result = run_crawl(
        engine, ["lanz"], mode="full", dry_run=False, extractor_factory=lambda _: OneEpisode()
    )
    again = run_crawl(
        engine, ["lanz"], mode="full", dry_run=False, extractor_factory=lambda _: OneEpisode()
    )
    cmd_reresolve(engine)
    status = cmd_status(engine)

    assert result.shows[0].status == "success"
    assert again.shows[0].inserted == 0
    assert status["counts"]["episodes"] >= 1
    assert run_doctor(engine).failures == []
