import json

import pytest

import talkwatch.orchestrator as orchestrator
import talkwatch.run as run
from talkwatch.orchestrator import CrawlRunResult, ShowRunResult
from talkwatch.observability import utc_now


@pytest.fixture()
def cli_engine(monkeypatch, sqlite_engine):
    # keep stdout for the JSON output
    monkeypatch.setattr(run, "setup_logging", lambda level: None)
    monkeypatch.setattr(run, "get_engine", lambda: sqlite_engine)
    return sqlite_engine


def test_init_is_repeatable(cli_engine):
    assert run.main(["init"]) == 0
    assert run.main(["init"]) == 0


def test_crawl_rejects_unknown_show(cli_engine):
    assert run.main(["crawl", "--shows", "tagesschau"]) == 2


def test_crawl_exit_code_reflects_show_status(monkeypatch, cli_engine, capsys):
    seen = {}

    def fake_run_crawl(engine, show_ids, mode="incremental", dry_run=None):
        seen.update(shows=list(show_ids), mode=mode, dry_run=dry_run)
        return CrawlRunResult(
            run_id="r",
            mode=mode,
            dry_run=bool(dry_run),
            started_at=utc_now(),
            shows=[ShowRunResult("lanz"), ShowRunResult("illner", status="failure", errors=["illner: boom"])],
        )

    monkeypatch.setattr(orchestrator, "run_crawl", fake_run_crawl)

    code = run.main(["crawl", "--shows", "lanz,illner", "--mode", "full", "--dry-run"])

    assert code == 1
    assert seen == {"shows": ["lanz", "illner"], "mode": "full", "dry_run": True}
    assert json.loads(capsys.readouterr().out)["totals"]["failed_shows"] == 1


def test_status_prints_counts(cli_engine, capsys):
    assert run.main(["status"]) == 0

    out = json.loads(capsys.readouterr().out)
    assert out["counts"]["politicians"] == 6
    assert out["runs"] == []


def test_reresolve_command(cli_engine, capsys):
    assert run.main(["reresolve"]) == 0
    assert json.loads(capsys.readouterr().out)["checked"] == 0
