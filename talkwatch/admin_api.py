import logging

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from .db import get_engine

logger = logging.getLogger("talkwatch")

VERSION = "1.0"

app = FastAPI(title="talkwatch crawl API", version=VERSION)


def _fault_response(exc: Exception) -> JSONResponse:
    logger.error("Crawl trigger failed: %s: %s", type(exc).__name__, exc)
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": {"type": type(exc).__name__, "message": str(exc)},
        },
    )


def _crawl(show_ids: list[str], mode: str, dry_run: bool | None):
    from .orchestrator import CrawlSetupError, run_crawl

    try:
        engine = get_engine()
        result = run_crawl(engine, show_ids, mode=mode, dry_run=dry_run)
    except CrawlSetupError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        return _fault_response(exc)
    return result.to_dict()


@app.get("/health")
def health():
    return {"ok": True, "version": VERSION}


@app.post("/schema/apply")
def apply_schema():
    from .schema import apply_schema as _apply

    engine = get_engine()
    _apply(engine)
    return {"ok": True}


@app.post("/crawl/all")
def crawl_all(mode: str = "incremental", dry_run: bool | None = None):
    from .shows import SHOWS

    return _crawl(list(SHOWS), mode, dry_run)


@app.post("/crawl/{show_id}")
def crawl_show(show_id: str, mode: str = "incremental", dry_run: bool | None = None):
    from .shows import SHOWS

    if show_id not in SHOWS:
        raise HTTPException(status_code=404, detail=f"Unknown show: {show_id}")
    return _crawl([show_id], mode, dry_run)


@app.get("/crawl/status")
def crawl_status():
    from .observability import latest_status

    engine = get_engine()
    return {"ok": True, "shows": latest_status(engine)}


@app.get("/political-areas/colors")
def political_area_colors():
    from .reference import list_political_area_colors

    try:
        colors = list_political_area_colors(get_engine())
    except Exception as exc:
        logger.warning("Falling back to configured area colors: %s", exc)
        colors = list_political_area_colors()
    return {"ok": True, "colors": {str(k): v for k, v in colors.items()}}


@app.post("/reference/reresolve")
def reresolve():
    from .merge import reresolve_pending
    from .normalize import EntityNormalizer
    from .reference import load_reference_table
    from .store import EpisodeStore

    engine = get_engine()
    summary = reresolve_pending(EpisodeStore(engine), EntityNormalizer(load_reference_table(engine)))
    return {"ok": True, "result": summary}
