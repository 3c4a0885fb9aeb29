"""Crawl orchestration: one asyncio task per show.

Every show is isolated: a failing or slow extractor is recorded in its own
``ShowRunResult`` and never cancels, blocks or rolls back the other shows.
A failed episode write marks its show ``partial`` and the crawl moves on to
the next episode.
The only exception that escapes ``run_crawl`` is ``CrawlSetupError`` (bad
selection) or a store fault while loading the reference snapshot.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .merge import reconcile
from .normalize import EntityNormalizer
from .observability import (
    StepTimer,
    log_event,
    new_run_id,
    scraper_dry_run_enabled,
    upsert_run,
    utc_now,
)
from .reference import load_reference_table
from .scrapers import EXTRACTORS, ExtractionError, get_extractor
from .shows import SHOWS
from .store import EpisodeStore, PersistenceConflict, PersistenceFault
from .topics import Classifier, default_classifier
from .types import (
    OUTCOME_INSERTED,
    OUTCOME_UPDATED,
    SHOW_FAILURE,
    SHOW_PARTIAL,
    SHOW_SUCCESS,
)

logger = logging.getLogger("talkwatch")

MODE_INCREMENTAL = "incremental"
MODE_FULL = "full"
MODES = (MODE_INCREMENTAL, MODE_FULL)


class CrawlSetupError(ValueError):
    """The requested show selection cannot be run."""


@dataclass
class ShowRunResult:
    show_id: str
    status: str = SHOW_SUCCESS
    episodes_seen: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    unresolved: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CrawlRunResult:
    run_id: str
    mode: str
    dry_run: bool
    started_at: datetime
    finished_at: Optional[datetime] = None
    shows: list[ShowRunResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(s.status == SHOW_SUCCESS for s in self.shows)

    def totals(self) -> dict[str, int]:
        return {
            "inserted": sum(s.inserted for s in self.shows),
            "updated": sum(s.updated for s in self.shows),
            "unchanged": sum(s.unchanged for s in self.shows),
            "unresolved": sum(len(s.unresolved) for s in self.shows),
            "failed_shows": sum(1 for s in self.shows if s.status == SHOW_FAILURE),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "mode": self.mode,
            "dry_run": self.dry_run,
            "ok": self.ok,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "totals": self.totals(),
            "shows": [s.to_dict() for s in self.shows],
        }


def crawl_timeout_seconds() -> float:
    return float(os.getenv("CRAWL_TIMEOUT_SECONDS", "180"))


def validate_selection(show_ids: Iterable[str], mode: str, check_registry: bool = True) -> list[str]:
    selected = list(dict.fromkeys(s.strip() for s in show_ids if s and s.strip()))
    if not selected:
        raise CrawlSetupError("No shows selected")
    unknown = [s for s in selected if s not in SHOWS or (check_registry and s not in EXTRACTORS)]
    if unknown:
        raise CrawlSetupError(f"Unknown show(s): {', '.join(unknown)}")
    if mode not in MODES:
        raise CrawlSetupError(f"Unknown crawl mode: {mode} (expected one of {', '.join(MODES)})")
    return selected


def _record(engine: Engine, **kwargs: Any) -> None:
    try:
        upsert_run(engine, **kwargs)
    except SQLAlchemyError as exc:
        logger.warning("Could not record crawl run for %s: %s", kwargs.get("show_id"), exc)


class _ShowCrawl:
    def __init__(
        self,
        engine: Engine,
        store: EpisodeStore,
        normalizer: EntityNormalizer,
        *,
        run_id: str,
        mode: str,
        dry_run: bool,
        timeout: float,
        extractor_factory: Callable[[str], Any],
        classifier: Optional[Classifier] = None,
    ):
        self.engine = engine
        self.store = store
        self.normalizer = normalizer
        self.run_id = run_id
        self.mode = mode
        self.dry_run = dry_run
        self.timeout = timeout
        self.extractor_factory = extractor_factory
        self.classifier = classifier

    async def run(self, show_id: str) -> ShowRunResult:
        result = ShowRunResult(show_id=show_id)
        timer = StepTimer()
        started_at = utc_now()
        show = SHOWS[show_id]

        log_event("START", run_id=self.run_id, show=show_id, mode=self.mode, dry_run=self.dry_run)
        await asyncio.to_thread(
            _record,
            self.engine,
            run_id=self.run_id,
            show_id=show_id,
            mode=self.mode,
            status="running",
            dry_run=self.dry_run,
            started_at=started_at,
        )

        try:
            await self._crawl(show, result)
        except PersistenceFault as exc:
            result.status = SHOW_FAILURE
            result.errors.append(f"store: {exc}")
            logger.error("%s: store fault before reconciliation: %s", show_id, exc)
        except Exception as exc:
            result.status = SHOW_FAILURE
            result.errors.append(f"{type(exc).__name__}: {exc}")
            logger.exception("%s: crawl crashed", show_id)

        result.unresolved = list(dict.fromkeys(result.unresolved))
        result.duration_ms = timer.elapsed_ms()
        log_event(
            "END",
            run_id=self.run_id,
            show=show_id,
            status=result.status,
            inserted=result.inserted,
            updated=result.updated,
            unchanged=result.unchanged,
            unresolved=len(result.unresolved),
            duration_ms=result.duration_ms,
        )
        await asyncio.to_thread(
            _record,
            self.engine,
            run_id=self.run_id,
            show_id=show_id,
            mode=self.mode,
            status=result.status,
            dry_run=self.dry_run,
            started_at=started_at,
            rows_inserted=result.inserted,
            rows_updated=result.updated,
            rows_unchanged=result.unchanged,
            unresolved_count=len(result.unresolved),
            last_error=result.errors[-1] if result.errors else None,
            details={"unresolved": result.unresolved, "errors": result.errors},
        )
        return result

    @staticmethod
    def _episode_failed(result: ShowRunResult, episode, exc: BaseException) -> None:
        result.status = SHOW_PARTIAL
        label = f"{episode.air_date.isoformat()} {episode.slug}".strip()
        if isinstance(exc, (PersistenceFault, PersistenceConflict)):
            result.errors.append(f"{label}: {exc}")
        else:
            result.errors.append(f"{label}: {type(exc).__name__}: {exc}")

    async def _crawl(self, show, result: ShowRunResult) -> None:
        since = None
        if self.mode == MODE_INCREMENTAL:
            since = await asyncio.to_thread(self.store.latest_air_date, show.show_id)

        extractor = self.extractor_factory(show.show_id)
        extract_timer = StepTimer()
        try:
            raw_episodes = await asyncio.wait_for(extractor.extract(show, since=since), self.timeout)
        except asyncio.TimeoutError:
            result.status = SHOW_FAILURE
            result.errors.append(f"extraction timed out after {self.timeout:g}s")
            logger.error("%s: extraction timed out after %ss", show.show_id, self.timeout)
            return
        except ExtractionError as exc:
            result.status = SHOW_FAILURE
            result.errors.append(str(exc))
            logger.error("%s: extraction failed: %s", show.show_id, exc)
            return
        except Exception as exc:
            result.status = SHOW_FAILURE
            result.errors.append(f"{type(exc).__name__}: {exc}")
            logger.exception("%s: extractor crashed", show.show_id)
            return

        result.episodes_seen = len(raw_episodes)
        log_event(
            "EXTRACT",
            run_id=self.run_id,
            show=show.show_id,
            since=since,
            episodes=len(raw_episodes),
            duration_ms=extract_timer.elapsed_ms(),
        )

        for episode in self.normalizer.normalize_batch(raw_episodes):
            result.unresolved.extend(episode.unresolved_names)
            try:
                outcome = await asyncio.to_thread(
                    reconcile, self.store, episode, self.dry_run, self.classifier
                )
            except (PersistenceFault, PersistenceConflict) as exc:
                self._episode_failed(result, episode, exc)
                logger.error("%s: could not persist episode %s: %s", show.show_id, episode.air_date, exc)
                continue
            except Exception as exc:
                self._episode_failed(result, episode, exc)
                logger.exception("%s: reconcile crashed for episode %s", show.show_id, episode.air_date)
                continue

            if outcome == OUTCOME_INSERTED:
                result.inserted += 1
            elif outcome == OUTCOME_UPDATED:
                result.updated += 1
            else:
                result.unchanged += 1
            log_event(
                "RECONCILE",
                run_id=self.run_id,
                show=show.show_id,
                air_date=episode.air_date,
                slug=episode.slug,
                outcome=outcome,
                guests=len(episode.appearances),
                unresolved=len(episode.unresolved_names),
                mode="dry-run" if self.dry_run else "write",
            )


async def run_crawl_async(
    engine: Engine,
    show_ids: Iterable[str],
    *,
    mode: str = MODE_INCREMENTAL,
    dry_run: bool | None = None,
    timeout: float | None = None,
    extractor_factory: Callable[[str], Any] | None = None,
    normalizer: EntityNormalizer | None = None,
    classifier: Optional[Classifier] = None,
) -> CrawlRunResult:
    selected = validate_selection(show_ids, mode, check_registry=extractor_factory is None)
    dry_run = scraper_dry_run_enabled() if dry_run is None else dry_run
    timeout = crawl_timeout_seconds() if timeout is None else float(timeout)

    if normalizer is None:
        normalizer = EntityNormalizer(await asyncio.to_thread(load_reference_table, engine))

    run = CrawlRunResult(run_id=new_run_id(), mode=mode, dry_run=dry_run, started_at=utc_now())
    crawler = _ShowCrawl(
        engine,
        EpisodeStore(engine),
        normalizer,
        run_id=run.run_id,
        mode=mode,
        dry_run=dry_run,
        timeout=timeout,
        extractor_factory=extractor_factory or get_extractor,
        classifier=classifier or default_classifier(),
    )
    logger.info("Crawl run %s starting: shows=%s mode=%s dry_run=%s", run.run_id, selected, mode, dry_run)

    outcomes = await asyncio.gather(*(crawler.run(show_id) for show_id in selected), return_exceptions=True)
    for show_id, outcome in zip(selected, outcomes):
        if isinstance(outcome, BaseException):
            logger.error("%s: show task crashed: %r", show_id, outcome)
            outcome = ShowRunResult(
                show_id=show_id, status=SHOW_FAILURE, errors=[f"{type(outcome).__name__}: {outcome}"]
            )
        run.shows.append(outcome)
    run.finished_at = utc_now()
    logger.info("Crawl run %s finished: %s", run.run_id, run.totals())
    return run


def run_crawl(engine: Engine, show_ids: Iterable[str], **kwargs: Any) -> CrawlRunResult:
    """Blocking entry point for the CLI and the HTTP trigger."""
    return asyncio.run(run_crawl_async(engine, show_ids, **kwargs))
