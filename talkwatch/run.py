import argparse
import json
import logging
import os
import sys

from .db import get_engine
from .logging_setup import setup_logging

logger = logging.getLogger("talkwatch")


def cmd_init(engine):
    from .schema import apply_schema

    apply_schema(engine)


def cmd_crawl(engine, shows: list[str], mode: str, dry_run: bool | None):
    from .orchestrator import run_crawl

    result = run_crawl(engine, shows, mode=mode, dry_run=dry_run)
    for show in result.shows:
        logger.info(
            "%s: %s (inserted=%s updated=%s unchanged=%s unresolved=%s)",
            show.show_id,
            show.status,
            show.inserted,
            show.updated,
            show.unchanged,
            len(show.unresolved),
        )
        for error in show.errors:
            logger.warning("%s: %s", show.show_id, error)
    return result


def cmd_reresolve(engine):
    from .merge import reresolve_pending
    from .normalize import EntityNormalizer
    from .reference import load_reference_table
    from .store import EpisodeStore

    return reresolve_pending(EpisodeStore(engine), EntityNormalizer(load_reference_table(engine)))


def cmd_sync_reference(engine, max_pages: int | None):
    from .reference import sync_politicians

    return sync_politicians(engine, max_pages=max_pages)


def cmd_status(engine):
    from .observability import latest_status
    from .store import EpisodeStore

    return {
        "counts": EpisodeStore(engine).table_counts(),
        "runs": latest_status(engine),
    }


def cmd_doctor(engine):
    from .doctor import run_doctor

    return run_doctor(engine)


def parse_args(argv=None):
    ap = argparse.ArgumentParser(prog="talkwatch")
    ap.add_argument(
        "command",
        choices=[
            "init",
            "crawl",
            "crawl-all",
            "reresolve",
            "sync-reference",
            "status",
            "doctor",
        ],
    )
    ap.add_argument(
        "--shows",
        type=str,
        default=os.getenv("CRAWL_SHOWS", ""),
        help="Comma-separated show ids for `crawl` (default: all)",
    )
    ap.add_argument(
        "--mode",
        choices=["incremental", "full"],
        default=os.getenv("CRAWL_MODE", "incremental"),
    )
    ap.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Extract and normalize, report outcomes, write nothing",
    )
    ap.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help="Page limit for sync-reference (default: all)",
    )
    return ap.parse_args(argv)


def main(argv=None) -> int:
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))
    args = parse_args(argv)
    engine = get_engine()

    if args.command == "init":
        cmd_init(engine)
    elif args.command in ("crawl", "crawl-all"):
        from .orchestrator import CrawlSetupError
        from .shows import parse_show_list

        shows = parse_show_list(None if args.command == "crawl-all" else args.shows)
        try:
            result = cmd_crawl(engine, shows, mode=args.mode, dry_run=args.dry_run)
        except CrawlSetupError as exc:
            logger.error("%s", exc)
            return 2
        print(json.dumps(result.to_dict(), indent=2, default=str))
        return 0 if result.ok else 1
    elif args.command == "reresolve":
        print(json.dumps(cmd_reresolve(engine), indent=2))
    elif args.command == "sync-reference":
        print(json.dumps(cmd_sync_reference(engine, max_pages=args.max_pages), indent=2))
    elif args.command == "status":
        print(json.dumps(cmd_status(engine), indent=2, default=str))
    elif args.command == "doctor":
        report = cmd_doctor(engine)
        return 0 if report.ok else 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
