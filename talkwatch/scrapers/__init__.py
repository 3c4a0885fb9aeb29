"""
Scrapers package.

One extractor per show, all sharing ``base.SourceExtractor``. Extractors are:
- read-only (network I/O only, persistence happens in ``talkwatch.merge``)
- fail-loud per show (``ExtractionError``), isolated by the orchestrator

Adding a show means adding one extractor class and one ``EXTRACTORS`` entry.
"""
from __future__ import annotations

from .ard import MaischbergerExtractor, MiosgaExtractor
from .base import ExtractionError, SourceExtractor
from .phoenix import PhoenixPersoenlichExtractor, PhoenixRundeExtractor
from .rtl import AtalayExtractor
from .wdr import HartAberFairExtractor
from .zdf import IllnerExtractor, LanzExtractor

EXTRACTORS: dict[str, type[SourceExtractor]] = {
    cls.show_id: cls
    for cls in (
        LanzExtractor,
        IllnerExtractor,
        HartAberFairExtractor,
        MaischbergerExtractor,
        MiosgaExtractor,
        PhoenixRundeExtractor,
        PhoenixPersoenlichExtractor,
        AtalayExtractor,
    )
}


def get_extractor(show_id: str) -> SourceExtractor:
    try:
        return EXTRACTORS[show_id]()
    except KeyError:
        raise KeyError(f"No extractor registered for show: {show_id}") from None


__all__ = ["EXTRACTORS", "ExtractionError", "SourceExtractor", "get_extractor"]
