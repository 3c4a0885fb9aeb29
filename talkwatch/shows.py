"""Configured talk shows.

Show ids double as the keys of the extractor registry in
``talkwatch.scrapers`` and as the ``show_id`` column in the store.
"""
from __future__ import annotations

from .types import Show

SHOWS: dict[str, Show] = {
    s.show_id: s
    for s in (
        Show(
            show_id="lanz",
            display_name="Markus Lanz",
            url_template="https://www.zdf.de/talk/markus-lanz-114",
            listing_limit=10,
        ),
        Show(
            show_id="illner",
            display_name="Maybrit Illner",
            url_template="https://www.zdf.de/talk/maybrit-illner-128?staffel={year}",
            listing_limit=10,
        ),
        Show(
            show_id="hart-aber-fair",
            display_name="Hart aber fair",
            url_template="https://www1.wdr.de/daserste/hartaberfair/sendungen/index.html",
            listing_limit=20,
        ),
        Show(
            show_id="maischberger",
            display_name="Maischberger",
            url_template=(
                "https://www.ardmediathek.de/sendung/maischberger/"
                "Y3JpZDovL2Rhc2Vyc3RlLmRlL21lbnNjaGVuIGJlaSBtYWlzY2hiZXJnZXI"
            ),
            listing_limit=20,
        ),
        Show(
            show_id="miosga",
            display_name="Caren Miosga",
            url_template="https://www.ardaudiothek.de/sendung/caren-miosga/urn:ard:show:d6e5ba24e1508004/",
            listing_limit=20,
        ),
        Show(
            show_id="phoenix-runde",
            display_name="Phoenix Runde",
            url_template="https://www.phoenix.de/sendungen/gespraeche/phoenix-runde-s-121346.html",
            max_pages=20,
            listing_limit=40,
        ),
        Show(
            show_id="phoenix-persoenlich",
            display_name="Phoenix Persönlich",
            url_template="https://www.phoenix.de/sendungen/gespraeche/phoenix-persoenlich-s-121511.html",
            max_pages=10,
            listing_limit=40,
        ),
        Show(
            show_id="atalay",
            display_name="Pinar Atalay",
            url_template="https://plus.rtl.de/video-tv/shows/pinar-atalay-1041381",
            listing_limit=40,
        ),
    )
}


def get_show(show_id: str) -> Show:
    try:
        return SHOWS[show_id]
    except KeyError:
        raise KeyError(f"Unknown show: {show_id}") from None


def parse_show_list(raw: str | None) -> list[str]:
    """Parse a comma-separated show selection; ``all`` or empty selects every show."""
    if not raw or raw.strip().lower() == "all":
        return list(SHOWS)
    return [s.strip() for s in raw.split(",") if s.strip()]
