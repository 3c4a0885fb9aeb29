"""Pinar Atalay (RTL+ / ntv).

The RTL+ show page lists every episode with a teaser text but no air date.
Episodes are numbered ("Folge 3") and air every second Monday, so the date is
derived from the episode number. Guests are read from the teaser text.
"""
from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from typing import Optional
from urllib.parse import urljoin

from playwright.async_api import Page

from ..types import RawEpisode, Show
from .base import (
    SourceExtractor,
    collapse_ws,
    dedupe,
    is_host,
    seems_like_person_name,
    slug_from_url,
    soup_of,
    split_guest_teaser,
)

logger = logging.getLogger("talkwatch")

RTL_BASE_URL = "https://plus.rtl.de"

FIRST_EPISODE_DATE = date(2025, 10, 6)
EPISODE_INTERVAL_DAYS = 14

_EPISODE_NUMBER_RE = re.compile(r"Folge\s+(\d+)", re.I)
_NAME_RUN_RE = re.compile(r"[A-ZÄÖÜ][\w'\-]+(?:\s+(?:von|van|de|zu|der)?\s*[A-ZÄÖÜ][\w'\-]+)+")

# Capitalized words that can start a sentence ahead of a name
_NOT_A_NAME = {
    "Auch", "Bei", "Das", "Der", "Die", "Ein", "Eine", "Im", "In", "Mit", "Nach",
    "Und", "Vor", "Warum", "Was", "Wer", "Wie", "Zu", "Über",
}


def air_date_for_episode(number: int) -> date:
    return FIRST_EPISODE_DATE + timedelta(days=(number - 1) * EPISODE_INTERVAL_DAYS)


class AtalayExtractor(SourceExtractor):
    show_id = "atalay"
    anchor_selector = ".episode-list"

    @staticmethod
    def parse_listing(html: str, limit: int) -> list[tuple[str, Optional[int], str, str]]:
        """(url, episode number, title, teaser) per listed episode."""
        soup = soup_of(html)
        out: list[tuple[str, Optional[int], str, str]] = []
        seen: set[str] = set()
        for teaser in soup.select("watch-episode-list-teaser"):
            link = teaser.select_one("a.series-teaser__link")
            href = link.get("href") if link else None
            if not href:
                continue
            url = urljoin(RTL_BASE_URL, href)
            description_el = teaser.select_one("p.description")
            description = collapse_ws(description_el.get_text() if description_el else "")
            if url in seen or not description:
                continue

            title_el = teaser.select_one(".series-teaser__title h3")
            title = collapse_ws(title_el.get_text() if title_el else "")
            m = _EPISODE_NUMBER_RE.search(title)
            seen.add(url)
            out.append((url, int(m.group(1)) if m else None, title, description))
        return out[:limit]

    @staticmethod
    def parse_guests(description: str) -> list[str]:
        """Guest names from a teaser: a "Zu Gast:" list, else names in the prose."""
        guests = split_guest_teaser(description) if re.search(r"zu gast|gäste", description, re.I) else []
        if guests:
            return guests

        names: list[str] = []
        for m in _NAME_RUN_RE.finditer(description):
            words = m.group(0).split()
            while words and (words[0] in _NOT_A_NAME or any(c.isupper() for c in words[0][1:])):
                words = words[1:]
            name = " ".join(words)
            if seems_like_person_name(name) and not is_host(name):
                names.append(name)
        return dedupe(names)

    async def crawl(self, page: Page, show: Show, since: date | None) -> list[RawEpisode]:
        html = await self.load_listing(page, show)

        episodes: list[RawEpisode] = []
        for url, number, title, description in self.parse_listing(html, show.listing_limit):
            if number is None:
                logger.warning("%s: no episode number in listing entry %s; skipped", show.show_id, url)
                continue
            air_date = air_date_for_episode(number)
            if not self.wanted(air_date, since):
                continue
            episodes.append(
                RawEpisode(
                    show_id=show.show_id,
                    air_date=air_date,
                    title=title,
                    guests=tuple(self.parse_guests(description)),
                    source_episode_id=slug_from_url(url),
                    source_url=url,
                    description=description,
                )
            )
        return episodes
