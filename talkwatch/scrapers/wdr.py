"""Hart aber fair (WDR)."""
from __future__ import annotations

import re
from datetime import date
from urllib.parse import urljoin

from playwright.async_api import Page

from ..types import RawEpisode, Show
from .base import (
    SourceExtractor,
    collapse_ws,
    guest_name_part,
    is_host,
    parse_german_date,
    seems_like_person_name,
    slug_from_url,
    soup_of,
)

WDR_BASE_URL = "https://www1.wdr.de"

LISTING_SELECTORS = (
    '.modA.modStage .teaser a[href*="/sendungen/"]',
    '.modD .teaser a[href*="/sendungen/"]',
)

_TITLE_DATE_RE = re.compile(r"\s*\(\d{1,2}\.\d{1,2}\.\d{4}\)\s*$")


class HartAberFairExtractor(SourceExtractor):
    show_id = "hart-aber-fair"
    anchor_selector = ".modD, .modA"

    @staticmethod
    def parse_listing(html: str, limit: int) -> list[tuple[str, date, str]]:
        """(url, air date, title) per episode teaser, newest first as on the page."""
        soup = soup_of(html)
        out: list[tuple[str, date, str]] = []
        seen: set[str] = set()
        for selector in LISTING_SELECTORS:
            for link in soup.select(selector):
                href = link.get("href") or ""
                if not href or "index.html" in href:
                    continue
                url = urljoin(WDR_BASE_URL, href)
                if url in seen:
                    continue

                headline = link.select_one("h4.headline")
                raw_title = collapse_ws(headline.get_text() if headline else "")
                air_date = parse_german_date(raw_title)
                if air_date is None:
                    section = link.find_parent(class_="section")
                    heading = section.select_one("h2.conHeadline") if section else None
                    if heading and "vom " in heading.get_text():
                        air_date = parse_german_date(heading.get_text())
                if not raw_title or air_date is None:
                    continue

                seen.add(url)
                out.append((url, air_date, _TITLE_DATE_RE.sub("", raw_title).strip()))
        return out[:limit]

    @staticmethod
    def parse_guests(html: str) -> list[str]:
        soup = soup_of(html)
        heading = next(
            (h for h in soup.select("h2.conHeadline") if collapse_ws(h.get_text()) == "Gäste"),
            None,
        )
        if heading is None:
            return []
        section = heading.find_parent(class_="section")
        if section is None:
            return []

        guests: list[str] = []
        seen: set[str] = set()
        for headline in section.select(".box .teaser h4.headline"):
            raw = headline.get_text()
            name = guest_name_part(raw)
            key = name.lower()
            if not seems_like_person_name(name) or is_host(name) or key in seen:
                continue
            seen.add(key)
            guests.append(raw)
        return guests

    async def crawl(self, page: Page, show: Show, since: date | None) -> list[RawEpisode]:
        html = await self.load_listing(page, show)

        episodes: list[RawEpisode] = []
        for url, air_date, title in self.parse_listing(html, show.listing_limit):
            if not self.wanted(air_date, since):
                continue
            detail = await self.load_detail(page, url, selector="body")
            if detail is None:
                continue
            episodes.append(
                RawEpisode(
                    show_id=show.show_id,
                    air_date=air_date,
                    title=title,
                    guests=tuple(self.parse_guests(detail)),
                    source_episode_id=slug_from_url(url),
                    source_url=url,
                )
            )
        return episodes
