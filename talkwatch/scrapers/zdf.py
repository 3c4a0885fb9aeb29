"""ZDF talk shows (Markus Lanz, Maybrit Illner).

Both shows share the ZDF video page layout: the listing links to one page
per episode, and each episode page names its guests as ``<b>Name, Rolle</b>``
inside the description section.
"""
from __future__ import annotations

from datetime import date
from typing import Optional
from urllib.parse import urljoin

from playwright.async_api import Page

from ..types import RawEpisode, Show
from .base import (
    SourceExtractor,
    collapse_ws,
    dedupe,
    guest_name_part,
    is_host,
    ld_json_date,
    parse_german_date,
    seems_like_person_name,
    slug_from_url,
    soup_of,
)

ZDF_BASE_URL = "https://www.zdf.de"

GUEST_SELECTORS = (
    'section[tabindex="0"] p b, section.tdeoflm p b',
    "main b",
)


class ZdfTalkExtractor(SourceExtractor):
    video_path = ""
    anchor_selector = "main"

    def parse_listing(self, html: str, limit: int) -> list[str]:
        soup = soup_of(html)
        urls = dedupe(
            urljoin(ZDF_BASE_URL, a["href"])
            for a in soup.select(f'a[href*="{self.video_path}"]')
            if a.get("href")
        )
        return urls[:limit]

    @staticmethod
    def parse_guests(html: str, host_name: str) -> list[str]:
        soup = soup_of(html)
        entries: list[str] = []
        for selector in GUEST_SELECTORS:
            entries = [
                el.get_text()
                for el in soup.select(selector)
                if "," in el.get_text()
            ]
            if entries:
                break

        if not entries:
            # Teaser image alt text: "Markus Lanz mit seinen Gästen: A, B, C"
            for img in soup.select("main img[alt]"):
                alt = img.get("alt") or ""
                if host_name in alt and ":" in alt:
                    entries = [part.strip() for part in alt.split(":", 1)[1].split(",")]
                    break

        guests: list[str] = []
        seen: set[str] = set()
        for raw in entries:
            name = guest_name_part(raw)
            if not seems_like_person_name(name) or is_host(name) or name in seen:
                continue
            seen.add(name)
            guests.append(raw)
        return guests

    @classmethod
    def parse_episode(cls, html: str, url: str, show: Show) -> Optional[RawEpisode]:
        soup = soup_of(html)
        main = soup.select_one("main")
        air_date = (
            parse_german_date(url)
            or ld_json_date(soup)
            or parse_german_date(main.get_text(" ") if main else "")
        )
        if air_date is None:
            return None

        og_title = soup.select_one('meta[property="og:title"]')
        h1 = soup.select_one("h1")
        title = collapse_ws(
            (og_title.get("content") if og_title else None) or (h1.get_text() if h1 else "")
        )
        return RawEpisode(
            show_id=show.show_id,
            air_date=air_date,
            title=title,
            guests=tuple(cls.parse_guests(html, show.display_name)),
            source_episode_id=slug_from_url(url),
            source_url=url,
        )

    async def crawl(self, page: Page, show: Show, since: date | None) -> list[RawEpisode]:
        html = await self.load_listing(page, show)
        if show.max_pages > 1:
            await self.scroll_to_bottom(page, rounds=show.max_pages)
            html = await page.content()

        episodes: list[RawEpisode] = []
        for url in self.parse_listing(html, show.listing_limit):
            hinted = parse_german_date(url)
            if hinted is not None and not self.wanted(hinted, since):
                continue
            detail = await self.load_detail(page, url)
            if detail is None:
                continue
            episode = self.parse_episode(detail, url, show)
            if episode is not None:
                episodes.append(episode)
        return episodes


class LanzExtractor(ZdfTalkExtractor):
    show_id = "lanz"
    video_path = "/video/talk/markus-lanz-114/"


class IllnerExtractor(ZdfTalkExtractor):
    show_id = "illner"
    video_path = "/video/talk/maybrit-illner-128/"
