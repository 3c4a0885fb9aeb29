"""ARD shows (Maischberger in the Mediathek, Caren Miosga in the Audiothek).

Both list episodes as schema.org ``itemListElement`` entries. Guests are only
given as teaser prose ("Zu Gast: ..."), either on the listing item or on the
episode page.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional
from urllib.parse import urljoin

from playwright.async_api import Page

from ..types import RawEpisode, Show
from .base import (
    SourceExtractor,
    collapse_ws,
    parse_german_date,
    slug_from_url,
    soup_of,
    split_guest_teaser,
)


@dataclass
class ListingItem:
    url: str
    air_date: date
    title: str
    teaser: str


class ArdListingExtractor(SourceExtractor):
    base_url = "https://www.ardmediathek.de"
    anchor_selector = '[itemprop="itemList"], [itemprop="itemListElement"]'

    def parse_listing(self, html: str, limit: int) -> list[ListingItem]:
        soup = soup_of(html)
        items: list[ListingItem] = []
        seen: set[str] = set()
        for node in soup.select('[itemprop="itemListElement"]'):
            link = node.select_one('a[itemprop="url"]') or node.select_one("a[href]")
            href = link.get("href") if link else None
            if not href:
                continue
            url = urljoin(self.base_url, href)
            if url in seen:
                continue

            created = node.select_one('[itemprop="dateCreated"]')
            stamp = node.select_one("time[datetime]")
            air_date = (
                parse_german_date(created.get("content") if created else None)
                or parse_german_date(stamp.get("datetime") if stamp else None)
                or parse_german_date(node.get_text(" "))
            )
            heading = node.select_one('h3[itemprop="name"]') or node.select_one("h3")
            title = collapse_ws(heading.get_text() if heading else "")
            if air_date is None or not title:
                continue

            teaser = " ".join(collapse_ws(p.get_text()) for p in node.select("p"))
            seen.add(url)
            items.append(ListingItem(url=url, air_date=air_date, title=title, teaser=teaser))
        return items[:limit]

    @staticmethod
    def parse_detail_teaser(html: str) -> str:
        soup = soup_of(html)
        meta = soup.select_one('meta[name="description"]') or soup.select_one(
            'meta[property="og:description"]'
        )
        texts = [meta.get("content", "")] if meta else []
        texts.extend(
            collapse_ws(p.get_text())
            for p in soup.select("main p")
            if "gast" in p.get_text().lower() or "gäste" in p.get_text().lower()
        )
        return " ; ".join(t for t in texts if t)

    async def guests_for(self, page: Page, item: ListingItem) -> Optional[list[str]]:
        guests = split_guest_teaser(item.teaser)
        if guests:
            return guests
        detail = await self.load_detail(page, item.url, selector="body")
        if detail is None:
            return None
        return split_guest_teaser(self.parse_detail_teaser(detail))

    async def crawl(self, page: Page, show: Show, since: date | None) -> list[RawEpisode]:
        html = await self.load_listing(page, show)
        if show.max_pages > 1:
            await self.scroll_to_bottom(page, rounds=show.max_pages)
            html = await page.content()

        episodes: list[RawEpisode] = []
        for item in self.parse_listing(html, show.listing_limit):
            if not self.wanted(item.air_date, since):
                continue
            guests = await self.guests_for(page, item)
            if guests is None:
                continue
            episodes.append(
                RawEpisode(
                    show_id=show.show_id,
                    air_date=item.air_date,
                    title=item.title,
                    guests=tuple(guests),
                    source_episode_id=slug_from_url(item.url),
                    source_url=item.url,
                )
            )
        return episodes


class MaischbergerExtractor(ArdListingExtractor):
    show_id = "maischberger"


class MiosgaExtractor(ArdListingExtractor):
    show_id = "miosga"
    base_url = "https://www.ardaudiothek.de"
