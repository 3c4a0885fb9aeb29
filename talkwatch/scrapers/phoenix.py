"""phoenix talk formats (phoenix runde, phoenix persönlich)."""
from __future__ import annotations

from datetime import date
from urllib.parse import urljoin

from playwright.async_api import Error as PlaywrightError
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

PHOENIX_BASE_URL = "https://www.phoenix.de"
LOAD_MORE_SELECTOR = '.c-btn a[ng-click*="next(nexturl)"]'
DATE_SELECTOR = ".c-teaser__item__body__info__date"


class PhoenixExtractor(SourceExtractor):
    anchor_selector = ".c-teaser"
    link_fragment = "/sendungen/gespraeche/"

    def parse_listing(self, html: str, limit: int) -> list[tuple[str, date, str]]:
        soup = soup_of(html)
        out: list[tuple[str, date, str]] = []
        seen: set[str] = set()
        for node in soup.select('div[phnx-teaser][teaser="teaser"]'):
            link = None
            for a in node.select("a"):
                href = a.get("href") or a.get("ng-href") or ""
                if self.link_fragment in href:
                    link = href
                    break
            date_el = node.select_one(DATE_SELECTOR)
            air_date = parse_german_date(date_el.get_text() if date_el else None)
            if not link or air_date is None:
                continue
            url = urljoin(PHOENIX_BASE_URL, link)
            if url in seen:
                continue
            title_el = node.select_one(".c-teaser__item__body__title__subline")
            seen.add(url)
            out.append((url, air_date, collapse_ws(title_el.get_text() if title_el else "")))
        return out[:limit]

    @staticmethod
    def parse_guests(html: str) -> list[str]:
        body = soup_of(html).select_one(".u-wysiwyg")
        if body is None:
            return []
        return split_guest_teaser(body.get_text("\n"))

    async def load_more(self, page: Page, show: Show, since: date | None) -> None:
        """Click "Weitere laden" until the page bound or the ``since`` date is reached."""
        for _ in range(max(show.max_pages - 1, 0)):
            button = await page.query_selector(LOAD_MORE_SELECTOR)
            if button is None:
                return
            try:
                await button.click()
            except PlaywrightError:
                return
            await page.wait_for_timeout(2000)

            dates = await page.eval_on_selector_all(
                DATE_SELECTOR, "els => els.map(e => (e.textContent || '').trim())"
            )
            oldest = parse_german_date(dates[-1]) if dates else None
            if since is not None and oldest is not None and oldest < since:
                return

    async def crawl(self, page: Page, show: Show, since: date | None) -> list[RawEpisode]:
        await self.load_listing(page, show)
        await self.load_more(page, show, since)
        html = await page.content()

        episodes: list[RawEpisode] = []
        for url, air_date, title in self.parse_listing(html, show.listing_limit):
            if not self.wanted(air_date, since):
                continue
            detail = await self.load_detail(page, url, selector=".u-wysiwyg")
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


class PhoenixRundeExtractor(PhoenixExtractor):
    show_id = "phoenix-runde"
    link_fragment = "/sendungen/gespraeche/phoenix-runde/"


class PhoenixPersoenlichExtractor(PhoenixExtractor):
    show_id = "phoenix-persoenlich"
    link_fragment = "/sendungen/gespraeche/phoenix-persoenlich/"
