"""Shared extraction layer for the per-show scrapers.

Every show extractor subclasses :class:`SourceExtractor` and implements
``crawl(page, show, since)``. The base class owns the browser session, the
cookie banner, the structural-anchor check and the translation of Playwright
failures into :class:`ExtractionError`. Markup parsing happens on the rendered
HTML with BeautifulSoup so the parsers can be exercised without a browser.
"""
from __future__ import annotations

import json
import logging
import os
import re
import unicodedata
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Iterable, Optional

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, async_playwright

from ..types import RawEpisode, Show

logger = logging.getLogger("talkwatch")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]

COOKIE_SELECTORS = (
    '[data-testid="cmp-accept-all"]',
    "button.o-btn.c-btn__label",
    "#onetrust-accept-btn-handler",
)

DE_MONTHS = {
    "januar": 1,
    "jan": 1,
    "februar": 2,
    "feb": 2,
    "maerz": 3,
    "marz": 3,
    "mrz": 3,
    "april": 4,
    "apr": 4,
    "mai": 5,
    "juni": 6,
    "jun": 6,
    "juli": 7,
    "jul": 7,
    "august": 8,
    "aug": 8,
    "september": 9,
    "sep": 9,
    "sept": 9,
    "oktober": 10,
    "okt": 10,
    "november": 11,
    "nov": 11,
    "dezember": 12,
    "dez": 12,
}

HOSTS = (
    "Markus Lanz",
    "Maybrit Illner",
    "Caren Miosga",
    "Sandra Maischberger",
    "Louis Klamroth",
    "Frank Plasberg",
    "Pinar Atalay",
    "Ingo Zamperoni",
)

NAME_PARTICLES = {"von", "van", "de", "da", "del", "der", "den", "du", "le", "la", "zu", "zur", "zum"}

_DOTTED_DATE_RE = re.compile(r"\b(\d{1,2})\.(\d{1,2})\.(\d{4})\b")
_ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})")
_WORD_DATE_RE = re.compile(r"\b(\d{1,2})\.?[\s\-]+([^\W\d_]+)[\s\-]+(\d{4})\b")
_GUEST_PREFIX_RE = re.compile(r"^.*?(?:zu gast|gäste|gaeste)\s*(?:sind|ist)?\s*:?\s*", re.I | re.S)


class ExtractionError(RuntimeError):
    """A show page could not be loaded or no longer has its expected structure."""

    def __init__(self, show_id: str, cause: object):
        self.show_id = show_id
        self.cause = cause
        super().__init__(f"{show_id}: {cause}")


def collapse_ws(text: str | None) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def _fold(text: str) -> str:
    text = text.lower().replace("ä", "ae").replace("ö", "oe").replace("ü", "ue")
    text = unicodedata.normalize("NFD", text)
    return "".join(c for c in text if not unicodedata.combining(c))


def parse_german_date(text: str | None) -> Optional[date]:
    """Parse the date notations used on German broadcaster pages.

    Handles ``05.03.2024``, ``5. März 2024``, URL slugs like
    ``vom-5-maerz-2024`` and ISO timestamps. Returns None when nothing
    recognizable is found or the date is invalid.
    """
    if not text:
        return None
    candidates: list[tuple[int, int, int]] = []

    m = _ISO_DATE_RE.search(text)
    if m:
        candidates.append((int(m.group(1)), int(m.group(2)), int(m.group(3))))

    m = _DOTTED_DATE_RE.search(text)
    if m:
        candidates.append((int(m.group(3)), int(m.group(2)), int(m.group(1))))

    for m in _WORD_DATE_RE.finditer(text):
        month = DE_MONTHS.get(_fold(m.group(2)))
        if month:
            candidates.append((int(m.group(3)), month, int(m.group(1))))
            break

    for y, mo, d in candidates:
        try:
            return date(y, mo, d)
        except ValueError:
            continue
    return None


def seems_like_person_name(name: str) -> bool:
    """Two to five capitalized words, allowing nobility particles in between."""
    words = collapse_ws(name).split(" ")
    if not 2 <= len(words) <= 5:
        return False
    for i, word in enumerate(words):
        if word in NAME_PARTICLES and 0 < i < len(words) - 1:
            continue
        if not word[0].isupper() or not all(c.isalpha() or c in "-'." for c in word):
            return False
    return True


def guest_name_part(raw: str) -> str:
    """Name portion of ``"Name, role"`` style guest entries."""
    return collapse_ws(raw.split(",", 1)[0])


def is_host(name: str) -> bool:
    lowered = name.lower()
    return any(host.lower() in lowered for host in HOSTS)


def split_guest_teaser(text: str) -> list[str]:
    """Split a free-text guest teaser ("Zu Gast: A, Rolle; B und C") into entries.

    Only entries that look like person names are kept; hosts are dropped.
    Entries keep their source spelling apart from whitespace collapsing.
    """
    text = collapse_ws(text)
    if not text:
        return []
    text = _GUEST_PREFIX_RE.sub("", text, count=1)
    text = re.sub(r"\s*\|\s*mehr\s*$", "", text, flags=re.I)

    out: list[str] = []
    for part in re.split(r"[;,\n]|\s+und\s+|\s+sowie\s+", text):
        part = part.strip(" .:()")
        if not seems_like_person_name(part) or is_host(part):
            continue
        if part not in out:
            out.append(part)
    return out


def dedupe(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for v in values:
        if v and v not in seen:
            seen.add(v)
            out.append(v)
    return out


def soup_of(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def ld_json_date(soup: BeautifulSoup) -> Optional[date]:
    """First usable date in JSON-LD blocks (uploadDate, datePublished, ...)."""
    fields = ("uploadDate", "datePublished", "dateCreated", "startDate")

    def collect(obj, out: list[str]) -> None:
        if isinstance(obj, dict):
            for key in fields:
                value = obj.get(key)
                if isinstance(value, str):
                    out.append(value)
            for value in obj.values():
                collect(value, out)
        elif isinstance(obj, list):
            for value in obj:
                collect(value, out)

    for node in soup.select('script[type="application/ld+json"]'):
        raw = node.string or node.get_text()
        if not raw or not raw.strip():
            continue
        try:
            payload = json.loads(raw)
        except ValueError:
            continue
        values: list[str] = []
        collect(payload, values)
        for value in values:
            parsed = parse_german_date(value)
            if parsed:
                return parsed
    return None


def slug_from_url(url: str) -> str:
    tail = url.rstrip("/").rsplit("/", 1)[-1]
    return re.sub(r"\.html?$", "", tail.split("?", 1)[0])


def _headless() -> bool:
    return os.getenv("PLAYWRIGHT_HEADLESS", "1").strip().lower() not in {"0", "false", "no", "off"}


@asynccontextmanager
async def browser_session(headless: bool | None = None) -> AsyncIterator[Page]:
    """Chromium page for one extraction; the browser is closed on every exit path."""
    headless = _headless() if headless is None else headless
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=headless, args=BROWSER_ARGS)
        try:
            context = await browser.new_context(
                user_agent=USER_AGENT,
                locale="de-DE",
                viewport={"width": 1280, "height": 1000},
                extra_http_headers={"Accept-Language": "de-DE,de;q=0.9,en;q=0.8"},
            )
            yield await context.new_page()
        finally:
            await browser.close()


class SourceExtractor:
    """Base class for one show's extractor.

    Subclasses set ``show_id`` and ``anchor_selector`` and implement
    :meth:`crawl`. ``anchor_selector`` is the structural element whose
    absence on the listing page means the markup changed.
    """

    show_id: str = ""
    anchor_selector: str = "main"
    cookie_selectors: tuple[str, ...] = COOKIE_SELECTORS
    navigation_timeout_ms: int = 60000
    anchor_timeout_ms: int = 15000

    async def extract(self, show: Show, since: date | None = None) -> list[RawEpisode]:
        try:
            async with browser_session() as page:
                episodes = await self.crawl(page, show, since)
        except ExtractionError:
            raise
        except PlaywrightError as exc:
            raise ExtractionError(show.show_id, f"{type(exc).__name__}: {exc}") from exc

        if since is not None:
            episodes = [e for e in episodes if e.air_date >= since]
        logger.info("%s: extracted %s episodes", show.show_id, len(episodes))
        return episodes

    async def crawl(self, page: Page, show: Show, since: date | None) -> list[RawEpisode]:
        raise NotImplementedError

    async def accept_cookies(self, page: Page) -> None:
        for selector in self.cookie_selectors:
            try:
                button = await page.wait_for_selector(selector, timeout=3000)
            except PlaywrightError:
                continue
            if button:
                await button.click()
                await page.wait_for_timeout(1000)
                return

    async def load_listing(self, page: Page, show: Show, url: str | None = None) -> str:
        """Open the listing page and return its rendered HTML.

        Raises ExtractionError when the structural anchor never appears.
        """
        await page.goto(
            url or show.listing_url(),
            wait_until="networkidle",
            timeout=self.navigation_timeout_ms,
        )
        await self.accept_cookies(page)
        try:
            await page.wait_for_selector(self.anchor_selector, timeout=self.anchor_timeout_ms)
        except PlaywrightError as exc:
            raise ExtractionError(
                show.show_id, f"structural anchor {self.anchor_selector!r} not found"
            ) from exc
        return await page.content()

    async def load_detail(self, page: Page, url: str, selector: str = "main") -> Optional[str]:
        """Rendered HTML of an episode page, or None when it cannot be loaded.

        A single broken episode page skips that episode only; the next run
        picks it up again.
        """
        try:
            await page.goto(url, wait_until="networkidle", timeout=self.navigation_timeout_ms)
            await page.wait_for_selector(selector, timeout=self.anchor_timeout_ms)
        except PlaywrightError as exc:
            logger.warning("%s: episode page failed %s (%s)", self.show_id, url, exc)
            return None
        return await page.content()

    async def scroll_to_bottom(self, page: Page, rounds: int = 10) -> None:
        for _ in range(rounds):
            await page.mouse.wheel(0, 2000)
            await page.wait_for_timeout(400)

    @staticmethod
    def wanted(air_date: date | None, since: date | None) -> bool:
        return air_date is not None and (since is None or air_date >= since)
