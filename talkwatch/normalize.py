"""Guest name resolution against the politician reference table.

Resolution order per raw guest string:

1. manual overrides (source spellings the API gets wrong),
2. exact match on the canonical name,
3. fuzzy match (rapidfuzz ``token_sort_ratio``) at or above the threshold,
4. otherwise unresolved; the raw name is kept for manual review.

``"Name, Rolle"`` and ``"Nachname, Vorname"`` entries are scored as several
candidates and the best one wins. The role tail is only used to pick between
politicians who share a name. Output depends on nothing but the raw string and
the reference snapshot, so re-crawling an unchanged page normalizes to equal
values.
"""
from __future__ import annotations

import logging
import os
import re
import unicodedata
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence

from rapidfuzz import fuzz, process

from .reference import ReferenceTable
from .types import (
    MATCH_EXACT,
    MATCH_FUZZY,
    MATCH_OVERRIDE,
    MATCH_UNRESOLVED,
    NormalizedEpisode,
    NormalizedGuestAppearance,
    Politician,
    RawEpisode,
)

logger = logging.getLogger("talkwatch")

DEFAULT_THRESHOLD = 90.0

PARTY_HINTS: Dict[str, tuple[str, ...]] = {
    "CDU": ("CDU", "CHRISTLICH DEMOKRATISCHE UNION"),
    "CSU": ("CSU", "CHRISTLICH-SOZIALE UNION"),
    "SPD": ("SPD", "SOZIALDEMOKRATISCHE PARTEI"),
    "FDP": ("FDP", "FREIE DEMOKRATISCHE PARTEI"),
    "GRÜNE": ("BÜNDNIS 90/DIE GRÜNEN", "DIE GRÜNEN", "GRÜNE"),
    "LINKE": ("DIE LINKE", "LINKE"),
    "AFD": ("AFD", "ALTERNATIVE FÜR DEUTSCHLAND"),
    "BSW": ("BSW", "BÜNDNIS SAHRA WAGENKNECHT"),
}


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def canonical_name(raw: str) -> str:
    """Lowercase ASCII-folded name with punctuation turned into single spaces."""
    text = unicodedata.normalize("NFKD", _collapse(raw).replace("ß", "ss"))
    text = "".join(c for c in text if not unicodedata.combining(c)).lower()
    text = re.sub(r"[^a-z0-9]+", " ", text)
    return text.strip()


def slugify(text: str, max_len: int = 80) -> str:
    return canonical_name(text).replace(" ", "-")[:max_len].strip("-")


def name_candidates(raw: str) -> list[tuple[str, str]]:
    """(canonical candidate, role hint) pairs to score for one raw guest string."""
    text = _collapse(raw)
    if "," not in text:
        return [(canonical_name(text), "")]
    head, tail = (part.strip() for part in text.split(",", 1))
    out = [(canonical_name(head), tail), (canonical_name(text.replace(",", " ")), "")]
    return [(c, hint) for c, hint in out if c]


def name_key(raw: str) -> str:
    """Order-independent key for a guest string, used for pending-review markers.

    ``"Söder, Markus"`` and ``"Markus Söder"`` share a key. A comma entry whose
    head already has several words is read as ``"Name, Rolle"`` and the role is
    left out.
    """
    text = _collapse(raw)
    head = text.split(",", 1)[0]
    if "," in text and len(canonical_name(head).split()) < 2:
        head = text.replace(",", " ")
    return " ".join(sorted(canonical_name(head).split()))


def _threshold_from_env() -> float:
    return float(os.getenv("NAME_MATCH_THRESHOLD", str(DEFAULT_THRESHOLD)))


class EntityNormalizer:
    """Resolves raw guest strings against one reference snapshot."""

    def __init__(self, reference: ReferenceTable, threshold: float | None = None):
        self.reference = reference
        self.threshold = _threshold_from_env() if threshold is None else float(threshold)

        ordered = sorted(reference.politicians, key=lambda p: p.politician_id)
        self._politicians: List[Politician] = ordered
        self._choices: List[str] = [canonical_name(p.name) for p in ordered]
        self._by_canonical: Dict[str, List[Politician]] = {}
        for canon, politician in zip(self._choices, ordered):
            self._by_canonical.setdefault(canon, []).append(politician)
        self._overrides: Dict[str, Politician] = {
            canonical_name(name): politician for name, politician in reference.overrides.items()
        }

    def _pick(self, politicians: Sequence[Politician], role_hint: str) -> Politician:
        if len(politicians) > 1 and role_hint:
            hint = role_hint.upper()
            for party, variants in PARTY_HINTS.items():
                if not any(v in hint for v in variants):
                    continue
                for p in politicians:
                    if p.party_name and party in p.party_name.upper():
                        return p
        return politicians[0]

    def lookup(self, candidate: str) -> Optional[Politician]:
        """Exact lookup by canonical name (overrides included)."""
        canon = canonical_name(candidate)
        if canon in self._overrides:
            return self._overrides[canon]
        matches = self._by_canonical.get(canon)
        return matches[0] if matches else None

    def _appearance(
        self, raw: str, key: str, politician: Politician, score: float, method: str
    ) -> NormalizedGuestAppearance:
        return NormalizedGuestAppearance(
            raw_name=raw,
            name_key=key,
            politician_id=politician.politician_id,
            politician_name=politician.name,
            party_id=politician.party_id,
            party_name=politician.party_name,
            area_ids=tuple(sorted(politician.area_ids)),
            score=round(float(score), 2),
            method=method,
        )

    def resolve(self, raw: str) -> NormalizedGuestAppearance:
        candidates = name_candidates(raw)
        key = name_key(raw)

        for canon, _ in candidates:
            if canon in self._overrides:
                return self._appearance(raw, key, self._overrides[canon], 100.0, MATCH_OVERRIDE)

        for canon, hint in candidates:
            matches = self._by_canonical.get(canon)
            if matches:
                return self._appearance(raw, key, self._pick(matches, hint), 100.0, MATCH_EXACT)

        best: Optional[tuple[float, int]] = None
        if self._choices:
            for canon, _ in candidates:
                hit = process.extractOne(
                    canon,
                    self._choices,
                    scorer=fuzz.token_sort_ratio,
                    score_cutoff=self.threshold,
                )
                if hit is None:
                    continue
                _, score, index = hit
                if best is None or score > best[0] or (score == best[0] and index < best[1]):
                    best = (score, index)

        if best is not None:
            score, index = best
            return self._appearance(raw, key, self._politicians[index], score, MATCH_FUZZY)

        logger.debug("Unresolved guest: %r", raw)
        return NormalizedGuestAppearance(raw_name=raw, name_key=key, method=MATCH_UNRESOLVED)

    def normalize(self, raw_episode: RawEpisode, slug: str = "") -> NormalizedEpisode:
        appearances: list[NormalizedGuestAppearance] = []
        seen: set[str] = set()
        for raw_guest in raw_episode.guests:
            if not _collapse(raw_guest):
                continue
            appearance = self.resolve(raw_guest)
            if appearance.appearance_key in seen:
                continue
            seen.add(appearance.appearance_key)
            appearances.append(appearance)

        return NormalizedEpisode(
            show_id=raw_episode.show_id,
            air_date=raw_episode.air_date,
            slug=slug,
            title=_collapse(raw_episode.title),
            source_episode_id=raw_episode.source_episode_id,
            source_url=raw_episode.source_url,
            description=_collapse(raw_episode.description),
            appearances=tuple(appearances),
        )

    def normalize_batch(self, raw_episodes: Iterable[RawEpisode]) -> list[NormalizedEpisode]:
        return [self.normalize(raw, slug) for raw, slug in assign_slugs(raw_episodes)]


def assign_slugs(raw_episodes: Iterable[RawEpisode]) -> list[tuple[RawEpisode, str]]:
    """Pair each raw episode with the slug part of its natural key.

    A date with a single episode gets the empty slug. Several episodes of one
    show on the same date are told apart by a slug from the source episode id
    (or the title), suffixed in page order if those collide.
    """
    raw_episodes = list(raw_episodes)
    per_date = Counter((r.show_id, r.air_date) for r in raw_episodes)
    used: Counter = Counter()

    out: list[tuple[RawEpisode, str]] = []
    for raw in raw_episodes:
        if per_date[(raw.show_id, raw.air_date)] == 1:
            out.append((raw, ""))
            continue
        base = slugify(raw.source_episode_id or "") or slugify(raw.title) or "episode"
        key = (raw.show_id, raw.air_date, base)
        used[key] += 1
        out.append((raw, base if used[key] == 1 else f"{base}-{used[key]}"))
    return out
