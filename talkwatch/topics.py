"""Political topic classification for episodes.

A classifier is any callable taking a ``NormalizedEpisode`` and returning
political area ids (see ``reference.POLITICAL_AREAS``). ``reconcile`` stores
whatever the classifier returns; ids outside the configured areas are dropped.
The default classifier matches German keywords against the episode title and
teaser text.
"""
from __future__ import annotations

import logging
import os
import re
from typing import Callable, Iterable, Optional

from .normalize import canonical_name
from .reference import POLITICAL_AREAS
from .types import NormalizedEpisode

logger = logging.getLogger("talkwatch")

Classifier = Callable[[NormalizedEpisode], Iterable[int]]

AREA_IDS = frozenset(area_id for area_id, _, _ in POLITICAL_AREAS)

# Matched as word prefixes on the canonical text (lowercase, umlauts folded)
AREA_KEYWORDS: dict[int, tuple[str, ...]] = {
    1: ("energie", "klima", "strompreis", "heizung", "gaspreis", "atomkraft", "kohle", "windkraft", "versorgung"),
    2: ("wirtschaft", "industrie", "konjunktur", "wettbewerb", "innovation", "unternehm", "zoll", "handel", "inflation"),
    3: ("ukraine", "russland", "putin", "nato", "bundeswehr", "verteidigung", "krieg", "nahost", "israel", "aussenpolitik", "sicherheit", "trump"),
    4: ("migration", "asyl", "fluechtling", "fluchtling", "integration", "einwanderung", "abschiebung", "grenze"),
    5: ("haushalt", "schulden", "steuer", "rente", "buergergeld", "burgergeld", "sozialstaat", "sozialpolitik", "pflege", "gesundheit", "finanzen"),
    6: ("digital", "medien", "demokratie", "desinformation", "kuenstliche intelligenz", "kunstliche intelligenz", "afd verbot", "wahl"),
    7: ("kultur", "identitaet", "identitat", "erinnerung", "antisemitismus", "heimat", "religion", "gedenken"),
}


def _pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(r"\b" + re.escape(keyword))


_PATTERNS: dict[int, list[re.Pattern[str]]] = {
    area_id: [_pattern(canonical_name(k)) for k in keywords] for area_id, keywords in AREA_KEYWORDS.items()
}


def episode_text(episode: NormalizedEpisode) -> str:
    return " ".join(t for t in (episode.title, episode.description) if t)


def keyword_classifier(episode: NormalizedEpisode) -> tuple[int, ...]:
    text = canonical_name(episode_text(episode))
    if not text:
        return ()
    return tuple(
        area_id for area_id, patterns in sorted(_PATTERNS.items()) if any(p.search(text) for p in patterns)
    )


def valid_area_ids(values: Iterable[int]) -> tuple[int, ...]:
    out: set[int] = set()
    for value in values:
        try:
            area_id = int(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric political area id: %r", value)
            continue
        if area_id in AREA_IDS:
            out.add(area_id)
        else:
            logger.warning("Ignoring unknown political area id: %s", area_id)
    return tuple(sorted(out))


def default_classifier() -> Optional[Classifier]:
    """Classifier selected by ``TOPIC_CLASSIFIER`` (``keywords`` or ``off``)."""
    choice = os.getenv("TOPIC_CLASSIFIER", "keywords").strip().lower()
    if choice in {"off", "none", "0", "false"}:
        return None
    if choice != "keywords":
        logger.warning("Unknown TOPIC_CLASSIFIER=%r; using keywords", choice)
    return keyword_classifier
