"""Merge normalized episodes into the store.

Episodes are matched on their natural key (show, air date, slug). Guest rows
are only ever added: a guest missing from a later crawl stays linked. Unresolved
guests are stored as pending-review markers; a later crawl or
``reresolve_pending`` turns them into politician links once the name resolves.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from .normalize import EntityNormalizer
from .store import EpisodeStore, PersistenceConflict, PersistenceFault
from .topics import Classifier, valid_area_ids
from .types import (
    APPEARANCE_PENDING,
    OUTCOME_INSERTED,
    OUTCOME_UNCHANGED,
    OUTCOME_UPDATED,
    NormalizedEpisode,
    NormalizedGuestAppearance,
)

logger = logging.getLogger("talkwatch")

__all__ = [
    "PersistenceConflict",
    "PersistenceFault",
    "reconcile",
    "reresolve_pending",
]


def _episode_changes(existing: dict[str, Any], episode: NormalizedEpisode) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    if episode.title and episode.title != (existing.get("title") or ""):
        changes["title"] = episode.title
    if episode.source_url and not existing.get("source_url"):
        changes["source_url"] = episode.source_url
    if episode.source_episode_id and not existing.get("source_episode_id"):
        changes["source_episode_id"] = episode.source_episode_id
    return changes


def _same_episode(row: dict[str, Any], episode: NormalizedEpisode) -> bool:
    if row.get("source_episode_id") and episode.source_episode_id:
        return row["source_episode_id"] == episode.source_episode_id
    return bool(episode.title) and (row.get("title") or "") == episode.title


def _find_existing(store: EpisodeStore, episode: NormalizedEpisode) -> Optional[dict[str, Any]]:
    """Row for this episode, also when it was stored under another slug.

    The slug depends on how many episodes a crawl saw on the date, so an
    episode first seen alone (slug ``""``) and later next to a sibling (slug
    from its id or title), or the other way round, is matched on its source
    episode id or title.
    """
    existing = store.find_episode_by_natural_key(*episode.natural_key)
    if existing is not None:
        return existing
    for row in store.list_episodes_on_date(episode.show_id, episode.air_date):
        if _same_episode(row, episode):
            return row
    return None


def _appearance_writes(
    rows: list[dict[str, Any]], episode: NormalizedEpisode
) -> tuple[list[NormalizedGuestAppearance], list[tuple[int, NormalizedGuestAppearance]], list[int]]:
    """Split incoming guests into (new rows, pending markers to resolve, markers to drop).

    A pending marker whose name now resolves is turned into the politician
    link, or dropped when that politician is already linked.
    """
    persisted = {row["appearance_key"]: row for row in rows}
    new: list[NormalizedGuestAppearance] = []
    promote: list[tuple[int, NormalizedGuestAppearance]] = []
    drop: list[int] = []

    for appearance in episode.appearances:
        marker = persisted.get(f"u:{appearance.name_key}") if appearance.resolved else None
        if marker is not None and marker["status"] == APPEARANCE_PENDING:
            del persisted[marker["appearance_key"]]
            if appearance.appearance_key in persisted:
                drop.append(int(marker["appearance_id"]))
            else:
                promote.append((int(marker["appearance_id"]), appearance))
                persisted[appearance.appearance_key] = marker
            continue
        if appearance.appearance_key not in persisted:
            new.append(appearance)
            persisted[appearance.appearance_key] = {"status": None}
    return new, promote, drop


def _reconcile_once(
    store: EpisodeStore,
    episode: NormalizedEpisode,
    dry_run: bool,
    classifier: Optional[Classifier] = None,
) -> str:
    existing = _find_existing(store, episode)
    area_ids = valid_area_ids(classifier(episode)) if classifier is not None else ()

    if existing is None:
        if dry_run:
            return OUTCOME_INSERTED
        episode_id = store.insert_episode(episode)
        for appearance in episode.appearances:
            store.insert_guest_appearance(episode_id, appearance)
        store.insert_episode_political_areas(episode_id, area_ids)
        return OUTCOME_INSERTED

    episode_id = int(existing["episode_id"])
    new, promote, drop = _appearance_writes(store.list_guest_appearances(episode_id), episode)
    changes = _episode_changes(existing, episode)
    new_areas = sorted(set(area_ids) - set(store.list_episode_political_areas(episode_id)))

    if not (new or promote or drop or changes or new_areas):
        return OUTCOME_UNCHANGED
    if dry_run:
        return OUTCOME_UPDATED

    wrote = bool(promote or drop)
    if changes:
        store.update_episode(episode_id, **changes)
        wrote = True
    for appearance_id, appearance in promote:
        store.resolve_pending_appearance(appearance_id, appearance)
    for appearance_id in drop:
        store.delete_appearance(appearance_id)
    for appearance in new:
        wrote = store.insert_guest_appearance(episode_id, appearance) or wrote
    wrote = store.insert_episode_political_areas(episode_id, new_areas) > 0 or wrote
    return OUTCOME_UPDATED if wrote else OUTCOME_UNCHANGED


def reconcile(
    store: EpisodeStore,
    episode: NormalizedEpisode,
    dry_run: bool = False,
    classifier: Optional[Classifier] = None,
) -> str:
    """Merge one episode; returns ``inserted``, ``updated`` or ``unchanged``.

    ``classifier`` maps the episode to political area ids, which are linked to
    the stored episode. A natural-key race (another writer inserted the
    episode between our lookup and insert) rolls back and is retried once,
    where it takes the update path. ``PersistenceFault`` propagates to the
    caller.
    """
    try:
        with store.transaction() as tx:
            return _reconcile_once(tx, episode, dry_run, classifier)
    except PersistenceConflict:
        logger.warning(
            "Natural key conflict for %s/%s/%r; retrying as update",
            episode.show_id,
            episode.air_date,
            episode.slug,
        )
    with store.transaction() as tx:
        return _reconcile_once(tx, episode, dry_run, classifier)


def reresolve_pending(store: EpisodeStore, normalizer: EntityNormalizer) -> dict[str, int]:
    """Re-run name resolution over pending-review markers.

    A marker that now resolves becomes a politician link. If that politician is
    already linked to the episode, the marker is dropped instead.
    """
    summary = {"checked": 0, "resolved": 0, "merged": 0, "still_pending": 0}
    for row in store.list_pending_appearances():
        summary["checked"] += 1
        appearance = normalizer.resolve(row["raw_name"])
        if not appearance.resolved:
            summary["still_pending"] += 1
            continue

        with store.transaction() as tx:
            linked = {r["appearance_key"] for r in tx.list_guest_appearances(int(row["episode_id"]))}
            if appearance.appearance_key in linked:
                tx.delete_appearance(int(row["appearance_id"]))
                summary["merged"] += 1
            else:
                tx.resolve_pending_appearance(int(row["appearance_id"]), appearance)
                summary["resolved"] += 1

    logger.info("Re-resolved pending guests: %s", summary)
    return summary
