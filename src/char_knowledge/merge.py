"""Merge/upsert of candidate facts into a conversation store."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from .models import ConversationMemoryStore, Fact, normalize_tags, utcnow


@dataclass
class MergeStats:
    """How a merge changed the store."""

    added: int = 0
    updated: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated)


def merge_fact(existing: Fact, candidate: Fact, *, override_status: bool = False, now: datetime | None = None) -> None:
    """Fold a candidate into the fact that already holds its key.

    Value and id are never overwritten, so manual edits survive re-extraction.
    Status is kept unless ``override_status`` is set.
    """
    existing.touch(now)
    existing.confidence = max(existing.confidence, candidate.confidence)
    existing.tags = normalize_tags([*existing.tags, *candidate.tags])
    if override_status:
        existing.status = candidate.status


def merge_facts(
    store: ConversationMemoryStore,
    candidates: Iterable[Fact],
    *,
    override_status: bool = False,
    now: datetime | None = None,
) -> MergeStats:
    """Reconcile candidates with the store.

    A candidate whose key already exists updates that fact; anything else is
    appended unchanged, in arrival order. Nothing is ever deleted.

    Args:
        store: The store to mutate in place.
        candidates: Facts to merge, usually fresh from extraction.
        override_status: Let the candidate's status replace the existing one.
        now: Timestamp for ``last_seen_at`` updates.

    Returns:
        Counts of appended and updated facts.
    """
    now = now or utcnow()
    stats = MergeStats()
    index = {fact.key: fact for fact in store.facts}

    for candidate in candidates:
        key = candidate.key
        existing = index.get(key)
        if existing is not None:
            merge_fact(existing, candidate, override_status=override_status, now=now)
            stats.updated += 1
        else:
            store.facts.append(candidate)
            index[key] = candidate
            stats.added += 1

    return stats


def collapse_duplicates(store: ConversationMemoryStore, facts: Iterable[Fact]) -> MergeStats:
    """Append stored or imported facts, folding repeated keys into the first one.

    A fold keeps the later of the two ``last_seen_at`` values instead of
    stamping the current time.
    """
    stats = MergeStats()
    index = {fact.key: fact for fact in store.facts}

    for fact in facts:
        existing = index.get(fact.key)
        if existing is None:
            store.facts.append(fact)
            index[fact.key] = fact
            stats.added += 1
            continue
        merge_fact(existing, fact, now=max(existing.last_seen_at, fact.last_seen_at))
        stats.updated += 1

    return stats
