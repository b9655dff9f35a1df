"""Relevance ranking and selection of facts for injection."""

from datetime import datetime

from .models import ConversationMemoryStore, Fact, utcnow
from .text import tokenize

OVERLAP_WEIGHT = 2.0
CONFIDENCE_WEIGHT = 5.0
SECONDS_PER_DAY = 86_400


def recency_bonus(fact: Fact, now: datetime | None = None, window_days: float = 10.0) -> float:
    """``max(0, window - age_in_days)`` where age counts from ``last_seen_at``."""
    now = now or utcnow()
    age_days = (now - fact.last_seen_at).total_seconds() / SECONDS_PER_DAY
    return max(0.0, window_days - max(0.0, age_days))


def score_fact(
    fact: Fact,
    query_tokens: set[str],
    *,
    recency: bool = True,
    recency_window_days: float = 10.0,
    now: datetime | None = None,
) -> float:
    """Score one fact against the query's token set."""
    overlap = len(query_tokens & tokenize(fact.value))
    score = OVERLAP_WEIGHT * overlap + CONFIDENCE_WEIGHT * fact.confidence
    if recency:
        score += recency_bonus(fact, now, recency_window_days)
    return score


def select_facts(
    store: ConversationMemoryStore,
    query_text: str | None,
    max_items: int,
    relevance: bool,
    *,
    recency: bool = True,
    recency_window_days: float = 10.0,
    now: datetime | None = None,
) -> list[Fact]:
    """Pick at most ``max_items`` active facts to inject.

    Without relevance this is the chronological tail of the store. With
    relevance, facts are sorted by score; equal scores keep store order.
    """
    if max_items <= 0:
        return []

    candidates = store.active_facts()
    if not relevance:
        return candidates[-max_items:]

    now = now or utcnow()
    query_tokens = tokenize(query_text or "")
    scored = [
        (
            score_fact(
                fact,
                query_tokens,
                recency=recency,
                recency_window_days=recency_window_days,
                now=now,
            ),
            fact,
        )
        for fact in candidates
    ]
    # sorted() is stable, so ties keep store order.
    scored = sorted(scored, key=lambda item: item[0], reverse=True)
    return [fact for _score, fact in scored[:max_items]]
