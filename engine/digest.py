"""Daily digest assembly: a bounded, source-diversified reading list per user."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from engine.constants import (
    DIGEST_MAX_ITEMS,
    DIGEST_MAX_PER_SOURCE,
    DIGEST_WINDOW_HOURS,
    RECENCY_BOOST_DAY,
)
from engine.logging_config import get_logger
from engine.models import Content, Digest, ScoreBreakdown, ScoredItem, Source, User
from engine.scoring import base_score
from engine.store import Store

logger = get_logger(__name__)


def as_utc(now: Optional[datetime] = None) -> datetime:
    """`now` in UTC; naive datetimes are taken to be UTC already."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def today_utc(now: Optional[datetime] = None) -> date:
    return as_utc(now).date()


def _score_digest_item(content: Content, source: Optional[Source]) -> ScoredItem:
    """Everything in the window is fresh, so it all gets the full day boost."""
    breakdown = ScoreBreakdown(base_score(source), 0.0, float(RECENCY_BOOST_DAY))
    return ScoredItem(content=content, score=breakdown.total, breakdown=breakdown)


def select_digest_items(
    scored: Sequence[ScoredItem],
    max_items: int = DIGEST_MAX_ITEMS,
    max_per_source: int = DIGEST_MAX_PER_SOURCE,
) -> list[str]:
    """
    Greedy top-K by score with a per-source cap.

    Ties keep their input order. A source that hit its cap is skipped, not
    a stop condition; the walk stops once max_items are selected.
    """
    if max_items <= 0:
        return []
    ranked = sorted(scored, key=lambda s: s.score, reverse=True)

    selected: list[str] = []
    per_source: dict[str, int] = {}
    for item in ranked:
        source_id = item.content.source_id
        count = per_source.get(source_id, 0)
        if count >= max_per_source:
            continue
        selected.append(item.content.id)
        per_source[source_id] = count + 1
        if len(selected) >= max_items:
            break
    return selected


def generate_user_digest(
    store: Store, user_id: str, now: Optional[datetime] = None
) -> list[str]:
    """
    Content ids for the user's digest, best first; empty means "send nothing".

    The pool is the last 24h of content from sources mapped to any topic the
    user follows, so only quality and recency contribute to the score.
    """
    now = as_utc(now)

    user_topics = store.get_user_topics(user_id)
    if not user_topics:
        logger.info("User %s has no followed topics, skipping digest", user_id)
        return []

    mappings = store.list_source_topics(topic_ids=[ut.topic_id for ut in user_topics])
    if not mappings:
        logger.info("No sources match user %s's topics", user_id)
        return []
    source_ids = list(dict.fromkeys(m.source_id for m in mappings))

    cutoff = now - timedelta(hours=DIGEST_WINDOW_HOURS)
    contents = store.list_content(source_ids=source_ids, published_after=cutoff)
    if not contents:
        logger.info("No recent content for user %s", user_id)
        return []

    sources = store.get_sources(source_ids)
    scored = [_score_digest_item(c, sources.get(c.source_id)) for c in contents]
    content_ids = select_digest_items(scored)
    logger.info("Generated digest for user %s: %d items", user_id, len(content_ids))
    return content_ids


def has_digest_for_today(
    store: Store, user_id: str, now: Optional[datetime] = None
) -> bool:
    return store.get_digest(user_id, today_utc(now)) is not None


def store_digest(
    store: Store,
    user_id: str,
    content_ids: Sequence[str],
    now: Optional[datetime] = None,
) -> Digest:
    """Insert today's digest; raises DigestExistsError rather than overwrite."""
    now = as_utc(now)
    digest = Digest(
        id=str(uuid.uuid4()),
        user_id=user_id,
        date=today_utc(now),
        content_ids=list(content_ids),
        sent_at=now,
    )
    store.insert_digest(digest)
    return digest


def assemble_digest(
    store: Store, user_id: str, now: Optional[datetime] = None
) -> Optional[Digest]:
    """Create today's digest once; None when one exists or nothing qualifies."""
    now = as_utc(now)
    if has_digest_for_today(store, user_id, now):
        logger.info("User %s already has a digest for today, skipping", user_id)
        return None
    content_ids = generate_user_digest(store, user_id, now)
    if not content_ids:
        return None
    return store_digest(store, user_id, content_ids, now)


def users_for_digest_hour(store: Store, hour: int) -> list[User]:
    """Onboarded users whose preferred digest time falls in this UTC hour."""
    return [u for u in store.list_users(onboarded_only=True) if u.digest_hour == hour]
