"""
Personalization scoring for feed ranking.

    score = base_score + topic_match + recency_boost

base_score is the source quality (0-100, default 50), topic_match maps the
user's topic weights onto a 0-50 band, and recency_boost is a step
function of publish age (+20 under a day, +10 under a week).
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Optional

from engine.constants import (
    DEFAULT_QUALITY_SCORE,
    FEED_DEFAULT_LIMIT,
    FEED_FETCH_MULTIPLIER,
    FEED_MAX_LIMIT,
    RECENCY_BOOST_DAY,
    RECENCY_BOOST_WEEK,
    RECENCY_DAY_HOURS,
    RECENCY_WEEK_HOURS,
    TOPIC_MATCH_MAX,
)
from engine.logging_config import get_logger
from engine.models import (
    Content,
    FeedPage,
    InteractionStatus,
    ScoreBreakdown,
    ScoredItem,
    Source,
    SourceTopic,
    UserTopic,
)
from engine.store import NotFoundError, Store

logger = get_logger(__name__)


def base_score(source: Optional[Source]) -> float:
    if source is None or source.quality_score is None:
        return float(DEFAULT_QUALITY_SCORE)
    return float(source.quality_score)


def recency_boost(published_at: datetime, now: Optional[datetime] = None) -> float:
    now = now or datetime.now(timezone.utc)
    hours_ago = (now - published_at).total_seconds() / 3600.0
    if hours_ago < RECENCY_DAY_HOURS:
        return float(RECENCY_BOOST_DAY)
    if hours_ago < RECENCY_WEEK_HOURS:
        return float(RECENCY_BOOST_WEEK)
    return 0.0


def topic_match(
    source_topics: Sequence[SourceTopic], user_topics: Sequence[UserTopic]
) -> float:
    """Relevance-weighted mean of the user's weights, scaled into [0, 50]."""
    if not source_topics or not user_topics:
        return 0.0

    user_weights = {ut.topic_id: ut.weight for ut in user_topics}
    weighted_sum = 0.0
    total_relevance = 0.0
    for st in source_topics:
        weight = user_weights.get(st.topic_id)
        if weight is None:
            continue
        weighted_sum += st.relevance * weight
        total_relevance += st.relevance

    if total_relevance <= 0:
        return 0.0
    return max(0.0, min(TOPIC_MATCH_MAX, (weighted_sum / total_relevance) * 50.0))


def score_content(
    content: Content,
    source: Optional[Source],
    source_topics: Sequence[SourceTopic],
    user_topics: Sequence[UserTopic],
    now: Optional[datetime] = None,
) -> ScoredItem:
    breakdown = ScoreBreakdown(
        base_score=base_score(source),
        topic_match=topic_match(source_topics, user_topics),
        recency_boost=recency_boost(content.published_at, now),
    )
    return ScoredItem(content=content, score=breakdown.total, breakdown=breakdown)


def _group_by_source(source_topics: Iterable[SourceTopic]) -> dict[str, list[SourceTopic]]:
    grouped: dict[str, list[SourceTopic]] = defaultdict(list)
    for st in source_topics:
        grouped[st.source_id].append(st)
    return grouped


def score_content_for_user(
    store: Store,
    user_id: str,
    content_id: str,
    now: Optional[datetime] = None,
) -> ScoredItem:
    content = store.get_content(content_id)
    if content is None:
        raise NotFoundError(f"Content {content_id} not found")
    source = store.get_sources([content.source_id]).get(content.source_id)
    source_topics = store.list_source_topics(source_ids=[content.source_id])
    user_topics = store.get_user_topics(user_id)
    return score_content(content, source, source_topics, user_topics, now)


def build_personalized_feed(
    store: Store,
    user_id: str,
    limit: int = FEED_DEFAULT_LIMIT,
    offset: int = 0,
    source_type: Optional[str] = None,
    topic_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> FeedPage:
    """
    Score the most recent content for one user and return a page of it.

    Over-fetches `limit * FEED_FETCH_MULTIPLIER` recent rows so scoring can
    promote older high-quality items, drops anything the user dismissed,
    and optionally narrows to one source type or one topic.
    """
    now = now or datetime.now(timezone.utc)
    limit = max(0, min(limit, FEED_MAX_LIMIT))
    offset = max(0, offset)

    contents = store.list_content(limit=limit * FEED_FETCH_MULTIPLIER)
    if not contents:
        return FeedPage()

    sources = store.get_sources(c.source_id for c in contents)
    if source_type:
        contents = [
            c
            for c in contents
            if (src := sources.get(c.source_id)) is not None and src.type == source_type
        ]

    source_topics = store.list_source_topics(
        source_ids={c.source_id for c in contents},
        topic_ids=[topic_id] if topic_id else None,
    )
    by_source = _group_by_source(source_topics)
    if topic_id:
        contents = [c for c in contents if c.source_id in by_source]

    interactions = store.get_interactions(user_id, [c.id for c in contents])
    contents = [
        c
        for c in contents
        if (i := interactions.get(c.id)) is None
        or i.status != InteractionStatus.DISMISSED
    ]

    user_topics = store.get_user_topics(user_id)
    scored = [
        score_content(
            c, sources.get(c.source_id), by_source.get(c.source_id, []), user_topics, now
        )
        for c in contents
    ]
    scored.sort(key=lambda s: s.score, reverse=True)

    page = scored[offset : offset + limit]
    return FeedPage(
        items=page,
        has_more=len(scored) > offset + limit,
        total=len(scored),
    )
