"""
Emerging-theme detection over recent content embeddings.

Greedy single-seed clustering: each unassigned item seeds a cluster and
absorbs every other unassigned item similar enough to the seed itself (no
transitive chaining, no centroid). Clusters need at least two members and
THEME_MIN_SOURCES distinct sources; the most corroborated come first.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

import numpy as np

from engine.constants import (
    THEME_MAX_PER_TOPIC,
    THEME_MIN_CLUSTER_SIZE,
    THEME_MIN_CONTENT,
    THEME_MIN_SOURCES,
    THEME_SIMILARITY_THRESHOLD,
    THEME_TTL_DAYS,
    THEME_WINDOW_DAYS,
)
from engine.llm import fallback_theme_title, generate_theme_title
from engine.logging_config import get_logger
from engine.models import Content, Theme, ThemeCandidate, TitleResult, Topic
from engine.similarity import cosine_similarity, normalize_rows, similarities_to_seed
from engine.store import Store

logger = get_logger(__name__)

type TitleGenerator = Callable[[Sequence[str], str, Sequence[str]], Awaitable[TitleResult]]


@dataclass
class ContentCluster:
    content_ids: list[str] = field(default_factory=list)
    source_ids: set[str] = field(default_factory=set)
    titles: list[str] = field(default_factory=list)

    def add(self, item: Content) -> None:
        self.content_ids.append(item.id)
        self.source_ids.add(item.source_id)
        self.titles.append(item.title)

    @property
    def source_count(self) -> int:
        return len(self.source_ids)


def cluster_content_by_similarity(
    content: Sequence[Content],
    threshold: float = THEME_SIMILARITY_THRESHOLD,
    min_cluster_size: int = THEME_MIN_CLUSTER_SIZE,
) -> list[ContentCluster]:
    """
    Seed-relative greedy clustering in input order.

    Returns clusters with at least `min_cluster_size` members, sorted by
    distinct-source count descending (ties keep seed order). Items without
    an embedding never join or seed a cluster.
    """
    items = [c for c in content if c.embedding is not None]
    n = len(items)
    if n == 0:
        return []

    normalized = normalize_rows([c.embedding for c in items])  # type: ignore[misc]
    assigned = np.zeros(n, dtype=bool)
    clusters: list[ContentCluster] = []

    for seed in range(n):
        if assigned[seed]:
            continue
        assigned[seed] = True
        cluster = ContentCluster()
        cluster.add(items[seed])

        candidates = np.where(~assigned)[0]
        if normalized is not None:
            sims = similarities_to_seed(normalized, seed, candidates)
        else:
            seed_emb = items[seed].embedding
            sims = np.array(
                [cosine_similarity(seed_emb, items[i].embedding) for i in candidates],
                dtype=np.float64,
            )

        for idx in candidates[sims >= threshold]:
            cluster.add(items[int(idx)])
            assigned[idx] = True

        if len(cluster.content_ids) >= min_cluster_size:
            clusters.append(cluster)

    clusters.sort(key=lambda c: c.source_count, reverse=True)
    return clusters


async def _title_for(
    cluster: ContentCluster, topic_name: str, title_fn: TitleGenerator
) -> TitleResult:
    try:
        return await title_fn(cluster.titles, topic_name, cluster.content_ids)
    except Exception as e:
        logger.warning("Theme title generation failed for %s: %s", topic_name, e)
        return TitleResult(text=fallback_theme_title(topic_name), generated=False, error=str(e))


async def detect_themes_for_topic(
    store: Store,
    topic: Topic,
    now: Optional[datetime] = None,
    title_fn: TitleGenerator = generate_theme_title,
) -> list[ThemeCandidate]:
    """
    Candidate themes for one topic from the last THEME_WINDOW_DAYS of content.

    Pure with respect to the store: nothing is written here. Too little
    content, or no mapped sources, resolves to an empty list.
    """
    now = now or datetime.now(timezone.utc)

    mappings = store.list_source_topics(topic_ids=[topic.id])
    if not mappings:
        logger.info("No sources for topic %s", topic.id)
        return []

    content = store.list_content(
        source_ids=[m.source_id for m in mappings],
        published_after=now - timedelta(days=THEME_WINDOW_DAYS),
        require_embedding=True,
    )
    if len(content) < THEME_MIN_CONTENT:
        logger.info(
            "Not enough content for topic %s: %d items", topic.id, len(content)
        )
        return []

    clusters = [
        c
        for c in cluster_content_by_similarity(content)
        if c.source_count >= THEME_MIN_SOURCES
    ]
    if not clusters:
        logger.info("No valid clusters found for topic %s", topic.id)
        return []

    candidates: list[ThemeCandidate] = []
    for cluster in clusters[:THEME_MAX_PER_TOPIC]:
        title = await _title_for(cluster, topic.name, title_fn)
        candidates.append(
            ThemeCandidate(
                title=title.text,
                content_ids=list(cluster.content_ids),
                source_count=cluster.source_count,
                title_generated=title.generated,
            )
        )
    return candidates


def store_theme(
    store: Store,
    topic_id: str,
    candidate: ThemeCandidate,
    now: Optional[datetime] = None,
) -> Theme:
    now = now or datetime.now(timezone.utc)
    theme = Theme(
        id=str(uuid.uuid4()),
        topic_id=topic_id,
        title=candidate.title,
        content_ids=list(candidate.content_ids),
        detected_at=now,
        expires_at=now + timedelta(days=THEME_TTL_DAYS),
    )
    store.insert_theme(theme)
    return theme


def cleanup_expired_themes(store: Store, now: Optional[datetime] = None) -> int:
    return store.delete_expired_themes(now or datetime.now(timezone.utc))
