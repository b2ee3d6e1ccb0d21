"""
Hybrid search: keyword and semantic result lists merged into one ranking.

Keyword hits score by rank (len - index). A semantic hit that was also a
keyword hit adds 1.5x its semantic rank score; a semantic-only hit gets
0.8x, since embedding matches are noisier than exact terms.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable, Hashable, Mapping, Sequence
from typing import Optional, TypeVar

import numpy as np

from engine.constants import (
    SEARCH_CROSS_METHOD_BOOST,
    SEARCH_DEFAULT_LIMIT,
    SEARCH_KEYWORD_WEIGHT,
    SEARCH_MAX_LIMIT,
    SEARCH_SEMANTIC_ONLY_WEIGHT,
    SEMANTIC_MATCH_THRESHOLD,
)
from engine.embeddings import get_query_embedding
from engine.logging_config import get_logger
from engine.models import Content, SearchResponse
from engine.similarity import normalize_rows
from engine.store import Store

logger = get_logger(__name__)

T = TypeVar("T")

type QueryEmbedder = Callable[[str], Awaitable[list[float]]]

_TOKEN_RE = re.compile(r"[\w+#]+", re.UNICODE)


def _item_id(item: object) -> Hashable:
    if isinstance(item, Mapping):
        return item["id"]
    item_id = getattr(item, "id", None)
    if item_id is not None:
        return item_id
    return item  # type: ignore[return-value]


def _merged_scores(
    keyword_results: Sequence[T],
    semantic_results: Sequence[T],
    id_of: Callable[[T], Hashable],
) -> dict[Hashable, tuple[T, float]]:
    scored: dict[Hashable, tuple[T, float]] = {}

    n_kw = len(keyword_results)
    for index, item in enumerate(keyword_results):
        scored[id_of(item)] = (item, (n_kw - index) * SEARCH_KEYWORD_WEIGHT)

    n_sem = len(semantic_results)
    for index, item in enumerate(semantic_results):
        key = id_of(item)
        rank_score = float(n_sem - index)
        existing = scored.get(key)
        if existing is not None:
            scored[key] = (existing[0], existing[1] + rank_score * SEARCH_CROSS_METHOD_BOOST)
        else:
            scored[key] = (item, rank_score * SEARCH_SEMANTIC_ONLY_WEIGHT)
    return scored


def merge_search_results(
    keyword_results: Sequence[T],
    semantic_results: Sequence[T],
    limit: int,
    id_of: Callable[[T], Hashable] = _item_id,
) -> list[T]:
    """
    Union of both lists ordered by combined rank score, best first.

    Items are matched by id (mapping key "id", an `.id` attribute, or the
    item itself for plain id lists). On a cross-method hit the keyword
    item is kept. Scores are internal and not returned.
    """
    if limit <= 0:
        return []
    scored = _merged_scores(keyword_results, semantic_results, id_of)
    ranked = sorted(scored.values(), key=lambda pair: pair[1], reverse=True)
    return [item for item, _ in ranked[:limit]]


def _tokenize(text: str) -> list[str]:
    return [t.lower() for t in _TOKEN_RE.findall(text)]


def keyword_search(store: Store, query: str, limit: int) -> list[Content]:
    """Content containing every query term in title or body, newest first."""
    terms = set(_tokenize(query))
    if not terms or limit <= 0:
        return []
    hits: list[Content] = []
    for content in store.list_content():
        haystack = set(_tokenize(f"{content.title} {content.raw_text or ''}"))
        if terms <= haystack:
            hits.append(content)
            if len(hits) >= limit:
                break
    return hits


def rank_by_embedding(
    query_embedding: Sequence[float],
    candidates: Sequence[Content],
    limit: int,
    threshold: float = SEMANTIC_MATCH_THRESHOLD,
) -> list[Content]:
    """Candidates at or above `threshold` cosine similarity, most similar first."""
    pool = [
        c
        for c in candidates
        if c.embedding is not None and len(c.embedding) == len(query_embedding)
    ]
    if not pool or limit <= 0:
        return []
    normalized = normalize_rows([list(query_embedding)] + [c.embedding for c in pool])  # type: ignore[misc]
    if normalized is None:
        return []
    sims = normalized[1:] @ normalized[0]
    order = np.argsort(-sims, kind="stable")
    return [pool[int(i)] for i in order if sims[int(i)] >= threshold][:limit]


async def semantic_search(
    store: Store,
    query: str,
    limit: int,
    embed: QueryEmbedder = get_query_embedding,
) -> list[Content]:
    """Raises EmbeddingServiceError when the query cannot be embedded."""
    query_embedding = await embed(query)
    return rank_by_embedding(
        query_embedding, store.list_content(require_embedding=True), limit
    )


async def hybrid_search(
    store: Store,
    query: str,
    limit: Optional[int] = SEARCH_DEFAULT_LIMIT,
    embed: QueryEmbedder = get_query_embedding,
) -> SearchResponse:
    """
    Keyword and semantic search run concurrently, then merged.

    A semantic failure degrades to keyword-only results.
    """
    limit = min(SEARCH_DEFAULT_LIMIT if limit is None else limit, SEARCH_MAX_LIMIT)
    query = query.strip()
    if not query:
        return SearchResponse()

    keyword_task = asyncio.to_thread(keyword_search, store, query, limit)
    semantic_task = semantic_search(store, query, limit, embed)
    keyword_results, semantic_outcome = await asyncio.gather(
        keyword_task, semantic_task, return_exceptions=True
    )
    if isinstance(keyword_results, BaseException):
        raise keyword_results

    if isinstance(semantic_outcome, BaseException) and not isinstance(
        semantic_outcome, Exception
    ):
        raise semantic_outcome
    if isinstance(semantic_outcome, Exception):
        logger.warning("Semantic search failed, using keyword results only: %s", semantic_outcome)
        semantic_results: list[Content] = []
    else:
        semantic_results = semantic_outcome

    return SearchResponse(
        results=merge_search_results(keyword_results, semantic_results, limit),
        keyword_results=keyword_results,
        semantic_results=semantic_results,
    )
