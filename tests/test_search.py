import asyncio

import pytest
from hypothesis import given, strategies as st

from engine.embeddings import EmbeddingServiceError
from engine.search import (
    hybrid_search,
    keyword_search,
    merge_search_results,
    rank_by_embedding,
)

from conftest import make_content


def test_merge_reference_example():
    merged = merge_search_results(["A", "B", "C"], ["B", "D"], limit=10)
    assert merged == ["B", "A", "C", "D"]


def test_merge_limit_truncates():
    assert merge_search_results(["A", "B", "C"], ["B", "D"], limit=2) == ["B", "A"]
    assert merge_search_results(["A"], ["B"], limit=0) == []


def test_merge_keeps_keyword_item_on_cross_hit():
    kw = {"id": "x", "from": "keyword"}
    sem = {"id": "x", "from": "semantic"}
    assert merge_search_results([kw], [sem], limit=5) == [kw]


ids = st.lists(st.sampled_from("ABCDEFGHIJ"), unique=True, max_size=10)


@given(ids, ids, st.integers(0, 25))
def test_merge_is_a_bounded_union(keyword, semantic, limit):
    merged = merge_search_results(keyword, semantic, limit)
    union = set(keyword) | set(semantic)
    assert len(merged) == len(set(merged)) == min(limit, len(union))
    assert set(merged) <= union


@given(ids, ids)
def test_item_first_in_both_lists_ranks_first(keyword, semantic):
    if not keyword or not semantic or keyword[0] != semantic[0]:
        return
    assert merge_search_results(keyword, semantic, 1) == [keyword[0]]


def test_merge_empty_inputs():
    assert merge_search_results([], [], limit=5) == []
    assert merge_search_results([], ["a", "b"], limit=5) == ["a", "b"]


def test_keyword_search_requires_every_term(store):
    store.add_content(make_content("c1", "s1", title="Open source LLM release"))
    store.add_content(make_content("c2", "s2", title="LLM pricing", raw_text="open weights"))
    store.add_content(make_content("c3", "s3", title="Climate report"))

    hits = keyword_search(store, "open LLM", limit=10)
    assert [c.id for c in hits] == ["c1", "c2"]
    assert keyword_search(store, "   ", limit=10) == []


def test_rank_by_embedding_threshold_and_order():
    candidates = [
        make_content("far", "s1", embedding=[0.0, 1.0]),
        make_content("near", "s1", embedding=[1.0, 0.1]),
        make_content("exact", "s1", embedding=[1.0, 0.0]),
        make_content("none", "s1"),
        make_content("wrong-dim", "s1", embedding=[1.0, 0.0, 0.0]),
    ]
    ranked = rank_by_embedding([1.0, 0.0], candidates, limit=10)
    assert [c.id for c in ranked] == ["exact", "near"]


def _embedder(vector):
    async def embed(text):
        return vector

    return embed


@pytest.mark.asyncio
async def test_hybrid_search_merges_both_methods(store):
    store.add_content(make_content("kw", "s1", title="rust async runtime", embedding=[0.0, 1.0]))
    store.add_content(make_content("both", "s2", title="rust compiler", embedding=[1.0, 0.0]))
    store.add_content(make_content("sem", "s3", title="borrow checker", embedding=[1.0, 0.05]))

    response = await hybrid_search(store, "rust", embed=_embedder([1.0, 0.0]))

    assert {c.id for c in response.keyword_results} == {"kw", "both"}
    assert [c.id for c in response.semantic_results] == ["both", "sem"]
    assert response.results[0].id == "both"
    assert {c.id for c in response.results} == {"kw", "both", "sem"}


@pytest.mark.asyncio
async def test_semantic_failure_degrades_to_keyword(store):
    store.add_content(make_content("c1", "s1", title="rust news"))

    async def broken(text):
        raise EmbeddingServiceError("no key")

    response = await hybrid_search(store, "rust", embed=broken)
    assert [c.id for c in response.results] == ["c1"]
    assert response.semantic_results == []


@pytest.mark.asyncio
async def test_cancellation_is_not_swallowed(store):
    async def cancelled(text):
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await hybrid_search(store, "rust", embed=cancelled)


@pytest.mark.asyncio
async def test_blank_query_returns_empty(store):
    async def never(text):
        raise AssertionError("should not embed")

    response = await hybrid_search(store, "  ", embed=never)
    assert response.results == []


@pytest.mark.asyncio
async def test_limit_is_capped(store):
    for i in range(120):
        store.add_content(make_content(f"c{i}", "s1", hours_ago=i + 1, title="rust"))
    response = await hybrid_search(store, "rust", limit=500, embed=_embedder([1.0]))
    assert len(response.results) == 100
    assert len(response.keyword_results) == 100
