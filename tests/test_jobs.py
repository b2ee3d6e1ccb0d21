from datetime import timedelta
from unittest.mock import patch

import pytest

from engine.jobs import run_digest_sweep, run_theme_detection
from engine.models import Theme, TitleResult

from conftest import make_content


async def _title(titles, topic_name, content_ids):
    return TitleResult(text=f"Trending in {topic_name}: Test", generated=True)


def _seed_theme(store):
    for cid, sid in (("a", "s1"), ("b", "s2"), ("c", "s3")):
        store.add_content(make_content(cid, sid, embedding=[1.0, 0.0]))


@pytest.mark.asyncio
async def test_theme_sweep_creates_and_cleans(store, now):
    _seed_theme(store)
    store.insert_theme(
        Theme("stale", "ai", "Old", ["x"], now - timedelta(days=9), now - timedelta(days=2))
    )

    result = await run_theme_detection(store, now=now, title_fn=_title)

    assert result.expired_themes_removed == 1
    assert result.topics_processed == 2  # custom topics are not swept
    assert result.topics_with_themes == 1
    assert result.themes_created == 1
    assert result.failed == 0
    themes = store.list_themes()
    assert [t.title for t in themes] == ["Trending in AI: Test"]
    assert themes[0].expires_at == now + timedelta(days=7)


@pytest.mark.asyncio
async def test_theme_sweep_isolates_topic_failures(store, now):
    _seed_theme(store)
    from engine import themes as themes_module

    real = themes_module.detect_themes_for_topic

    async def flaky(store_, topic, now_, title_fn):
        if topic.id == "climate":
            raise RuntimeError("boom")
        return await real(store_, topic, now_, title_fn)

    with patch("engine.jobs.detect_themes_for_topic", flaky):
        result = await run_theme_detection(store, now=now, title_fn=_title)

    assert result.failed == 1
    assert result.topics_processed == 1
    assert result.themes_created == 1


@pytest.mark.asyncio
async def test_theme_sweep_counts_store_failures(store, now):
    _seed_theme(store)
    with patch.object(store, "insert_theme", side_effect=RuntimeError("disk full")):
        result = await run_theme_detection(store, now=now, title_fn=_title)
    assert result.themes_created == 0
    assert result.topics_with_themes == 0
    assert result.failed == 1


def test_digest_sweep(store, now):
    store.add_content(make_content("c1", "s1"))

    result = run_digest_sweep(store, hour=7, now=now)

    # u3 is at 07:15 but has not finished onboarding
    assert result.users_processed == 1
    assert result.digests_generated == 1
    assert store.get_digest("u1", now.date()) is not None

    again = run_digest_sweep(store, hour=7, now=now)
    assert again.skipped == 1
    assert again.digests_generated == 0


def test_digest_sweep_defaults_to_current_hour(store, now):
    result = run_digest_sweep(store, now=now)
    assert result.hour == 12
    assert result.users_processed == 0


def test_digest_sweep_skips_users_without_content(store, now):
    result = run_digest_sweep(store, hour=7, now=now)
    assert result.skipped == 1
    assert result.failed == 0


def test_digest_sweep_isolates_failures(store, now):
    store.add_content(make_content("c1", "s1"))
    with patch("engine.digest.generate_user_digest", side_effect=RuntimeError("db")):
        result = run_digest_sweep(store, hour=7, now=now)
    assert result.failed == 1
    assert result.digests_generated == 0


def test_digest_sweep_reads_naive_now_as_utc(store, now):
    store.add_content(make_content("c1", "s1"))
    naive = now.replace(tzinfo=None, hour=7)
    result = run_digest_sweep(store, now=naive)
    assert result.hour == 7
    assert result.digests_generated == 1
