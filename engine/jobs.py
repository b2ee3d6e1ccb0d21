"""
Periodic batch sweeps.

Each unit of work (one topic, one theme, one user) is isolated: a failure
is logged and counted, and the sweep moves on. Nothing partial is stored.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

from engine.constants import JOB_TOPIC_CONCURRENCY
from engine.digest import as_utc, assemble_digest, users_for_digest_hour
from engine.llm import generate_theme_title
from engine.logging_config import get_logger, log_context
from engine.models import DigestJobResult, ThemeJobResult, Topic
from engine.store import Store
from engine.themes import (
    TitleGenerator,
    cleanup_expired_themes,
    detect_themes_for_topic,
    store_theme,
)

logger = get_logger(__name__)


async def _process_topic(
    store: Store,
    topic: Topic,
    now: datetime,
    title_fn: TitleGenerator,
    result: ThemeJobResult,
) -> None:
    try:
        candidates = await detect_themes_for_topic(store, topic, now, title_fn)
    except Exception as e:
        logger.error("Failed to process topic %s: %s", topic.name, e)
        result.failed += 1
        return

    result.topics_processed += 1
    if not candidates:
        logger.info("No themes detected for topic: %s", topic.name)
        return

    created = 0
    for candidate in candidates:
        try:
            theme = store_theme(store, topic.id, candidate, now)
        except Exception as e:
            logger.error(
                "Failed to store theme %r for topic %s: %s", candidate.title, topic.name, e
            )
            result.failed += 1
            continue
        created += 1
        logger.info(
            "Created theme %r (%s) with %d items from %d sources",
            theme.title,
            theme.id,
            len(theme.content_ids),
            candidate.source_count,
        )
    result.themes_created += created
    if created:
        result.topics_with_themes += 1


async def run_theme_detection(
    store: Store,
    now: Optional[datetime] = None,
    title_fn: TitleGenerator = generate_theme_title,
    concurrency: int = JOB_TOPIC_CONCURRENCY,
) -> ThemeJobResult:
    """Clean up expired themes, then detect and store themes for every system topic."""
    now = now or datetime.now(timezone.utc)
    result = ThemeJobResult()

    with log_context(job="theme_detection"):
        try:
            result.expired_themes_removed = cleanup_expired_themes(store, now)
        except Exception as e:
            logger.error("Failed to clean up expired themes: %s", e)
        logger.info("Cleaned up %d expired themes", result.expired_themes_removed)

        topics = store.list_topics(system_only=True)
        logger.info("Processing %d topics", len(topics))
        sem = asyncio.Semaphore(max(1, concurrency))

        async def bounded(topic: Topic) -> None:
            async with sem:
                with log_context(topic=topic.id):
                    await _process_topic(store, topic, now, title_fn, result)

        await asyncio.gather(*(bounded(t) for t in topics))
        logger.info("Theme detection job completed: %s", result)
    return result


def run_digest_sweep(
    store: Store,
    hour: Optional[int] = None,
    now: Optional[datetime] = None,
) -> DigestJobResult:
    """Generate today's digest for each user whose digest time falls in `hour`."""
    now = now or datetime.now(timezone.utc)
    hour = as_utc(now).hour if hour is None else hour
    result = DigestJobResult(hour=hour)

    with log_context(job="digest", hour=hour):
        users = users_for_digest_hour(store, hour)
        result.users_processed = len(users)
        logger.info("Found %d users for hour %d", len(users), hour)

        for user in users:
            try:
                digest = assemble_digest(store, user.id, now)
            except Exception as e:
                logger.error("Failed to generate digest for user %s: %s", user.id, e)
                result.failed += 1
                continue

            if digest is None:
                result.skipped += 1
                continue
            logger.info(
                "Created digest %s for user %s with %d items",
                digest.id,
                user.id,
                len(digest.content_ids),
            )
            result.digests_generated += 1

        logger.info("Digest job completed: %s", result)
    return result
