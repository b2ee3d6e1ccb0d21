"""
Implicit topic-weight learning from user interactions.

An interaction on one item touches every topic its source contributes to.
Weights stay inside [WEIGHT_MIN, WEIGHT_MAX]; a dismissal never starts
tracking a topic the user has not engaged with positively.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from engine.constants import WEIGHT_DEFAULT, WEIGHT_MAX, WEIGHT_MIN
from engine.logging_config import get_logger
from engine.models import (
    InteractionKind,
    InteractionStatus,
    UserContentInteraction,
    UserTopic,
)

if TYPE_CHECKING:
    from engine.store import Store

logger = get_logger(__name__)


def clamp_weight(weight: float) -> float:
    return max(WEIGHT_MIN, min(WEIGHT_MAX, weight))


def next_weight(current: float | None, kind: InteractionKind) -> float | None:
    """New weight after one event, or None when nothing should be written."""
    adjustment = kind.adjustment
    if current is not None:
        return clamp_weight(current + adjustment)
    if adjustment > 0:
        return clamp_weight(WEIGHT_DEFAULT + adjustment)
    return None


def plan_weight_updates(
    user_id: str,
    topic_ids: Iterable[str],
    existing: Mapping[str, float],
    kind: InteractionKind,
) -> list[UserTopic]:
    """Upsert records for one interaction, keyed by (user_id, topic_id)."""
    records: list[UserTopic] = []
    seen: set[str] = set()
    for topic_id in topic_ids:
        if topic_id in seen:
            continue
        seen.add(topic_id)
        weight = next_weight(existing.get(topic_id), kind)
        if weight is not None:
            records.append(UserTopic(user_id=user_id, topic_id=topic_id, weight=weight))
    return records


def update_topic_weights_for_interaction(
    store: Store,
    user_id: str,
    content_id: str,
    kind: InteractionKind,
) -> list[UserTopic]:
    """
    Adjust the user's weights for every topic of the content's source.

    Best-effort: storage failures are logged and an empty list returned,
    so the interaction that triggered learning is never blocked.
    """
    content = store.get_content(content_id)
    if content is None:
        logger.info("Content %s not found, skipping weight update", content_id)
        return []

    topic_ids = [
        st.topic_id for st in store.list_source_topics(source_ids=[content.source_id])
    ]
    if not topic_ids:
        return []

    try:
        records = store.adjust_user_topic_weights(user_id, topic_ids, kind)
    except Exception as e:
        logger.warning(
            "Failed to update topic weights for user %s: %s", user_id, e
        )
        return []

    logger.debug(
        "Applied %s to %d topic weights for user %s",
        kind.value,
        len(records),
        user_id,
    )
    return records


def record_interaction(
    store: Store,
    user_id: str,
    content_id: str,
    status: InteractionStatus,
    now: datetime | None = None,
) -> UserContentInteraction:
    """Persist the user's action, then learn from it (fire-and-forget)."""
    now = now or datetime.now(timezone.utc)
    status = InteractionStatus(status)
    interaction = UserContentInteraction(
        user_id=user_id,
        content_id=content_id,
        status=status,
        read_at=now if status == InteractionStatus.READ else None,
        saved_at=now if status == InteractionStatus.SAVED else None,
    )
    store.upsert_interaction(interaction)

    kind = InteractionKind.from_status(status)
    if kind is not None:
        try:
            update_topic_weights_for_interaction(store, user_id, content_id, kind)
        except Exception as e:
            logger.warning("Weight learning failed for %s/%s: %s", user_id, content_id, e)
    return interaction
