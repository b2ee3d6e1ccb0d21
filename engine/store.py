"""
Storage collaborator for the engine.

`Store` is the seam the engine talks to; `InMemoryStore` backs tests, the
CLI and the HTTP app, and can snapshot itself to a JSON file.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

from engine.cache_utils import atomic_write_json, read_json_dict
from engine.logging_config import get_logger
from engine.models import (
    Content,
    Digest,
    InteractionKind,
    InteractionStatus,
    Source,
    SourceTopic,
    Theme,
    Topic,
    User,
    UserContentInteraction,
    UserTopic,
)
from engine.weights import plan_weight_updates

logger = get_logger(__name__)

SNAPSHOT_VERSION = 1


class StoreError(RuntimeError):
    """Base class for storage failures."""


class NotFoundError(StoreError):
    """Raised when a referenced row does not exist."""


class DigestExistsError(StoreError):
    """Raised when a digest for (user_id, date) was already stored."""


class Store(ABC):
    """Read access to content/taxonomy rows, write access to derived rows."""

    @abstractmethod
    def list_topics(self, system_only: bool = True) -> list[Topic]:
        raise NotImplementedError

    @abstractmethod
    def get_content(self, content_id: str) -> Optional[Content]:
        raise NotImplementedError

    @abstractmethod
    def list_content(
        self,
        *,
        source_ids: Optional[Iterable[str]] = None,
        published_after: Optional[datetime] = None,
        require_embedding: bool = False,
        limit: Optional[int] = None,
    ) -> list[Content]:
        """Content rows, newest first."""
        raise NotImplementedError

    @abstractmethod
    def get_sources(self, source_ids: Iterable[str]) -> dict[str, Source]:
        raise NotImplementedError

    @abstractmethod
    def list_source_topics(
        self,
        *,
        source_ids: Optional[Iterable[str]] = None,
        topic_ids: Optional[Iterable[str]] = None,
    ) -> list[SourceTopic]:
        raise NotImplementedError

    @abstractmethod
    def get_user_topics(
        self, user_id: str, topic_ids: Optional[Iterable[str]] = None
    ) -> list[UserTopic]:
        raise NotImplementedError

    @abstractmethod
    def upsert_user_topics(self, records: Sequence[UserTopic]) -> None:
        raise NotImplementedError

    @abstractmethod
    def adjust_user_topic_weights(
        self, user_id: str, topic_ids: Sequence[str], kind: InteractionKind
    ) -> list[UserTopic]:
        """Read, adjust and write a user's weights as one atomic step."""
        raise NotImplementedError

    @abstractmethod
    def insert_theme(self, theme: Theme) -> str:
        raise NotImplementedError

    @abstractmethod
    def list_themes(
        self, topic_id: Optional[str] = None, active_at: Optional[datetime] = None
    ) -> list[Theme]:
        raise NotImplementedError

    @abstractmethod
    def delete_expired_themes(self, now: datetime) -> int:
        raise NotImplementedError

    @abstractmethod
    def get_digest(self, user_id: str, day: date) -> Optional[Digest]:
        raise NotImplementedError

    @abstractmethod
    def insert_digest(self, digest: Digest) -> str:
        raise NotImplementedError

    @abstractmethod
    def list_users(self, onboarded_only: bool = False) -> list[User]:
        raise NotImplementedError

    @abstractmethod
    def upsert_interaction(self, interaction: UserContentInteraction) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_interactions(
        self, user_id: str, content_ids: Optional[Iterable[str]] = None
    ) -> dict[str, UserContentInteraction]:
        raise NotImplementedError


class InMemoryStore(Store):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.topics: dict[str, Topic] = {}
        self.sources: dict[str, Source] = {}
        self.content: dict[str, Content] = {}
        self.source_topics: dict[tuple[str, str], SourceTopic] = {}
        self.users: dict[str, User] = {}
        self.user_topics: dict[tuple[str, str], UserTopic] = {}
        self.interactions: dict[tuple[str, str], UserContentInteraction] = {}
        self.themes: dict[str, Theme] = {}
        self.digests: dict[tuple[str, date], Digest] = {}

    # -- ingestion-side writers (rows the engine only reads) ---------------

    def add_topic(self, topic: Topic) -> None:
        with self._lock:
            self.topics[topic.id] = topic

    def add_source(self, source: Source) -> None:
        with self._lock:
            self.sources[source.id] = source

    def add_content(self, content: Content) -> None:
        with self._lock:
            self.content[content.id] = content

    def add_source_topic(self, mapping: SourceTopic) -> None:
        with self._lock:
            self.source_topics[(mapping.source_id, mapping.topic_id)] = mapping

    def add_user(self, user: User) -> None:
        with self._lock:
            self.users[user.id] = user

    # -- reads ---------------------------------------------------------------

    def list_topics(self, system_only: bool = True) -> list[Topic]:
        with self._lock:
            return [t for t in self.topics.values() if t.is_system or not system_only]

    def get_content(self, content_id: str) -> Optional[Content]:
        return self.content.get(content_id)

    def list_content(
        self,
        *,
        source_ids: Optional[Iterable[str]] = None,
        published_after: Optional[datetime] = None,
        require_embedding: bool = False,
        limit: Optional[int] = None,
    ) -> list[Content]:
        wanted = set(source_ids) if source_ids is not None else None
        with self._lock:
            rows = [
                c
                for c in self.content.values()
                if (wanted is None or c.source_id in wanted)
                and (published_after is None or c.published_at >= published_after)
                and (not require_embedding or c.embedding is not None)
            ]
        rows.sort(key=lambda c: c.published_at, reverse=True)
        return rows[:limit] if limit is not None else rows

    def get_sources(self, source_ids: Iterable[str]) -> dict[str, Source]:
        with self._lock:
            return {sid: self.sources[sid] for sid in set(source_ids) if sid in self.sources}

    def list_source_topics(
        self,
        *,
        source_ids: Optional[Iterable[str]] = None,
        topic_ids: Optional[Iterable[str]] = None,
    ) -> list[SourceTopic]:
        sources = set(source_ids) if source_ids is not None else None
        topics = set(topic_ids) if topic_ids is not None else None
        with self._lock:
            return [
                st
                for st in self.source_topics.values()
                if (sources is None or st.source_id in sources)
                and (topics is None or st.topic_id in topics)
            ]

    def get_user_topics(
        self, user_id: str, topic_ids: Optional[Iterable[str]] = None
    ) -> list[UserTopic]:
        topics = set(topic_ids) if topic_ids is not None else None
        with self._lock:
            return [
                replace(ut)
                for (uid, tid), ut in self.user_topics.items()
                if uid == user_id and (topics is None or tid in topics)
            ]

    def list_themes(
        self, topic_id: Optional[str] = None, active_at: Optional[datetime] = None
    ) -> list[Theme]:
        with self._lock:
            rows = [
                t
                for t in self.themes.values()
                if (topic_id is None or t.topic_id == topic_id)
                and (active_at is None or t.expires_at >= active_at)
            ]
        rows.sort(key=lambda t: t.detected_at, reverse=True)
        return rows

    def get_digest(self, user_id: str, day: date) -> Optional[Digest]:
        return self.digests.get((user_id, day))

    def list_users(self, onboarded_only: bool = False) -> list[User]:
        with self._lock:
            return [
                u for u in self.users.values() if u.onboarding_completed or not onboarded_only
            ]

    def get_interactions(
        self, user_id: str, content_ids: Optional[Iterable[str]] = None
    ) -> dict[str, UserContentInteraction]:
        wanted = set(content_ids) if content_ids is not None else None
        with self._lock:
            return {
                cid: i
                for (uid, cid), i in self.interactions.items()
                if uid == user_id and (wanted is None or cid in wanted)
            }

    # -- writes --------------------------------------------------------------

    def upsert_user_topics(self, records: Sequence[UserTopic]) -> None:
        with self._lock:
            for r in records:
                self.user_topics[(r.user_id, r.topic_id)] = replace(r)

    def adjust_user_topic_weights(
        self, user_id: str, topic_ids: Sequence[str], kind: InteractionKind
    ) -> list[UserTopic]:
        with self._lock:
            existing = {
                tid: ut.weight
                for (uid, tid), ut in self.user_topics.items()
                if uid == user_id
            }
            records = plan_weight_updates(user_id, topic_ids, existing, kind)
            self.upsert_user_topics(records)
            return records

    def insert_theme(self, theme: Theme) -> str:
        with self._lock:
            if theme.id in self.themes:
                raise StoreError(f"Theme {theme.id} already exists")
            self.themes[theme.id] = replace(theme, content_ids=list(theme.content_ids))
        return theme.id

    def delete_expired_themes(self, now: datetime) -> int:
        with self._lock:
            expired = [tid for tid, t in self.themes.items() if t.expires_at < now]
            for tid in expired:
                del self.themes[tid]
        return len(expired)

    def insert_digest(self, digest: Digest) -> str:
        key = (digest.user_id, digest.date)
        with self._lock:
            if key in self.digests:
                raise DigestExistsError(
                    f"Digest for user {digest.user_id} on {digest.date} already exists"
                )
            self.digests[key] = replace(digest, content_ids=list(digest.content_ids))
        return digest.id

    def upsert_interaction(self, interaction: UserContentInteraction) -> None:
        key = (interaction.user_id, interaction.content_id)
        with self._lock:
            previous = self.interactions.get(key)
            if previous is not None:
                interaction = replace(
                    interaction,
                    read_at=interaction.read_at or previous.read_at,
                    saved_at=interaction.saved_at or previous.saved_at,
                )
            self.interactions[key] = interaction

    # -- snapshots -----------------------------------------------------------

    def to_snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "version": SNAPSHOT_VERSION,
                "topics": [vars(t).copy() for t in self.topics.values()],
                "sources": [vars(s).copy() for s in self.sources.values()],
                "content": [c.to_dict() for c in self.content.values()],
                "source_topics": [vars(st).copy() for st in self.source_topics.values()],
                "users": [vars(u).copy() for u in self.users.values()],
                "user_topics": [vars(ut).copy() for ut in self.user_topics.values()],
                "interactions": [
                    {
                        "user_id": i.user_id,
                        "content_id": i.content_id,
                        "status": i.status.value,
                        "read_at": _iso(i.read_at),
                        "saved_at": _iso(i.saved_at),
                    }
                    for i in self.interactions.values()
                ],
                "themes": [
                    {
                        "id": t.id,
                        "topic_id": t.topic_id,
                        "title": t.title,
                        "content_ids": list(t.content_ids),
                        "detected_at": t.detected_at.isoformat(),
                        "expires_at": t.expires_at.isoformat(),
                    }
                    for t in self.themes.values()
                ],
                "digests": [
                    {
                        "id": d.id,
                        "user_id": d.user_id,
                        "date": d.date.isoformat(),
                        "content_ids": list(d.content_ids),
                        "sent_at": _iso(d.sent_at),
                        "opened_at": _iso(d.opened_at),
                    }
                    for d in self.digests.values()
                ],
            }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> InMemoryStore:
        store = cls()
        for t in data.get("topics", []):
            store.add_topic(Topic(**t))
        for s in data.get("sources", []):
            store.add_source(Source(**s))
        for c in data.get("content", []):
            store.add_content(Content.from_dict(c))
        for st in data.get("source_topics", []):
            store.add_source_topic(SourceTopic(**st))
        for u in data.get("users", []):
            store.add_user(User(**u))
        store.upsert_user_topics([UserTopic(**ut) for ut in data.get("user_topics", [])])
        for i in data.get("interactions", []):
            store.interactions[(i["user_id"], i["content_id"])] = UserContentInteraction(
                user_id=i["user_id"],
                content_id=i["content_id"],
                status=InteractionStatus(i.get("status", "unread")),
                read_at=_parse_dt(i.get("read_at")),
                saved_at=_parse_dt(i.get("saved_at")),
            )
        for t in data.get("themes", []):
            store.themes[t["id"]] = Theme(
                id=t["id"],
                topic_id=t["topic_id"],
                title=t["title"],
                content_ids=list(t["content_ids"]),
                detected_at=datetime.fromisoformat(t["detected_at"]),
                expires_at=datetime.fromisoformat(t["expires_at"]),
            )
        for d in data.get("digests", []):
            digest = Digest(
                id=d["id"],
                user_id=d["user_id"],
                date=date.fromisoformat(d["date"]),
                content_ids=list(d["content_ids"]),
                sent_at=_parse_dt(d.get("sent_at")),
                opened_at=_parse_dt(d.get("opened_at")),
            )
            store.digests[(digest.user_id, digest.date)] = digest
        return store

    def save(self, path: Path) -> None:
        atomic_write_json(path, self.to_snapshot())

    @classmethod
    def load(cls, path: Path) -> InMemoryStore:
        data = read_json_dict(path)
        if not data:
            logger.info("No snapshot at %s, starting with an empty store", path)
            return cls()
        return cls.from_snapshot(data)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None
