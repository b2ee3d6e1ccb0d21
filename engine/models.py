"""Typed data models for the content-intelligence engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, TypedDict

from engine.constants import (
    DEFAULT_DIGEST_TIME,
    WEIGHT_ADJUST_DISMISS,
    WEIGHT_ADJUST_READ,
    WEIGHT_ADJUST_SAVE,
    WEIGHT_DEFAULT,
)


class InteractionStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"
    SAVED = "saved"
    DISMISSED = "dismissed"


class InteractionKind(Enum):
    """A learning event, carrying the topic-weight adjustment it applies."""

    READ = "read"
    SAVE = "save"
    DISMISS = "dismiss"

    @property
    def adjustment(self) -> float:
        return _ADJUSTMENTS[self]

    @classmethod
    def from_status(cls, status: InteractionStatus) -> Optional[InteractionKind]:
        """Map a stored interaction status to a learning event (unread -> None)."""
        return _STATUS_KINDS.get(InteractionStatus(status))


_ADJUSTMENTS: dict[InteractionKind, float] = {
    InteractionKind.READ: WEIGHT_ADJUST_READ,
    InteractionKind.SAVE: WEIGHT_ADJUST_SAVE,
    InteractionKind.DISMISS: WEIGHT_ADJUST_DISMISS,
}

_STATUS_KINDS: dict[InteractionStatus, InteractionKind] = {
    InteractionStatus.READ: InteractionKind.READ,
    InteractionStatus.SAVED: InteractionKind.SAVE,
    InteractionStatus.DISMISSED: InteractionKind.DISMISS,
}


class ContentDict(TypedDict):
    """Serialized Content payload for snapshots and API boundaries."""

    id: str
    source_id: str
    title: str
    published_at: str
    content_type: str
    raw_text: Optional[str]
    embedding: Optional[list[float]]


@dataclass
class Content:
    """An ingested item (episode, article, video, post)."""

    id: str
    source_id: str
    title: str
    published_at: datetime
    content_type: str = "article"
    raw_text: Optional[str] = None
    embedding: Optional[list[float]] = None

    @classmethod
    def from_dict(cls, d: ContentDict) -> Content:
        return cls(
            id=str(d["id"]),
            source_id=str(d["source_id"]),
            title=str(d.get("title", "")),
            published_at=datetime.fromisoformat(d["published_at"]),
            content_type=str(d.get("content_type", "article")),
            raw_text=d.get("raw_text"),
            embedding=list(d["embedding"]) if d.get("embedding") is not None else None,
        )

    def to_dict(self) -> ContentDict:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "title": self.title,
            "published_at": self.published_at.isoformat(),
            "content_type": self.content_type,
            "raw_text": self.raw_text,
            "embedding": self.embedding,
        }


@dataclass
class Source:
    id: str
    name: str
    type: str = "blog"
    quality_score: Optional[int] = None  # 0-100, None falls back to the default
    url: Optional[str] = None


@dataclass
class Topic:
    id: str
    name: str
    slug: Optional[str] = None
    is_system: bool = True


@dataclass(frozen=True)
class SourceTopic:
    source_id: str
    topic_id: str
    relevance: float = 1.0


@dataclass
class UserTopic:
    user_id: str
    topic_id: str
    weight: float = WEIGHT_DEFAULT


@dataclass
class User:
    id: str
    email: str
    digest_time: str = DEFAULT_DIGEST_TIME  # "HH:MM" in UTC
    onboarding_completed: bool = False

    @property
    def digest_hour(self) -> int:
        try:
            return int(self.digest_time.split(":")[0])
        except (ValueError, AttributeError):
            return int(DEFAULT_DIGEST_TIME.split(":")[0])


@dataclass
class UserContentInteraction:
    user_id: str
    content_id: str
    status: InteractionStatus = InteractionStatus.UNREAD
    read_at: Optional[datetime] = None
    saved_at: Optional[datetime] = None


@dataclass
class Theme:
    """A detected cross-source cluster. Write-once."""

    id: str
    topic_id: str
    title: str
    content_ids: list[str]
    detected_at: datetime
    expires_at: datetime


@dataclass
class Digest:
    """One user's daily reading list; opened_at is the only mutable field."""

    id: str
    user_id: str
    date: date
    content_ids: list[str]
    sent_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None


@dataclass(frozen=True)
class ThemeCandidate:
    title: str
    content_ids: list[str]
    source_count: int
    title_generated: bool = False


@dataclass(frozen=True)
class TitleResult:
    """Outcome of a title-generation call; `text` is always usable."""

    text: str
    generated: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class ScoreBreakdown:
    base_score: float
    topic_match: float
    recency_boost: float

    @property
    def total(self) -> float:
        return self.base_score + self.topic_match + self.recency_boost


@dataclass(frozen=True)
class ScoredItem:
    """A content item annotated with its personalization score."""

    content: Content
    score: float
    breakdown: ScoreBreakdown

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = dict(self.content.to_dict())
        payload.pop("embedding", None)
        payload["personalization_score"] = self.score
        payload["score_breakdown"] = {
            "base_score": self.breakdown.base_score,
            "topic_match": self.breakdown.topic_match,
            "recency_boost": self.breakdown.recency_boost,
        }
        return payload


@dataclass
class FeedPage:
    items: list[ScoredItem] = field(default_factory=list)
    has_more: bool = False
    total: int = 0


@dataclass
class SearchResponse:
    results: list[Content] = field(default_factory=list)
    keyword_results: list[Content] = field(default_factory=list)
    semantic_results: list[Content] = field(default_factory=list)


@dataclass
class ThemeJobResult:
    topics_processed: int = 0
    topics_with_themes: int = 0
    themes_created: int = 0
    expired_themes_removed: int = 0
    failed: int = 0


@dataclass
class DigestJobResult:
    hour: int
    users_processed: int = 0
    digests_generated: int = 0
    skipped: int = 0
    failed: int = 0
