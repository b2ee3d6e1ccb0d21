from datetime import datetime, timedelta, timezone

import pytest

from engine import config, llm
from engine.models import Content, Source, SourceTopic, Topic, User, UserTopic
from engine.store import InMemoryStore

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """
    Keep every test away from the real user config, API keys and the
    on-disk theme title cache.
    """
    monkeypatch.setattr(config, "CONFIG_DIR", tmp_path / "config")
    monkeypatch.setattr(config, "CONFIG_FILE", tmp_path / "config" / "config.json")
    monkeypatch.setattr(llm, "THEME_TITLE_CACHE", tmp_path / "theme_titles.json")
    monkeypatch.delenv(config.LLM_API_KEY_ENV, raising=False)
    monkeypatch.delenv(config.EMBEDDING_API_KEY_ENV, raising=False)
    monkeypatch.delenv(config.STORE_PATH_ENV, raising=False)


@pytest.fixture
def now() -> datetime:
    return NOW


def make_content(
    content_id: str,
    source_id: str,
    hours_ago: float = 1.0,
    embedding: list[float] | None = None,
    title: str | None = None,
    raw_text: str | None = None,
) -> Content:
    return Content(
        id=content_id,
        source_id=source_id,
        title=title or f"Title {content_id}",
        published_at=NOW - timedelta(hours=hours_ago),
        content_type="article",
        raw_text=raw_text,
        embedding=embedding,
    )


@pytest.fixture
def store() -> InMemoryStore:
    """
    Two topics, four sources:
      s1, s2, s3 -> ai ; s4 -> ai (0.5) and climate (1.0)
    """
    s = InMemoryStore()
    s.add_topic(Topic(id="ai", name="AI"))
    s.add_topic(Topic(id="climate", name="Climate"))
    s.add_topic(Topic(id="custom", name="Custom", is_system=False))
    for sid, quality in (("s1", 90), ("s2", 70), ("s3", 60), ("s4", None)):
        s.add_source(Source(id=sid, name=f"Source {sid}", type="blog", quality_score=quality))
    for sid in ("s1", "s2", "s3"):
        s.add_source_topic(SourceTopic(source_id=sid, topic_id="ai", relevance=1.0))
    s.add_source_topic(SourceTopic(source_id="s4", topic_id="ai", relevance=0.5))
    s.add_source_topic(SourceTopic(source_id="s4", topic_id="climate", relevance=1.0))
    s.add_user(User(id="u1", email="u1@example.com", digest_time="07:00", onboarding_completed=True))
    s.add_user(User(id="u2", email="u2@example.com", digest_time="09:30", onboarding_completed=True))
    s.add_user(User(id="u3", email="u3@example.com", digest_time="07:15", onboarding_completed=False))
    s.upsert_user_topics([UserTopic(user_id="u1", topic_id="ai", weight=1.0)])
    return s
