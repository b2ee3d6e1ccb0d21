from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from engine.config import get_store_path
from engine.constants import FEED_DEFAULT_LIMIT, SEARCH_DEFAULT_LIMIT
from engine.logging_config import get_logger
from engine.models import Content, InteractionStatus
from engine.scoring import build_personalized_feed
from engine.search import hybrid_search
from engine.store import InMemoryStore, Store
from engine.weights import record_interaction

logger = get_logger(__name__)

app = FastAPI(title="Signal Engine API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_store: Optional[InMemoryStore] = None
_store_path: Optional[Path] = None


def get_store() -> Store:
    global _store, _store_path
    if _store is None:
        _store_path = get_store_path()
        _store = InMemoryStore.load(_store_path)
    return _store


def _persist(store: Store) -> None:
    if isinstance(store, InMemoryStore) and store is _store and _store_path is not None:
        try:
            store.save(_store_path)
        except OSError as e:
            logger.warning("Failed to persist store snapshot: %s", e)


class FeedRequest(BaseModel):
    user_id: str
    limit: int = FEED_DEFAULT_LIMIT
    offset: int = 0
    source_type: Optional[str] = None
    topic_id: Optional[str] = None


class SearchRequest(BaseModel):
    query: Optional[str] = None
    limit: int = SEARCH_DEFAULT_LIMIT


class InteractionRequest(BaseModel):
    user_id: str
    content_id: str
    status: InteractionStatus


def _content_payload(content: Content) -> dict:
    payload = dict(content.to_dict())
    payload.pop("embedding", None)
    return payload


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/feed")
def feed_route(req: FeedRequest, store: Store = Depends(get_store)):
    page = build_personalized_feed(
        store,
        req.user_id,
        limit=req.limit,
        offset=req.offset,
        source_type=req.source_type,
        topic_id=req.topic_id,
    )
    return {
        "items": [item.to_dict() for item in page.items],
        "hasMore": page.has_more,
        "total": page.total,
    }


@app.post("/search")
async def search_route(req: SearchRequest, store: Store = Depends(get_store)):
    if not req.query or not isinstance(req.query, str):
        raise HTTPException(status_code=400, detail="Query parameter is required")
    response = await hybrid_search(store, req.query, req.limit)
    return {
        "results": [_content_payload(c) for c in response.results],
        "keywordResults": [_content_payload(c) for c in response.keyword_results],
        "semanticResults": [_content_payload(c) for c in response.semantic_results],
    }


@app.post("/interactions")
def interaction_route(req: InteractionRequest, store: Store = Depends(get_store)):
    if store.get_content(req.content_id) is None:
        raise HTTPException(status_code=404, detail="Content not found")
    interaction = record_interaction(store, req.user_id, req.content_id, req.status)
    _persist(store)
    return {"status": "success", "interaction": interaction.status.value}


@app.get("/themes")
def themes_route(topic_id: Optional[str] = None, store: Store = Depends(get_store)):
    themes = store.list_themes(topic_id=topic_id, active_at=datetime.now(timezone.utc))
    return {
        "themes": [
            {
                "id": t.id,
                "topic_id": t.topic_id,
                "title": t.title,
                "content_ids": t.content_ids,
                "detected_at": t.detected_at.isoformat(),
                "expires_at": t.expires_at.isoformat(),
            }
            for t in themes
        ]
    }
