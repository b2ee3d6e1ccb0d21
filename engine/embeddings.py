"""Query-embedding collaborator for semantic search."""

from __future__ import annotations

import httpx

from engine.config import get_embedding_api_key
from engine.constants import (
    EMBEDDING_API_URL,
    EMBEDDING_MAX_INPUT_CHARS,
    EMBEDDING_MODEL,
    HTTP_CONNECT_TIMEOUT,
    HTTP_POOL_TIMEOUT,
    HTTP_READ_TIMEOUT,
    HTTP_WRITE_TIMEOUT,
)


class EmbeddingServiceError(RuntimeError):
    """Raised when a query embedding cannot be obtained."""


async def get_query_embedding(
    text: str, client: httpx.AsyncClient | None = None
) -> list[float]:
    api_key = get_embedding_api_key()
    if not api_key:
        raise EmbeddingServiceError("OPENAI_API_KEY not set")

    timeout = httpx.Timeout(
        connect=HTTP_CONNECT_TIMEOUT,
        read=HTTP_READ_TIMEOUT,
        write=HTTP_WRITE_TIMEOUT,
        pool=HTTP_POOL_TIMEOUT,
    )
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=timeout)
    try:
        resp = await client.post(
            EMBEDDING_API_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            json={"model": EMBEDDING_MODEL, "input": text[:EMBEDDING_MAX_INPUT_CHARS]},
        )
    except httpx.HTTPError as e:
        raise EmbeddingServiceError(f"Embedding request failed: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

    if resp.status_code != 200:
        raise EmbeddingServiceError(
            f"Embedding API error {resp.status_code}: {resp.text.strip()[:200]}"
        )
    try:
        embedding = resp.json()["data"][0]["embedding"]
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise EmbeddingServiceError("Invalid embedding response structure") from e
    if not isinstance(embedding, list) or not embedding:
        raise EmbeddingServiceError("Invalid embedding response structure")
    return [float(x) for x in embedding]
