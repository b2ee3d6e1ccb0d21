"""
Text-generation collaborator used for theme titles.

Calls go through a shared rate limiter and tenacity retries. Callers get a
TitleResult whose text is always usable: a failed or empty generation
falls back to the plain "Trending in {topic}" title.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Sequence
from datetime import datetime
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Optional

import httpx
from aiolimiter import AsyncLimiter
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from engine.cache_utils import atomic_write_json, read_json_dict
from engine.config import get_llm_api_key
from engine.constants import (
    HTTP_CONNECT_TIMEOUT,
    HTTP_POOL_TIMEOUT,
    HTTP_READ_TIMEOUT,
    HTTP_WRITE_TIMEOUT,
    LLM_429_COOLDOWN_BASE,
    LLM_429_COOLDOWN_MAX,
    LLM_API_URL,
    LLM_API_VERSION,
    LLM_HTTP_USER_AGENT,
    LLM_MAX_RETRIES,
    LLM_MIN_REQUEST_INTERVAL,
    LLM_TEMPERATURE,
    LLM_THEME_TITLE_MAX_TOKENS,
    LLM_THEME_TITLE_MODEL,
    LLM_THEME_TITLE_PROMPT_VERSION,
    RATE_LIMIT_ERROR_BACKOFF_BASE,
    RATE_LIMIT_ERROR_BACKOFF_MAX,
    THEME_SUBTITLE_MAX_CHARS,
    THEME_TITLE_CACHE_PATH,
    THEME_TITLE_MAX_CHARS,
    THEME_TITLE_PREFIX,
    THEME_TITLE_SAMPLES,
)
from engine.logging_config import get_logger
from engine.models import TitleResult

logger = get_logger(__name__)


class LLMQuotaError(RuntimeError):
    """Raised when the provider reports a non-retryable quota/billing error."""


class LLMRetryableError(RuntimeError):
    """Raised for retryable provider errors."""

    def __init__(
        self, message: str, cooldown: float | None = None, is_rate_limit: bool = False
    ) -> None:
        super().__init__(message)
        self.cooldown = cooldown
        self.is_rate_limit = is_rate_limit


_LLM_LIMITER: AsyncLimiter = AsyncLimiter(1, max(0.1, float(LLM_MIN_REQUEST_INTERVAL)))

THEME_TITLE_CACHE: Path = Path(THEME_TITLE_CACHE_PATH)


def build_payload(
    model: str,
    prompt: str,
    max_tokens: int,
    temperature: float = LLM_TEMPERATURE,
) -> dict[str, object]:
    return {
        "model": model,
        "max_tokens": int(max_tokens),
        "temperature": temperature,
        "messages": [{"role": "user", "content": prompt}],
    }


def extract_text(data: object) -> str:
    """First text block of a messages-API response, or ''."""
    if not isinstance(data, dict):
        return ""
    blocks = data.get("content")
    if not isinstance(blocks, list):
        return ""
    for block in blocks:
        if isinstance(block, dict) and block.get("type") == "text":
            text = block.get("text")
            if isinstance(text, str):
                return text
    return ""


def _parse_retry_after(value: str) -> float | None:
    value = value.strip()
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass

    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if dt is None:
        return None
    now = datetime.now(dt.tzinfo)
    return max(0.0, (dt - now).total_seconds())


def _retry_after_seconds(resp: httpx.Response) -> float | None:
    header = resp.headers.get("retry-after")
    if not header:
        return None
    return _parse_retry_after(header)


def _extract_error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text.strip()
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict):
            msg = err.get("message")
            if isinstance(msg, str):
                return msg.strip()
    return resp.text.strip()


_RATE_LIMIT_WAIT = wait_random_exponential(
    min=RATE_LIMIT_ERROR_BACKOFF_BASE, max=RATE_LIMIT_ERROR_BACKOFF_MAX
)
_RATE_LIMIT_429_WAIT = wait_random_exponential(
    min=LLM_429_COOLDOWN_BASE, max=LLM_429_COOLDOWN_MAX
)


def _retry_wait(retry_state: RetryCallState) -> float:
    outcome = retry_state.outcome
    exc = outcome.exception() if outcome is not None else None
    if isinstance(exc, LLMRetryableError):
        if exc.cooldown is not None:
            return exc.cooldown
        if exc.is_rate_limit:
            return _RATE_LIMIT_429_WAIT(retry_state)
    return _RATE_LIMIT_WAIT(retry_state)


async def _generate_with_retry(
    prompt: str,
    model: str = LLM_THEME_TITLE_MODEL,
    max_tokens: int = LLM_THEME_TITLE_MAX_TOKENS,
    max_retries: int = LLM_MAX_RETRIES,
) -> str | None:
    """Call the messages API with backoff; None when no text could be produced."""
    api_key = get_llm_api_key()
    if not api_key:
        logger.warning("ANTHROPIC_API_KEY not set, skipping LLM call")
        return None

    payload = build_payload(model=model, prompt=prompt, max_tokens=max_tokens)
    timeout = httpx.Timeout(
        connect=HTTP_CONNECT_TIMEOUT,
        read=HTTP_READ_TIMEOUT,
        write=HTTP_WRITE_TIMEOUT,
        pool=HTTP_POOL_TIMEOUT,
    )

    async with httpx.AsyncClient(timeout=timeout) as client:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_retries),
                retry=retry_if_exception_type(LLMRetryableError),
                wait=_retry_wait,
                reraise=True,
            ):
                with attempt:
                    try:
                        async with _LLM_LIMITER:
                            resp = await client.post(
                                LLM_API_URL,
                                headers={
                                    "x-api-key": api_key,
                                    "anthropic-version": LLM_API_VERSION,
                                    "content-type": "application/json",
                                    "user-agent": LLM_HTTP_USER_AGENT,
                                },
                                json=payload,
                            )
                    except httpx.HTTPError as e:
                        raise LLMRetryableError(str(e)) from e

                    if resp.status_code == 200:
                        return extract_text(resp.json()).strip() or None

                    if resp.status_code == 429:
                        raise LLMRetryableError(
                            _extract_error_message(resp),
                            cooldown=_retry_after_seconds(resp),
                            is_rate_limit=True,
                        )

                    if resp.status_code in {408, 500, 502, 503, 504, 529}:
                        raise LLMRetryableError(f"LLM API error {resp.status_code}")

                    error_msg = _extract_error_message(resp)
                    if resp.status_code == 402 or "credit balance" in error_msg.lower():
                        raise LLMQuotaError(error_msg)
                    logger.error("LLM API error %d: %s", resp.status_code, error_msg)
                    return None
        except LLMRetryableError as e:
            logger.error("LLM call failed after %d retries: %s", max_retries, e)
            return None

    return None


def fallback_theme_title(topic_name: str) -> str:
    return f"{THEME_TITLE_PREFIX} {topic_name}"


def build_theme_title_prompt(titles: Sequence[str], topic_name: str) -> str:
    listed = "\n".join(f"- {t}" for t in list(titles)[:THEME_TITLE_SAMPLES])
    return (
        f'Based on these article/content titles that are trending together in the '
        f'"{topic_name}" topic, generate a short, engaging subtitle (max '
        f"{THEME_SUBTITLE_MAX_CHARS} characters) that captures the specific trend. "
        f'Just return the subtitle, nothing else. Do not include "{THEME_TITLE_PREFIX}" '
        f"or the topic name - just the subtitle.\n\n"
        f"Titles:\n{listed}\n\nSubtitle:"
    )


def _clean_subtitle(raw: str) -> str:
    cleaned = raw.strip().splitlines()[0].strip() if raw.strip() else ""
    cleaned = cleaned.strip("\"'` ")
    cleaned = re.sub(r"\s+", " ", cleaned)
    return cleaned


def _theme_title_cache_key(content_ids: Sequence[str], model: str) -> str:
    key_src = ",".join(sorted(content_ids))
    key_src += f"|model={model}|prompt={LLM_THEME_TITLE_PROMPT_VERSION}"
    return hashlib.sha256(key_src.encode()).hexdigest()


def _load_theme_title_cache() -> dict[str, str]:
    return {
        str(k): str(v)
        for k, v in read_json_dict(THEME_TITLE_CACHE).items()
        if isinstance(v, str) and v.strip()
    }


def _save_theme_title_cache(cache: dict[str, str]) -> None:
    try:
        atomic_write_json(THEME_TITLE_CACHE, cache)
    except OSError as e:
        logger.warning("Failed to save theme title cache: %s", e)


async def generate_theme_title(
    titles: Sequence[str],
    topic_name: str,
    content_ids: Optional[Sequence[str]] = None,
) -> TitleResult:
    """
    "Trending in {topic}: {subtitle}" capped at THEME_TITLE_MAX_CHARS.

    Never raises: any failure yields the fallback title with the error
    recorded on the result.
    """
    fallback = fallback_theme_title(topic_name)
    cache_key = (
        _theme_title_cache_key(content_ids, LLM_THEME_TITLE_MODEL) if content_ids else None
    )

    subtitle: Optional[str] = None
    if cache_key:
        subtitle = _load_theme_title_cache().get(cache_key)

    if subtitle is None:
        try:
            raw = await _generate_with_retry(build_theme_title_prompt(titles, topic_name))
        except Exception as e:
            logger.warning("Failed to generate theme title for %s: %s", topic_name, e)
            return TitleResult(text=fallback, generated=False, error=str(e))

        subtitle = _clean_subtitle(raw or "")
        if not subtitle:
            return TitleResult(text=fallback, generated=False, error="empty generation")
        if cache_key:
            cache = _load_theme_title_cache()
            cache[cache_key] = subtitle
            _save_theme_title_cache(cache)

    return TitleResult(
        text=f"{fallback}: {subtitle}"[:THEME_TITLE_MAX_CHARS], generated=True
    )
