"""Relevance scorers - map (intent, description) to a score in [0, 1]"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
import os
import re
from collections import OrderedDict
from typing import Awaitable, Callable, Union

import httpx

from plugroute.errors import RouterError

logger = logging.getLogger(__name__)


Scorer = Callable[[str, str], float]
AsyncScorer = Callable[[str, str], Awaitable[float]]
AnyScorer = Union[Scorer, AsyncScorer]


class ScorerError(RouterError):
    """The scoring function failed or returned a value outside [0, 1]."""
    code = "SCORER_FAILED"


# Stopwords filtered out before keyword overlap
STOPWORDS = {
    'a', 'an', 'the', 'and', 'or', 'for', 'with', 'this', 'that', 'when',
    'use', 'using', 'how', 'what', 'why', 'can', 'could', 'would', 'should',
    'please', 'help', 'need', 'want', 'like', 'me', 'my', 'to', 'of', 'in',
    'on', 'it', 'is', 'be', 'do', 'i', 'you', 'your', 'some', 'any', 'from',
}

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def tokenize(text: str) -> set[str]:
    """Lowercase alphanumeric tokens minus stopwords"""
    return {t for t in _TOKEN_RE.findall(text.lower()) if t not in STOPWORDS}


class TokenOverlapScorer:
    """Fraction of intent keywords that also appear in the description.

    "run the build" against "run build scripts" scores 1.0: both
    keywords of the intent are covered.
    """

    def __call__(self, intent: str, description: str) -> float:
        intent_tokens = tokenize(intent)
        if not intent_tokens:
            return 0.0
        shared = intent_tokens & tokenize(description)
        return len(shared) / len(intent_tokens)


class EmbeddingScorer:
    """
    Cosine similarity between embeddings from an Ollama-compatible
    ``/api/embeddings`` endpoint, rescaled from [-1, 1] to [0, 1].

    Async: use it through Matcher.amatch. Cancelling the awaiting task
    cancels the in-flight HTTP request.

    Concurrent requests for the same text share one HTTP call, so the intent
    is embedded once per match. Embeddings are kept in an LRU cache of
    ``cache_size`` entries.
    """

    def __init__(
        self,
        model: str = "nomic-embed-text",
        host: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        cache_size: int = 1024,
    ):
        self.model = model
        self.host = (host or os.environ.get("OLLAMA_HOST", "http://localhost:11434")).rstrip("/")
        self.timeout = timeout
        self.cache_size = cache_size
        self._client = client
        self._owned_client: httpx.AsyncClient | None = None
        self._owned_loop: asyncio.AbstractEventLoop | None = None
        self._cache: OrderedDict[str, list[float]] = OrderedDict()
        self._inflight: dict[str, asyncio.Task] = {}

    async def __call__(self, intent: str, description: str) -> float:
        if not intent.strip() or not description.strip():
            return 0.0
        a = await self.embed(intent)
        b = await self.embed(description)
        return (cosine_similarity(a, b) + 1.0) / 2.0

    async def embed(self, text: str) -> list[float]:
        """Embedding for ``text``, cached per scorer instance"""
        if text in self._cache:
            self._cache.move_to_end(text)
            return self._cache[text]

        task = self._inflight.get(text)
        if task is None:
            task = asyncio.ensure_future(self._fetch(text))
            self._inflight[text] = task
            task.add_done_callback(lambda _: self._inflight.pop(text, None))
        embedding = await task

        self._cache[text] = embedding
        self._cache.move_to_end(text)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return embedding

    async def aclose(self):
        """Close the client this scorer opened itself"""
        if self._owned_client is not None:
            await self._owned_client.aclose()
            self._owned_client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        # httpx clients are bound to the loop they were first used on
        loop = asyncio.get_running_loop()
        if self._owned_client is None or self._owned_client.is_closed or self._owned_loop is not loop:
            self._owned_client = httpx.AsyncClient(timeout=self.timeout)
            self._owned_loop = loop
        return self._owned_client

    async def _fetch(self, text: str) -> list[float]:
        payload = {"model": self.model, "prompt": text}
        try:
            response = await self._get_client().post(f"{self.host}/api/embeddings", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise ScorerError(f"Embedding request timed out for {self.host}") from e
        except httpx.HTTPStatusError as e:
            raise ScorerError(f"Embedding request failed: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ScorerError(f"Failed to reach embedding endpoint at {self.host}: {e}") from e
        except ValueError as e:
            raise ScorerError(f"Malformed embedding response from {self.host}: body is not JSON") from e

        embedding = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(embedding, list) or not embedding or not all(
            isinstance(x, (int, float)) and not isinstance(x, bool) for x in embedding
        ):
            raise ScorerError(
                f"Malformed embedding response from {self.host}: expected a non-empty list of numbers"
            )

        logger.debug(f"Embedded {len(text)} chars with {self.model}")
        return [float(x) for x in embedding]


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b):
        raise ScorerError(f"Embedding size mismatch: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return max(-1.0, min(1.0, dot / norm))


def check_score(score: float, definition_id: str) -> float:
    """Validate a scorer result, raising ScorerError when out of range"""
    if isinstance(score, bool) or not isinstance(score, (int, float)) or math.isnan(score):
        raise ScorerError(f"Scorer returned non-numeric score {score!r} for '{definition_id}'")
    if not 0.0 <= score <= 1.0:
        raise ScorerError(f"Scorer returned {score} for '{definition_id}', expected a value in [0, 1]")
    return float(score)


def is_async_scorer(scorer: AnyScorer) -> bool:
    """True for coroutine functions and objects with an async __call__"""
    return inspect.iscoroutinefunction(scorer) or inspect.iscoroutinefunction(
        getattr(scorer, "__call__", None)
    )
