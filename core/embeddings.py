# core/embeddings.py
import logging
import math
from typing import Any, Dict, List, Optional, Tuple
import httpx
from config.settings import settings
from core.lru_cache import LRUCache, generate_cache_key
from util.timing import timed

logger = logging.getLogger(__name__)

_CACHE_OPTIONS: Dict[str, Any] = {"type": "embedding"}


def fallback_embedding(text: str, dimensions: int = settings.EMBEDDING_DIMENSIONS) -> List[float]:
    """
    Deterministic stand-in vector: leading components carry the character
    codes (scaled by 1/255), every component gets a sin(len * i) * 0.1 term.
    """
    n = len(text)
    vec = [0.0] * dimensions
    for i, ch in enumerate(text[:dimensions]):
        vec[i] = ord(ch) / 255
    for i in range(dimensions):
        vec[i] += math.sin(n * i) * 0.1
    return vec


class EmbeddingProvider:
    """
    Text -> vector through the remote embedding endpoint.

    `embed` never raises: on any transport, status or payload problem it logs
    and returns `fallback_embedding(text)`. Only remote vectors are cached, so
    a recovered endpoint replaces fallback quality on the next call.
    """

    def __init__(
        self,
        cache: Optional[LRUCache[str, List[float]]] = None,
        api_url: str = settings.EMBEDDING_API_URL,
        timeout: float = settings.EMBEDDING_TIMEOUT_SECONDS,
        dimensions: int = settings.EMBEDDING_DIMENSIONS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._cache = cache
        self._api_url = api_url
        self._timeout = timeout
        self._dimensions = dimensions
        self._client = client

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, text: str) -> List[float]:
        key = generate_cache_key(text, _CACHE_OPTIONS)
        if self._cache is not None:
            hit = self._cache.get(key)
            if hit is not None:
                return hit

        try:
            with timed(logger, "embed.remote", level=logging.DEBUG, chars=len(text)):
                vector, degraded = await self._fetch(text)
        except Exception as e:  # transport, status or payload
            logger.warning("embed.fallback reason=%s", e.__class__.__name__)
            return fallback_embedding(text, self._dimensions)

        # server-side fallback vectors are not worth keeping
        if self._cache is not None and not degraded:
            self._cache.set(key, vector)
        return vector

    async def _fetch(self, text: str) -> Tuple[List[float], bool]:
        if self._client is not None:
            res = await self._client.post(
                self._api_url, json={"text": text}, timeout=self._timeout
            )
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                res = await client.post(self._api_url, json={"text": text})
        res.raise_for_status()
        return _parse_vector(res.json())


def _parse_vector(data: Any) -> Tuple[List[float], bool]:
    if not isinstance(data, dict):
        raise ValueError("embedding response is not an object")
    raw = data.get("embedding")
    if not isinstance(raw, list) or not raw:
        raise ValueError("embedding response has no vector")
    try:
        vector = [float(x) for x in raw]
    except (TypeError, ValueError) as e:
        raise ValueError("embedding vector is not numeric") from e
    return vector, bool(data.get("fallback", False))
