# core/embedding_model.py
import logging
import re
from functools import lru_cache
from typing import List, Tuple
import numpy as np
from sentence_transformers import SentenceTransformer
from config.settings import settings
from util.timing import timed

logger = logging.getLogger(__name__)

_WORD = re.compile(r"\w+")


@lru_cache(maxsize=1)
def _load_model() -> SentenceTransformer:
    """
    Lazy-load the sentence embedding model.

    Kept on CPU; EMBEDDING_MODEL_NAME must produce EMBEDDING_DIMENSIONS-sized
    vectors to match the stored corpus.
    """
    name = settings.EMBEDDING_MODEL_NAME
    with timed(logger, "embed.model.load", model=name):
        model = SentenceTransformer(name, device="cpu")
    return model


def encode(text: str) -> List[float]:
    """L2-normalized sentence embedding for one text."""
    model = _load_model()
    with timed(logger, "embed.encode", chars=len(text)):
        vec = model.encode([text], convert_to_numpy=True, normalize_embeddings=True)
    return vec.astype(np.float32, copy=False)[0].tolist()


def char_frequency_embedding(
    text: str, dimensions: int = settings.EMBEDDING_SERVER_FALLBACK_DIMENSIONS
) -> List[float]:
    """
    Cheap lexical vector used when the model cannot be loaded: character
    buckets (+1) and hashed word buckets (+2), unit-normalized.
    """
    vec = np.zeros(dimensions, dtype=np.float64)
    lowered = text.lower()
    for ch in lowered:
        vec[ord(ch) % dimensions] += 1.0
    for word in _WORD.findall(lowered):
        h = 0
        for ch in word:
            h = (h * 31 + ord(ch)) & 0xFFFFFFFF
        vec[h % dimensions] += 2.0
    norm = float(np.linalg.norm(vec))
    if norm > 0:
        vec = vec / norm
    return vec.tolist()


def embed_text(text: str) -> Tuple[List[float], bool]:
    """
    Returns (embedding, fallback). Blocking; run it off the event loop.
    """
    try:
        return encode(text), False
    except Exception:
        logger.exception("embed.model.error")
        return char_frequency_embedding(text), True
