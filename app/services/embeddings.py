"""Text embedding providers.

Usage:
  from app.services.embeddings import get_embedding_provider
  provider = get_embedding_provider(settings)
  result = provider.embed_texts(["red wallet", "black backpack"])
  if result.status is EmbeddingStatus.OK:
      vectors = result.vectors

Providers never raise for provider-side failures; they return an EmbeddingResult
tagged config_error (no/rejected credential) or provider_error (everything else).

Providers:
    - OpenAIEmbeddingProvider: OpenAI embeddings API
    - HashEmbeddingProvider: deterministic sha256 vectors, for tests/local
"""
from __future__ import annotations

import abc
import enum
import hashlib
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import openai
from openai import OpenAI

from config import Settings
from app.scripts.logging_config import get_logger

logger = get_logger("search")


class EmbeddingStatus(str, enum.Enum):
    OK = "ok"
    CONFIG_ERROR = "config_error"
    PROVIDER_ERROR = "provider_error"


@dataclass(frozen=True)
class EmbeddingResult:
    status: EmbeddingStatus
    vectors: List[np.ndarray] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def ok(cls, vectors: List[np.ndarray]) -> "EmbeddingResult":
        return cls(EmbeddingStatus.OK, vectors)

    @classmethod
    def config_error(cls, message: str) -> "EmbeddingResult":
        return cls(EmbeddingStatus.CONFIG_ERROR, error=message)

    @classmethod
    def provider_error(cls, message: str) -> "EmbeddingResult":
        return cls(EmbeddingStatus.PROVIDER_ERROR, error=message)


# ------------------------------------------------------------------------------
# 유틸
# ------------------------------------------------------------------------------
def _l2_normalize(vec: np.ndarray) -> np.ndarray:
    return vec / (np.linalg.norm(vec) + 1e-9)


def _hash_to_vec(data: bytes, dim: int) -> np.ndarray:
    h = hashlib.sha256(data).digest()
    raw = (h * ((dim // len(h)) + 1))[:dim]
    arr = np.frombuffer(bytes(raw), dtype=np.uint8).astype("float32")
    # center around 0 so unrelated texts are not all near-parallel
    return _l2_normalize(arr - 127.5)


def _check_batch(texts: List[str], max_batch: int) -> None:
    if not texts:
        raise ValueError("embed_texts: texts must not be empty")
    if len(texts) > max_batch:
        raise ValueError(f"embed_texts: batch of {len(texts)} exceeds limit {max_batch}")


class BaseEmbeddingProvider(abc.ABC):
    name: str

    def __init__(self, max_batch: int = 10):
        self.max_batch = max_batch

    @abc.abstractmethod
    def embed_texts(self, texts: List[str]) -> EmbeddingResult:
        """One vector per input, same order."""
        ...


class HashEmbeddingProvider(BaseEmbeddingProvider):
    name = "hash"

    def __init__(self, dim: int = 1536, max_batch: int = 10):
        super().__init__(max_batch=max_batch)
        self.dim = dim

    def embed_texts(self, texts: List[str]) -> EmbeddingResult:
        _check_batch(texts, self.max_batch)
        return EmbeddingResult.ok([_hash_to_vec(t.encode("utf-8"), self.dim) for t in texts])


class OpenAIEmbeddingProvider(BaseEmbeddingProvider):
    name = "openai"

    def __init__(self, api_key: Optional[str], model: str = "text-embedding-3-small",
                 timeout: float = 30.0, max_batch: int = 10, client: Optional[OpenAI] = None):
        super().__init__(max_batch=max_batch)
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = client
        self._load_lock = threading.RLock()

    def _get_client(self) -> OpenAI:
        if self._client is not None:
            return self._client
        with self._load_lock:
            if self._client is None:
                self._client = OpenAI(api_key=self.api_key, timeout=self.timeout)
        return self._client

    def embed_texts(self, texts: List[str]) -> EmbeddingResult:
        _check_batch(texts, self.max_batch)
        if not self.api_key and self._client is None:
            return EmbeddingResult.config_error("OPENAI_API_KEY missing")

        start = time.time()
        try:
            resp = self._get_client().embeddings.create(model=self.model, input=texts)
        except openai.AuthenticationError as e:
            logger.error("embedding auth rejected model=%s err=%s", self.model, str(e)[:180])
            return EmbeddingResult.config_error(f"OpenAI authentication failed: {e}")
        except openai.RateLimitError as e:
            return EmbeddingResult.provider_error(f"rate_limited: {e}")
        except openai.APITimeoutError as e:
            return EmbeddingResult.provider_error(f"timeout: {e}")
        except openai.APIError as e:
            return EmbeddingResult.provider_error(f"api_error: {e}")
        except Exception as e:
            return EmbeddingResult.provider_error(f"unexpected {type(e).__name__}: {e}")

        data = list(getattr(resp, "data", None) or [])
        if len(data) != len(texts):
            return EmbeddingResult.provider_error(
                f"malformed_response: expected {len(texts)} embeddings, got {len(data)}")
        try:
            data.sort(key=lambda d: d.index)
            vectors = [np.asarray(d.embedding, dtype="float32") for d in data]
        except (AttributeError, TypeError, ValueError) as e:
            return EmbeddingResult.provider_error(f"malformed_response: {e}")

        logger.debug("embedding ok model=%s n=%d latency=%.2fs", self.model, len(texts), time.time() - start)
        return EmbeddingResult.ok(vectors)


def get_embedding_provider(cfg: Settings) -> BaseEmbeddingProvider:
    name = (cfg.EMBEDDING_PROVIDER or "").strip().lower()
    if name == "openai":
        return OpenAIEmbeddingProvider(
            api_key=cfg.OPENAI_API_KEY,
            model=cfg.OPENAI_EMBEDDING_MODEL,
            timeout=cfg.OPENAI_EMBEDDING_TIMEOUT,
            max_batch=cfg.EMBEDDING_BATCH_SIZE,
        )
    if name == "hash":
        return HashEmbeddingProvider(dim=cfg.EMBEDDING_DIM, max_batch=cfg.EMBEDDING_BATCH_SIZE)
    raise ValueError(f"unknown EMBEDDING_PROVIDER: {cfg.EMBEDDING_PROVIDER!r}")
