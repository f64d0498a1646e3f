"""Semantic lost-item search.

Usage:
  from app.services.semantic_matcher import search_lost_items_by_similarity
  results = search_lost_items_by_similarity("red wallet with student card", limit=10)

Pipeline (one invocation, no state kept between calls):
  1. fetch open lost items (empty -> [] without embedding calls)
  2. embed the query, then candidate composites in sequential batches
  3. cosine score, stable sort desc, keep score >= min_score, cut to limit

If the embedding provider fails for any reason other than configuration, the same
candidates are ranked by keyword overlap instead (score > 0 kept, min_score ignored).
Configuration failures raise EmbeddingConfigError and are never masked.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from config import Settings, settings as default_settings
from app.models.items import Item, ScoredItem, ScoredMatch, SearchOptions
from app.scripts.logging_config import get_logger, log_embedding_batch, log_search_event
from .embeddings import EmbeddingResult, EmbeddingStatus, get_embedding_provider
from .item_store import FirestoreItemStore
from .lexical_match import embedding_text, lexical_rank
from .similarity import score_against

logger = get_logger("search")

FetchItems = Callable[[], List[Item]]
EmbedTexts = Callable[[List[str]], EmbeddingResult]


@dataclass
class SearchOutcome:
    mode: str  # embedding | lexical | none
    matches: List[ScoredMatch]


class SearchError(Exception):
    pass


class EmbeddingConfigError(SearchError):
    """Embedding provider is not configured (missing or rejected credential)."""
    pass


class SemanticMatcher:
    def __init__(self, fetch_items: FetchItems, embed_texts: EmbedTexts, cfg: Optional[Settings] = None):
        self.cfg = cfg or default_settings
        self.fetch_items = fetch_items
        self.embed_texts = embed_texts
        self.batch_size = max(1, int(self.cfg.EMBEDDING_BATCH_SIZE))

    def options(self, limit: Optional[int] = None, min_score: Optional[float] = None) -> SearchOptions:
        return SearchOptions(
            limit=self.cfg.SEARCH_DEFAULT_LIMIT if limit is None else limit,
            min_score=self.cfg.SEARCH_DEFAULT_MIN_SCORE if min_score is None else min_score,
        )

    def search(self, query_text: str, options: Optional[SearchOptions] = None) -> List[ScoredItem]:
        return [m.to_scored_item() for m in self.run(query_text, options).matches]

    def run(self, query_text: str, options: Optional[SearchOptions] = None) -> SearchOutcome:
        """Same as search() but keeps which path produced the scores."""
        opts = options or self.options()
        if not query_text or not query_text.strip():
            return SearchOutcome("none", [])
        if opts.limit <= 0:
            return SearchOutcome("none", [])

        start = time.time()
        items = self.fetch_items()
        if not items:
            logger.info("search.no_candidates q=%r", query_text[:80])
            return SearchOutcome("none", [])

        result = self._embed_all(query_text, [embedding_text(it) for it in items])
        if result.status is EmbeddingStatus.CONFIG_ERROR:
            logger.error("search.config_error err=%s", result.error)
            raise EmbeddingConfigError(result.error or "embedding provider not configured")

        if result.status is EmbeddingStatus.PROVIDER_ERROR:
            logger.warning("search.fallback lexical reason=%s", (result.error or "")[:180])
            outcome = SearchOutcome("lexical", lexical_rank(query_text, items, opts.limit))
        else:
            outcome = SearchOutcome("embedding", self._rank(items, result, opts))

        log_search_event("search", {
            "mode": outcome.mode,
            "candidates": len(items),
            "returned": len(outcome.matches),
            "limit": opts.limit,
            "min_score": opts.min_score,
            "duration_ms": round((time.time() - start) * 1000, 1),
        }, logger=logger)
        return outcome

    def _rank(self, items: List[Item], result: EmbeddingResult, opts: SearchOptions) -> List[ScoredMatch]:
        query_vec, item_vecs = result.vectors[0], result.vectors[1:]
        scores = score_against(query_vec, item_vecs)
        scored = [ScoredMatch(item=it, score=s, source="embedding") for it, s in zip(items, scores)]
        # sorted() is stable: equal scores keep fetch order
        scored = sorted(scored, key=lambda m: m.score, reverse=True)
        return [m for m in scored if m.score >= opts.min_score][:opts.limit]

    def _call(self, texts: List[str]) -> EmbeddingResult:
        try:
            result = self.embed_texts(texts)
        except EmbeddingConfigError:
            raise
        except Exception as e:
            return EmbeddingResult.provider_error(f"{type(e).__name__}: {e}")
        if result.status is EmbeddingStatus.OK and len(result.vectors) != len(texts):
            return EmbeddingResult.provider_error(
                f"expected {len(texts)} vectors, got {len(result.vectors)}")
        return result

    def _embed_all(self, query_text: str, texts: List[str]) -> EmbeddingResult:
        """Query vector first, then one vector per candidate text (input order)."""
        q = self._call([query_text])
        if q.status is not EmbeddingStatus.OK:
            return q
        vectors = list(q.vectors)
        for batch_index, i in enumerate(range(0, len(texts), self.batch_size)):
            batch = texts[i:i + self.batch_size]
            res = self._call(batch)
            if res.status is not EmbeddingStatus.OK:
                log_embedding_batch(batch_index, len(batch), False, error=res.error, logger=logger)
                return res
            log_embedding_batch(batch_index, len(batch), True, logger=logger)
            vectors.extend(res.vectors)
        return EmbeddingResult.ok(vectors)


_singleton: Optional[SemanticMatcher] = None


def get_matcher() -> SemanticMatcher:
    global _singleton
    if _singleton:
        return _singleton
    store = FirestoreItemStore(collection=default_settings.ITEMS_COLLECTION)
    provider = get_embedding_provider(default_settings)
    _singleton = SemanticMatcher(store.fetch_open_lost_items, provider.embed_texts, default_settings)
    return _singleton


def search_lost_items_by_similarity(query_text: str, limit: Optional[int] = None,
                                    min_score: Optional[float] = None) -> List[ScoredItem]:
    matcher = get_matcher()
    return matcher.search(query_text, matcher.options(limit=limit, min_score=min_score))
