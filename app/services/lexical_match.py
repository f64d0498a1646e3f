"""Composite item text + keyword-overlap scoring.

The composite builders feed both search paths:
  - embedding_text(): "Title. Description. Color: X. Location: Y" (provider input)
  - keyword_text():   "title description x y" lowercased (fallback haystack)

Fallback score = (# query tokens found as substrings of keyword_text) / (# query tokens).
"""
from __future__ import annotations
from typing import List, Optional

from app.models.items import Item, ScoredMatch


def _present(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def embedding_text(item: Item) -> str:
    parts = [item.title]
    if _present(item.description):
        parts.append(item.description)
    if _present(item.color):
        parts.append(f"Color: {item.color}")
    if _present(item.location):
        parts.append(f"Location: {item.location}")
    return ". ".join(parts)


def keyword_text(item: Item) -> str:
    fields = [item.title, item.description, item.color, item.location]
    return " ".join(f for f in fields if _present(f)).lower()


def tokenize(query: str) -> List[str]:
    return query.lower().split()


def keyword_score(tokens: List[str], haystack: str) -> float:
    if not tokens:
        return 0.0
    hits = sum(1 for t in tokens if t in haystack)
    return hits / len(tokens)


def lexical_rank(query: str, items: List[Item], limit: int) -> List[ScoredMatch]:
    """Degraded-mode ranking: keeps score > 0 only (min_score is not applied here)."""
    tokens = tokenize(query)
    scored = [
        ScoredMatch(item=it, score=keyword_score(tokens, keyword_text(it)), source="lexical")
        for it in items
    ]
    # sorted() is stable: equal scores keep fetch order
    ranked = sorted((m for m in scored if m.score > 0), key=lambda m: m.score, reverse=True)
    return ranked[:max(limit, 0)]
