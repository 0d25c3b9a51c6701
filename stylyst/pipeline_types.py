"""Typed containers shared across pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass

from .config import CatalogItem


@dataclass
class ScoredCandidate:
    """Lexical score pair for one catalog item; lives for a single retrieval call."""

    item: CatalogItem
    score: int
    matched_token_count: int
