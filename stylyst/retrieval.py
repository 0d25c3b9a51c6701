from __future__ import annotations
"""
Retrieval module for the Stylyst vibe search.

First stage of retrieve-then-rerank: a deterministic lexical scorer that
picks a bounded candidate set from a catalog snapshot for the generative
re-rank call.

- whole-query substring bonuses on name / category / description
- per-token substring and word-prefix matches, category-biased
- flat bonus when every query token matched somewhere
- missing-image penalty large enough to always exclude the item
- random fallback sample when nothing scores above zero

The scorer is pure: no I/O, no cached state, no mutation of the catalog.
"""

import random
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from .config import DEFAULT_WEIGHTS, CatalogItem, ScoringWeights
from .normalize import clean_query, field_words, query_tokens
from .pipeline_types import ScoredCandidate


# =============================================================================
# Image sentinel
# =============================================================================

def has_missing_image(item: CatalogItem, weights: ScoringWeights = DEFAULT_WEIGHTS) -> bool:
    ref = (item.image_ref or "").lower()
    return any(marker in ref for marker in weights.missing_image_markers)


# =============================================================================
# Scoring
# =============================================================================

def _any_word_starts_with(words: Sequence[str], token: str) -> bool:
    # equality is the zero-length-suffix case of startswith
    return any(w.startswith(token) for w in words)


def score_item(
    item: CatalogItem,
    cleaned_query: str,
    tokens: Sequence[str],
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> ScoredCandidate:
    name = item.name.lower()
    desc = item.description.lower()
    cat = item.category.lower()
    cat_words = field_words(cat)
    name_words = field_words(name)

    score = 0
    # an empty cleaned query is a substring of every field
    if cleaned_query in name:
        score += weights.query_in_name
    if cleaned_query in cat:
        score += weights.query_in_category
    if cleaned_query in desc:
        score += weights.query_in_description

    matched = 0
    for token in tokens:
        hit = False
        if token in cat:
            score += weights.token_in_category
            hit = True
        if _any_word_starts_with(cat_words, token):
            score += weights.token_starts_category_word
            hit = True
        if token in name:
            score += weights.token_in_name
            hit = True
        if _any_word_starts_with(name_words, token):
            score += weights.token_starts_name_word
            hit = True
        if token in desc:
            score += weights.token_in_description
            hit = True
        if hit:
            matched += 1

    if tokens and matched == len(tokens):
        score += weights.all_tokens_bonus

    if has_missing_image(item, weights):
        score -= weights.missing_image_penalty

    return ScoredCandidate(item=item, score=score, matched_token_count=matched)


def score_catalog(
    query: str,
    catalog: Sequence[CatalogItem],
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> Tuple[List[str], List[ScoredCandidate]]:
    """
    Score every item in catalog order. Returns (tokens, scored) so callers
    and tests can inspect raw scores, including non-positive ones.
    """
    cleaned = clean_query(query)
    tokens = query_tokens(cleaned, weights.min_token_length)
    scored = [score_item(item, cleaned, tokens, weights) for item in catalog]
    return tokens, scored


def rank_scored(scored: Sequence[ScoredCandidate]) -> List[ScoredCandidate]:
    """Keep positive scores; order by (score, matched tokens) desc, catalog order on ties."""
    positive = [c for c in scored if c.score > 0]
    # sorted() is stable, so equal keys keep catalog order
    return sorted(positive, key=lambda c: (-c.score, -c.matched_token_count))


# =============================================================================
# Fallback
# =============================================================================

def fallback_sample(
    catalog: Sequence[CatalogItem],
    rng: random.Random,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> List[CatalogItem]:
    """Uniform random sample of items with real imagery, up to the fallback size."""
    pool = [item for item in catalog if not has_missing_image(item, weights)]
    rng.shuffle(pool)
    return pool[: weights.fallback_sample_size]


# =============================================================================
# Public API
# =============================================================================

def retrieve(
    query: str,
    catalog: Sequence[CatalogItem],
    limit: int,
    weights: Optional[ScoringWeights] = None,
    rng: Optional[random.Random] = None,
) -> List[CatalogItem]:
    """
    Return up to ``limit`` catalog items for ``query``, most relevant first.

    Deterministic whenever at least one item scores above zero. Otherwise
    falls back to a shuffled sample of items with real imagery, drawn with
    ``rng`` (a fresh ``random.Random()`` when not given).

    Raises ``ValueError`` for a negative limit; never raises for empty or
    unmatched input.
    """
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")
    if not catalog:
        return []

    weights = weights or DEFAULT_WEIGHTS
    tokens, scored = score_catalog(query, catalog, weights)
    ranked = rank_scored(scored)

    logger.debug(
        "retrieve: top scores {}",
        [(c.item.id, c.score, c.matched_token_count) for c in ranked[:5]],
    )

    if ranked:
        candidates = [c.item for c in ranked]
    else:
        logger.warning(
            "retrieve: no positive matches for '{}'; falling back to random sample", query
        )
        candidates = fallback_sample(catalog, rng or random.Random(), weights)

    logger.info(
        "retrieve: query='{}' tokens={} catalogN={} positiveN={} -> {} candidates",
        query, tokens, len(catalog), len(ranked), min(len(candidates), limit),
    )
    return candidates[:limit]
