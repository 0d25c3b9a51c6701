# stylyst/rerank.py
from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional, Sequence

from google import genai
from google.genai import types
from loguru import logger

from .config import (
    GEMINI_MODEL,
    GEMINI_TEMPERATURE,
    GEMINI_TIMEOUT_MS,
    PICK_COUNT,
    CatalogItem,
    RecommendationItem,
    RecommendationResponse,
    gemini_api_key,
)
from .errors import ConfigurationMissingError, RemoteCallFailedError, ResponseMalformedError
from .prompts import RESPONSE_SCHEMA, STYLIST_SYSTEM_PROMPT, build_rerank_prompt, empty_inventory_summary

# ---------------------------------------------------------------------------
# Client handling
# ---------------------------------------------------------------------------

_CLIENT: Optional[genai.Client] = None


def make_client(api_key: Optional[str] = None) -> genai.Client:
    """
    Build a Gemini client. Raises ConfigurationMissingError without a key.
    """
    key = (api_key or gemini_api_key()).strip()
    if not key:
        raise ConfigurationMissingError("No Gemini API key configured (GEMINI_API_KEY / GOOGLE_API_KEY).")
    return genai.Client(api_key=key, http_options=types.HttpOptions(timeout=GEMINI_TIMEOUT_MS))


def get_client() -> genai.Client:
    """Build once and cache the process-wide client."""
    global _CLIENT
    if _CLIENT is None:
        _CLIENT = make_client()
        logger.info("Initialised Gemini client for model {}", GEMINI_MODEL)
    return _CLIENT


def reset_client() -> None:
    global _CLIENT
    _CLIENT = None


# ---------------------------------------------------------------------------
# Remote call
# ---------------------------------------------------------------------------

def request_recommendations(
    client,
    query: str,
    candidates: Sequence[CatalogItem],
    model: str = GEMINI_MODEL,
    pick_count: int = PICK_COUNT,
) -> str:
    """
    Send the candidate block to the model and return its raw JSON text.
    """
    prompt = build_rerank_prompt(query, candidates, pick_count=pick_count)
    config = types.GenerateContentConfig(
        system_instruction=STYLIST_SYSTEM_PROMPT,
        response_mime_type="application/json",
        response_schema=RESPONSE_SCHEMA,
        temperature=GEMINI_TEMPERATURE,
    )
    try:
        response = client.models.generate_content(model=model, contents=prompt, config=config)
    except Exception as e:
        logger.warning("Re-rank call to {} failed: {}", model, e)
        raise RemoteCallFailedError(f"The stylist model could not be reached: {e}") from e

    text = getattr(response, "text", None)
    if not text or not str(text).strip():
        raise ResponseMalformedError("Empty response from the stylist model.")
    return str(text)


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def _load_json(raw_text: str) -> Dict[str, Any]:
    text = _FENCE_RE.sub("", (raw_text or "").strip())
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ResponseMalformedError(f"Stylist response is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ResponseMalformedError("Stylist response must be a JSON object.")
    return payload


def _rank_key(entry: Dict[str, Any], position: int) -> tuple:
    rank = entry.get("rank")
    if isinstance(rank, int) and not isinstance(rank, bool):
        return (rank, position)
    return (position + 1, position)


def parse_recommendations(
    raw_text: str,
    query: str,
    candidate_ids: Sequence[str],
    pick_count: int = PICK_COUNT,
) -> RecommendationResponse:
    """
    Validate the model output against the candidate set.

      1) JSON object with a ``recommendations`` list, else ResponseMalformedError
      2) order by the model's rank (list position breaks ties)
      3) drop ids not in the candidate set, and repeats
      4) renumber ranks 1..n and cap at ``pick_count``
    """
    payload = _load_json(raw_text)
    entries = payload.get("recommendations")
    if not isinstance(entries, list):
        raise ResponseMalformedError("Stylist response has no 'recommendations' list.")

    allowed = set(candidate_ids)
    indexed = [(e, i) for i, e in enumerate(entries) if isinstance(e, dict)]
    indexed.sort(key=lambda pair: _rank_key(pair[0], pair[1]))

    picks: List[RecommendationItem] = []
    seen = set()
    for entry, _ in indexed:
        item_id = str(entry.get("item_id") or "").strip()
        if item_id not in allowed:
            logger.warning("Dropping pick '{}' not among the candidates", item_id)
            continue
        if item_id in seen:
            continue
        seen.add(item_id)
        picks.append(
            RecommendationItem(
                rank=len(picks) + 1,
                item_id=item_id,
                description=str(entry.get("description") or "").strip(),
                explanation=str(entry.get("explanation") or "").strip(),
            )
        )
        if len(picks) >= pick_count:
            break

    if entries and not picks:
        raise ResponseMalformedError("None of the stylist's picks match the candidate items.")

    return RecommendationResponse(
        user_query=str(payload.get("user_query") or "").strip() or query,
        stylist_summary=str(payload.get("stylist_summary") or "").strip(),
        recommendations=picks,
    )


# ---------------------------------------------------------------------------
# Main entry
# ---------------------------------------------------------------------------

def rerank_candidates(
    query: str,
    candidates: Sequence[CatalogItem],
    client=None,
    model: str = GEMINI_MODEL,
    pick_count: int = PICK_COUNT,
) -> RecommendationResponse:
    """
    High-level rerank:
      1) no candidates -> explanatory summary, no remote call
      2) send the candidate block to the model (client injected or cached)
      3) parse and validate picks against the candidate ids
    """
    if not candidates:
        return RecommendationResponse(
            user_query=query,
            stylist_summary=empty_inventory_summary(query),
            recommendations=[],
        )

    if client is None:
        client = get_client()

    raw = request_recommendations(client, query, candidates, model=model, pick_count=pick_count)
    result = parse_recommendations(raw, query, [c.id for c in candidates], pick_count=pick_count)
    logger.info(
        "rerank_candidates: query='{}' candidates={} -> {} picks",
        query, len(candidates), len(result.recommendations),
    )
    return result
