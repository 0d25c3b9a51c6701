"""
FastAPI application for the Stylyst vibe search.

- Stage 1: lexical retrieval over the in-memory catalog snapshot
- Stage 2: generative re-rank + explanations (Gemini)
- Picks joined back onto catalog items for display
- Catalog held as an immutable tuple; reload swaps the reference
- Catalog reload can first sync the snapshot from a hosted CSV
- Inventory stats for a quick health check of the loaded catalog
"""

from __future__ import annotations

import random
from typing import List, Optional, Tuple

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel, Field

from .catalog_build import catalog_stats, load_catalog
from .catalog_fetch import sync_remote_catalog
from .config import (
    CANDIDATES_MAX_LIMIT,
    CATALOG_MAX_REMOTE_ITEMS,
    CATALOG_SNAPSHOT_PATH,
    PICK_COUNT,
    QUERY_MAX_CHARS,
    RETRIEVAL_LIMIT,
    CatalogItem,
    CatalogStats,
    HealthResponse,
    SearchResponse,
)
from .errors import ConfigurationMissingError, RemoteCallFailedError, ResponseMalformedError
from .mapping import map_recommendations
from .rerank import rerank_candidates
from .retrieval import retrieve


# -----------------------
# Pipeline
# -----------------------

def run_full_pipeline(
    query: str,
    catalog: Tuple[CatalogItem, ...],
    client=None,
    limit: int = RETRIEVAL_LIMIT,
    pick_count: int = PICK_COUNT,
    rng: Optional[random.Random] = None,
) -> SearchResponse:
    # --- 1) Lexical retrieval ---
    candidates = retrieve(query, catalog, limit, rng=rng)

    # --- 2) Generative re-rank (raises StylystError subclasses) ---
    ranked = rerank_candidates(query, candidates, client=client, pick_count=pick_count)

    # --- 3) Join picks to catalog items ---
    return map_recommendations(ranked, catalog)


# -----------------------
# FastAPI app + startup
# -----------------------

app = FastAPI(title="Stylyst vibe search")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_catalog: Optional[Tuple[CatalogItem, ...]] = None


def reload_catalog() -> int:
    """Load the snapshot and swap it in. Returns the item count."""
    global _catalog
    _catalog = load_catalog(CATALOG_SNAPSHOT_PATH)
    logger.info("Catalog loaded with {} items", len(_catalog))
    return len(_catalog)


@app.on_event("startup")
def startup_event() -> None:
    logger.info("Starting app warmup...")
    try:
        reload_catalog()
    except FileNotFoundError as e:
        logger.warning("Catalog not loaded: {}", e)
    logger.info("Warmup complete.")


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="healthy")


class QueryRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=QUERY_MAX_CHARS)


class CandidatesRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=QUERY_MAX_CHARS)
    limit: int = Field(default=RETRIEVAL_LIMIT, ge=0, le=CANDIDATES_MAX_LIMIT)


class CandidatesResponse(BaseModel):
    query: str
    candidates: List[CatalogItem]


class ReloadRequest(BaseModel):
    """Optional body: with csv_url the snapshot is first synced from a hosted CSV."""

    csv_url: Optional[str] = None
    images_base_url: Optional[str] = None
    max_items: int = Field(default=CATALOG_MAX_REMOTE_ITEMS, ge=1)


class ReloadResponse(BaseModel):
    items: int


def _require_catalog() -> Tuple[CatalogItem, ...]:
    if _catalog is None:
        raise HTTPException(status_code=503, detail="Catalog not loaded")
    return _catalog


@app.post("/recommend", response_model=SearchResponse)
def recommend(req: QueryRequest):
    query = req.query.strip()
    if not query:
        raise HTTPException(status_code=422, detail="Query must be non-empty")
    catalog = _require_catalog()
    try:
        return run_full_pipeline(query, catalog)
    except ConfigurationMissingError as e:
        raise HTTPException(status_code=503, detail=e.to_detail()) from e
    except (RemoteCallFailedError, ResponseMalformedError) as e:
        logger.warning("Recommendation failed for '{}': {}", query, e.kind)
        raise HTTPException(status_code=502, detail=e.to_detail()) from e


@app.post("/candidates", response_model=CandidatesResponse)
def candidates(req: CandidatesRequest):
    query = req.query.strip()
    if not query:
        raise HTTPException(status_code=422, detail="Query must be non-empty")
    items = retrieve(query, _require_catalog(), req.limit)
    return CandidatesResponse(query=query, candidates=items)


@app.post("/catalog/reload", response_model=ReloadResponse)
def catalog_reload(req: Optional[ReloadRequest] = None):
    if req is not None and req.csv_url:
        if not req.images_base_url:
            raise HTTPException(status_code=422, detail="images_base_url is required with csv_url")
        try:
            sync_remote_catalog(
                req.csv_url,
                req.images_base_url,
                output_path=CATALOG_SNAPSHOT_PATH,
                max_items=req.max_items,
            )
        except RemoteCallFailedError as e:
            raise HTTPException(status_code=502, detail=e.to_detail()) from e
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e

    try:
        return ReloadResponse(items=reload_catalog())
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@app.get("/catalog/stats", response_model=CatalogStats)
def stats() -> CatalogStats:
    return catalog_stats(_require_catalog())


# -----------------------
# CLI convenience
# -----------------------

def recommend_single_query(query: str) -> list[str]:
    if _catalog is None:
        reload_catalog()
    response = run_full_pipeline(query, _catalog)
    return [item.item_id for item in response.recommendations]
