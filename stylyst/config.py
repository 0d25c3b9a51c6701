from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------
# Paths
# ---------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATA_DIR = PROJECT_ROOT / "data"
CATALOG_CSV_PATH = DATA_DIR / "styles.csv"
CATALOG_IMAGES_DIR = DATA_DIR / "images"
CATALOG_SNAPSHOT_PATH = Path(
    os.getenv("CATALOG_SNAPSHOT_PATH", str(DATA_DIR / "catalog_snapshot.parquet"))
)


# ---------------------------
# Generative model (re-rank stage)
# ---------------------------

GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_TIMEOUT_MS = int(os.getenv("GEMINI_TIMEOUT_MS", "30000"))
GEMINI_TEMPERATURE = 0.4

# Checked in order; first non-empty wins
API_KEY_ENV_VARS: Tuple[str, ...] = ("GEMINI_API_KEY", "GOOGLE_API_KEY")


def gemini_api_key() -> str:
    """Read the API key at call time so tests and shells can set it late."""
    for name in API_KEY_ENV_VARS:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return ""


# ---------------------------
# Pipeline sizes
# ---------------------------

RETRIEVAL_LIMIT = int(os.getenv("RETRIEVAL_LIMIT", "60"))   # candidates handed to the model
PICK_COUNT = int(os.getenv("PICK_COUNT", "6"))              # picks the model must return
CANDIDATES_MAX_LIMIT = 200                                  # cap for POST /candidates
QUERY_MAX_CHARS = 2000                                      # longer queries are rejected with 422


# ---------------------------
# Catalog ingestion
# ---------------------------

CATALOG_MAX_REMOTE_ITEMS = int(os.getenv("CATALOG_MAX_REMOTE_ITEMS", "1000"))
MISSING_IMAGE_URL = "https://placehold.co/400x500?text=Missing+{item_id}"
DEFAULT_CATEGORY = "Fashion"
IMAGE_SKIP_NAMES = {"Thumbs.db"}

# First keyword found in a description decides the item's colour bucket
COLOUR_KEYWORDS: Tuple[str, ...] = (
    "Black", "White", "Blue", "Red", "Green", "Pink",
    "Yellow", "Navy", "Grey", "Beige", "Purple", "Orange",
)
STATS_TOP_CATEGORIES = 6


# ---------------------------
# HTTP (remote catalog download)
# ---------------------------

HTTP_CONNECT_TIMEOUT = 3.0
HTTP_READ_TIMEOUT = 15.0
HTTP_MAX_REDIRECTS = 2
HTTP_MAX_BYTES = 20_000_000  # styles.csv is a few MB

HTTP_USER_AGENT = "stylyst-vibe-search/1.0"


# ---------------------------
# Retrieval weights
# ---------------------------

class ScoringWeights(BaseModel):
    """
    Additive weights for the lexical retrieval scorer.

    Category signals outweigh description signals: a query naming an item
    type ("shoes") should surface that type even when descriptions are noisy.
    The missing-image penalty must exceed any reachable positive score.
    """

    model_config = ConfigDict(frozen=True)

    # whole cleaned query as a substring
    query_in_name: int = 200
    query_in_category: int = 150
    query_in_description: int = 100

    # per token
    token_in_category: int = 80
    token_starts_category_word: int = 40
    token_in_name: int = 20
    token_starts_name_word: int = 10
    token_in_description: int = 5

    all_tokens_bonus: int = 50
    missing_image_penalty: int = 1000

    min_token_length: int = Field(default=2, ge=1)
    fallback_sample_size: int = Field(default=20, ge=0)

    # lowercased substrings of image_ref marking placeholder imagery
    missing_image_markers: Tuple[str, ...] = ("placehold.co", "missing")


DEFAULT_WEIGHTS = ScoringWeights()


# ---------------------------
# Pydantic models shared around the app
# ---------------------------

class CatalogItem(BaseModel):
    """
    One product in a catalog snapshot. Immutable: retrieval shares items,
    never copies or edits them.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    description: str = ""
    category: str = ""
    image_ref: str = ""
    price: str = ""

    @field_validator("name", "description", "category", "image_ref", "price", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        if value is None:
            return ""
        return str(value)

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return str(value).strip()


class RecommendationItem(BaseModel):
    rank: int = Field(ge=1)
    item_id: str
    description: str = ""
    explanation: str = ""


class RecommendationResponse(BaseModel):
    """
    Structured output of the generative re-rank call.
    """

    user_query: str = ""
    stylist_summary: str = ""
    recommendations: List[RecommendationItem] = Field(default_factory=list)


class RecommendedProduct(BaseModel):
    rank: int
    item_id: str
    name: str
    category: str
    image_ref: str
    price: str = ""
    description: str = ""
    explanation: str = ""


class SearchResponse(BaseModel):
    """
    Response body for POST /recommend.
    """

    user_query: str
    stylist_summary: str
    recommendations: List[RecommendedProduct]


class HealthResponse(BaseModel):
    """
    Response body for GET /health.
    """

    status: str


class CategoryCount(BaseModel):
    name: str
    count: int


class CatalogStats(BaseModel):
    """
    Response body for GET /catalog/stats: inventory health at a glance.
    """

    total_items: int
    missing_images: int
    health_score: int                   # % of items with real imagery, rounded half up
    top_categories: List[CategoryCount]
    colours: Dict[str, int]
