"""
Mapping utilities to join generative picks back onto catalog items.

Centralises the conversion from RecommendationResponse (ids + prose) into
the API's SearchResponse (ids + prose + display fields).
"""

from __future__ import annotations

from typing import Dict, List, Sequence

from loguru import logger

from .config import (
    CatalogItem,
    RecommendationResponse,
    RecommendedProduct,
    SearchResponse,
)


def index_by_id(catalog: Sequence[CatalogItem]) -> Dict[str, CatalogItem]:
    """First occurrence wins when a snapshot carries duplicate ids."""
    lookup: Dict[str, CatalogItem] = {}
    for item in catalog:
        lookup.setdefault(item.id, item)
    return lookup


def map_recommendations(
    response: RecommendationResponse,
    catalog: Sequence[CatalogItem],
) -> SearchResponse:
    """
    Attach name / category / image / price to each pick. Picks whose id is
    not in the catalog are skipped; ranks are renumbered to stay contiguous.
    """
    lookup = index_by_id(catalog)

    products: List[RecommendedProduct] = []
    for rec in response.recommendations:
        item = lookup.get(rec.item_id)
        if item is None:
            logger.warning("Item id {} not found in catalog; skipping", rec.item_id)
            continue
        products.append(
            RecommendedProduct(
                rank=len(products) + 1,
                item_id=item.id,
                name=item.name,
                category=item.category,
                image_ref=item.image_ref,
                price=item.price,
                description=rec.description or item.description,
                explanation=rec.explanation,
            )
        )

    logger.info("Mapped {} picks into API schema", len(products))
    return SearchResponse(
        user_query=response.user_query,
        stylist_summary=response.stylist_summary,
        recommendations=products,
    )
