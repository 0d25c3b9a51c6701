from __future__ import annotations

from typing import Sequence

from .config import PICK_COUNT, CatalogItem


STYLIST_SYSTEM_PROMPT = """
You are a helpful fashion stylist and the re-ranking engine of a two-stage
product search. A keyword retriever has already selected candidate items
from the store inventory; your job is ranking and explanation.

Rules:
1) Rank candidates by how well they fit the user's vibe or occasion, not by keyword overlap.
2) Only recommend items from the candidate list. Use their ids exactly as given.
3) If the query names an item type (e.g. "shoes"), only pick items of that type.
4) Do not give generic explanations like "This is a nice shirt".
5) Explain which visible features (cut, colour, fabric, detail) match the query.
6) Keep each description under 12 words and each explanation under 40 words.
"""


# Structured-output schema for the re-rank call (Gemini schema dialect).
RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "user_query": {"type": "STRING"},
        "stylist_summary": {"type": "STRING"},
        "recommendations": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "rank": {"type": "INTEGER"},
                    "item_id": {"type": "STRING"},
                    "description": {"type": "STRING"},
                    "explanation": {"type": "STRING"},
                },
                "required": ["rank", "item_id", "description", "explanation"],
            },
        },
    },
    "required": ["user_query", "stylist_summary", "recommendations"],
}


def _one_line(text: str) -> str:
    # the block is line-oriented; "|" separates fields
    return " ".join((text or "").split()).replace("|", "/")


def format_candidates(items: Sequence[CatalogItem]) -> str:
    """Render candidates as ``id | name | category | description`` lines."""
    # ids stay verbatim; picks are matched back against them
    return "\n".join(
        f"{it.id} | {_one_line(it.name)} | {_one_line(it.category)} | {_one_line(it.description)}"
        for it in items
    )


def build_rerank_prompt(query: str, items: Sequence[CatalogItem], pick_count: int = PICK_COUNT) -> str:
    return f"""
User Query: "{query.strip()}"

Top candidates found in inventory (id | name | category | description):
{format_candidates(items)}

---
Your task:
1. Select EXACTLY {pick_count} items from the list above that match the user's query.
2. If there are fewer than {pick_count} perfect matches, add the next best relevant items to reach {pick_count}.
3. If the query specifies an item type, ONLY select items that are actually that type.
4. Write a one or two sentence stylist_summary of the overall look.
5. Number picks by rank starting at 1.

Output JSON matching the schema.
"""


def empty_inventory_summary(query: str) -> str:
    return (
        f"I searched the inventory for '{query.strip()}', but couldn't find any items. "
        "Please make sure the catalog has been synced."
    )
