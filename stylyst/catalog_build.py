from __future__ import annotations

import argparse
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
from loguru import logger

from .config import (
    CATALOG_CSV_PATH,
    CATALOG_IMAGES_DIR,
    CATALOG_SNAPSHOT_PATH,
    COLOUR_KEYWORDS,
    DEFAULT_CATEGORY,
    IMAGE_SKIP_NAMES,
    MISSING_IMAGE_URL,
    STATS_TOP_CATEGORIES,
    CatalogItem,
    CatalogStats,
    CategoryCount,
)
from .normalize import basic_clean
from .retrieval import has_missing_image


CANONICAL_COLUMNS = ["id", "name", "description", "category", "image_ref", "price"]


# ---------------------------
# Column detection / standardization
# ---------------------------

# Lower-cased header keys, checked exact-match first, then substring.
# Covers the Kaggle fashion-product layout (styles.csv) and simpler exports.
COLUMN_CANDIDATES: Dict[str, List[str]] = {
    "id_raw": ["id", "productid", "uniq"],
    "display_name": ["productdisplayname", "display name", "name", "title"],
    "master_category": ["mastercategory"],
    "sub_category": ["subcategory"],
    "article_type": ["articletype"],
    "gender": ["gender"],
    "usage": ["usage"],
    "colour": ["basecolour", "basecolor", "colour", "color"],
    "description_raw": ["description"],
    "category_raw": ["category"],
    "price_raw": ["price"],
    "image_raw": ["image_ref", "image", "link"],
}


def _standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Rename raw CSV headers to the canonical raw schema above.

    Headers are compared lower-cased. An exact match wins over a substring
    match, and a raw column is claimed by at most one canonical name.
    """
    lower_to_original = {str(c).strip().lower(): c for c in df.columns}
    col_map: Dict[str, str] = {}
    claimed: set = set()

    for canon, keys in COLUMN_CANDIDATES.items():
        found = None
        for key in keys:
            if key in lower_to_original and lower_to_original[key] not in claimed:
                found = lower_to_original[key]
                break
        if found is None:
            for header, original in lower_to_original.items():
                if original in claimed:
                    continue
                if any(key in header for key in keys):
                    found = original
                    break
        if found is not None:
            col_map[found] = canon
            claimed.add(found)

    logger.info("Standardizing columns with map: {}", col_map)
    df_std = df.rename(columns=col_map)

    if "id_raw" not in df_std.columns:
        logger.warning("Raw catalog has no id column; resulting catalog will be empty.")
    return df_std


# ---------------------------
# Field builders
# ---------------------------

def clean_item_id(value) -> str:
    """Strip quotes, whitespace and a trailing .jpg from a raw id."""
    text = re.sub(r"['\"\s]+", "", str(value or ""))
    if text.lower().endswith(".jpg"):
        text = text[:-4]
    return text


def build_category(article_type: str, master_category: str, category: str = "") -> str:
    """
    Composite category so type-level queries match: "Casual Shoes (Footwear)"
    rather than the bare master category "Footwear".
    """
    article_type = basic_clean(article_type)
    master_category = basic_clean(master_category)
    category = basic_clean(category)
    if article_type:
        return f"{article_type} ({master_category})" if master_category else article_type
    return category or master_category or DEFAULT_CATEGORY


def build_description(
    display_name: str,
    gender: str = "",
    usage: str = "",
    article_type: str = "",
    colour: str = "",
) -> str:
    """Synthesise "Men Casual Shirts in Blue. Display Name" from structured columns."""
    lead = " ".join(basic_clean(p) for p in (gender, usage, article_type) if basic_clean(p))
    colour = basic_clean(colour)
    if colour:
        lead = f"{lead} in {colour}" if lead else colour
    display_name = basic_clean(display_name)
    if lead and display_name:
        return f"{lead}. {display_name}"
    return lead or display_name


def build_name(display_name: str, gender: str, article_type: str, item_id: str) -> str:
    name = basic_clean(display_name)
    if name:
        return name
    fallback = " ".join(p for p in (basic_clean(gender), basic_clean(article_type)) if p)
    return fallback or f"Fashion Item {item_id}"


def missing_image_ref(item_id: str) -> str:
    return MISSING_IMAGE_URL.format(item_id=item_id)


# ---------------------------
# Images
# ---------------------------

def index_image_folder(image_dir: Path) -> Dict[str, Path]:
    """
    Map both "1163" and "1163.jpg" to the image file so CSV ids resolve
    with or without extension. Hidden files, Thumbs.db and empty files are skipped.
    """
    image_dir = Path(image_dir)
    if not image_dir.is_dir():
        raise FileNotFoundError(f"Image folder not found: {image_dir}")

    images: Dict[str, Path] = {}
    count = 0
    for path in sorted(image_dir.iterdir()):
        if not path.is_file():
            continue
        if path.name.startswith(".") or path.name in IMAGE_SKIP_NAMES:
            continue
        if path.stat().st_size == 0:
            continue
        images[path.stem] = path
        images[path.name] = path
        count += 1

    logger.info("Found {} valid images under {}", count, image_dir)
    return images


def attach_images(
    df: pd.DataFrame,
    images: Dict[str, Path],
    base_url: Optional[str] = None,
) -> Tuple[pd.DataFrame, int]:
    """
    Fill ``image_ref`` from the image index. With ``base_url`` the ref is
    ``base_url/<file name>`` (static serving); otherwise a file URI.
    Unmatched ids get the placeholder URL. Returns (frame, mapped_count).
    """
    df = df.copy()
    refs: List[str] = []
    mapped = 0
    for item_id in df["id"]:
        path = images.get(item_id) or images.get(f"{item_id}.jpg")
        if path is None:
            refs.append(missing_image_ref(item_id))
            continue
        mapped += 1
        if base_url:
            refs.append(f"{base_url.rstrip('/')}/{path.name}")
        else:
            refs.append(path.resolve().as_uri())
    df["image_ref"] = refs

    missing = len(df) - mapped
    logger.info("Image mapping done. Mapped: {}. Missing: {}.", mapped, missing)
    if missing:
        logger.warning("{} catalog items have no image and will never be recommended", missing)
    return df, mapped


# ---------------------------
# Catalog normalization
# ---------------------------

def parse_catalog_csv(source) -> pd.DataFrame:
    """
    Read a product CSV as strings. Malformed rows (stray commas in names are
    common in the Kaggle export) are skipped rather than failing the load.
    """
    df = pd.read_csv(
        source,
        dtype=str,
        keep_default_na=False,
        on_bad_lines="skip",
        skipinitialspace=True,
    )
    logger.info("Parsed {} rows with headers {}", len(df), [str(c).lower() for c in df.columns])
    return df


def normalize_catalog_df(
    df_raw: pd.DataFrame,
    max_items: Optional[int] = None,
) -> pd.DataFrame:
    """
    Main normalization pipeline for a fashion product CSV.

    Input: raw DataFrame with unknown column names.
    Output: canonical schema (all str):

    - id
    - name
    - description
    - category      ("Article Type (Master Category)" when available)
    - image_ref     (raw image column if present, else empty; see attach_images)
    - price
    """
    logger.info("Normalizing catalog dataframe with {} raw rows", len(df_raw))
    df = _standardize_columns(df_raw.copy())

    if "id_raw" not in df.columns:
        return pd.DataFrame(columns=CANONICAL_COLUMNS)

    def col(name: str) -> pd.Series:
        if name in df.columns:
            return df[name].fillna("").astype(str)
        return pd.Series([""] * len(df), index=df.index)

    ids = col("id_raw").map(clean_item_id)
    display = col("display_name")
    gender = col("gender")
    usage = col("usage")
    article = col("article_type")
    colour = col("colour")
    master = col("master_category")
    category_raw = col("category_raw")
    description_raw = col("description_raw")
    image_raw = col("image_raw")
    price_raw = col("price_raw")

    rows = []
    for i in df.index:
        item_id = ids[i]
        if not item_id:
            continue
        description = basic_clean(description_raw[i]) or build_description(
            display[i], gender[i], usage[i], article[i], colour[i]
        )
        rows.append(
            {
                "id": item_id,
                "name": build_name(display[i], gender[i], article[i], item_id),
                "description": description,
                "category": build_category(article[i], master[i], category_raw[i]),
                "image_ref": basic_clean(image_raw[i]),
                "price": basic_clean(price_raw[i]),
            }
        )

    df_out = pd.DataFrame(rows, columns=CANONICAL_COLUMNS)
    before = len(df_out)
    df_out = df_out.drop_duplicates(subset=["id"]).reset_index(drop=True)
    if len(df_out) < before:
        logger.warning("Dropped {} rows with duplicate ids", before - len(df_out))

    if max_items is not None and len(df_out) > max_items:
        df_out = df_out.head(max_items)

    logger.info("Catalog normalization complete. Final rows: {}", len(df_out))
    return df_out


def catalog_items_from_df(df: pd.DataFrame) -> Tuple[CatalogItem, ...]:
    """Freeze a canonical frame into an immutable snapshot of CatalogItems."""
    records = df.reindex(columns=CANONICAL_COLUMNS).fillna("").to_dict(orient="records")
    return tuple(CatalogItem(**rec) for rec in records)


# ---------------------------
# IO helpers
# ---------------------------

def save_catalog_snapshot(df: pd.DataFrame, output_path: Path = CATALOG_SNAPSHOT_PATH) -> Path:
    logger.info("Writing catalog snapshot to {}", output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.reindex(columns=CANONICAL_COLUMNS).to_parquet(output_path, index=False)
    logger.info("Catalog snapshot written with {} rows", len(df))
    return output_path


def load_catalog_snapshot(path: Path = CATALOG_SNAPSHOT_PATH) -> pd.DataFrame:
    """
    Load the normalized catalog snapshot. Raises FileNotFoundError when no
    sync has been run yet.
    """
    if not path.exists():
        raise FileNotFoundError(f"No catalog snapshot at {path}; run catalog_build first.")
    logger.info("Loading catalog snapshot from {}", path)
    df = pd.read_parquet(path)
    logger.info("Loaded catalog snapshot with {} rows", len(df))
    return df


def load_catalog(path: Path = CATALOG_SNAPSHOT_PATH) -> Tuple[CatalogItem, ...]:
    return catalog_items_from_df(load_catalog_snapshot(path))


def clear_catalog_snapshot(path: Path = CATALOG_SNAPSHOT_PATH) -> bool:
    """Delete the snapshot. Returns False when there was nothing to delete."""
    if not path.exists():
        return False
    path.unlink()
    logger.info("Cleared catalog snapshot {}", path)
    return True


def build_catalog_snapshot(
    csv_path: Path = CATALOG_CSV_PATH,
    image_dir: Path = CATALOG_IMAGES_DIR,
    output_path: Path = CATALOG_SNAPSHOT_PATH,
    image_base_url: Optional[str] = None,
    max_items: Optional[int] = None,
) -> Path:
    """
    End-to-end: parse CSV → normalize → map images → write Parquet snapshot.

    Refuses to write a snapshot in which no image matched: every item would
    carry the placeholder and be excluded from search.
    """
    if not Path(csv_path).exists():
        raise FileNotFoundError(f"Catalog CSV not found: {csv_path}")

    df = normalize_catalog_df(parse_catalog_csv(csv_path), max_items=max_items)
    if df.empty:
        raise ValueError(f"Failed to parse any items from {csv_path}")

    df, mapped = attach_images(df, index_image_folder(image_dir), base_url=image_base_url)
    if mapped == 0:
        raise ValueError("No images matched catalog ids; refusing to write snapshot.")

    return save_catalog_snapshot(df, output_path)


# ---------------------------
# Inventory stats
# ---------------------------

def master_category_of(category: str) -> str:
    """
    "Casual Shoes (Footwear)" -> "Footwear". Without parentheses the text
    before the first "-" is used, then "Other".
    """
    parts = category.split("(")
    if len(parts) > 1:
        inner = parts[1].replace(")", "", 1)
        if inner:
            return inner
    return category.split("-")[0].strip() or "Other"


def catalog_stats(
    catalog: Sequence[CatalogItem],
    top_n: int = STATS_TOP_CATEGORIES,
) -> CatalogStats:
    total = len(catalog)
    missing = sum(1 for item in catalog if has_missing_image(item))
    health = (200 * (total - missing) + total) // (2 * total) if total else 0

    cat_counts: Dict[str, int] = {}
    colours: Dict[str, int] = {}
    for item in catalog:
        master = master_category_of(item.category)
        cat_counts[master] = cat_counts.get(master, 0) + 1

        desc = item.description.lower()
        for colour in COLOUR_KEYWORDS:
            if colour.lower() in desc:
                colours[colour] = colours.get(colour, 0) + 1
                break

    # stable sort: equal counts keep first-seen order
    top = sorted(cat_counts.items(), key=lambda kv: -kv[1])[:top_n]
    return CatalogStats(
        total_items=total,
        missing_images=missing,
        health_score=health,
        top_categories=[CategoryCount(name=name, count=count) for name, count in top],
        colours=colours,
    )


# ---------------------------
# CLI entrypoint
# ---------------------------

def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Build or clear the Stylyst catalog snapshot.")
    ap.add_argument("--csv", type=Path, default=CATALOG_CSV_PATH, help="Product CSV (styles.csv)")
    ap.add_argument("--images", type=Path, default=CATALOG_IMAGES_DIR, help="Folder of <id>.jpg images")
    ap.add_argument("--output", type=Path, default=CATALOG_SNAPSHOT_PATH)
    ap.add_argument("--image-base-url", default=None,
                    help="Serve images from this base URL instead of file URIs")
    ap.add_argument("--max-items", type=int, default=None)
    ap.add_argument("--clear", action="store_true", help="Delete the snapshot and exit")
    args = ap.parse_args(argv)

    if args.clear:
        clear_catalog_snapshot(args.output)
        return

    build_catalog_snapshot(
        csv_path=args.csv,
        image_dir=args.images,
        output_path=args.output,
        image_base_url=args.image_base_url,
        max_items=args.max_items,
    )


if __name__ == "__main__":
    # python -m stylyst.catalog_build --csv data/styles.csv --images data/images
    main()
