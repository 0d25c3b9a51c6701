from __future__ import annotations

import argparse
import io
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple

import httpx
import pandas as pd
from loguru import logger

from .catalog_build import (
    attach_images,
    catalog_items_from_df,
    normalize_catalog_df,
    parse_catalog_csv,
    save_catalog_snapshot,
)
from .config import (
    CATALOG_MAX_REMOTE_ITEMS,
    CATALOG_SNAPSHOT_PATH,
    HTTP_CONNECT_TIMEOUT,
    HTTP_MAX_BYTES,
    HTTP_MAX_REDIRECTS,
    HTTP_READ_TIMEOUT,
    HTTP_USER_AGENT,
    CatalogItem,
)
from .errors import RemoteCallFailedError


def fetch_catalog_csv(url: str) -> str | None:
    """
    Download a catalog CSV.

    Hardening:
      - httpx with timeouts and a redirect cap
      - byte cap on the body
      - None (and a warning) on any HTTP or transport failure
    """
    headers = {"User-Agent": HTTP_USER_AGENT}
    try:
        with httpx.Client(
            follow_redirects=True,
            timeout=httpx.Timeout(HTTP_READ_TIMEOUT, connect=HTTP_CONNECT_TIMEOUT),
            max_redirects=HTTP_MAX_REDIRECTS,
        ) as client:
            r = client.get(url, headers=headers)
            if r.status_code >= 400:
                logger.warning("Catalog fetch: HTTP {} for {}", r.status_code, url)
                return None

            if len(r.content) > HTTP_MAX_BYTES:
                logger.warning("Catalog fetch aborted: {} bytes > {} limit", len(r.content), HTTP_MAX_BYTES)
                return None

            return r.text
    except httpx.TimeoutException:
        logger.warning("Catalog fetch timeout for {}", url)
        return None
    except httpx.HTTPError as e:
        logger.warning("Catalog fetch exception for {}: {}", url, e)
        return None


def remote_image_index(df: pd.DataFrame) -> dict:
    """Every id is served as ``<id>.jpg`` under the remote image base."""
    return {item_id: PurePosixPath(f"{item_id}.jpg") for item_id in df["id"]}


def _remote_catalog_df(
    csv_url: str,
    images_base_url: str,
    max_items: int,
) -> Optional[pd.DataFrame]:
    # None: download failed; empty frame: nothing usable in the CSV
    text = fetch_catalog_csv(csv_url)
    if not text:
        return None

    df = normalize_catalog_df(parse_catalog_csv(io.StringIO(text)), max_items=max_items)
    if df.empty:
        logger.warning("Remote catalog at {} produced no items", csv_url)
        return df

    df, _ = attach_images(df, remote_image_index(df), base_url=images_base_url)
    return df


def load_remote_catalog(
    csv_url: str,
    images_base_url: str,
    max_items: int = CATALOG_MAX_REMOTE_ITEMS,
) -> Tuple[CatalogItem, ...]:
    """
    Fetch, normalize and freeze a catalog hosted next to its images
    (``<images_base_url>/<id>.jpg``). Capped at ``max_items``.
    Returns an empty tuple when the download fails.
    """
    df = _remote_catalog_df(csv_url, images_base_url, max_items)
    if df is None or df.empty:
        return tuple()

    items = catalog_items_from_df(df)
    logger.info("Loaded {} items from {}", len(items), csv_url)
    return items


def sync_remote_catalog(
    csv_url: str,
    images_base_url: str,
    output_path: Path = CATALOG_SNAPSHOT_PATH,
    max_items: int = CATALOG_MAX_REMOTE_ITEMS,
) -> Path:
    """
    Download a remote catalog and write it as the local snapshot.

    Raises RemoteCallFailedError when the CSV cannot be downloaded and
    ValueError when it holds no usable rows. An existing snapshot is left
    untouched on failure.
    """
    df = _remote_catalog_df(csv_url, images_base_url, max_items)
    if df is None:
        raise RemoteCallFailedError(f"Could not download catalog CSV from {csv_url}")
    if df.empty:
        raise ValueError(f"Failed to parse any items from {csv_url}")

    logger.info("Syncing {} remote items from {}", len(df), csv_url)
    return save_catalog_snapshot(df, Path(output_path))


# ---------------------------
# CLI entrypoint
# ---------------------------

def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Sync the Stylyst catalog snapshot from a hosted CSV.")
    ap.add_argument("--csv-url", required=True, help="URL of the product CSV (styles.csv)")
    ap.add_argument("--images-base-url", required=True, help="Base URL serving <id>.jpg images")
    ap.add_argument("--output", type=Path, default=CATALOG_SNAPSHOT_PATH)
    ap.add_argument("--max-items", type=int, default=CATALOG_MAX_REMOTE_ITEMS)
    args = ap.parse_args(argv)

    sync_remote_catalog(
        args.csv_url,
        args.images_base_url,
        output_path=args.output,
        max_items=args.max_items,
    )


if __name__ == "__main__":
    main()
