import io

import pandas as pd
import pytest

from stylyst.catalog_build import (
    attach_images,
    build_catalog_snapshot,
    build_category,
    build_description,
    catalog_items_from_df,
    catalog_stats,
    clean_item_id,
    clear_catalog_snapshot,
    index_image_folder,
    load_catalog,
    load_catalog_snapshot,
    master_category_of,
    normalize_catalog_df,
    parse_catalog_csv,
    save_catalog_snapshot,
)
from stylyst.config import CatalogItem


STYLES_CSV = """id,gender,masterCategory,subCategory,articleType,baseColour,season,year,usage,productDisplayName
1163,Men,Footwear,Shoes,Casual Shoes,Black,Summer,2012,Casual,Puma Men Black Sneakers
"2001",Women,Apparel,Topwear,Tops,Red,Fall,2011,Party,"Red Top, Sequinned"
,Women,Apparel,Topwear,Tops,Blue,Fall,2011,Casual,No Id Top
1163,Men,Footwear,Shoes,Casual Shoes,Black,Summer,2012,Casual,Duplicate Row
3003,Unisex,Accessories,Bags,,Brown,Winter,2013,Casual,
"""


def _normalized():
    return normalize_catalog_df(parse_catalog_csv(io.StringIO(STYLES_CSV)))


def test_build_category_composite_and_fallbacks():
    assert build_category("Casual Shoes", "Footwear") == "Casual Shoes (Footwear)"
    assert build_category("Tops", "") == "Tops"
    assert build_category("", "Accessories") == "Accessories"
    assert build_category("", "", "Outerwear") == "Outerwear"
    assert build_category("", "") == "Fashion"


def test_build_description_from_structured_columns():
    text = build_description("Puma Men Black Sneakers", "Men", "Casual", "Casual Shoes", "Black")
    assert text == "Men Casual Casual Shoes in Black. Puma Men Black Sneakers"
    assert build_description("", "", "", "", "") == ""


def test_clean_item_id_strips_quotes_and_extension():
    assert clean_item_id(' "1163.jpg" ') == "1163"
    assert clean_item_id(None) == ""


def test_normalize_catalog_schema_and_fields():
    df = _normalized()
    assert list(df.columns) == ["id", "name", "description", "category", "image_ref", "price"]

    # id-less row and duplicate id dropped
    assert df["id"].tolist() == ["1163", "2001", "3003"]

    first = df.iloc[0]
    assert first["name"] == "Puma Men Black Sneakers"
    assert first["category"] == "Casual Shoes (Footwear)"
    assert first["description"].startswith("Men Casual Casual Shoes in Black.")

    # quoted comma kept inside the name
    assert df.iloc[1]["name"] == "Red Top, Sequinned"

    # no display name or article type
    last = df.iloc[2]
    assert last["name"] == "Unisex"
    assert last["category"] == "Accessories"


def test_normalize_prefers_explicit_description_and_caps_items():
    raw = pd.DataFrame(
        {
            "ID": ["a1", "a2"],
            "Title": ["Linen Dress", "Wool Coat"],
            "Category": ["Dresses", "Outerwear"],
            "Description": ["Breathable  white linen", ""],
            "Price": ["$120.00", "$200.00"],
        }
    )
    df = normalize_catalog_df(raw, max_items=1)
    assert len(df) == 1
    row = df.iloc[0]
    assert row["category"] == "Dresses"
    assert row["description"] == "Breathable white linen"
    assert row["price"] == "$120.00"


def test_normalize_without_id_column_is_empty():
    df = normalize_catalog_df(pd.DataFrame({"title": ["x"]}))
    assert df.empty


def test_index_image_folder_skips_junk(tmp_path):
    (tmp_path / "1163.jpg").write_bytes(b"\xff\xd8jpeg")
    (tmp_path / ".DS_Store").write_bytes(b"x")
    (tmp_path / "Thumbs.db").write_bytes(b"x")
    (tmp_path / "9.jpg").write_bytes(b"")

    images = index_image_folder(tmp_path)
    assert set(images) == {"1163", "1163.jpg"}


def test_index_image_folder_missing_dir(tmp_path):
    with pytest.raises(FileNotFoundError):
        index_image_folder(tmp_path / "nope")


def test_attach_images_maps_and_marks_missing(tmp_path):
    (tmp_path / "1163.jpg").write_bytes(b"\xff\xd8jpeg")
    df, mapped = attach_images(_normalized(), index_image_folder(tmp_path))
    assert mapped == 1
    refs = dict(zip(df["id"], df["image_ref"]))
    assert refs["1163"].startswith("file://")
    assert refs["2001"] == "https://placehold.co/400x500?text=Missing+2001"


def test_attach_images_with_base_url(tmp_path):
    (tmp_path / "1163.jpg").write_bytes(b"\xff\xd8jpeg")
    df, _ = attach_images(_normalized(), index_image_folder(tmp_path), base_url="/static/images/")
    assert df.iloc[0]["image_ref"] == "/static/images/1163.jpg"


def test_catalog_items_from_df_freezes_snapshot():
    items = catalog_items_from_df(_normalized())
    assert isinstance(items, tuple)
    assert all(isinstance(i, CatalogItem) for i in items)
    assert items[0].id == "1163"


def test_snapshot_round_trip_and_clear(tmp_path):
    path = tmp_path / "snap.parquet"
    save_catalog_snapshot(_normalized(), path)
    df = load_catalog_snapshot(path)
    assert df["id"].tolist() == ["1163", "2001", "3003"]
    assert [i.id for i in load_catalog(path)] == ["1163", "2001", "3003"]

    assert clear_catalog_snapshot(path) is True
    assert clear_catalog_snapshot(path) is False
    with pytest.raises(FileNotFoundError):
        load_catalog_snapshot(path)


def test_build_catalog_snapshot_end_to_end(tmp_path):
    csv_path = tmp_path / "styles.csv"
    csv_path.write_text(STYLES_CSV, encoding="utf-8")
    images = tmp_path / "images"
    images.mkdir()
    (images / "2001.jpg").write_bytes(b"\xff\xd8jpeg")

    out = build_catalog_snapshot(csv_path, images, tmp_path / "snap.parquet")
    items = {i.id: i for i in load_catalog(out)}
    assert items["2001"].image_ref.endswith("2001.jpg")
    assert "placehold.co" in items["1163"].image_ref


def test_build_catalog_snapshot_refuses_without_images(tmp_path):
    csv_path = tmp_path / "styles.csv"
    csv_path.write_text(STYLES_CSV, encoding="utf-8")
    images = tmp_path / "images"
    images.mkdir()

    with pytest.raises(ValueError):
        build_catalog_snapshot(csv_path, images, tmp_path / "snap.parquet")
    assert not (tmp_path / "snap.parquet").exists()


def test_master_category_of():
    assert master_category_of("Casual Shoes (Footwear)") == "Footwear"
    assert master_category_of("Sports - Shoes") == "Sports"
    assert master_category_of("Handbags") == "Handbags"
    assert master_category_of("") == "Other"


def test_catalog_stats_counts_health_categories_and_colours():
    catalog = (
        CatalogItem(id="1", category="Casual Shoes (Footwear)", description="Men Casual Shoes in Black.", image_ref="1.jpg"),
        CatalogItem(id="2", category="Tops (Apparel)", description="Navy blue top", image_ref="2.jpg"),
        CatalogItem(id="3", category="Tops (Apparel)", description="plain",
                    image_ref="https://placehold.co/400x500?text=Missing+3"),
        CatalogItem(id="4", category="Handbags", description="", image_ref="4.jpg"),
        CatalogItem(id="5", category="", description="grey and black", image_ref="5.jpg"),
    )
    stats = catalog_stats(catalog)

    assert stats.total_items == 5
    assert stats.missing_images == 1
    assert stats.health_score == 80
    assert [(c.name, c.count) for c in stats.top_categories] == [
        ("Apparel", 2), ("Footwear", 1), ("Handbags", 1), ("Other", 1),
    ]
    # first keyword in list order wins: "blue" before "navy", "black" before "grey"
    assert stats.colours == {"Black": 2, "Blue": 1}

    assert [c.name for c in catalog_stats(catalog, top_n=2).top_categories] == ["Apparel", "Footwear"]


def test_catalog_stats_rounds_half_up_and_handles_empty():
    catalog = tuple(
        CatalogItem(id=str(i), category="Tops (Apparel)", image_ref="missing.jpg" if i == 0 else "ok.jpg")
        for i in range(8)
    )
    assert catalog_stats(catalog).health_score == 88  # 87.5%

    empty = catalog_stats(())
    assert (empty.total_items, empty.missing_images, empty.health_score) == (0, 0, 0)
    assert empty.top_categories == []
    assert empty.colours == {}
