"""Pure payload helpers: SKU policy, title rewrite, tags, product type, images, inventory."""

import pytest

from esync.services.catalog import Product, ProductImage, ProductOption, ProductVariant
from esync.services.reconciliation import UpsertOptions
from esync.services.reconciliation.payload import (
    assemble_tags,
    build_product_payload,
    images_to_attach,
    requested_quantities,
    resolve_product_type,
    resolve_sku,
    rewrite_title,
)


def _ebay_product(**kw) -> Product:
    base = dict(
        title="Vintage Red Shoe",
        legacy_item_id="123456",
        epid="EP-9",
        condition="Used",
        categories=["Clothing", "Shoes"],
        seller_username="bob_sells",
        price="19.9",
    )
    base.update(kw)
    return Product(**base)


# ---------------- SKU ----------------
@pytest.mark.parametrize(
    "sku_source, kw, expected",
    [
        ("epin", {}, "EP-9"),
        ("epin", {"epid": None}, "123456"),
        ("epin", {"epid": None, "legacy_item_id": None}, None),
        (None, {}, "123456"),
        ("legacyItemId", {}, "123456"),
        (None, {"legacy_item_id": None, "variants": [ProductVariant(sku=None), ProductVariant(sku="V-2")]}, "V-2"),
        ("variantSku", {"variants": [ProductVariant(sku="V-1")]}, "V-1"),
        ("variantSku", {}, None),
    ],
)
def test_resolve_sku_policies(sku_source, kw, expected):
    assert resolve_sku(_ebay_product(**kw), sku_source) == expected


# ---------------- 标题改写 ----------------
def test_rewrite_title_plain_text():
    opts = UpsertOptions.from_mapping({"rewriteTitles": True, "rewriteFind": "Vintage", "rewriteReplace": "Retro"})
    assert rewrite_title("Vintage Red Shoe", opts) == "Retro Red Shoe"


def test_rewrite_title_regex_with_dollar_group():
    opts = UpsertOptions.from_mapping({
        "rewriteTitles": "true",
        "rewriteIsRegex": True,
        "rewriteFind": r"(\w+) Shoe",
        "rewriteReplace": "$1 Sneaker",
    })
    assert rewrite_title("Vintage Red Shoe", opts) == "Vintage Red Sneaker"


def test_rewrite_title_bad_pattern_keeps_original():
    opts = UpsertOptions.from_mapping({"rewriteTitles": True, "rewriteIsRegex": True, "rewriteFind": "(unclosed"})
    assert rewrite_title("Vintage Red Shoe", opts) == "Vintage Red Shoe"


def test_rewrite_title_disabled():
    opts = UpsertOptions.from_mapping({"rewriteTitles": False, "rewriteFind": "Red", "rewriteReplace": "Blue"})
    assert rewrite_title("Vintage Red Shoe", opts) == "Vintage Red Shoe"


# ---------------- tags / product type ----------------
def test_tags_combine_condition_categories_and_appended():
    product = _ebay_product(tags="Shoes, summer")
    opts = UpsertOptions.from_mapping({"appendTags": "imported, summer"})
    assert assemble_tags(product, opts) == "Used, Clothing, Shoes, summer, imported"


def test_product_type_sources():
    product = _ebay_product()
    assert resolve_product_type(product, UpsertOptions()) == "Clothing"
    manual = UpsertOptions.from_mapping({"productTypeSource": "manual", "manualProductType": "Footwear"})
    assert resolve_product_type(product, manual) == "Footwear"
    csv_product = Product(handle="x", product_type="Hats")
    assert resolve_product_type(csv_product, UpsertOptions()) == "Hats"


# ---------------- 载荷 ----------------
def test_payload_for_marketplace_item_has_single_variant():
    opts = UpsertOptions.from_mapping({"inventoryPolicy": "continue", "status": "draft"})
    payload = build_product_payload(_ebay_product(), "123456", opts)

    assert payload["title"] == "Vintage Red Shoe"
    assert payload["vendor"] == "bob_sells"
    assert payload["status"] == "draft"
    assert payload["product_type"] == "Clothing"
    assert payload["variants"] == [{
        "sku": "123456",
        "price": "19.90",
        "inventory_management": "shopify",
        "inventory_policy": "continue",
    }]
    assert "options" not in payload


def test_payload_for_csv_product_keeps_variants_and_options():
    product = Product(
        handle="tee",
        title="Tee",
        vendor="Acme",
        options=[ProductOption(name="Size")],
        variants=[
            ProductVariant(option1="S", price="10", grams="250.0", compare_at_price="12"),
            ProductVariant(option1="M", price="bad", sku="TEE-M"),
        ],
    )
    payload = build_product_payload(product, "TEE-S", UpsertOptions(default_vendor="Fallback"))

    assert payload["handle"] == "tee"
    assert payload["vendor"] == "Acme"
    assert payload["options"] == [{"name": "Size"}]
    first, second = payload["variants"]
    assert first["sku"] == "TEE-S"
    assert first["grams"] == 250
    assert first["compare_at_price"] == "12.00"
    assert first["option1"] == "S"
    assert second["sku"] == "TEE-M"
    assert second["price"] == "0.00"


def test_images_include_variant_images_once():
    product = Product(
        images=[ProductImage(src="a.jpg"), ProductImage(src="b.jpg")],
        variants=[ProductVariant(image="b.jpg"), ProductVariant(image="c.jpg")],
    )
    assert [i.src for i in images_to_attach(product)] == ["a.jpg", "b.jpg", "c.jpg"]


def test_requested_quantities():
    opts = UpsertOptions.from_mapping({"defaultQuantity": "3"})
    assert requested_quantities(_ebay_product(), "123456", opts) == {"123456": 3}
    assert requested_quantities(_ebay_product(), "123456", UpsertOptions()) == {}

    product = Product(variants=[
        ProductVariant(option1="S", inventory_qty=5),
        ProductVariant(option1="M", sku="M-1"),
        ProductVariant(option1="L", sku="L-1", inventory_qty=0),
    ])
    assert requested_quantities(product, "S-1", opts) == {"S-1": 5, "M-1": 3}


def test_sync_key_is_not_backfilled_onto_a_second_variant():
    # 第一个变体没 SKU，同步键正好是第二个变体自己的 SKU
    product = Product(handle="tee", title="Tee", variants=[
        ProductVariant(option1="S", price="10", inventory_qty=4),
        ProductVariant(option1="M", price="10", sku="TEE-M", inventory_qty=7),
    ])
    sku = resolve_sku(product, None)
    assert sku == "TEE-M"

    payload = build_product_payload(product, sku, UpsertOptions())
    assert [v.get("sku") for v in payload["variants"]] == [None, "TEE-M"]
    assert requested_quantities(product, sku, UpsertOptions()) == {"TEE-M": 7}
