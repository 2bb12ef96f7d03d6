"""Browse API item → canonical Product."""

from esync.services.catalog import Product, product_from_ebay_item
from esync.services.catalog.ebay_mapper import ebay_handle


ITEM = {
    "itemId": "v1|123456|0",
    "legacyItemId": "123456",
    "title": "Vintage Red Shoe, size 9!",
    "epid": "EP-9",
    "condition": "Used",
    "price": {"value": "19.90", "currency": "AUD"},
    "seller": {"username": "bob_sells"},
    "categories": [{"categoryId": "11450", "categoryName": "Clothing"}, {"categoryId": "3034"}],
    "image": {"imageUrl": "https://i.ebayimg.com/1.jpg"},
    "additionalImages": [{"imageUrl": "https://i.ebayimg.com/1.jpg"}, {"imageUrl": "https://i.ebayimg.com/2.jpg"}],
    "shortDescription": "Barely worn.",
    "estimatedAvailabilities": [{"estimatedAvailableQuantity": 4}],
}


def test_item_maps_to_product():
    product = product_from_ebay_item(ITEM)

    assert product.handle == "vintage-red-shoe-size-9-123456"
    assert product.legacy_item_id == "123456"
    assert product.epid == "EP-9"
    assert product.condition == "Used"
    assert product.categories == ["Clothing"]
    assert product.seller_username == "bob_sells"
    assert (product.price, product.currency) == ("19.90", "AUD")
    assert product.body_html == "Barely worn."
    assert product.quantity == 4
    assert [i.src for i in product.images] == ["https://i.ebayimg.com/1.jpg", "https://i.ebayimg.com/2.jpg"]
    assert product.variants == []


def test_sparse_item():
    product = product_from_ebay_item({"legacyItemId": "77"})
    assert product.handle == "ebay-77"
    assert product.title is None
    assert product.images == []
    assert product.quantity is None
    assert ebay_handle(None, None) is None


def test_product_survives_json_roundtrip():
    product = product_from_ebay_item(ITEM)
    assert Product.from_dict(product.to_dict()) == product
