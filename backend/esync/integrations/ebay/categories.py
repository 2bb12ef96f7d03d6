"""eBay 顶级类目（卖家通常只在其中一两个里有商品）"""
from __future__ import annotations

from typing import Dict, List

EBAY_CATEGORIES: List[Dict[str, str]] = [
    {"name": "Antiques", "id": "20081"},
    {"name": "Art", "id": "550"},
    {"name": "Baby", "id": "2984"},
    {"name": "Books & Magazines", "id": "267"},
    {"name": "Business & Industrial", "id": "12576"},
    {"name": "Cameras & Photo", "id": "625"},
    {"name": "Cell Phones & Accessories", "id": "15032"},
    {"name": "Clothing, Shoes & Accessories", "id": "11450"},
    {"name": "Coins & Paper Money", "id": "11116"},
    {"name": "Collectibles", "id": "1"},
    {"name": "Computers/Tablets & Networking", "id": "58058"},
    {"name": "Consumer Electronics", "id": "293"},
    {"name": "Crafts", "id": "14339"},
    {"name": "Dolls & Bears", "id": "237"},
    {"name": "Entertainment Memorabilia", "id": "45100"},
    {"name": "Everything Else", "id": "99"},
    {"name": "Gift Cards & Coupons", "id": "172008"},
    {"name": "Health & Beauty", "id": "26395"},
    {"name": "Home & Garden", "id": "11700"},
    {"name": "Jewelry & Watches", "id": "281"},
    {"name": "Motors", "id": "6000"},
    {"name": "Movies & TV", "id": "11232"},
    {"name": "Music", "id": "11233"},
    {"name": "Musical Instruments & Gear", "id": "619"},
    {"name": "Pet Supplies", "id": "1281"},
    {"name": "Pottery & Glass", "id": "870"},
    {"name": "Real Estate", "id": "10542"},
    {"name": "Specialty Services", "id": "316"},
    {"name": "Sporting Goods", "id": "888"},
    {"name": "Sports Mem, Cards & Fan Shop", "id": "64482"},
    {"name": "Stamps", "id": "260"},
    {"name": "Tickets & Experiences", "id": "1305"},
    {"name": "Toys & Hobbies", "id": "220"},
    {"name": "Travel", "id": "3252"},
    {"name": "Video Games & Consoles", "id": "1249"},
]

CATEGORY_IDS: List[str] = [c["id"] for c in EBAY_CATEGORIES]
CATEGORY_NAMES: Dict[str, str] = {c["id"]: c["name"] for c in EBAY_CATEGORIES}
