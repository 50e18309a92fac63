"""
Seed the database with the super admin, default content blocks and a few
sample products. Safe to run repeatedly: existing records are kept.

    python seed.py
"""

from typing import Any, Dict

import structlog

import config
from auth import hash_password
from categories import ensure_category
from content import get_by_type
from database import create_document, db, ensure_indexes, touch
from products import compute_total_stock
from schemas import Content, Product, User

logger = structlog.get_logger(__name__)

DEFAULT_CONTENT: Dict[str, Dict[str, Any]] = {
    "homepage": {
        "hero": {
            "title": f"Welcome to {config.STORE_NAME}",
            "subtitle": "Discover luxury fashion & lifestyle",
            "primary_button": {"text": "Shop Now", "link": "/products"},
            "secondary_button": {"text": "Learn More", "link": "/about"},
        },
        "footer_banner": {"text": "Free shipping on orders over €100", "link": "/shipping"},
    },
    "branding": {
        "site_name": config.STORE_NAME,
        "site_description": "Luxury Fashion & Lifestyle",
        "logo_url": "/logo.jpg",
        "favicon_url": "/favicon.ico",
    },
    "social_media": {
        "social_media": [
            {"platform": "Facebook", "url": "https://facebook.com/austine", "icon": "FacebookIcon", "enabled": True},
            {"platform": "Instagram", "url": "https://instagram.com/austine", "icon": "InstagramIcon", "enabled": True},
            {"platform": "Twitter", "url": "https://twitter.com/austine", "icon": "TwitterIcon", "enabled": True},
        ],
    },
    "navigation": {
        "header": {"home": "Home", "products": "Products", "about": "About", "contact": "Contact"},
        "footer": {
            "description": f"Discover the latest in luxury fashion and lifestyle at {config.STORE_NAME}.",
            "copyright": f"© {config.STORE_NAME}. All rights reserved.",
        },
    },
}

SAMPLE_PRODUCTS = [
    {
        "name": "Leather Ballerina",
        "description": "Elegant leather ballerina flats with cushioned insoles for all-day comfort.",
        "short_description": "Elegant leather flats",
        "price": 129.99,
        "category": "FOOTWEAR",
        "images": [{"url": "/products/product11.jpg", "is_primary": True}, {"url": "/products/product4.jpg"}],
        "variants": [{"key": "black", "label": "Black", "stock": 10}, {"key": "nude", "label": "Nude", "stock": 8}],
        "is_featured": True,
        "is_new_arrival": True,
    },
    {
        "name": "Patent leather Miss M Mini bag",
        "description": "Compact patent leather mini bag with adjustable strap and magnetic closure.",
        "short_description": "Compact patent leather bag",
        "price": 335,
        "category": "BAGS",
        "images": [{"url": "/products/product2.jpg", "is_primary": True}, {"url": "/products/product12.jpg"}],
        "variants": [
            {"key": "burgundy", "label": "Burgundy", "stock": 5},
            {"key": "black", "label": "Black", "stock": 7},
            {"key": "silver", "label": "Silver", "stock": 4},
        ],
        "is_featured": True,
    },
    {
        "name": "Wool Sweater",
        "description": "Soft wool sweater perfect for cooler days. Classic fit and ribbed trims.",
        "short_description": "Soft wool sweater",
        "price": 99,
        "category": "CLOTHING",
        "images": [{"url": "/products/product3.jpg", "is_primary": True}],
        "variants": [
            {"key": "s", "label": "S", "stock": 6},
            {"key": "m", "label": "M", "stock": 6},
            {"key": "l", "label": "L", "stock": 6},
        ],
        "is_new_arrival": True,
    },
    {
        "name": "Chelsea Boots",
        "description": "Durable leather Chelsea boots with elastic side panels and pull tab.",
        "short_description": "Durable Chelsea boots",
        "price": 149,
        "category": "FOOTWEAR",
        "images": [{"url": "/products/product4.jpg", "is_primary": True}],
        "variants": [
            {"key": "40", "label": "EU 40", "stock": 3},
            {"key": "41", "label": "EU 41", "stock": 5},
            {"key": "42", "label": "EU 42", "stock": 2},
        ],
    },
    {
        "name": "Shoulder Bag",
        "description": "Versatile shoulder bag with spacious interior and premium hardware.",
        "price": 210,
        "category": "BAGS",
        "images": [{"url": "/products/product5.jpg", "is_primary": True}],
    },
    {
        "name": "Casual Sneakers",
        "description": "Comfortable everyday sneakers with breathable mesh and rubber outsole.",
        "price": 120,
        "category": "FOOTWEAR",
        "images": [{"url": "/products/product1.jpg", "is_primary": True}],
        "is_featured": True,
    },
]


def ensure_admin() -> str:
    email = config.ADMIN_EMAIL
    existing = db["user"].find_one({"email": email})
    if existing:
        db["user"].update_one(
            {"_id": existing["_id"]},
            {"$set": touch({
                "role": "super_admin",
                "is_active": True,
                "password_hash": hash_password(config.ADMIN_PASSWORD),
                "login_attempts": 0,
                "lock_until": None,
            })},
        )
        logger.info("admin_ensured", email=email)
        return str(existing["_id"])

    admin = User(email=email, name="Admin User", role="super_admin", password_hash=hash_password(config.ADMIN_PASSWORD))
    admin_id = create_document("user", admin)
    logger.info("admin_created", email=email)
    return admin_id


def ensure_content() -> int:
    created = 0
    for content_type, data in DEFAULT_CONTENT.items():
        if get_by_type(content_type):
            continue
        create_document("content", Content(type=content_type, data=data))
        created += 1
    return created


def seed_products() -> int:
    if db["product"].count_documents({}) > 0:
        return 0
    for sample in SAMPLE_PRODUCTS:
        doc = Product(**sample).model_dump()
        doc.pop("sku", None)
        doc.pop("seo_slug", None)
        stock = compute_total_stock(doc)
        if stock is not None:
            doc["total_stock"] = stock
        create_document("product", doc)
        ensure_category(doc["category"])
    return len(SAMPLE_PRODUCTS)


def seed_database() -> Dict[str, Any]:
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    ensure_indexes()
    summary = {
        "admin_id": ensure_admin(),
        "content_created": ensure_content(),
        "products_created": seed_products(),
    }
    logger.info("seed_completed", **summary)
    return summary


if __name__ == "__main__":
    config.configure_logging()
    seed_database()
