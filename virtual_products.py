"""
Virtual product resolution

Custom-design line items reference sentinel product ids such as
``custom-blouse`` that have no real catalog entry. Before an order item
is written, ``resolve_product`` makes sure the referenced product row
exists, creating the placeholder (and the shared "Virtual Products"
category) on first use.

Concurrent checkouts may race to create the same placeholder. The unique
``_id`` on products and the unique index on ``category.name`` decide the
winner; the loser re-reads the row the winner wrote.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import (
    VIRTUAL_CATEGORY_DESCRIPTION,
    VIRTUAL_CATEGORY_NAME,
    VIRTUAL_PRODUCTS,
    VIRTUAL_STOCK,
    is_virtual_product,
)
from database import product_filter
from errors import RaceLossError, UnknownProductError

logger = logging.getLogger(__name__)


def _insert(collection: Collection, doc: Dict[str, Any], key) -> Dict[str, Any]:
    try:
        result = collection.insert_one(doc)
    except DuplicateKeyError as e:
        raise RaceLossError(collection.name, key) from e
    doc["_id"] = result.inserted_id
    return doc


def _insert_or_reread(collection: Collection, doc: Dict[str, Any], lookup: Dict[str, Any]) -> Dict[str, Any]:
    """Insert ``doc``; if another writer got there first, return their row instead."""
    try:
        return _insert(collection, doc, lookup)
    except RaceLossError as e:
        logger.warning("%s; re-reading", e)
        existing = collection.find_one(lookup)
        if existing is None:
            # The duplicate was on some other unique key
            raise e.__cause__
        return existing


def get_or_create_virtual_category(db: Database) -> Dict[str, Any]:
    lookup = {"name": VIRTUAL_CATEGORY_NAME}
    category = db["category"].find_one(lookup)
    if category:
        return category

    now = datetime.now(timezone.utc)
    category = _insert_or_reread(db["category"], {
        "name": VIRTUAL_CATEGORY_NAME,
        "description": VIRTUAL_CATEGORY_DESCRIPTION,
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }, lookup)
    logger.info("Virtual category ready: %s", category["_id"])
    return category


def _virtual_product_doc(product_id: str, category_id: str) -> Dict[str, Any]:
    info = VIRTUAL_PRODUCTS[product_id]
    now = datetime.now(timezone.utc)
    return {
        "_id": product_id,
        "name": info["name"],
        "description": info["description"],
        "sku": info["sku"],
        # Custom design prices are set per line item at checkout
        "price": 0,
        "final_price": 0,
        "stock": VIRTUAL_STOCK,
        "is_active": True,
        "is_featured": False,
        "category_id": category_id,
        "images": [],
        "created_at": now,
        "updated_at": now,
    }


def resolve_product(db: Database, product_id: str) -> Dict[str, Any]:
    """
    Return the product row for ``product_id``, materialising it if it is virtual.

    Raises:
        UnknownProductError: the id is neither in the catalog nor a virtual sentinel.
    """
    lookup = product_filter(product_id)
    product = db["product"].find_one(lookup)
    if product:
        return product

    if not is_virtual_product(product_id):
        raise UnknownProductError(product_id)

    category = get_or_create_virtual_category(db)
    doc = _virtual_product_doc(product_id, str(category["_id"]))
    product = _insert_or_reread(db["product"], doc, lookup)
    logger.info("Created virtual product %s (%s)", product["_id"], product["name"])
    return product


def resolve_products(db: Database, product_ids: List[str]) -> Dict[str, Dict[str, Any]]:
    """Resolve each distinct id once, in first-seen order."""
    resolved: Dict[str, Dict[str, Any]] = {}
    for product_id in product_ids:
        if product_id not in resolved:
            resolved[product_id] = resolve_product(db, product_id)
    return resolved


def setup_virtual_products(db: Database) -> List[Dict[str, Any]]:
    return [resolve_product(db, product_id) for product_id in VIRTUAL_PRODUCTS]
