"""
Checkout and order management

Order creation resolves every referenced product before anything is
written, so an invalid item aborts the checkout without leaving a
partial order behind. Read helpers return orders joined with their
user, items and address, ready for the legitimacy filter.
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pymongo.database import Database

from config import ORDER_NUMBER_PREFIX, VIRTUAL_PRODUCTS, is_virtual_product
from database import create_document, object_id, product_filter
from errors import (
    CustomOrderNotFoundError,
    InvalidAddressError,
    OrderNotFoundError,
    StatusTransitionError,
    UserNotFoundError,
)
from legitimacy import (
    DUMMY_EMAIL,
    DUMMY_ORDER_NUMBER,
    NO_ITEMS,
    NON_POSITIVE_TOTAL,
    STRICT_ADMIN,
    LegitimacyRules,
    partition_orders,
)
from schemas import Address, CheckoutIn, CheckoutItem, CustomOrder, Order, OrderItem
from virtual_products import resolve_products

logger = logging.getLogger(__name__)

STATUS_PROGRESSION = ["PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED"]
CANCELLABLE_STATUSES = {"PENDING", "CONFIRMED"}

# Exclusions that mark the order itself as a placeholder, safe to delete
PURGEABLE_REASONS = {NO_ITEMS, DUMMY_ORDER_NUMBER, DUMMY_EMAIL, NON_POSITIVE_TOTAL}


def generate_order_number(prefix: str = ORDER_NUMBER_PREFIX, now: Optional[float] = None) -> str:
    """``<prefix>-<last 6 digits of epoch millis>``, stepping past suffixes reserved for dummy orders."""
    millis = int((time.time() if now is None else now) * 1000)
    number = f"{prefix}-{str(millis)[-6:]}"
    # A prefix that is itself a dummy marker cannot be fixed by the suffix
    if not STRICT_ADMIN.is_dummy_order_number(f"{prefix}-"):
        while STRICT_ADMIN.is_dummy_order_number(number):
            millis += 1
            number = f"{prefix}-{str(millis)[-6:]}"
    return number


def next_status(status: str) -> Optional[str]:
    """Next tracking step, or None once delivered or cancelled."""
    if status not in STATUS_PROGRESSION or status == STATUS_PROGRESSION[-1]:
        return None
    return STATUS_PROGRESSION[STATUS_PROGRESSION.index(status) + 1]


def _checkout_address(db: Database, payload: CheckoutIn) -> Tuple[str, bool]:
    """Return the address id for the order and whether this checkout created it."""
    if payload.address_id:
        oid = object_id(payload.address_id)
        address = db["address"].find_one({"_id": oid, "user_id": payload.user_id}) if oid else None
        if not address:
            raise InvalidAddressError(payload.address_id)
        return payload.address_id, False

    info = payload.shipping_info
    address = Address(
        user_id=payload.user_id,
        first_name=info.first_name,
        last_name=info.last_name,
        email=info.email,
        phone=info.phone,
        address=info.address,
        city=info.city,
        state=info.state,
        zip_code=info.zip_code,
        country=info.country or "India",
    )
    return create_document("address", address, database=db), True


def _custom_order(user_id: str, order_id: str, order_item_id: str, item: CheckoutItem) -> CustomOrder:
    design = item.custom_design
    garment_type = VIRTUAL_PRODUCTS[item.product_id]["garment_type"]
    fabric = design.fabric
    return CustomOrder(
        user_id=user_id,
        order_id=order_id,
        order_item_id=order_item_id,
        garment_type=garment_type,
        fabric=(fabric and fabric.name) or "Custom Fabric",
        fabric_color=(fabric and fabric.color) or "#000000",
        front_design=design.front_design or "Custom Front Design",
        back_design=design.back_design or "Custom Back Design",
        old_measurements=json.dumps(design.measurements or {}),
        price=item.final_price,
        notes=design.own_fabric_details or f"Custom {garment_type} design",
        appointment_date=design.appointment_date,
        appointment_type=design.appointment_type,
    )


def _discard_order(db: Database, order_id: str, stock_taken: Dict[str, int], address_id: Optional[str]) -> None:
    """Undo a partially written checkout: children, order, stock and the address it created."""
    db["customorder"].delete_many({"order_id": order_id})
    db["orderitem"].delete_many({"order_id": order_id})
    db["order"].delete_one({"_id": object_id(order_id)})
    for product_id, quantity in stock_taken.items():
        db["product"].update_one(product_filter(product_id), {"$inc": {"stock": quantity}})
    if address_id:
        db["address"].delete_one({"_id": object_id(address_id)})


def place_order(db: Database, payload: CheckoutIn) -> Dict[str, Any]:
    """
    Create an order with its items from a checkout request.

    Raises:
        UserNotFoundError: the ordering user does not exist.
        UnknownProductError: an item references an invalid product.
        InvalidAddressError: ``address_id`` is not one of the user's addresses.
    """
    oid = object_id(payload.user_id)
    user = db["user"].find_one({"_id": oid}) if oid else None
    if not user:
        raise UserNotFoundError(payload.user_id)

    resolve_products(db, [item.product_id for item in payload.items])
    address_id, address_created = _checkout_address(db, payload)

    order_number = generate_order_number(payload.order_number_prefix or ORDER_NUMBER_PREFIX)
    order = Order(
        order_number=order_number,
        user_id=payload.user_id,
        subtotal=payload.subtotal,
        tax=payload.tax,
        shipping=payload.shipping,
        total=payload.total,
        payment_method=payload.payment_info.method.upper(),
        address_id=address_id,
        notes=payload.payment_info.notes or "",
    )
    order_id = create_document("order", order, database=db)
    logger.info("Order %s created for user %s (%d items, total %.2f)",
                order_number, payload.user_id, len(payload.items), payload.total)

    stock_taken: Dict[str, int] = {}
    try:
        for item in payload.items:
            order_item = OrderItem(
                order_id=order_id,
                product_id=item.product_id,
                quantity=item.quantity,
                price=item.final_price,
                size=item.size,
                color=item.color,
            )
            order_item_id = create_document("orderitem", order_item, database=db)

            if is_virtual_product(item.product_id):
                if item.custom_design:
                    custom = _custom_order(payload.user_id, order_id, order_item_id, item)
                    create_document("customorder", custom, database=db)
            else:
                db["product"].update_one(product_filter(item.product_id), {"$inc": {"stock": -item.quantity}})
                stock_taken[item.product_id] = stock_taken.get(item.product_id, 0) + item.quantity
    except Exception:
        logger.exception("Failed to write items for order %s; discarding it", order_number)
        _discard_order(db, order_id, stock_taken, address_id if address_created else None)
        raise

    db["cartitem"].delete_many({"user_id": payload.user_id})
    return get_order(db, order_id)


def _attach_products(db: Database, items: List[Dict[str, Any]]) -> None:
    cache: Dict[str, Optional[Dict[str, Any]]] = {}
    for item in items:
        pid = item.get("product_id")
        if pid not in cache:
            cache[pid] = db["product"].find_one(
                product_filter(pid), {"name": 1, "images": 1, "sku": 1}
            ) if pid else None
        item["product"] = cache[pid]


def load_orders(db: Database, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Orders matching ``filter_dict``, newest first, each joined with user, items and address."""
    cursor = db["order"].find(filter_dict or {}).sort("created_at", -1)
    if limit:
        cursor = cursor.limit(limit)
    orders = list(cursor)
    if not orders:
        return orders

    user_ids = {object_id(o.get("user_id", "")) for o in orders} - {None}
    users = {
        str(u["_id"]): u
        for u in db["user"].find({"_id": {"$in": list(user_ids)}}, {"name": 1, "email": 1, "is_active": 1})
    }

    order_ids = [str(o["_id"]) for o in orders]
    items_by_order: Dict[str, List[Dict[str, Any]]] = {oid: [] for oid in order_ids}
    for item in db["orderitem"].find({"order_id": {"$in": order_ids}}):
        items_by_order[item["order_id"]].append(item)
    customs_by_order: Dict[str, List[Dict[str, Any]]] = {oid: [] for oid in order_ids}
    for custom in db["customorder"].find({"order_id": {"$in": order_ids}}):
        customs_by_order[custom["order_id"]].append(custom)

    for order in orders:
        order["user"] = users.get(order.get("user_id"))
        order["order_items"] = items_by_order[str(order["_id"])]
        order["custom_orders"] = customs_by_order[str(order["_id"])]
        _attach_products(db, order["order_items"])
        address_oid = object_id(order.get("address_id") or "")
        order["address"] = db["address"].find_one({"_id": address_oid}) if address_oid else None
    return orders


def get_order(db: Database, order_id: str) -> Dict[str, Any]:
    oid = object_id(order_id)
    orders = load_orders(db, {"_id": oid}) if oid else []
    if not orders:
        raise OrderNotFoundError(order_id)
    return orders[0]


def update_order_status(db: Database, order_id: str, status: str) -> Dict[str, Any]:
    """Set the order status; custom orders bought with it follow."""
    oid = object_id(order_id)
    now = datetime.now(timezone.utc)
    res = db["order"].update_one({"_id": oid}, {"$set": {"status": status, "updated_at": now}}) if oid else None
    if res is None or res.matched_count == 0:
        raise OrderNotFoundError(order_id)
    db["customorder"].update_many({"order_id": order_id}, {"$set": {"status": status, "updated_at": now}})
    logger.info("Order %s status -> %s", order_id, status)
    return get_order(db, order_id)


def cleanup_excluded_orders(db: Database, rules: LegitimacyRules = STRICT_ADMIN, dry_run: bool = True) -> Dict[str, Any]:
    """
    Delete dummy orders ``rules`` excludes, with their items and custom orders.

    Only orders that are placeholders in themselves (dummy number or email,
    empty, non-positive total) are removed. Orders hidden because their user
    is inactive or missing are real purchases; they are reported under
    ``skipped`` and left in place.
    """
    _, excluded = partition_orders(load_orders(db), rules)
    report: List[Dict[str, Any]] = []
    skipped: List[Dict[str, Any]] = []
    for o, reason in excluded:
        entry = {"id": str(o["_id"]), "order_number": o.get("order_number"), "reason": reason}
        (report if reason in PURGEABLE_REASONS else skipped).append(entry)
    deleted = {"order": 0, "orderitem": 0, "customorder": 0}
    if not dry_run and report:
        order_ids = [r["id"] for r in report]
        deleted["customorder"] = db["customorder"].delete_many({"order_id": {"$in": order_ids}}).deleted_count
        deleted["orderitem"] = db["orderitem"].delete_many({"order_id": {"$in": order_ids}}).deleted_count
        deleted["order"] = db["order"].delete_many(
            {"_id": {"$in": [object_id(i) for i in order_ids]}}
        ).deleted_count
        logger.info("Removed %d excluded orders (%s)", deleted["order"], rules.name)
    return {"dry_run": dry_run, "rules": rules.name, "excluded": report, "skipped": skipped, "deleted": deleted}


def list_custom_orders(db: Database, user_id: str) -> List[Dict[str, Any]]:
    """A customer's custom orders, newest first."""
    return list(db["customorder"].find({"user_id": user_id}).sort("created_at", -1))


def _find_custom_order(db: Database, custom_order_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
    oid = object_id(custom_order_id)
    query: Dict[str, Any] = {"_id": oid}
    if user_id is not None:
        query["user_id"] = user_id
    custom = db["customorder"].find_one(query) if oid else None
    if not custom:
        raise CustomOrderNotFoundError(custom_order_id)
    return custom


def cancel_custom_order(db: Database, custom_order_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Cancel a custom order on the customer's behalf.

    Raises:
        CustomOrderNotFoundError: no such custom order for ``user_id``.
        StatusTransitionError: the order is already past confirmation.
    """
    custom = _find_custom_order(db, custom_order_id, user_id)
    if custom.get("status") not in CANCELLABLE_STATUSES:
        raise StatusTransitionError(
            custom.get("status"),
            "CANCELLED",
            "This order cannot be cancelled. Only pending or confirmed orders can be cancelled.",
        )
    return update_custom_order_status(db, custom_order_id, "CANCELLED")


def update_custom_order_status(db: Database, custom_order_id: str, status: str) -> Dict[str, Any]:
    custom = _find_custom_order(db, custom_order_id)
    db["customorder"].update_one(
        {"_id": custom["_id"]},
        {"$set": {"status": status, "updated_at": datetime.now(timezone.utc)}},
    )
    logger.info("Custom order %s status -> %s", custom_order_id, status)
    return db["customorder"].find_one({"_id": custom["_id"]})
