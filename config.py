"""
Settings and shared constants

Values are read from the environment (a local .env file is honoured).
Anything that must agree between checkout, the admin views and the
virtual product resolver lives here.
"""

import os
from typing import Dict, List

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS: List[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

ORDER_NUMBER_PREFIX = os.getenv("ORDER_NUMBER_PREFIX", "ORD")
LOW_STOCK_THRESHOLD = int(os.getenv("LOW_STOCK_THRESHOLD", 10))

# Virtual products stand in for custom-design line items
VIRTUAL_CATEGORY_NAME = "Virtual Products"
VIRTUAL_CATEGORY_DESCRIPTION = "Virtual products for custom designs and special orders"
VIRTUAL_STOCK = 999999

VIRTUAL_PRODUCTS: Dict[str, Dict[str, str]] = {
    "custom-blouse": {
        "name": "Custom Blouse Design",
        "sku": "CUSTOM-BLOUSE-001",
        "garment_type": "blouse",
        "description": "Virtual product for custom blouse designs with personalized measurements and fabric selection",
    },
    "custom-salwar-kameez": {
        "name": "Custom Salwar Kameez Design",
        "sku": "CUSTOM-SALWAR-001",
        "garment_type": "salwar-kameez",
        "description": "Virtual product for custom salwar kameez designs with personalized measurements and fabric selection",
    },
}

VIRTUAL_PRODUCT_IDS = frozenset(VIRTUAL_PRODUCTS)


def is_virtual_product(product_id: str) -> bool:
    return product_id in VIRTUAL_PRODUCT_IDS
