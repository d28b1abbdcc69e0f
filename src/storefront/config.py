"""Storefront settings, read from the environment (and an optional ``.env`` file)."""

import os

from dotenv import load_dotenv

load_dotenv()

FREE_SHIPPING_THRESHOLD = os.getenv("STOREFRONT_FREE_SHIPPING_THRESHOLD", "500")
FLAT_SHIPPING_FEE = os.getenv("STOREFRONT_FLAT_SHIPPING_FEE", "50")
TAX_RATE = os.getenv("STOREFRONT_TAX_RATE", "0.18")
CURRENCY = os.getenv("STOREFRONT_CURRENCY", "INR")

CART_CACHE_KEY = os.getenv("STOREFRONT_CART_CACHE_KEY", "storefront.cart")
CACHE_DIR = os.getenv("STOREFRONT_CACHE_DIR", ".storefront-cache")
CACHE_QUOTA_BYTES = int(os.getenv("STOREFRONT_CACHE_QUOTA_BYTES", 5 * 1024 * 1024))
