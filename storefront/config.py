import os
from dotenv import load_dotenv

load_dotenv()

# MongoDB (optional - demo mode without it)
MONGODB_URL = os.getenv("MONGODB_URL", "")
MONGODB_DB_NAME = os.getenv("MONGODB_DB_NAME", "storefront")

# Redis (optional - active order marker falls back to process memory)
REDIS_URL = os.getenv("REDIS_URL", "")

# Redis Pub/Sub channel for order events
CHANNEL_ORDER_EVENTS = "storefront:orders:events"

# Durable client-side marker
ACTIVE_ORDER_KEY_PREFIX = "storefront:active_order:"

# Mapbox (reverse geocoding and directions)
MAPBOX_TOKEN = os.getenv("MAPBOX_TOKEN", "")

# Pricing
BASE_DELIVERY_FEE = float(os.getenv("BASE_DELIVERY_FEE", "25"))
PRICE_PER_KM = float(os.getenv("PRICE_PER_KM", "10"))

# Checkout
MIN_PHONE_LENGTH = 10
SUBMIT_SUCCESS_DELAY = float(os.getenv("SUBMIT_SUCCESS_DELAY", "0"))

# Tracking (seconds / kilometers)
ORDER_POLL_INTERVAL = float(os.getenv("ORDER_POLL_INTERVAL", "5"))
COURIER_POLL_INTERVAL = float(os.getenv("COURIER_POLL_INTERVAL", "10"))
ROUTE_DEBOUNCE = float(os.getenv("ROUTE_DEBOUNCE", "0.5"))
COURIER_MOVE_THRESHOLD_KM = 0.01

# Default map view before an order is loaded
DEFAULT_CENTER = {"lat": 16.25, "lng": -92.13}
