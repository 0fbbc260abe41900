import logging
from pymongo.mongo_client import MongoClient
from pymongo.server_api import ServerApi
from pymongo.database import Database
from pymongo.collection import Collection
from .config import MONGODB_URL, MONGODB_DB_NAME

logger = logging.getLogger(__name__)

client: MongoClient = None
db: Database = None
connected: bool = False

# Collections
orders: Collection = None
order_items: Collection = None
restaurants: Collection = None
couriers: Collection = None


def connect_db():
    """Connect to MongoDB"""
    global client, db, orders, order_items, restaurants, couriers, connected

    if not MONGODB_URL:
        logger.info("MONGODB_URL not set, running in demo mode")
        return

    try:
        client = MongoClient(MONGODB_URL, server_api=ServerApi('1'))
        db = client[MONGODB_DB_NAME]

        orders = db["orders"]
        order_items = db["order_items"]
        restaurants = db["restaurants"]
        couriers = db["couriers"]

        orders.create_index("created_at")
        orders.create_index("status")
        orders.create_index("courier_id")
        order_items.create_index("order_id")

        # Test connection
        client.admin.command('ping')
        connected = True
        logger.info("Connected to MongoDB: %s", MONGODB_DB_NAME)
    except Exception as e:
        connected = False
        logger.error("MongoDB connection failed: %s", e, exc_info=True)
        logger.info("Running in demo mode without database")


def close_db():
    """Close MongoDB connection"""
    global client, connected
    if client:
        client.close()
        client = None
        connected = False
        logger.info("MongoDB connection closed")
