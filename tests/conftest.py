import pytest

from storefront import database
from storefront.models import Coordinates, Product
from storefront.redis_manager import ActiveOrderMarker, RedisManager
from storefront.utils import demo_data

RESTAURANT = Coordinates(lat=16.2500, lng=-92.1300)
CUSTOMER = Coordinates(lat=16.2600, lng=-92.1400)


@pytest.fixture(autouse=True)
def demo_mode(monkeypatch):
    """Run against the in-memory demo stores with a clean slate"""
    monkeypatch.setattr(database, "connected", False)
    demo_data.DEMO_ORDERS.clear()
    demo_data.DEMO_ORDER_ITEMS.clear()
    demo_data.DEMO_COURIERS.clear()
    demo_data.demo_state.order_counter = 0
    yield


@pytest.fixture
def burger():
    return Product(
        id="burger",
        name="Burger",
        price=50,
        restaurant_id="1",
        ingredients=[
            {"name": "Bun", "excludable": False},
            {"name": "Onion", "excludable": True},
            {"name": "Tomato", "excludable": True},
        ],
        option_groups=[
            {"id": "sauces", "name": "Sauces", "included_count": 1, "price_per_extra": 5,
             "options": ["Green", "Red", "Chipotle"]},
            {"id": "sides", "name": "Sides", "included_count": 0, "price_per_extra": 12.5,
             "options": ["Fries", "Salad"]},
        ],
    )


@pytest.fixture
def soda():
    return Product(id="soda", name="Soda", price=18.5, restaurant_id="1")


@pytest.fixture
def marker():
    return ActiveOrderMarker("client-1", RedisManager())


@pytest.fixture
def valid_details():
    return {
        "name": "Ana López",
        "address": "Av. Central 12",
        "neighborhood": "Centro",
        "postal_code": "30000",
        "phone": "9611234567",
    }
