import json

import pytest
from bson import ObjectId
from pymongo.errors import PyMongoError

from storefront import database
from storefront.config import CHANNEL_ORDER_EVENTS
from storefront.errors import (
    CheckoutValidationError, InvalidStatusTransition, OrderNotFoundError, OrderSubmissionError,
    TransientNetworkError
)
from storefront.gateway import OrderGateway
from storefront.models import CartLine, DeliveryDetails, OrderStatus
from storefront.redis_manager import redis_manager

from .conftest import CUSTOMER


class FakeResult:
    def __init__(self, inserted_id):
        self.inserted_id = inserted_id


class FakeCollection:
    """The handful of pymongo Collection calls the gateway makes"""

    def __init__(self, docs=None, fail_on=()):
        self.docs = list(docs or [])
        self.fail_on = set(fail_on)

    def _check(self, operation):
        if operation in self.fail_on:
            raise PyMongoError(f"{operation} failed")

    def insert_one(self, doc):
        self._check("insert_one")
        doc.setdefault("_id", ObjectId())
        self.docs.append(dict(doc))
        return FakeResult(doc["_id"])

    def insert_many(self, docs):
        self._check("insert_many")
        self.docs.extend(dict(d) for d in docs)

    def delete_one(self, query):
        self.docs = [d for d in self.docs if d["_id"] != query["_id"]]

    def count_documents(self, query):
        return len(self.docs)

    def find_one(self, query, projection=None):
        self._check("find_one")
        return next((dict(d) for d in self.docs if d["_id"] == query["_id"]), None)

    def find(self, query, projection=None):
        return [
            {k: v for k, v in d.items() if k not in ("_id", "order_id")}
            for d in self.docs if all(d.get(k) == v for k, v in query.items())
        ]


class FakeRedis:
    def __init__(self):
        self.published = []

    async def publish(self, channel, message):
        self.published.append((channel, json.loads(message)))


@pytest.fixture
def gateway():
    return OrderGateway()


@pytest.fixture
def mongo(monkeypatch):
    collections = {
        "orders": FakeCollection(),
        "order_items": FakeCollection(),
        "restaurants": FakeCollection([{"_id": "1", "lat": 16.25, "lng": -92.13}]),
        "couriers": FakeCollection(),
    }
    monkeypatch.setattr(database, "connected", True)
    for name, collection in collections.items():
        monkeypatch.setattr(database, name, collection)
    return collections


@pytest.fixture
def events(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(redis_manager, "redis", fake)
    return fake.published


@pytest.fixture
def details(valid_details):
    return DeliveryDetails(coordinates=CUSTOMER, **valid_details)


@pytest.fixture
def lines(burger, soda):
    return [
        CartLine(product=burger, quantity=2, selections={"sauces": ["Green", "Red"]}),
        CartLine(product=soda),
    ]


# ============ Demo storage ============

async def test_submit_order_in_demo_mode(gateway, details, lines, events):
    order = await gateway.submit_order(details, 35.41, lines)

    assert order.status == OrderStatus.PENDING
    assert order.origin.lat == 16.25
    assert order.destination == CUSTOMER
    assert order.subtotal == 128.5
    assert order.total == 163.91
    assert order.delivery_address == "Av. Central 12, Centro, 30000"
    assert [item.total for item in order.items] == [110, 18.5]
    assert events == [(CHANNEL_ORDER_EVENTS, {
        "type": "new_order", "order_id": order.id, "status": "pending", "courier_id": None
    })]

    fetched = await gateway.fetch_order(order.id)
    assert fetched.order_number == order.order_number
    assert len(fetched.items) == 2


async def test_order_numbers_count_up(gateway, details, lines):
    first = await gateway.submit_order(details, 25, lines)
    second = await gateway.submit_order(details, 25, lines)

    assert first.order_number.endswith("-001")
    assert second.order_number.endswith("-002")


async def test_submit_rechecks_input(gateway, details, lines):
    with pytest.raises(CheckoutValidationError) as exc:
        await gateway.submit_order(details, 25, [])
    assert exc.value.field == "cart"

    incomplete = details.model_copy(update={"neighborhood": ""})
    with pytest.raises(CheckoutValidationError) as exc:
        await gateway.submit_order(incomplete, 25, lines)
    assert exc.value.field == "neighborhood"


async def test_status_updates_are_published(gateway, details, lines, events):
    order = await gateway.submit_order(details, 25, lines)

    updated = await gateway.update_status(order.id, OrderStatus.ACCEPTED)

    assert updated.status == OrderStatus.ACCEPTED
    assert updated.updated_at >= order.updated_at
    assert events[-1][1]["type"] == "order_updated"
    assert events[-1][1]["status"] == "accepted"


async def test_invalid_transition(gateway, details, lines):
    order = await gateway.submit_order(details, 25, lines)
    await gateway.update_status(order.id, OrderStatus.CANCELLED)

    with pytest.raises(InvalidStatusTransition):
        await gateway.update_status(order.id, OrderStatus.ACCEPTED)


async def test_courier_location_round_trip(gateway, details, lines):
    order = await gateway.submit_order(details, 25, lines)
    await gateway.assign_courier(order.id, "c1")

    assert await gateway.fetch_courier_location("c1") is None
    await gateway.set_courier_location("c1", CUSTOMER)
    assert await gateway.fetch_courier_location("c1") == CUSTOMER
    assert (await gateway.fetch_order(order.id)).courier_id == "c1"


async def test_publish_failure_does_not_fail_submission(gateway, details, lines, monkeypatch):
    class BrokenRedis:
        async def publish(self, channel, message):
            raise ConnectionError("redis down")

    monkeypatch.setattr(redis_manager, "redis", BrokenRedis())

    order = await gateway.submit_order(details, 25, lines)

    assert order.id


# ============ MongoDB storage ============

async def test_submit_order_stores_order_and_items(gateway, details, lines, mongo):
    order = await gateway.submit_order(details, 25, lines)

    assert ObjectId.is_valid(order.id)
    assert order.origin.lng == -92.13
    assert len(mongo["orders"].docs) == 1
    assert [item["order_id"] for item in mongo["order_items"].docs] == [order.id, order.id]

    fetched = await gateway.fetch_order(order.id)
    assert fetched.id == order.id
    assert len(fetched.items) == 2


async def test_failed_item_insert_rolls_back_order(gateway, details, lines, mongo):
    mongo["order_items"].fail_on.add("insert_many")

    with pytest.raises(OrderSubmissionError):
        await gateway.submit_order(details, 25, lines)

    assert mongo["orders"].docs == []
    assert mongo["order_items"].docs == []


async def test_failed_order_insert(gateway, details, lines, mongo):
    mongo["orders"].fail_on.add("insert_one")

    with pytest.raises(OrderSubmissionError) as exc:
        await gateway.submit_order(details, 25, lines)

    assert exc.value.retryable
    assert mongo["order_items"].docs == []


async def test_fetch_unknown_or_malformed_id(gateway, mongo):
    with pytest.raises(OrderNotFoundError):
        await gateway.fetch_order("not-an-object-id")
    with pytest.raises(OrderNotFoundError):
        await gateway.fetch_order(str(ObjectId()))


async def test_storage_failure_is_transient(gateway, mongo):
    mongo["orders"].fail_on.add("find_one")

    with pytest.raises(TransientNetworkError):
        await gateway.fetch_order(str(ObjectId()))
