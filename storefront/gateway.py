"""
Order storage collaborator.

OrderGateway is the concrete implementation of the interfaces the checkout
and tracking sessions consume (submit_order, fetch_order,
fetch_courier_location) plus the order-management side that mutates orders
(status, courier assignment, courier location). It writes to MongoDB when
connected and to in-memory demo stores otherwise.
"""

import logging
from datetime import datetime
from typing import List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from . import database
from .config import CHANNEL_ORDER_EVENTS
from .errors import (
    CheckoutValidationError, OrderNotFoundError, OrderSubmissionError, TransientNetworkError
)
from .models import CartLine, Coordinates, DeliveryDetails, Order, OrderItem, OrderStatus
from .redis_manager import redis_manager
from .utils.demo_data import DEMO_ORDERS, DEMO_ORDER_ITEMS, DEMO_COURIERS, DEMO_RESTAURANTS
from .utils.order_helpers import generate_order_number
from .utils.order_status import validate_transition
from .utils.pricing import cart_totals
from .utils.serializers import serialize_doc

logger = logging.getLogger(__name__)


def _use_db() -> bool:
    return database.connected and database.orders is not None


def _order_items(lines: List[CartLine]) -> List[OrderItem]:
    totals = cart_totals(lines)
    return [
        OrderItem(
            product_id=line.product.id,
            name=line.product.name,
            quantity=line.quantity,
            unit_price=line_totals.unit_price,
            unit_extras=line_totals.unit_extras,
            total=line_totals.total,
            retained_ingredients=list(line.retained_ingredients or []),
            selections={k: list(v) for k, v in line.selections.items()}
        )
        for line, line_totals in zip(lines, totals.lines)
    ]


class OrderGateway:

    # ============ Customer side ============

    async def submit_order(
        self,
        details: DeliveryDetails,
        delivery_fee: float,
        lines: List[CartLine]
    ) -> Order:
        """Create an order with its line items. Either both are stored or neither is."""
        if not lines:
            raise CheckoutValidationError("Order has no items", field="cart")
        problems = details.problems()
        if problems:
            field, message = problems[0]
            raise CheckoutValidationError(message, field=field)

        totals = cart_totals(lines, delivery_fee)
        restaurant_id = lines[0].product.restaurant_id
        origin = self._restaurant_location(restaurant_id)
        now = datetime.utcnow()

        order_doc = {
            "order_number": generate_order_number(),
            "status": OrderStatus.PENDING.value,
            "restaurant_id": restaurant_id,
            "customer_name": details.name,
            "customer_phone": details.phone,
            "delivery_address": details.full_address(),
            "origin": origin.model_dump() if origin else None,
            "destination": details.coordinates.model_dump() if details.coordinates else None,
            "courier_id": None,
            "subtotal": totals.subtotal,
            "delivery_fee": totals.delivery_fee,
            "total": totals.total,
            "created_at": now,
            "updated_at": now
        }
        items = [item.model_dump() for item in _order_items(lines)]

        if not _use_db():
            order_doc["_id"] = str(len(DEMO_ORDERS) + 1)
            for item in items:
                item["order_id"] = order_doc["_id"]
            DEMO_ORDERS.insert(0, order_doc)
            DEMO_ORDER_ITEMS.extend(items)
        else:
            try:
                result = database.orders.insert_one(order_doc)
            except PyMongoError as e:
                logger.error("Failed to create order: %s", e)
                raise OrderSubmissionError("Could not create the order") from e

            order_id = str(result.inserted_id)
            for item in items:
                item["order_id"] = order_id
            try:
                database.order_items.insert_many(items)
            except PyMongoError as e:
                logger.error("Failed to store items of order %s, rolling back: %s", order_id, e)
                database.orders.delete_one({"_id": result.inserted_id})
                raise OrderSubmissionError("Could not create the order") from e
            order_doc["_id"] = order_id

        order = Order(**order_doc, items=items)
        await self._publish("new_order", order)
        return order

    async def fetch_order(self, order_id: str) -> Order:
        if not _use_db():
            for order in DEMO_ORDERS:
                if order["_id"] == order_id:
                    items = [i for i in DEMO_ORDER_ITEMS if i["order_id"] == order_id]
                    return Order(**order, items=items)
            raise OrderNotFoundError(order_id)

        if not ObjectId.is_valid(order_id):
            raise OrderNotFoundError(order_id)
        try:
            doc = database.orders.find_one({"_id": ObjectId(order_id)})
            if not doc:
                raise OrderNotFoundError(order_id)
            items = list(database.order_items.find({"order_id": order_id}, {"_id": 0, "order_id": 0}))
        except PyMongoError as e:
            raise TransientNetworkError(str(e)) from e
        return Order(**serialize_doc(doc), items=items)

    async def fetch_courier_location(self, courier_id: str) -> Optional[Coordinates]:
        if not _use_db():
            return DEMO_COURIERS.get(courier_id)

        try:
            doc = database.couriers.find_one({"_id": courier_id})
        except PyMongoError as e:
            raise TransientNetworkError(str(e)) from e
        if not doc or doc.get("lat") is None or doc.get("lng") is None:
            return None
        return Coordinates(lat=doc["lat"], lng=doc["lng"])

    # ============ Order management side ============

    async def update_status(self, order_id: str, status: OrderStatus) -> Order:
        order = await self.fetch_order(order_id)
        validate_transition(order.status, status)
        order = self._update(order_id, {"status": status.value})
        await self._publish("order_updated", order)
        return order

    async def assign_courier(self, order_id: str, courier_id: str) -> Order:
        await self.fetch_order(order_id)
        order = self._update(order_id, {"courier_id": courier_id})
        await self._publish("courier_assigned", order)
        return order

    async def set_courier_location(self, courier_id: str, location: Coordinates):
        if not _use_db():
            DEMO_COURIERS[courier_id] = location
            return
        try:
            database.couriers.update_one(
                {"_id": courier_id},
                {"$set": {"lat": location.lat, "lng": location.lng, "updated_at": datetime.utcnow()}},
                upsert=True
            )
        except PyMongoError as e:
            raise TransientNetworkError(str(e)) from e

    # ============ Helpers ============

    def _update(self, order_id: str, fields: dict) -> Order:
        fields["updated_at"] = datetime.utcnow()
        if not _use_db():
            for order in DEMO_ORDERS:
                if order["_id"] == order_id:
                    order.update(fields)
                    items = [i for i in DEMO_ORDER_ITEMS if i["order_id"] == order_id]
                    return Order(**order, items=items)
            raise OrderNotFoundError(order_id)

        try:
            doc = database.orders.find_one_and_update(
                {"_id": ObjectId(order_id)},
                {"$set": fields},
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            raise TransientNetworkError(str(e)) from e
        if not doc:
            raise OrderNotFoundError(order_id)
        return Order(**serialize_doc(doc))

    def _restaurant_location(self, restaurant_id: Optional[str]) -> Optional[Coordinates]:
        if not restaurant_id:
            return None
        if not database.connected or database.restaurants is None:
            restaurant = next((r for r in DEMO_RESTAURANTS if r["_id"] == restaurant_id), None)
        else:
            query_id = ObjectId(restaurant_id) if ObjectId.is_valid(restaurant_id) else restaurant_id
            try:
                restaurant = database.restaurants.find_one({"_id": query_id}, {"lat": 1, "lng": 1})
            except PyMongoError as e:
                logger.warning("Restaurant lookup failed for %s: %s", restaurant_id, e)
                restaurant = None
        if not restaurant or restaurant.get("lat") is None or restaurant.get("lng") is None:
            return None
        return Coordinates(lat=restaurant["lat"], lng=restaurant["lng"])

    async def _publish(self, event: str, order: Order):
        try:
            await redis_manager.publish(CHANNEL_ORDER_EVENTS, {
                "type": event,
                "order_id": order.id,
                "status": order.status.value,
                "courier_id": order.courier_id
            })
        except Exception as e:
            logger.error("Failed to publish %s event: %s", event, e)


order_gateway = OrderGateway()
