DEMO_RESTAURANTS = [
    {"_id": "1", "name": "Tacos El Güero", "lat": 16.2500, "lng": -92.1300, "delivery_fee": 25},
    {"_id": "2", "name": "Pizzería Centro", "lat": 16.2420, "lng": -92.1350, "delivery_fee": 30},
]

# In-memory stores used when MongoDB is not configured
DEMO_ORDERS = []
DEMO_ORDER_ITEMS = []
DEMO_COURIERS = {}


class DemoState:
    order_counter: int = 0


demo_state = DemoState()
