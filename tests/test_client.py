import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from storefront.client import StorefrontClient
from storefront.errors import CheckoutValidationError, OrderNotFoundError, TransientNetworkError
from storefront.models import CartLine, DeliveryDetails, OrderStatus

from .conftest import CUSTOMER, RESTAURANT

ORDER = {
    "_id": "42",
    "status": "accepted",
    "origin": {"lat": 16.25, "lng": -92.13},
    "destination": {"lat": 16.26, "lng": -92.14},
    "courier_id": "c1",
    "order_number": "ORD-20260101-001",
    "total": 75,
}


async def get_order(request):
    if request.match_info["order_id"] != "42":
        raise web.HTTPNotFound(text='{"detail": "Order not found"}', content_type="application/json")
    return web.json_response(ORDER)


async def create_order(request):
    body = await request.json()
    if not body["lines"]:
        return web.json_response({"detail": "Order has no items"}, status=400)
    return web.json_response({**ORDER, "status": "pending", "delivery_fee": body["delivery_fee"]})


async def courier_location(request):
    if request.match_info["courier_id"] == "c1":
        return web.json_response({"lat": 16.255, "lng": -92.135})
    return web.json_response(None)


async def reverse_geocode(request):
    return web.json_response({"address": "Av. Central 12", "neighborhood": "Centro"})


async def route(request):
    return web.json_response([{"lat": 16.25, "lng": -92.13}, {"lat": 16.26, "lng": -92.14}])


async def broken(request):
    return web.json_response({"detail": "Order storage unavailable"}, status=503)


@pytest.fixture
async def api():
    app = web.Application()
    app.router.add_get("/api/orders/{order_id}", get_order)
    app.router.add_post("/api/orders", create_order)
    app.router.add_get("/api/couriers/{courier_id}/location", courier_location)
    app.router.add_get("/api/geocode/reverse", reverse_geocode)
    app.router.add_get("/api/route", route)
    app.router.add_get("/broken/api/orders/{order_id}", broken)

    async with TestServer(app) as server:
        async with StorefrontClient(str(server.make_url(""))) as client:
            yield client


async def test_fetch_order(api):
    order = await api.fetch_order("42")

    assert order.id == "42"
    assert order.status == OrderStatus.ACCEPTED
    assert order.origin == RESTAURANT


async def test_missing_order(api):
    with pytest.raises(OrderNotFoundError):
        await api.fetch_order("7")


async def test_submit_order(api, burger, valid_details):
    details = DeliveryDetails(coordinates=CUSTOMER, **valid_details)

    order = await api.submit_order(details, 35.41, [CartLine(product=burger)])

    assert order.status == OrderStatus.PENDING
    assert order.delivery_fee == 35.41


async def test_rejected_submission(api, valid_details):
    with pytest.raises(CheckoutValidationError) as exc:
        await api.submit_order(DeliveryDetails(**valid_details), 25, [])

    assert exc.value.message == "Order has no items"


async def test_courier_location(api):
    assert (await api.fetch_courier_location("c1")).lat == 16.255
    assert await api.fetch_courier_location("c2") is None


async def test_geo_collaborators(api):
    result = await api.reverse_geocode(16.26, -92.14)
    assert result.neighborhood == "Centro"

    points = await api.compute_route(RESTAURANT, CUSTOMER)
    assert points == [RESTAURANT, CUSTOMER]


async def test_server_errors_are_transient(api):
    api.base_url += "/broken"

    with pytest.raises(TransientNetworkError):
        await api.fetch_order("42")


async def test_unreachable_server():
    async with StorefrontClient("http://127.0.0.1:9", timeout=1) as client:
        with pytest.raises(TransientNetworkError):
            await client.fetch_order("42")
        assert await client.reverse_geocode(16.26, -92.14) is None


async def test_tracking_session_uses_api(api):
    session = api.tracking_session("42", route_debounce=0)

    await session.poll_order()
    await session.poll_courier()
    await session.drain()

    assert session.state.progress_index == 1
    assert session.state.courier_location.lat == 16.255
    assert session.state.route is not None
    await session.close()
