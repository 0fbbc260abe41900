"""
HTTP implementation of the checkout and tracking collaborators.

A client-held CheckoutSession or TrackingSession can be wired to a running
storefront API:

    async with StorefrontClient("http://localhost:8000") as api:
        checkout = CheckoutSession(api.submit_order, reverse_geocode=api.reverse_geocode,
                                   tracking_factory=api.tracking_session)
"""

import asyncio
import logging
from typing import List, Optional

import aiohttp

from .errors import CheckoutValidationError, OrderNotFoundError, TransientNetworkError
from .models import CartLine, Coordinates, DeliveryDetails, Order, OrderCreate, ReverseGeocodeResult
from .tracking import TrackingSession

logger = logging.getLogger(__name__)


class StorefrontClient:

    def __init__(self, base_url: str, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session: aiohttp.ClientSession = None

    async def __aenter__(self):
        self.session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None

    async def _request(self, method: str, path: str, **kwargs):
        try:
            async with self.session.request(method, self.base_url + path, **kwargs) as resp:
                if resp.status == 404:
                    raise OrderNotFoundError(path.rsplit("/", 1)[-1])
                if resp.status >= 500:
                    raise TransientNetworkError(f"{method} {path} returned {resp.status}")
                data = await resp.json(content_type=None)
                if resp.status in (400, 422):
                    detail = data.get("detail") if isinstance(data, dict) else None
                    raise CheckoutValidationError(str(detail or "Invalid request"))
                return data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientNetworkError(str(e)) from e

    # ============ Collaborators ============

    async def submit_order(self, details: DeliveryDetails, delivery_fee: float, lines: List[CartLine]) -> Order:
        payload = OrderCreate(details=details, delivery_fee=delivery_fee, lines=lines)
        data = await self._request("POST", "/api/orders", json=payload.model_dump(mode="json"))
        return Order(**data)

    async def fetch_order(self, order_id: str) -> Order:
        data = await self._request("GET", f"/api/orders/{order_id}")
        return Order(**data)

    async def fetch_courier_location(self, courier_id: str) -> Optional[Coordinates]:
        data = await self._request("GET", f"/api/couriers/{courier_id}/location")
        if not data:
            return None
        return Coordinates(**data)

    async def reverse_geocode(self, lat: float, lng: float) -> Optional[ReverseGeocodeResult]:
        try:
            data = await self._request("GET", "/api/geocode/reverse", params={"lat": lat, "lng": lng})
        except TransientNetworkError as e:
            logger.warning("Reverse geocoding unavailable: %s", e)
            return None
        return ReverseGeocodeResult(**data) if data else None

    async def compute_route(self, origin: Coordinates, destination: Coordinates) -> Optional[List[Coordinates]]:
        params = {
            "origin_lat": origin.lat, "origin_lng": origin.lng,
            "destination_lat": destination.lat, "destination_lng": destination.lng
        }
        data = await self._request("GET", "/api/route", params=params)
        if not data:
            return None
        return [Coordinates(**point) for point in data]

    def tracking_session(self, order_id: str, **kwargs) -> TrackingSession:
        return TrackingSession(
            order_id,
            self.fetch_order,
            self.fetch_courier_location,
            self.compute_route,
            **kwargs
        )
