"""
Route geometry through the Mapbox Directions API.

A failed lookup returns None; the map renders without a route line.
"""

import asyncio
import logging
import aiohttp
from typing import List, Optional

from ..config import MAPBOX_TOKEN
from ..models import Coordinates

logger = logging.getLogger(__name__)

DIRECTIONS_URL = "https://api.mapbox.com/directions/v5/mapbox/driving/{coords}"


def parse_route(data: dict) -> Optional[List[Coordinates]]:
    """Return the first route as a list of points. GeoJSON order is [lng, lat]."""
    routes = data.get("routes") or []
    if not routes:
        return None
    points = routes[0].get("geometry", {}).get("coordinates") or []
    return [Coordinates(lat=lat, lng=lng) for lng, lat in points] or None


async def compute_route(origin: Coordinates, destination: Coordinates) -> Optional[List[Coordinates]]:
    if not MAPBOX_TOKEN:
        return None

    coords = f"{origin.lng},{origin.lat};{destination.lng},{destination.lat}"
    params = {
        "geometries": "geojson",
        "overview": "full",
        "access_token": MAPBOX_TOKEN
    }

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(DIRECTIONS_URL.format(coords=coords), params=params) as resp:
                if resp.status != 200:
                    logger.warning("Directions API returned status %s", resp.status)
                    return None
                data = await resp.json()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning("Route lookup failed: %s", e)
        return None

    return parse_route(data)
