"""
Reverse geocoding through the Mapbox Geocoding API.

Used to fill delivery details from a map pick. Failures are not errors:
a missing token or a failed or empty lookup yields None and the
caller falls back to raw coordinates.
"""

import asyncio
import logging
import aiohttp
from typing import Optional

from ..config import MAPBOX_TOKEN
from ..models import ReverseGeocodeResult

logger = logging.getLogger(__name__)

GEOCODING_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places/{lng},{lat}.json"


def parse_reverse_geocode(data: dict) -> Optional[ReverseGeocodeResult]:
    """
    Extract address parts from a Mapbox places response.

    Context types used: neighborhood, locality (fallback for neighborhood),
    postcode, place (city) and region (state). A part that is not present
    in the response is returned as None.
    """
    features = data.get("features") or []
    if not features:
        return None

    feature = features[0]
    parts = {}
    for context in feature.get("context") or []:
        context_id = context.get("id", "")
        kind = context_id.split(".", 1)[0]
        if kind in ("neighborhood", "postcode", "place", "region", "locality"):
            parts.setdefault(kind, context.get("text"))

    place_name = feature.get("place_name") or ""
    address = place_name.split(",")[0].strip() or None

    return ReverseGeocodeResult(
        address=address,
        neighborhood=parts.get("neighborhood") or parts.get("locality"),
        postal_code=parts.get("postcode"),
        city=parts.get("place"),
        state=parts.get("region")
    )


async def reverse_geocode(lat: float, lng: float) -> Optional[ReverseGeocodeResult]:
    if not MAPBOX_TOKEN:
        return None

    url = GEOCODING_URL.format(lat=lat, lng=lng)
    params = {"access_token": MAPBOX_TOKEN}

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(url, params=params) as resp:
                if resp.status != 200:
                    logger.warning("Reverse geocoding returned status %s", resp.status)
                    return None
                data = await resp.json()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning("Reverse geocoding failed: %s", e)
        return None

    return parse_reverse_geocode(data)
