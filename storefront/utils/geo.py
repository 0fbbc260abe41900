"""
Great-circle distance and distance-based delivery fee.

A missing coordinate means "no location chosen": the distance is ``None``
(not 0, which would mean co-located) and the fee collapses to the base fee.
"""

import math
from typing import Optional

from ..config import PRICE_PER_KM
from ..models import Coordinates, DeliveryQuote

EARTH_RADIUS_KM = 6371


def distance_km(a: Optional[Coordinates], b: Optional[Coordinates]) -> Optional[float]:
    """Haversine distance in kilometers, or None if either point is missing"""
    if a is None or b is None:
        return None

    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_KM * c


def delivery_fee(base_fee: float, distance: Optional[float], price_per_km: float = PRICE_PER_KM) -> float:
    if distance is None:
        return base_fee
    return base_fee + distance * price_per_km


def quote_delivery(
    origin: Optional[Coordinates],
    destination: Optional[Coordinates],
    base_fee: float,
    price_per_km: float = PRICE_PER_KM
) -> DeliveryQuote:
    distance = distance_km(origin, destination)
    return DeliveryQuote(
        distance_km=distance,
        delivery_fee=delivery_fee(base_fee, distance, price_per_km)
    )
