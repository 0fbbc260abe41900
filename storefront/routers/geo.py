from fastapi import APIRouter, Query

from ..models import Coordinates
from ..utils.geocoding import reverse_geocode
from ..utils.routing import compute_route

router = APIRouter(prefix="/api", tags=["geo"])


@router.get("/geocode/reverse")
async def get_reverse_geocode(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180)
):
    """Address parts for a map pick, or null when the lookup is unavailable"""
    return await reverse_geocode(lat, lng)


@router.get("/route")
async def get_route(
    origin_lat: float = Query(..., ge=-90, le=90),
    origin_lng: float = Query(..., ge=-180, le=180),
    destination_lat: float = Query(..., ge=-90, le=90),
    destination_lng: float = Query(..., ge=-180, le=180)
):
    """Route geometry as a list of points, or null"""
    return await compute_route(
        Coordinates(lat=origin_lat, lng=origin_lng),
        Coordinates(lat=destination_lat, lng=destination_lng)
    )
