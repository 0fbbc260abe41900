from typing import Optional

from fastapi import APIRouter, Query

from ..config import BASE_DELIVERY_FEE
from ..models import CartTotals, CartTotalsRequest, Coordinates, DeliveryQuote
from ..utils.geo import quote_delivery
from ..utils.pricing import cart_totals, describe_selections

router = APIRouter(prefix="/api", tags=["cart"])


@router.post("/cart/totals")
async def get_cart_totals(data: CartTotalsRequest) -> CartTotals:
    """Price the cart, including the distance-based delivery fee"""
    base_fee = data.base_fee if data.base_fee is not None else BASE_DELIVERY_FEE
    quote = quote_delivery(data.origin, data.destination, base_fee)
    return cart_totals(data.lines, quote.delivery_fee, quote.distance_km)


@router.post("/cart/selections")
async def get_selections(data: CartTotalsRequest):
    """Included/extra breakdown of every selected option, per line"""
    return [
        [option.model_dump() for option in describe_selections(line)]
        for line in data.lines
    ]


@router.get("/delivery/quote")
async def get_delivery_quote(
    origin_lat: float = Query(..., ge=-90, le=90),
    origin_lng: float = Query(..., ge=-180, le=180),
    destination_lat: Optional[float] = Query(None, ge=-90, le=90),
    destination_lng: Optional[float] = Query(None, ge=-180, le=180),
    base_fee: float = Query(BASE_DELIVERY_FEE, ge=0)
) -> DeliveryQuote:
    origin = Coordinates(lat=origin_lat, lng=origin_lng)
    destination = None
    if destination_lat is not None and destination_lng is not None:
        destination = Coordinates(lat=destination_lat, lng=destination_lng)
    return quote_delivery(origin, destination, base_fee)
