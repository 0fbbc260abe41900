import logging

from fastapi import APIRouter, HTTPException

from ..errors import (
    CheckoutValidationError, InvalidStatusTransition, OrderNotFoundError, TransientNetworkError
)
from ..gateway import order_gateway
from ..models import Coordinates, CourierAssignment, Order, OrderCreate, StatusUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["orders"])


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, CheckoutValidationError):
        return HTTPException(status_code=400, detail=e.message)
    if isinstance(e, OrderNotFoundError):
        return HTTPException(status_code=404, detail="Order not found")
    if isinstance(e, InvalidStatusTransition):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=503, detail="Order storage unavailable, try again")


@router.post("/orders")
async def create_order(data: OrderCreate) -> Order:
    try:
        return await order_gateway.submit_order(data.details, data.delivery_fee, data.lines)
    except (CheckoutValidationError, TransientNetworkError) as e:
        raise _http_error(e)


@router.get("/orders/{order_id}")
async def get_order(order_id: str) -> Order:
    """Current order snapshot, polled by tracking clients"""
    try:
        return await order_gateway.fetch_order(order_id)
    except (OrderNotFoundError, TransientNetworkError) as e:
        raise _http_error(e)


@router.put("/orders/{order_id}/status")
async def update_order_status(order_id: str, data: StatusUpdate) -> Order:
    try:
        return await order_gateway.update_status(order_id, data.status)
    except (OrderNotFoundError, InvalidStatusTransition, TransientNetworkError) as e:
        raise _http_error(e)


@router.put("/orders/{order_id}/courier")
async def assign_courier(order_id: str, data: CourierAssignment) -> Order:
    try:
        return await order_gateway.assign_courier(order_id, data.courier_id)
    except (OrderNotFoundError, TransientNetworkError) as e:
        raise _http_error(e)


# ============ Courier Location ============

@router.get("/couriers/{courier_id}/location")
async def get_courier_location(courier_id: str):
    try:
        return await order_gateway.fetch_courier_location(courier_id)
    except TransientNetworkError as e:
        raise _http_error(e)


@router.put("/couriers/{courier_id}/location")
async def update_courier_location(courier_id: str, location: Coordinates):
    try:
        await order_gateway.set_courier_location(courier_id, location)
    except TransientNetworkError as e:
        raise _http_error(e)
    return {"status": "updated"}
