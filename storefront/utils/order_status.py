from typing import Optional

from ..errors import InvalidStatusTransition
from ..models import OrderStatus

# Display progress; picked_up and on_way share a step, cancelled has none
PROGRESS_INDEX = {
    OrderStatus.PENDING: 0,
    OrderStatus.ACCEPTED: 1,
    OrderStatus.PICKED_UP: 2,
    OrderStatus.ON_WAY: 2,
    OrderStatus.DELIVERED: 3,
}

TERMINAL_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

HEADLINES = {
    OrderStatus.PENDING: "Waiting for confirmation...",
    OrderStatus.ACCEPTED: "Courier heading to the restaurant",
    OrderStatus.PICKED_UP: "Courier heading to your location",
    OrderStatus.ON_WAY: "Courier heading to your location",
    OrderStatus.DELIVERED: "Order delivered!",
    OrderStatus.CANCELLED: "Order cancelled",
}


def progress_index(status: OrderStatus) -> Optional[int]:
    """Progress step for a status, None for cancelled"""
    return PROGRESS_INDEX.get(status)


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def headline(status: OrderStatus) -> str:
    return HEADLINES.get(status, "")


def courier_label(courier_id: Optional[str]) -> str:
    return "Assigned" if courier_id else "Searching..."


def validate_transition(current: OrderStatus, requested: OrderStatus):
    """
    Server-side rule for order management.

    Progress never moves backwards, terminal statuses are final, and
    cancelled is reachable from any non-terminal status.
    """
    if is_terminal(current):
        raise InvalidStatusTransition(current.value, requested.value)
    if requested == OrderStatus.CANCELLED:
        return
    if PROGRESS_INDEX[requested] < PROGRESS_INDEX[current]:
        raise InvalidStatusTransition(current.value, requested.value)
