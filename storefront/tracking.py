"""
Order tracking.

A TrackingSession observes one order. It polls the order snapshot and, once a
courier is assigned, the courier location on independent intervals. The
status is owned by the server: the session only reflects what the latest poll
reports and never advances it locally.

Every applied change re-derives:
- the route to draw (courier -> restaurant while the courier is still going to
  pick up, otherwise courier or restaurant -> customer), fetched after a short
  debounce;
- the camera directive for the map.

Stale responses are dropped by request sequence, by snapshot timestamp and by
session generation, never by list position.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from .config import (
    COURIER_MOVE_THRESHOLD_KM, COURIER_POLL_INTERVAL, DEFAULT_CENTER, ORDER_POLL_INTERVAL,
    ROUTE_DEBOUNCE
)
from .models import (
    CameraDirective, CameraMode, Coordinates, OrderSnapshot, OrderStatus, TrackingState
)
from .redis_manager import ActiveOrderMarker
from .utils.geo import distance_km
from .utils.order_status import courier_label, headline, is_terminal, progress_index

logger = logging.getLogger(__name__)

FetchOrder = Callable[[str], Awaitable[OrderSnapshot]]
FetchCourierLocation = Callable[[str], Awaitable[Optional[Coordinates]]]
ComputeRoute = Callable[[Coordinates, Coordinates], Awaitable[Optional[List[Coordinates]]]]

# Camera presets
ARRIVAL_ZOOM = 17
ARRIVAL_PITCH = 60
ARRIVAL_BEARING = -20
RESTAURANT_ZOOM = 16
RESTAURANT_PITCH = 50
FOLLOW_ZOOM = 16
FOLLOW_PITCH = 45
OVERVIEW_ZOOM = 13
FIT_PADDING = 60

PICKUP_STATUSES = (OrderStatus.PENDING, OrderStatus.ACCEPTED)
DELIVERY_STATUSES = (OrderStatus.PICKED_UP, OrderStatus.ON_WAY)


def route_endpoints(
    order: Optional[OrderSnapshot],
    courier: Optional[Coordinates]
) -> Optional[Tuple[Coordinates, Coordinates]]:
    """Pick (origin, destination) for the route line, or None if it can't be drawn"""
    if order is None or order.status == OrderStatus.CANCELLED:
        return None
    restaurant, customer = order.origin, order.destination

    if order.status in PICKUP_STATUSES and courier is not None:
        if restaurant is None:
            return None
        return courier, restaurant

    origin = courier or restaurant
    if origin is None or customer is None:
        return None
    return origin, customer


def camera_directive(order: Optional[OrderSnapshot], courier: Optional[Coordinates]) -> CameraDirective:
    status = order.status if order else None
    restaurant = order.origin if order else None
    customer = order.destination if order else None

    if status == OrderStatus.DELIVERED and customer is not None:
        return CameraDirective(
            mode=CameraMode.ARRIVAL, center=customer,
            zoom=ARRIVAL_ZOOM, pitch=ARRIVAL_PITCH, bearing=ARRIVAL_BEARING
        )
    if status == OrderStatus.ACCEPTED and restaurant is not None:
        return CameraDirective(
            mode=CameraMode.RESTAURANT, center=restaurant,
            zoom=RESTAURANT_ZOOM, pitch=RESTAURANT_PITCH
        )
    if status in DELIVERY_STATUSES and courier is not None:
        return CameraDirective(
            mode=CameraMode.FOLLOW, center=courier,
            zoom=FOLLOW_ZOOM, pitch=FOLLOW_PITCH
        )

    points = [p for p in (restaurant, customer, courier) if p is not None]
    if not points:
        return CameraDirective(
            mode=CameraMode.FIT, center=Coordinates(**DEFAULT_CENTER), zoom=OVERVIEW_ZOOM
        )
    south_west = Coordinates(lat=min(p.lat for p in points), lng=min(p.lng for p in points))
    north_east = Coordinates(lat=max(p.lat for p in points), lng=max(p.lng for p in points))
    return CameraDirective(
        mode=CameraMode.FIT,
        bounds=[south_west, north_east],
        padding=FIT_PADDING
    )


def _snapshot_changed(previous: Optional[OrderSnapshot], current: OrderSnapshot) -> bool:
    if previous is None:
        return True
    return (
        previous.status != current.status
        or previous.origin != current.origin
        or previous.destination != current.destination
        or previous.courier_id != current.courier_id
    )


class TrackingSession:

    def __init__(
        self,
        order_id: str,
        fetch_order: FetchOrder,
        fetch_courier_location: FetchCourierLocation,
        compute_route: Optional[ComputeRoute] = None,
        *,
        order_interval: float = ORDER_POLL_INTERVAL,
        courier_interval: float = COURIER_POLL_INTERVAL,
        route_debounce: float = ROUTE_DEBOUNCE,
        move_threshold_km: float = COURIER_MOVE_THRESHOLD_KM,
        on_update: Optional[Callable[[TrackingState], None]] = None,
        marker: Optional[ActiveOrderMarker] = None
    ):
        self.order_id = order_id
        self._fetch_order = fetch_order
        self._fetch_courier_location = fetch_courier_location
        self._compute_route = compute_route
        self.order_interval = order_interval
        self.courier_interval = courier_interval
        self.route_debounce = route_debounce
        self.move_threshold_km = move_threshold_km
        self.on_update = on_update
        self.marker = marker

        self.state = TrackingState(
            order_id=order_id,
            camera=camera_directive(None, None),
            headline=headline(OrderStatus.PENDING),
            courier_label=courier_label(None)
        )

        self._generation = 0
        self._order_request = 0
        self._applied_order_request = 0
        self._courier_request = 0
        self._applied_courier_request = 0
        self._route_request = 0
        self._route_endpoints = None
        self._route_task: Optional[asyncio.Task] = None
        self._tasks: List[asyncio.Task] = []
        self._courier_wakeup = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def polling(self) -> bool:
        return not self._closed and not self.state.terminal

    # ============ Lifecycle ============

    def start(self):
        """Start both polling loops. The first order poll runs immediately."""
        if self._tasks or self._closed:
            return
        self._tasks = [
            asyncio.create_task(self._order_loop()),
            asyncio.create_task(self._courier_loop()),
        ]
        logger.info("Tracking order %s", self.order_id)

    async def close(self):
        """Stop polling and drop every response still in flight"""
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        tasks = list(self._tasks)
        if self._route_task is not None:
            tasks.append(self._route_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks = []
        self._route_task = None
        logger.info("Stopped tracking order %s", self.order_id)

    async def finish(self):
        """The user acknowledged the order: stop and forget it"""
        await self.close()
        if self.marker is not None:
            await self.marker.clear()

    async def drain(self):
        """Wait for a pending route recomputation, if any"""
        task = self._route_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    # ============ Polling ============

    async def _order_loop(self):
        while self.polling:
            await self.poll_order()
            if not self.polling:
                break
            await asyncio.sleep(self.order_interval)

    async def _courier_loop(self):
        while self.polling:
            await self.poll_courier()
            if not self.polling:
                break
            try:
                await asyncio.wait_for(self._courier_wakeup.wait(), timeout=self.courier_interval)
            except asyncio.TimeoutError:
                pass
            self._courier_wakeup.clear()

    async def poll_order(self) -> bool:
        """One order poll. Returns True if the response was applied."""
        generation = self._generation
        self._order_request += 1
        request = self._order_request

        try:
            snapshot = await self._fetch_order(self.order_id)
        except Exception as e:
            logger.warning("Order poll failed for %s: %s", self.order_id, e)
            return False

        if generation != self._generation or request < self._applied_order_request:
            logger.debug("Discarding stale order response %s for %s", request, self.order_id)
            return False
        current = self.state.order
        if (current is not None and current.updated_at and snapshot.updated_at
                and snapshot.updated_at < current.updated_at):
            logger.debug("Discarding outdated snapshot of %s", self.order_id)
            return False

        self._applied_order_request = request
        if _snapshot_changed(current, snapshot):
            self._apply_order(snapshot)
        else:
            self.state.order = snapshot
        return True

    async def poll_courier(self) -> bool:
        """One courier poll. Returns True if a new location was applied."""
        order = self.state.order
        courier_id = order.courier_id if order else None
        if not courier_id:
            return False

        generation = self._generation
        self._courier_request += 1
        request = self._courier_request

        try:
            location = await self._fetch_courier_location(courier_id)
        except Exception as e:
            logger.warning("Courier poll failed for %s: %s", courier_id, e)
            return False

        if generation != self._generation or request < self._applied_courier_request:
            return False
        if self.state.order is None or self.state.order.courier_id != courier_id:
            return False
        self._applied_courier_request = request
        if location is None:
            return False

        last = self.state.courier_location
        if last is not None and distance_km(last, location) < self.move_threshold_km:
            return False

        self.state.courier_location = location
        self._refresh()
        return True

    # ============ Derivation ============

    def _apply_order(self, snapshot: OrderSnapshot):
        previous = self.state.order
        state = self.state
        state.order = snapshot
        if previous is not None and previous.courier_id != snapshot.courier_id:
            state.courier_location = None

        index = progress_index(snapshot.status)
        if index is not None:
            state.progress_index = index
        state.cancelled = snapshot.status == OrderStatus.CANCELLED
        state.terminal = is_terminal(snapshot.status)
        state.headline = headline(snapshot.status)
        state.courier_label = courier_label(snapshot.courier_id)

        if snapshot.courier_id and (previous is None or previous.courier_id != snapshot.courier_id):
            self._courier_wakeup.set()
        if state.terminal:
            logger.info("Order %s reached %s, polling stopped", self.order_id, snapshot.status.value)
            self._courier_wakeup.set()

        self._refresh()

    def _refresh(self):
        camera = camera_directive(self.state.order, self.state.courier_location)
        if camera != self.state.camera:
            self.state.camera = camera
        self._schedule_route()
        self._notify()

    def _schedule_route(self):
        endpoints = route_endpoints(self.state.order, self.state.courier_location)
        if endpoints == self._route_endpoints:
            return
        self._route_endpoints = endpoints
        self._route_request += 1

        if self._route_task is not None and not self._route_task.done():
            self._route_task.cancel()
            self._route_task = None

        if endpoints is None:
            self.state.route = None
            return
        if self._compute_route is None:
            return
        self._route_task = asyncio.create_task(self._fetch_route(endpoints, self._route_request))

    async def _fetch_route(self, endpoints: Tuple[Coordinates, Coordinates], request: int):
        generation = self._generation
        if self.route_debounce > 0:
            await asyncio.sleep(self.route_debounce)

        try:
            route = await self._compute_route(*endpoints)
        except Exception as e:
            logger.warning("Route lookup failed for order %s: %s", self.order_id, e)
            route = None

        if generation != self._generation or request != self._route_request:
            return
        self.state.route = route
        self._notify()

    def _notify(self):
        if self.on_update is None:
            return
        try:
            self.on_update(self.state.model_copy(deep=True))
        except Exception as e:
            logger.error("Tracking update handler failed: %s", e, exc_info=True)
