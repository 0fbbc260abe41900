"""
Checkout flow: cart -> details -> confirmation -> success.

Forward moves are gated (non-empty cart, complete delivery details, signed-in
user). Backward moves are always allowed except from success. Totals and the
distance-based delivery fee are recomputed synchronously on every cart or
destination change.

Submission goes through the ``submit_order(details, delivery_fee, lines)``
collaborator. Only one submission may be in flight; further calls while it is
outstanding are ignored. On success the order id is written to the durable
active-order marker, so a restarted session resumes tracking instead of
showing an empty cart.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from .config import BASE_DELIVERY_FEE, PRICE_PER_KM, SUBMIT_SUCCESS_DELAY
from .errors import (
    AuthenticationRequiredError, CheckoutValidationError, OrderSubmissionError
)
from .models import (
    CartLine, CartTotals, CheckoutStage, Coordinates, DeliveryDetails, Notice, Order,
    Product, ReverseGeocodeResult
)
from .redis_manager import ActiveOrderMarker
from .tracking import TrackingSession
from .utils.geo import quote_delivery
from .utils.pricing import cart_totals

logger = logging.getLogger(__name__)

SubmitOrder = Callable[[DeliveryDetails, float, List[CartLine]], Awaitable[Order]]
ReverseGeocode = Callable[[float, float], Awaitable[Optional[ReverseGeocodeResult]]]
TrackingFactory = Callable[[str], TrackingSession]

SUCCESS_MESSAGE = "Order received! You will get a confirmation message shortly."
FAILURE_MESSAGE = "There was a problem confirming your order. Please try again."


def _raw_address(location: Coordinates) -> str:
    return f"{location.lat:.6f}, {location.lng:.6f}"


class CheckoutSession:

    def __init__(
        self,
        submit_order: SubmitOrder,
        *,
        marker: Optional[ActiveOrderMarker] = None,
        origin: Optional[Coordinates] = None,
        base_fee: float = BASE_DELIVERY_FEE,
        price_per_km: float = PRICE_PER_KM,
        is_authenticated: Callable[[], bool] = lambda: True,
        reverse_geocode: Optional[ReverseGeocode] = None,
        tracking_factory: Optional[TrackingFactory] = None,
        success_delay: float = SUBMIT_SUCCESS_DELAY
    ):
        self._submit_order = submit_order
        self._reverse_geocode = reverse_geocode
        self._tracking_factory = tracking_factory
        self._is_authenticated = is_authenticated
        self.marker = marker
        self.origin = origin
        self.base_fee = base_fee
        self.price_per_km = price_per_km
        self.success_delay = success_delay

        self.stage = CheckoutStage.CART
        self.lines: List[CartLine] = []
        self.details = DeliveryDetails()
        self.totals = CartTotals()
        self.errors: Dict[str, str] = {}
        self.notice: Optional[Notice] = None
        self.order: Optional[Order] = None
        self.order_id: Optional[str] = None
        self.tracking: Optional[TrackingSession] = None

        self._submitting = False
        self._generation = 0
        self._geocode_request = 0
        self._recompute()

    @property
    def submitting(self) -> bool:
        return self._submitting

    @property
    def destination(self) -> Optional[Coordinates]:
        return self.details.coordinates

    # ============ Cart ============

    def add_item(
        self,
        product: Product,
        quantity: int = 1,
        retained_ingredients: Optional[List[str]] = None,
        selections: Optional[Dict[str, List[str]]] = None
    ) -> CartLine:
        """Add a customized product; an identical customization bumps the existing line"""
        self._ensure_editable()
        line = CartLine(
            product=product,
            quantity=quantity,
            retained_ingredients=retained_ingredients,
            selections=selections or {}
        )
        for index, existing in enumerate(self.lines):
            if existing.key == line.key:
                line = self._rebuild(existing, quantity=existing.quantity + quantity)
                self.lines[index] = line
                break
        else:
            self.lines.append(line)
        self.errors.pop("cart", None)
        self._recompute()
        return line

    def set_quantity(self, index: int, quantity: int):
        self._ensure_editable()
        if quantity <= 0:
            self.remove_line(index)
            return
        self.lines[index] = self._rebuild(self.lines[index], quantity=quantity)
        self._recompute()

    def remove_line(self, index: int):
        self._ensure_editable()
        del self.lines[index]
        self._recompute()

    def toggle_option(self, index: int, group_id: str, option: str):
        """Deselect a selected option, or append it to the end of the selection order"""
        self._ensure_editable()
        line = self.lines[index]
        selections = {k: list(v) for k, v in line.selections.items()}
        selected = selections.setdefault(group_id, [])
        if option in selected:
            selected.remove(option)
        else:
            selected.append(option)
        self.lines[index] = self._rebuild(line, selections=selections)
        self._recompute()

    def toggle_ingredient(self, index: int, name: str):
        self._ensure_editable()
        line = self.lines[index]
        retained = list(line.retained_ingredients or [])
        if name in retained:
            retained.remove(name)
        else:
            retained.append(name)
        self.lines[index] = self._rebuild(line, retained_ingredients=retained)
        self._recompute()

    # ============ Delivery details ============

    def update_details(self, **fields):
        data = self.details.model_dump()
        data.update(fields)
        self.details = DeliveryDetails(**data)
        for field in fields:
            self.errors.pop(field, None)
        if "coordinates" in fields:
            self._recompute()

    def set_destination(self, location: Optional[Coordinates]):
        self.update_details(coordinates=location)

    async def pick_location(self, location: Coordinates):
        """
        Use a map pick as the delivery destination.

        The fee is refreshed immediately. Address fields are then replaced by
        the reverse geocoding result; any part missing from the result is
        cleared, and an unavailable lookup leaves the raw coordinates as the
        address. A lookup overtaken by a newer pick is discarded.
        """
        self.set_destination(location)
        self._geocode_request += 1
        request = self._geocode_request
        generation = self._generation

        result = None
        if self._reverse_geocode is not None:
            try:
                result = await self._reverse_geocode(location.lat, location.lng)
            except Exception as e:
                logger.warning("Reverse geocoding failed for %s: %s", location, e)

        if request != self._geocode_request or generation != self._generation:
            return

        if result is None:
            self.update_details(address=_raw_address(location), neighborhood="", postal_code="")
            return
        self.update_details(
            address=result.address or _raw_address(location),
            neighborhood=result.neighborhood or "",
            postal_code=result.postal_code or ""
        )

    # ============ Stage transitions ============

    def go_to_details(self):
        if self.stage != CheckoutStage.CART:
            raise CheckoutValidationError("Details can only be entered from the cart", field="stage")
        self._check_cart()
        self.stage = CheckoutStage.DETAILS

    def go_to_confirmation(self):
        if self.stage != CheckoutStage.DETAILS:
            raise CheckoutValidationError("Confirmation requires delivery details", field="stage")
        self._check_cart()
        self._check_details()
        self._check_auth()
        self.stage = CheckoutStage.CONFIRMATION

    def back(self):
        if self.stage == CheckoutStage.SUCCESS:
            raise CheckoutValidationError("Order already submitted", field="stage")
        if self.stage == CheckoutStage.CONFIRMATION:
            self.stage = CheckoutStage.DETAILS
        elif self.stage == CheckoutStage.DETAILS:
            self.stage = CheckoutStage.CART

    async def submit(self) -> Optional[Order]:
        """
        Submit the order once.

        Returns the created order, or None when the call was suppressed
        because another submission is outstanding or the session was disposed
        meanwhile. Raises OrderSubmissionError on a failed attempt; the
        session stays in confirmation and may be retried.
        """
        if self._submitting:
            logger.debug("Submission already in flight, ignoring")
            return None
        if self.stage != CheckoutStage.CONFIRMATION:
            raise CheckoutValidationError("Order can only be submitted from confirmation", field="stage")
        self._check_cart()
        self._check_details()
        self._check_auth()

        self._submitting = True
        generation = self._generation
        self.notice = None
        try:
            try:
                order = await self._submit_order(self.details, self.totals.delivery_fee, list(self.lines))
            except CheckoutValidationError as e:
                self.notice = Notice(kind="error", message=e.message)
                raise
            except Exception as e:
                logger.error("Order submission failed: %s", e, exc_info=True)
                if generation == self._generation:
                    self.notice = Notice(kind="error", message=FAILURE_MESSAGE, retryable=True)
                if isinstance(e, OrderSubmissionError):
                    raise
                raise OrderSubmissionError(FAILURE_MESSAGE) from e

            # The order exists server-side from here on
            if self.marker is not None:
                try:
                    await self.marker.set(order.id)
                except Exception as e:
                    logger.error("Could not record active order %s: %s", order.id, e, exc_info=True)

            if self.success_delay > 0:
                await asyncio.sleep(self.success_delay)

            if generation != self._generation:
                logger.info("Checkout disposed before order %s was confirmed", order.id)
                return None

            self.order = order
            self.lines = []
            self._recompute()
            self.stage = CheckoutStage.SUCCESS
            self.notice = Notice(kind="success", message=SUCCESS_MESSAGE)
            await self._start_tracking(order.id)
            return order
        finally:
            self._submitting = False

    def dismiss_notice(self):
        self.notice = None

    # ============ Lifecycle ============

    async def restore(self) -> bool:
        """Resume at success if the marker records an active order"""
        if self.marker is None:
            return False
        order_id = await self.marker.get()
        if not order_id:
            return False
        self.stage = CheckoutStage.SUCCESS
        await self._start_tracking(order_id)
        return True

    async def finish(self):
        """Acknowledge the active order and start over with an empty cart"""
        await self._stop_tracking()
        if self.marker is not None:
            await self.marker.clear()
        self.order = None
        self.order_id = None
        self.notice = None
        self.errors = {}
        self.lines = []
        self.stage = CheckoutStage.CART
        self._recompute()

    async def dispose(self):
        """Tear down; responses still in flight are dropped"""
        self._generation += 1
        await self._stop_tracking()

    # ============ Helpers ============

    def _recompute(self):
        quote = quote_delivery(self.origin, self.destination, self.base_fee, self.price_per_km)
        self.totals = cart_totals(self.lines, quote.delivery_fee, quote.distance_km)

    def _rebuild(self, line: CartLine, **changes) -> CartLine:
        data = {
            "product": line.product,
            "quantity": line.quantity,
            "retained_ingredients": line.retained_ingredients,
            "selections": line.selections
        }
        data.update(changes)
        return CartLine(**data)

    def _ensure_editable(self):
        if self.stage == CheckoutStage.SUCCESS:
            raise CheckoutValidationError("Order already submitted", field="stage")
        if self._submitting:
            raise CheckoutValidationError("Order is being submitted", field="stage")

    def _check_cart(self):
        if not self.lines:
            self.errors["cart"] = "Your cart is empty"
            raise CheckoutValidationError("Your cart is empty", field="cart")

    def _check_details(self):
        problems = self.details.problems()
        if problems:
            self.errors.update(dict(problems))
            field, message = problems[0]
            raise CheckoutValidationError(message, field=field)

    def _check_auth(self):
        if not self._is_authenticated():
            raise AuthenticationRequiredError()

    async def _start_tracking(self, order_id: str):
        """Track the order, replacing any session that tracks a different one"""
        if self.tracking is not None and self.order_id == order_id:
            return
        await self._stop_tracking()
        self.order_id = order_id
        if self._tracking_factory is None:
            return
        self.tracking = self._tracking_factory(order_id)
        self.tracking.start()

    async def _stop_tracking(self):
        if self.tracking is not None:
            await self.tracking.close()
            self.tracking = None
