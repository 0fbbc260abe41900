from datetime import datetime
from typing import Optional, List, Dict, Tuple
from enum import Enum
from pydantic import BaseModel, Field, field_validator, model_validator

from .config import MIN_PHONE_LENGTH


def _round_price(v: float) -> float:
    if v < 0:
        raise ValueError("Price cannot be negative")
    return round(v, 2)


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    class Config:
        frozen = True


# Catalog models
class Ingredient(BaseModel):
    name: str
    excludable: bool = True  # False: always included, cannot be removed


class OptionGroup(BaseModel):
    id: str
    name: str
    included_count: int = Field(0, ge=0)  # Free selections
    price_per_extra: float = 0
    options: List[str] = []

    @field_validator('price_per_extra')
    @classmethod
    def round_price_per_extra(cls, v):
        return _round_price(v)


class Product(BaseModel):
    id: str
    name: str = ""
    price: float
    restaurant_id: Optional[str] = None
    ingredients: List[Ingredient] = []
    option_groups: List[OptionGroup] = []

    @field_validator('price')
    @classmethod
    def round_price(cls, v):
        return _round_price(v)

    def group(self, group_id: str) -> Optional[OptionGroup]:
        for group in self.option_groups:
            if group.id == group_id:
                return group
        return None


# Cart models
class CartLine(BaseModel):
    product: Product
    quantity: int = Field(1, ge=1)
    # None means "keep every base ingredient"
    retained_ingredients: Optional[List[str]] = None
    # group id -> selected option names, in selection order
    selections: Dict[str, List[str]] = {}

    @model_validator(mode="after")
    def check_customization(self):
        base = [i.name for i in self.product.ingredients]
        if self.retained_ingredients is None:
            self.retained_ingredients = list(base)
        else:
            unknown = [name for name in self.retained_ingredients if name not in base]
            if unknown:
                raise ValueError(f"Unknown ingredients: {', '.join(unknown)}")
            for ingredient in self.product.ingredients:
                if not ingredient.excludable and ingredient.name not in self.retained_ingredients:
                    raise ValueError(f"Ingredient '{ingredient.name}' cannot be removed")
            # Keep product order, drop duplicates
            self.retained_ingredients = [name for name in base if name in self.retained_ingredients]

        for group_id, selected in self.selections.items():
            group = self.product.group(group_id)
            if group is None:
                raise ValueError(f"Unknown option group: {group_id}")
            unknown = [name for name in selected if name not in group.options]
            if unknown:
                raise ValueError(f"Unknown options in '{group.name}': {', '.join(unknown)}")
            if len(set(selected)) != len(selected):
                raise ValueError(f"Duplicate options in '{group.name}'")
        return self

    @property
    def key(self) -> Tuple:
        """Identity of product + customization, used to merge identical lines"""
        selections = tuple(
            (group_id, tuple(names))
            for group_id, names in sorted(self.selections.items())
            if names
        )
        return (self.product.id, tuple(self.retained_ingredients or ()), selections)


class SelectedOption(BaseModel):
    group_id: str
    group_name: str
    name: str
    extra: bool
    price: float


class LineTotals(BaseModel):
    product_id: str
    quantity: int
    unit_price: float
    unit_extras: float
    total: float


class CartTotals(BaseModel):
    lines: List[LineTotals] = []
    products_total: float = 0
    extras_total: float = 0
    subtotal: float = 0
    distance_km: Optional[float] = None  # None: no destination chosen
    delivery_fee: float = 0
    total: float = 0


class DeliveryQuote(BaseModel):
    distance_km: Optional[float] = None
    delivery_fee: float


# Checkout models
class CheckoutStage(str, Enum):
    CART = "cart"
    DETAILS = "details"
    CONFIRMATION = "confirmation"
    SUCCESS = "success"


class DeliveryDetails(BaseModel):
    name: str = ""
    address: str = ""
    neighborhood: str = ""
    postal_code: str = ""
    phone: str = ""
    coordinates: Optional[Coordinates] = None

    def problems(self) -> List[Tuple[str, str]]:
        """Return (field, message) pairs for every unmet checkout requirement"""
        problems = []
        if not self.name.strip():
            problems.append(("name", "Name is required"))
        if not self.address.strip():
            problems.append(("address", "Address is required"))
        if not self.neighborhood.strip():
            problems.append(("neighborhood", "Neighborhood is required"))
        if len(self.phone.strip()) < MIN_PHONE_LENGTH:
            problems.append(("phone", f"Phone must have at least {MIN_PHONE_LENGTH} characters"))
        return problems

    @property
    def is_complete(self) -> bool:
        return not self.problems()

    def full_address(self) -> str:
        return f"{self.address}, {self.neighborhood}, {self.postal_code}"


class ReverseGeocodeResult(BaseModel):
    address: Optional[str] = None
    neighborhood: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


# Order models
class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    PICKED_UP = "picked_up"
    ON_WAY = "on_way"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderItem(BaseModel):
    product_id: str
    name: str = ""
    quantity: int
    unit_price: float
    unit_extras: float = 0
    total: float
    retained_ingredients: List[str] = []
    selections: Dict[str, List[str]] = {}


class OrderSnapshot(BaseModel):
    id: str = Field(..., alias="_id")
    status: OrderStatus = OrderStatus.PENDING
    origin: Optional[Coordinates] = None  # Restaurant
    destination: Optional[Coordinates] = None  # Customer
    courier_id: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        populate_by_name = True


class Order(OrderSnapshot):
    order_number: str = ""
    restaurant_id: Optional[str] = None
    customer_name: str = ""
    customer_phone: str = ""
    delivery_address: str = ""
    items: List[OrderItem] = []
    subtotal: float = 0
    delivery_fee: float = 0
    total: float = 0
    created_at: Optional[datetime] = None


class OrderCreate(BaseModel):
    details: DeliveryDetails
    delivery_fee: float = 0
    lines: List[CartLine]

    @field_validator('delivery_fee')
    @classmethod
    def round_delivery_fee(cls, v):
        return _round_price(v)


class CartTotalsRequest(BaseModel):
    lines: List[CartLine] = []
    origin: Optional[Coordinates] = None
    destination: Optional[Coordinates] = None
    base_fee: Optional[float] = None


class StatusUpdate(BaseModel):
    status: OrderStatus


class CourierAssignment(BaseModel):
    courier_id: str


# Tracking models
class CameraMode(str, Enum):
    ARRIVAL = "arrival"  # Cinematic: centered on customer
    RESTAURANT = "restaurant"  # Cinematic: centered on restaurant
    FOLLOW = "follow"  # Continuously follow the courier
    FIT = "fit"  # Fit every known point


class CameraDirective(BaseModel):
    mode: CameraMode
    center: Optional[Coordinates] = None
    zoom: Optional[float] = None
    pitch: float = 0
    bearing: float = 0
    # [south-west, north-east] for FIT
    bounds: Optional[List[Coordinates]] = None
    padding: int = 0

    @property
    def cinematic(self) -> bool:
        return self.mode in (CameraMode.ARRIVAL, CameraMode.RESTAURANT)


class TrackingState(BaseModel):
    order_id: str
    order: Optional[OrderSnapshot] = None
    courier_location: Optional[Coordinates] = None
    route: Optional[List[Coordinates]] = None
    camera: Optional[CameraDirective] = None
    progress_index: int = 0
    headline: str = ""
    courier_label: str = ""
    cancelled: bool = False
    terminal: bool = False


class Notice(BaseModel):
    """Dismissible message shown after a submission attempt"""
    kind: str  # "success" or "error"
    message: str
    retryable: bool = False
