from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from delivery_dashboard.core.config import settings


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.FAILED, DeliveryStatus.CANCELLED})


class DeliveryType(str, Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class WireModel(BaseModel):
    """Read-only base for everything decoded from the backing store.

    Unknown fields are dropped; the store adds fields freely.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


def _ref_from_id(value):
    # The store sends either a populated document or just its id
    if isinstance(value, str):
        return {"_id": value}
    return value


class Customer(WireModel):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    name: str = ""
    email: str = ""


class DeliveryInfo(WireModel):
    full_name: str = Field(default="", validation_alias=AliasChoices("fullName", "full_name"))
    phone: str = ""
    address: str = ""
    city: str = ""
    postal_code: str = Field(default="", validation_alias=AliasChoices("postalCode", "postal_code"))
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @field_validator("full_name", "phone", "address", "city", "postal_code", mode="before")
    @classmethod
    def _null_is_empty(cls, value):
        return "" if value is None else value

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class ProductRef(WireModel):
    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    name: str = ""
    discount_price: Optional[float] = Field(default=None, validation_alias=AliasChoices("discountPrice", "discount_price"))
    image: Optional[str] = None


class LineItem(WireModel):
    product_ref: ProductRef = Field(validation_alias=AliasChoices("productId", "product_ref"))
    name: str = ""
    quantity: int = Field(gt=0)
    unit_price: float = Field(ge=0, validation_alias=AliasChoices("price", "unitPrice", "unit_price"))

    @model_validator(mode="before")
    @classmethod
    def _fill_product(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("productId", "product_ref"):
            if key in data:
                data[key] = _ref_from_id(data[key])
                ref = data[key]
                # Line name falls back to the product's own name
                if not data.get("name") and isinstance(ref, dict):
                    data["name"] = ref.get("name", "")
        return data


class Order(WireModel):
    """A single order as the backing store reports it.

    Optional wire fields get the dashboard defaults: a missing
    ``deliveryStatus`` reads as ``pending``, a missing ``paymentMethod`` as
    ``cod`` and a missing ``isAccepted`` as ``False``.
    """

    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    customer: Customer = Field(validation_alias=AliasChoices("userId", "customer"))
    delivery_info: Optional[DeliveryInfo] = Field(default=None, validation_alias=AliasChoices("deliveryInfo", "delivery_info"))
    line_items: List[LineItem] = Field(default_factory=list, validation_alias=AliasChoices("products", "lineItems", "line_items"))
    amount: float = Field(default=0, ge=0)
    delivery_type: str = Field(validation_alias=AliasChoices("deliveryType", "delivery_type"))
    payment_status: str = Field(default=PaymentStatus.PENDING.value, validation_alias=AliasChoices("paymentStatus", "status", "payment_status"))
    payment_method: str = Field(default="cod", validation_alias=AliasChoices("paymentMethod", "payment_method"))
    is_accepted: bool = Field(default=False, validation_alias=AliasChoices("isAccepted", "is_accepted"))
    delivery_status: DeliveryStatus = Field(default=DeliveryStatus.PENDING, validation_alias=AliasChoices("deliveryStatus", "delivery_status"))
    otp_verified: bool = Field(default=False, validation_alias=AliasChoices("otpVerified", "otp_verified"))
    created_at: datetime = Field(validation_alias=AliasChoices("createdAt", "created_at"))

    @field_validator("customer", mode="before")
    @classmethod
    def _customer_ref(cls, value):
        return _ref_from_id(value)

    @field_validator("payment_method", mode="before")
    @classmethod
    def _default_payment_method(cls, value):
        return value or "cod"

    @field_validator("is_accepted", "otp_verified", mode="before")
    @classmethod
    def _null_is_false(cls, value):
        return False if value is None else value

    @field_validator("delivery_status", mode="before")
    @classmethod
    def _default_delivery_status(cls, value):
        return value or DeliveryStatus.PENDING

    @property
    def is_delivery(self) -> bool:
        return self.delivery_type == DeliveryType.DELIVERY.value

    @property
    def is_terminal(self) -> bool:
        return self.delivery_status in TERMINAL_STATUSES

    @property
    def contact_name(self) -> str:
        if self.delivery_info and self.delivery_info.full_name:
            return self.delivery_info.full_name
        return self.customer.name

    @property
    def contact_line(self) -> str:
        if self.delivery_info and self.delivery_info.phone:
            return self.delivery_info.phone
        return self.customer.email

    def map_position(self, default: Optional[Tuple[float, float]] = None) -> Tuple[float, float]:
        """(latitude, longitude) for the detail map, or the default centre."""
        if self.delivery_info and self.delivery_info.has_coordinates:
            return (self.delivery_info.latitude, self.delivery_info.longitude)
        return default or (settings.DEFAULT_MAP_LATITUDE, settings.DEFAULT_MAP_LONGITUDE)


class OrderCollection(WireModel):
    success: bool = True
    total_orders: int = Field(default=0, validation_alias=AliasChoices("totalOrders", "total_orders"))
    total_amount: float = Field(default=0, validation_alias=AliasChoices("totalAmount", "total_amount"))
    orders: List[Order] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _fill_totals(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        orders = data.get("orders") or []
        if data.get("totalOrders") is None and data.get("total_orders") is None:
            data.pop("totalOrders", None)
            data["total_orders"] = len(orders)
        if data.get("totalAmount") is None and data.get("total_amount") is None:
            data.pop("totalAmount", None)
            data["total_amount"] = sum(
                (o.get("amount") or 0) if isinstance(o, dict) else o.amount for o in orders
            )
        return data

    def get(self, order_id: str) -> Optional[Order]:
        for order in self.orders:
            if order.id == order_id:
                return order
        return None

    def contains(self, order_id: str) -> bool:
        return self.get(order_id) is not None
