"""Query identities for the order cache and the delivery-only projection."""

from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict

from delivery_dashboard.domain.models import Order

ALL_ORDERS_KEY = "orders:all"


class OrderQuery(BaseModel):
    """Which order collection to fetch. ``email=None`` means every order."""
    model_config = ConfigDict(frozen=True)

    email: Optional[str] = None

    @classmethod
    def all_orders(cls) -> "OrderQuery":
        return cls()

    @classmethod
    def for_email(cls, email: str) -> "OrderQuery":
        return cls(email=email.strip())

    @property
    def key(self) -> str:
        if self.email is None:
            return ALL_ORDERS_KEY
        return email_key(self.email)


def email_key(email: str) -> str:
    return f"orders:email:{email.strip().lower()}"


def detail_key(order_id: str) -> str:
    return f"order:{order_id}"


def delivery_orders(orders: Iterable[Order]) -> List[Order]:
    """Orders shipped to an address; pickup and other channels are left out."""
    return [o for o in orders if o.is_delivery]
