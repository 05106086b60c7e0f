from abc import ABC, abstractmethod
from typing import Optional

from delivery_dashboard.domain.models import DeliveryStatus, Order, OrderCollection
from delivery_dashboard.domain.queries import OrderQuery

class IOrderStore(ABC):
    """Request/response contract of the remote order backend.

    Mutations return the updated order when the backend sends one back,
    ``None`` when it only acknowledges.
    """

    @abstractmethod
    async def list_orders(self, query: OrderQuery) -> OrderCollection:
        pass

    @abstractmethod
    async def get_order(self, order_id: str) -> Order:
        pass

    @abstractmethod
    async def update_delivery_status(self, order_id: str, status: DeliveryStatus, token: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def accept_order(self, order_id: str, token: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def delete_order(self, order_id: str, token: Optional[str] = None) -> None:
        pass
