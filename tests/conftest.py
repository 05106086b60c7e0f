import copy
from typing import Optional

import pytest

from delivery_dashboard.application.transition_service import StatusTransitionService
from delivery_dashboard.core.errors import NotFound
from delivery_dashboard.domain.models import DeliveryStatus, Order, OrderCollection
from delivery_dashboard.domain.queries import OrderQuery
from delivery_dashboard.infrastructure.query_cache import OrderQueryCache
from delivery_dashboard.interfaces.IOrderStore import IOrderStore

ADMIN_TOKEN = "admin-token"


def order_payload(order_id="o1", **overrides):
    """An order as the backend sends it over the wire."""
    payload = {
        "_id": order_id,
        "userId": {"_id": "u1", "name": "Rahim Uddin", "email": "rahim@example.com"},
        "deliveryInfo": {
            "fullName": "Rahim Uddin",
            "phone": "+8801700000000",
            "address": "House 12, Road 5",
            "city": "Dhaka",
            "postalCode": "1205",
        },
        "products": [
            {
                "_id": f"{order_id}-li1",
                "productId": {"_id": "p1", "name": "Mango Box", "discountPrice": 12.5, "image": "mango.png"},
                "quantity": 2,
                "price": 12.5,
            }
        ],
        "amount": 25.0,
        "deliveryType": "delivery",
        "status": "paid",
        "createdAt": "2025-01-10T08:30:00.000Z",
    }
    payload.update(overrides)
    return payload


class InMemoryOrderStore(IOrderStore):
    """Backend double. Records calls; ``fail_next[method]`` raises once."""

    def __init__(self, *payloads):
        self.orders = {p["_id"]: copy.deepcopy(p) for p in payloads}
        self.calls = []
        self.fail_next = {}
        self.ack_with_order = True

    def _maybe_fail(self, name):
        exc = self.fail_next.pop(name, None)
        if exc is not None:
            raise exc

    def _require(self, order_id):
        if order_id not in self.orders:
            raise NotFound(f"Order {order_id} not found", order_id)

    def _ack(self, order_id) -> Optional[Order]:
        if not self.ack_with_order:
            return None
        return Order.model_validate(copy.deepcopy(self.orders[order_id]))

    def calls_to(self, name):
        return [c for c in self.calls if c[0] == name]

    async def list_orders(self, query: OrderQuery) -> OrderCollection:
        self.calls.append(("list_orders", query.key))
        self._maybe_fail("list_orders")
        rows = [
            o for o in self.orders.values()
            if query.email is None or o["userId"]["email"].lower() == query.email.lower()
        ]
        return OrderCollection.model_validate({"success": True, "orders": copy.deepcopy(rows)})

    async def get_order(self, order_id: str) -> Order:
        self.calls.append(("get_order", order_id))
        self._maybe_fail("get_order")
        self._require(order_id)
        return Order.model_validate(copy.deepcopy(self.orders[order_id]))

    async def update_delivery_status(self, order_id, status, token):
        self.calls.append(("update_delivery_status", order_id, DeliveryStatus(status).value, token))
        self._maybe_fail("update_delivery_status")
        self._require(order_id)
        self.orders[order_id]["deliveryStatus"] = DeliveryStatus(status).value
        return self._ack(order_id)

    async def accept_order(self, order_id, token):
        self.calls.append(("accept_order", order_id, token))
        self._maybe_fail("accept_order")
        self._require(order_id)
        self.orders[order_id]["isAccepted"] = True
        return self._ack(order_id)

    async def delete_order(self, order_id, token=None):
        self.calls.append(("delete_order", order_id, token))
        self._maybe_fail("delete_order")
        self._require(order_id)
        del self.orders[order_id]


@pytest.fixture
def store():
    return InMemoryOrderStore(
        order_payload("o1"),
        order_payload(
            "o2",
            deliveryType="pickup",
            deliveryInfo=None,
            userId={"_id": "u2", "name": "Karim", "email": "karim@example.com"},
        ),
        order_payload("o3", deliveryStatus="processing", isAccepted=True),
    )


@pytest.fixture
def cache(store):
    return OrderQueryCache(store)


@pytest.fixture
def service(store, cache):
    return StatusTransitionService(store, cache, credentials=lambda: ADMIN_TOKEN)
