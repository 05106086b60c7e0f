from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from delivery_dashboard.application.transition_service import StatusTransitionService
from delivery_dashboard.domain.models import Order
from delivery_dashboard.domain.queries import OrderQuery, delivery_orders
from delivery_dashboard.infrastructure.query_cache import OrderQueryCache

router = APIRouter(prefix="/admin/orders", tags=["orders"])


class DeliveryStatusUpdate(BaseModel):
    # Kept as a plain string so unknown values reach the service and fail as invalid transitions
    delivery_status: str = Field(alias="deliveryStatus")


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_cache(request: Request) -> OrderQueryCache:
    return request.app.state.cache


def get_service(request: Request) -> StatusTransitionService:
    """A transition service bound to the caller's forwarded credential."""
    token = bearer_token(request)
    return StatusTransitionService(
        store=request.app.state.store,
        cache=request.app.state.cache,
        credentials=lambda: token,
    )


def _dump(order: Optional[Order]) -> Optional[dict]:
    return order.model_dump(mode="json") if order is not None else None


@router.get("")
async def list_delivery_orders(email: Optional[str] = None, cache: OrderQueryCache = Depends(get_cache)):
    query = OrderQuery.for_email(email) if email else OrderQuery.all_orders()
    collection = await cache.read_orders(query)
    orders = delivery_orders(collection.orders)
    return {
        "totalOrders": collection.total_orders,
        "totalAmount": collection.total_amount,
        "deliveryOrders": len(orders),
        "orders": [_dump(o) for o in orders],
    }


@router.get("/{order_id}")
async def order_detail(order_id: str, cache: OrderQueryCache = Depends(get_cache)):
    order = await cache.read_order_detail(order_id)
    latitude, longitude = order.map_position()
    return {
        "order": _dump(order),
        "mapPosition": {"latitude": latitude, "longitude": longitude},
    }


@router.put("/{order_id}/accept")
async def accept_order(order_id: str, service: StatusTransitionService = Depends(get_service)):
    order = await service.accept_order(order_id)
    return {"success": True, "order": _dump(order)}


@router.put("/{order_id}/delivery-status")
async def update_delivery_status(
    order_id: str,
    payload: DeliveryStatusUpdate,
    service: StatusTransitionService = Depends(get_service),
):
    order = await service.advance_delivery_status(order_id, payload.delivery_status)
    return {"success": True, "order": _dump(order)}


@router.delete("/{order_id}")
async def delete_order(order_id: str, service: StatusTransitionService = Depends(get_service)):
    await service.delete_order(order_id)
    return {"success": True}
