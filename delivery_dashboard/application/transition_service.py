import logging
from typing import Callable, Optional, Union

from delivery_dashboard.core.errors import DashboardError, InvalidTransition, Unauthorized
from delivery_dashboard.domain.models import DeliveryStatus, Order
from delivery_dashboard.infrastructure.query_cache import OrderQueryCache
from delivery_dashboard.interfaces.IOrderStore import IOrderStore

logger = logging.getLogger(__name__)

# Returns the bearer token for the current session, or None
CredentialProvider = Callable[[], Optional[str]]


class StatusTransitionService:
    """Owns the legal order mutations: accept, advance delivery status, delete.

    Preconditions are checked before any request goes out. Nothing is
    changed locally until the backing store confirms; a confirmed mutation
    invalidates every cache key the order appears under.

    Delivery status moves freely between non-terminal values. Once an order
    is delivered, failed or cancelled it stays that way.
    """

    def __init__(self, store: IOrderStore, cache: OrderQueryCache, credentials: CredentialProvider):
        self.store = store
        self.cache = cache
        self.credentials = credentials

    async def advance_delivery_status(self, order_id: str, target_status: Union[DeliveryStatus, str]) -> Optional[Order]:
        status = self._parse_status(order_id, target_status)
        token = self._require_token(order_id)
        order = await self._load(order_id)

        if not order.is_delivery:
            raise InvalidTransition(
                f"Order {order_id} is a {order.delivery_type} order; delivery status does not apply", order_id
            )
        if order.is_terminal:
            raise InvalidTransition(
                f"Order {order_id} is already {order.delivery_status.value}; it cannot move to {status.value}", order_id
            )

        try:
            updated = await self.store.update_delivery_status(order_id, status, token)
        except DashboardError as e:
            logger.error(f"❌ Delivery status {status.value} for order {order_id} rejected: {e.detail}")
            raise

        logger.info(f"✅ Order {order_id}: {order.delivery_status.value} -> {status.value}")
        return await self._confirm(order, updated)

    async def accept_order(self, order_id: str) -> Optional[Order]:
        """Accept an order. Accepting an already accepted order is a no-op."""
        token = self._require_token(order_id)
        order = await self._load(order_id)

        if order.is_accepted:
            logger.info(f"Order {order_id} already accepted; nothing to send")
            return order

        try:
            updated = await self.store.accept_order(order_id, token)
        except DashboardError as e:
            logger.error(f"❌ Accepting order {order_id} failed: {e.detail}")
            raise

        logger.info(f"✅ Order {order_id} accepted")
        return await self._confirm(order, updated)

    async def delete_order(self, order_id: str) -> None:
        # Not part of the state machine; only shares the invalidation contract
        known = self.cache.find_order(order_id)
        try:
            await self.store.delete_order(order_id, self.credentials())
        except DashboardError as e:
            logger.error(f"❌ Deleting order {order_id} failed: {e.detail}")
            raise

        logger.info(f"🗑️ Order {order_id} deleted")
        self.cache.forget_order(order_id)
        await self.cache.invalidate_order(order_id, known.customer.email if known else None)

    # --- Helpers ---

    def _parse_status(self, order_id: str, value: Union[DeliveryStatus, str]) -> DeliveryStatus:
        try:
            return DeliveryStatus(value)
        except ValueError:
            raise InvalidTransition(f"Unknown delivery status {value!r}", order_id) from None

    def _require_token(self, order_id: str) -> str:
        token = self.credentials()
        if not token:
            logger.warning(f"⚠️ No credential for a mutation on order {order_id}; not sending")
            raise Unauthorized("A bearer credential is required", order_id)
        return token

    async def _load(self, order_id: str) -> Order:
        order = self.cache.find_order(order_id, fresh_only=True)
        if order is not None:
            return order
        return await self.cache.read_order_detail(order_id)

    async def _confirm(self, before: Order, updated: Optional[Order]) -> Optional[Order]:
        await self.cache.invalidate_order(before.id, before.customer.email)
        return updated or self.cache.find_order(before.id, fresh_only=True)
