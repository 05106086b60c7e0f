import logging
from typing import Optional, Type
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from delivery_dashboard.core.config import settings
from delivery_dashboard.core.errors import DashboardError, FetchFailed, NotFound, TransitionFailed, Unauthorized
from delivery_dashboard.domain.models import DeliveryStatus, Order, OrderCollection
from delivery_dashboard.domain.queries import OrderQuery
from delivery_dashboard.interfaces.IOrderStore import IOrderStore

logger = logging.getLogger(__name__)

class HttpOrderStore(IOrderStore):
    """Talks to the order backend over HTTP.

    Every failure is translated into the dashboard error taxonomy: 401/403
    become ``Unauthorized``, 404 on an order becomes ``NotFound`` and
    anything else (transport errors, 5xx, ``success: false``, bodies that do
    not decode) becomes ``FetchFailed`` for reads or ``TransitionFailed``
    for mutations.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, base_url: Optional[str] = None):
        self.base_url = (base_url or settings.BACKEND_API_URL).rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT_SECONDS)

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()

    # --- Reads ---

    async def list_orders(self, query: OrderQuery) -> OrderCollection:
        if query.email is None:
            url = self._url(settings.ORDERS_PATH)
        else:
            url = self._url(settings.ORDERS_BY_EMAIL_PATH, email=query.email)

        body = await self._request("GET", url, failure=FetchFailed)
        try:
            return OrderCollection.model_validate(body)
        except ValidationError as e:
            logger.error(f"❌ Undecodable order list from {url}: {e}")
            raise FetchFailed("Backing store sent an undecodable order list") from e

    async def get_order(self, order_id: str) -> Order:
        url = self._url(settings.ORDER_DETAIL_PATH, order_id=order_id)
        body = await self._request("GET", url, failure=FetchFailed, order_id=order_id)

        payload = body.get("order") if isinstance(body, dict) else None
        if payload is None:
            raise NotFound(f"Order {order_id} not found", order_id)
        try:
            return Order.model_validate(payload)
        except ValidationError as e:
            logger.error(f"❌ Undecodable order {order_id}: {e}")
            raise FetchFailed(f"Backing store sent an undecodable order {order_id}", order_id) from e

    # --- Mutations ---

    async def update_delivery_status(self, order_id: str, status: DeliveryStatus, token: str) -> Optional[Order]:
        url = self._url(settings.DELIVERY_STATUS_PATH, order_id=order_id)
        body = await self._request(
            "PUT", url,
            failure=TransitionFailed,
            order_id=order_id,
            token=token,
            json={"deliveryStatus": DeliveryStatus(status).value},
        )
        return self._order_from_ack(body, order_id)

    async def accept_order(self, order_id: str, token: str) -> Optional[Order]:
        url = self._url(settings.ACCEPT_PATH, order_id=order_id)
        body = await self._request("PUT", url, failure=TransitionFailed, order_id=order_id, token=token)
        return self._order_from_ack(body, order_id)

    async def delete_order(self, order_id: str, token: Optional[str] = None) -> None:
        url = self._url(settings.DELETE_PATH, order_id=order_id)
        await self._request("DELETE", url, failure=TransitionFailed, order_id=order_id, token=token)

    # --- Plumbing ---

    def _url(self, template: str, **params) -> str:
        path = template.format(**{k: quote(str(v), safe="@") for k, v in params.items()})
        return f"{self.base_url}{path}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        failure: Type[DashboardError],
        order_id: Optional[str] = None,
        token: Optional[str] = None,
        json: Optional[dict] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self.client.request(method, url, headers=headers, json=json)
        except httpx.HTTPError as e:
            logger.error(f"❌ {method} {url} failed: {e}")
            raise failure(f"Backing store unreachable: {e}", order_id) from e

        if response.status_code in (401, 403):
            logger.warning(f"⚠️ {method} {url} rejected the credential ({response.status_code})")
            raise Unauthorized("Backing store rejected the credential", order_id)
        if response.status_code == 404 and order_id is not None:
            raise NotFound(f"Order {order_id} not found", order_id)
        if response.is_error:
            logger.error(f"❌ {method} {url} answered {response.status_code}")
            raise failure(f"Backing store answered {response.status_code}", order_id)

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"❌ {method} {url} sent a non-JSON body")
            raise failure("Backing store sent a non-JSON body", order_id) from e

        if isinstance(body, dict) and body.get("success") is False:
            message = body.get("message") or "Backing store reported failure"
            logger.error(f"❌ {method} {url}: {message}")
            raise failure(message, order_id)
        return body

    def _order_from_ack(self, body, order_id: str) -> Optional[Order]:
        """The backend answers mutations with the order bare, under ``order``/``data``, or not at all."""
        if not isinstance(body, dict):
            return None
        for candidate in (body.get("order"), body.get("data"), body):
            if isinstance(candidate, dict) and ("_id" in candidate or "id" in candidate):
                try:
                    return Order.model_validate(candidate)
                except ValidationError as e:
                    # The mutation itself was confirmed; the cache refetch fills in the order
                    logger.warning(f"⚠️ Could not decode order {order_id} from acknowledgement: {e}")
                    return None
        return None
