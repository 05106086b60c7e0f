import json

import httpx
import pytest

from delivery_dashboard.core.errors import FetchFailed, NotFound, TransitionFailed, Unauthorized
from delivery_dashboard.domain.models import DeliveryStatus
from delivery_dashboard.domain.queries import OrderQuery
from delivery_dashboard.infrastructure.repositories.order_store import HttpOrderStore

from conftest import order_payload

BASE_URL = "https://api.test/v1"


def make_store(handler):
    requests = []

    def recording(request: httpx.Request):
        requests.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    return HttpOrderStore(client=client, base_url=BASE_URL), requests


async def test_list_orders_hits_the_all_orders_path():
    store, requests = make_store(
        lambda r: httpx.Response(200, json={"success": True, "totalOrders": 1, "totalAmount": 25, "orders": [order_payload("o1")]})
    )

    collection = await store.list_orders(OrderQuery.all_orders())

    assert str(requests[0].url) == f"{BASE_URL}/payment/getorders"
    assert collection.total_orders == 1
    assert collection.orders[0].id == "o1"


async def test_list_orders_for_email_uses_the_email_path():
    store, requests = make_store(lambda r: httpx.Response(200, json={"success": True, "orders": []}))

    await store.list_orders(OrderQuery.for_email("rahim@example.com"))

    assert requests[0].url.path == "/v1/payment/singleorderbyemail/rahim@example.com"


async def test_get_order_unwraps_the_envelope():
    store, requests = make_store(lambda r: httpx.Response(200, json={"success": True, "order": order_payload("o1")}))

    order = await store.get_order("o1")

    assert requests[0].url.path == "/v1/payment/singeorder/o1"
    assert order.id == "o1"


@pytest.mark.parametrize("status_code,error", [(404, NotFound), (500, FetchFailed), (401, Unauthorized), (403, Unauthorized)])
async def test_get_order_maps_status_codes(status_code, error):
    store, _ = make_store(lambda r: httpx.Response(status_code, json={"success": False}))

    with pytest.raises(error) as exc_info:
        await store.get_order("o1")
    assert exc_info.value.order_id == "o1"


async def test_list_failure_is_a_fetch_failure_even_on_404():
    store, _ = make_store(lambda r: httpx.Response(404))

    with pytest.raises(FetchFailed):
        await store.list_orders(OrderQuery.all_orders())


async def test_transport_errors_become_fetch_failures():
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    store, _ = make_store(boom)

    with pytest.raises(FetchFailed):
        await store.list_orders(OrderQuery.all_orders())


async def test_success_false_is_a_failure():
    store, _ = make_store(lambda r: httpx.Response(200, json={"success": False, "message": "db down"}))

    with pytest.raises(FetchFailed, match="db down"):
        await store.list_orders(OrderQuery.all_orders())


async def test_undecodable_payload_is_a_fetch_failure():
    store, _ = make_store(lambda r: httpx.Response(200, json={"success": True, "orders": [{"_id": "o1"}]}))

    with pytest.raises(FetchFailed):
        await store.list_orders(OrderQuery.all_orders())


async def test_update_delivery_status_sends_body_and_bearer():
    updated = order_payload("o1", deliveryStatus="in_transit")
    store, requests = make_store(lambda r: httpx.Response(200, json={"success": True, "data": updated}))

    order = await store.update_delivery_status("o1", DeliveryStatus.IN_TRANSIT, "tok")

    request = requests[0]
    assert request.method == "PUT"
    assert request.url.path == "/v1/delivary/updatedelivarystatus/o1"
    assert request.headers["Authorization"] == "Bearer tok"
    assert json.loads(request.content) == {"deliveryStatus": "in_transit"}
    assert order.delivery_status == DeliveryStatus.IN_TRANSIT


async def test_mutation_failure_is_a_transition_failure():
    store, _ = make_store(lambda r: httpx.Response(502))

    with pytest.raises(TransitionFailed):
        await store.update_delivery_status("o1", DeliveryStatus.DELIVERED, "tok")


async def test_rejected_credential_is_unauthorized():
    store, _ = make_store(lambda r: httpx.Response(401, json={"message": "jwt expired"}))

    with pytest.raises(Unauthorized):
        await store.accept_order("o1", "expired")


async def test_accept_returns_none_for_a_bare_acknowledgement():
    store, requests = make_store(lambda r: httpx.Response(200, json={"success": True, "message": "accepted"}))

    assert await store.accept_order("o1", "tok") is None
    assert requests[0].url.path == "/v1/delivary/accept-delivary/o1"


async def test_accept_decodes_an_order_returned_bare():
    store, _ = make_store(lambda r: httpx.Response(200, json=order_payload("o1", isAccepted=True)))

    order = await store.accept_order("o1", "tok")

    assert order.is_accepted is True


async def test_delete_without_credential_sends_no_authorization():
    store, requests = make_store(lambda r: httpx.Response(204))

    await store.delete_order("o1")

    assert requests[0].method == "DELETE"
    assert requests[0].url.path == "/v1/orders/o1"
    assert "Authorization" not in requests[0].headers


async def test_delete_of_missing_order_is_not_found():
    store, _ = make_store(lambda r: httpx.Response(404))

    with pytest.raises(NotFound):
        await store.delete_order("ghost")


async def test_one_order_with_a_null_phone_does_not_break_the_list():
    partial = order_payload("o2", deliveryInfo={"fullName": "Karim", "phone": None, "address": "Road 7", "city": "Dhaka"})
    store, _ = make_store(lambda r: httpx.Response(200, json={"success": True, "orders": [order_payload("o1"), partial]}))

    collection = await store.list_orders(OrderQuery.all_orders())

    assert [o.id for o in collection.orders] == ["o1", "o2"]
    assert collection.get("o2").contact_line == "rahim@example.com"
