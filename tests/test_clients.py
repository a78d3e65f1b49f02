import json
from decimal import Decimal

import httpx
import pytest

from checkout_service.clients import ShippingQuoteClient, StoreApiClient, error_message, read_json
from checkout_service.errors import ApiError
from checkout_service.models import Parcel


def recording_transport(handler):
    requests = []

    def record(request: httpx.Request):
        requests.append(request)
        return handler(request)

    return httpx.MockTransport(record), requests


@pytest.mark.parametrize("payload, expected", [
    ({"error": "Cart is empty"}, "Cart is empty"),
    ({"erro": "Carrinho vazio"}, "Carrinho vazio"),
    ({"detail": "Not authenticated"}, "Not authenticated"),
    ({"error": {"message": "Nested failure"}}, "Nested failure"),
    ({"unexpected": True}, "Request failed"),
    (["not", "a", "dict"], "Request failed"),
])
def test_error_message(payload, expected):
    assert error_message(payload) == expected


def test_read_json_tolerates_html_bodies():
    response = httpx.Response(502, text="<html>Bad Gateway</html>")
    assert read_json(response) == {"error": "<html>Bad Gateway</html>"}
    assert read_json(httpx.Response(500, text="")) == {"error": "Unexpected server error"}


@pytest.mark.asyncio
async def test_store_calls_send_bearer_token(settings):
    transport, requests = recording_transport(
        lambda request: httpx.Response(200, json={"name": "Ana", "cep": "01310-100"})
    )
    client = StoreApiClient(settings, transport=transport)

    user = await client.get_user()
    await client.aclose()

    assert user.postal_code == "01310-100"
    assert requests[0].url.path == "/api/users/me"
    assert requests[0].headers["Authorization"] == "Bearer test-token"


@pytest.mark.asyncio
async def test_missing_token_sends_nothing(settings):
    settings.STORE_API_TOKEN = ""
    transport, requests = recording_transport(lambda request: httpx.Response(200, json={}))
    client = StoreApiClient(settings, transport=transport)

    with pytest.raises(ApiError, match="Not authenticated"):
        await client.get_cart()
    await client.aclose()

    assert requests == []


@pytest.mark.asyncio
async def test_get_cart_accepts_both_envelopes(settings):
    bodies = iter([
        {"products": [{"_id": {"$oid": "p-100"}, "name": "Trail Runner", "price": 10, "quantity": 2}]},
        {"produtos": [{"produto": {"_id": "p-200", "nome": "Tênis", "preco": "5.00"}, "quantidade": 1}]},
        {"products": None},
    ])
    transport, _ = recording_transport(lambda request: httpx.Response(200, json=next(bodies)))
    client = StoreApiClient(settings, transport=transport)

    first = await client.get_cart()
    second = await client.get_cart()
    third = await client.get_cart()
    await client.aclose()

    assert [(item.product_ref, item.quantity, item.unit_price) for item in first] == [("p-100", 2, Decimal("10"))]
    assert second[0].product_ref == "p-200"
    assert second[0].product.name == "Tênis"
    assert third == []


@pytest.mark.asyncio
async def test_decrement_sends_product_id_in_body(settings):
    transport, requests = recording_transport(lambda request: httpx.Response(200, json={"products": []}))
    client = StoreApiClient(settings, transport=transport)

    await client.decrement_cart_item("p-100")
    await client.aclose()

    assert requests[0].method == "DELETE"
    assert requests[0].url.path == "/api/cart/item"
    assert json.loads(requests[0].content) == {"productId": "p-100"}


@pytest.mark.asyncio
async def test_create_order_error_carries_server_message(settings):
    transport, _ = recording_transport(lambda request: httpx.Response(400, json={"erro": "Carrinho vazio"}))
    client = StoreApiClient(settings, transport=transport)

    with pytest.raises(ApiError) as excinfo:
        await client.create_order()
    await client.aclose()

    assert excinfo.value.message == "Carrinho vazio"
    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
async def test_create_order_without_id_is_an_error(settings):
    transport, _ = recording_transport(lambda request: httpx.Response(201, json={"msg": "ok", "total": 25}))
    client = StoreApiClient(settings, transport=transport)

    with pytest.raises(ApiError, match="order id"):
        await client.create_order()
    await client.aclose()


@pytest.mark.asyncio
async def test_create_order_normalizes_wrapped_id(settings):
    transport, _ = recording_transport(
        lambda request: httpx.Response(201, json={"orderId": {"$oid": "o-1"}, "total": "25.00"})
    )
    client = StoreApiClient(settings, transport=transport)

    created = await client.create_order()
    await client.aclose()

    assert created.order_id == "o-1"
    assert created.total == Decimal("25.00")


@pytest.mark.asyncio
async def test_list_orders(settings):
    body = [
        {"_id": {"$oid": "o-1"}, "status": "Pendente", "total": 10, "createdAt": "2024-05-01T10:00:00Z"},
        {"_id": "o-2", "status": "approved", "total": 20},
    ]
    transport, _ = recording_transport(lambda request: httpx.Response(200, json=body))
    client = StoreApiClient(settings, transport=transport)

    orders = await client.list_orders()
    await client.aclose()

    assert [order.id for order in orders] == ["o-1", "o-2"]
    assert orders[0].is_pending
    assert orders[0].created_at is not None
    assert orders[1].is_approved


@pytest.mark.asyncio
async def test_create_preference_request_and_response(settings):
    transport, requests = recording_transport(
        lambda request: httpx.Response(200, json={"init_point": "https://pay.example.test/p", "preferenceId": "pref-1"})
    )
    client = StoreApiClient(settings, transport=transport)

    preference = await client.create_preference("o-1", Decimal("32.50"))
    await client.aclose()

    assert json.loads(requests[0].content) == {"orderId": "o-1", "total": 32.5}
    assert preference.payment_url == "https://pay.example.test/p"
    assert preference.preference_id == "pref-1"


@pytest.mark.asyncio
async def test_create_preference_without_link(settings):
    transport, _ = recording_transport(lambda request: httpx.Response(200, json={"preferenceId": "pref-1"}))
    client = StoreApiClient(settings, transport=transport)

    with pytest.raises(ApiError, match="payment link"):
        await client.create_preference("o-1", 10)
    await client.aclose()


@pytest.mark.asyncio
async def test_transport_errors_propagate(settings):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = StoreApiClient(settings, transport=httpx.MockTransport(refuse))

    with pytest.raises(httpx.ConnectError):
        await client.list_orders()
    await client.aclose()


@pytest.mark.asyncio
async def test_shipping_quote_params_and_filtering(settings):
    body = [
        {"id": 1, "name": "PAC", "price": "17.50", "delivery_time": 7, "company": {"name": "Correios"}},
        {"id": 2, "name": "SEDEX", "error": "Weight exceeds the service limit"},
    ]
    transport, requests = recording_transport(lambda request: httpx.Response(200, json=body))
    client = ShippingQuoteClient(settings, transport=transport)

    options = await client.quote("01310100", Parcel(height=5, width=5, length=4, weight=5))
    await client.aclose()

    params = requests[0].url.params
    assert requests[0].url.path == "/api/v2/calculator"
    assert params["from"] == settings.SHIPPING_ORIGIN_ZIP
    assert params["to"] == "01310100"
    assert params["insurance_value"] == "0"
    assert "Authorization" not in requests[0].headers
    assert [(option.id, option.price, option.carrier_name) for option in options] == [
        ("1", Decimal("17.50"), "Correios")
    ]


@pytest.mark.asyncio
async def test_shipping_error_status(settings):
    transport, _ = recording_transport(lambda request: httpx.Response(422, json={"detail": "bad zip"}))
    client = ShippingQuoteClient(settings, transport=transport)

    with pytest.raises(ApiError) as excinfo:
        await client.quote("000", Parcel())
    await client.aclose()

    assert excinfo.value.message == "Could not calculate shipping."
    assert excinfo.value.status_code == 422
