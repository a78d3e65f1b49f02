"""
This module provides communication clients for the external systems used by the cart page:
- Store API (REST): cart, orders, payment preferences, current user
- Shipping calculator (REST): carrier quotes for a parcel
Each class encapsulates its protocol logic, error handling, and connection management.
"""

import logging
from typing import List, Optional

import httpx
from pydantic import ValidationError

from .config import Settings
from .errors import ApiError
from .models import (
    CartItem,
    CreatedOrder,
    Order,
    Parcel,
    PaymentPreference,
    ShippingOption,
    UserProfile,
)

log = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Request failed"


def build_timeout(settings: Settings) -> httpx.Timeout:
    return httpx.Timeout(settings.REQUEST_TIMEOUT_SECONDS, read=settings.READ_TIMEOUT_SECONDS)


def read_json(response: httpx.Response):
    """
    Decodes a response body, tolerating servers that mislabel or omit JSON.

    Returns:
        The decoded JSON value, or `{"error": <text>}` when the body is not JSON.
    """
    try:
        return response.json()
    except ValueError:
        text = response.text.strip()
        return {"error": text or "Unexpected server error"}


def error_message(payload) -> str:
    """Extracts the human-readable message from an error body."""
    if isinstance(payload, dict):
        for key in ("error", "erro", "detail", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and isinstance(value.get("message"), str):
                return value["message"]
    return DEFAULT_ERROR_MESSAGE


def handle(response: httpx.Response):
    """
    Returns the decoded body of a successful response.

    Raises:
        ApiError: If the server returned a 4xx/5xx status, carrying the server's message.
    """
    payload = read_json(response)
    if response.is_error:
        raise ApiError(error_message(payload), status_code=response.status_code)
    return payload


# --- Store API Client (REST) ---
class StoreApiClient:
    """
    Client for the store API (cart, orders, payment preferences).
    Every call is authenticated with the customer's bearer token.
    """
    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport = None):
        """
        Initializes the HTTP client with proper timeout configuration.

        Args:
            settings (Settings): Provides the base URL, token and timeouts.
            transport: Optional httpx transport (used to plug in mocks).
        """
        self.token = settings.STORE_API_TOKEN
        self.client = httpx.AsyncClient(
            base_url=settings.STORE_API_URL,
            timeout=build_timeout(settings),
            transport=transport,
        )

    async def aclose(self):
        """Closes the HTTP client session."""
        await self.client.aclose()

    def _auth_headers(self) -> dict:
        if not self.token:
            raise ApiError("Not authenticated.")
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, path: str, **kwargs):
        headers = self._auth_headers()
        try:
            response = await self.client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException:
            log.error(f"Store API timeout on {method} {path}.")
            raise
        except httpx.HTTPError as e:
            log.error(f"Store API unreachable on {method} {path}: {e}")
            raise
        try:
            return handle(response)
        except ApiError as e:
            log.warning(f"Store API {method} {path} answered {e.status_code}: {e.message}")
            raise

    async def get_user(self) -> UserProfile:
        payload = await self._request("GET", "/api/users/me")
        return UserProfile.model_validate(payload if isinstance(payload, dict) else {})

    async def get_cart(self) -> List[CartItem]:
        """
        Fetches the customer's cart.

        Returns:
            list[CartItem]: Normalized cart lines (empty if the payload carries none).
        """
        payload = await self._request("GET", "/api/cart")
        if isinstance(payload, dict):
            entries = payload.get("products", payload.get("produtos"))
        else:
            entries = payload
        if not isinstance(entries, list):
            return []
        return [CartItem.model_validate(entry) for entry in entries if isinstance(entry, dict)]

    async def decrement_cart_item(self, product_ref: str):
        """
        Decreases the quantity of one cart line by exactly one.
        The store removes the line once it reaches zero.
        """
        if not product_ref:
            raise ApiError("productId is required.")
        return await self._request("DELETE", "/api/cart/item", json={"productId": product_ref})

    async def create_order(self) -> CreatedOrder:
        """
        Creates an order from the current cart. The server empties the cart as a side effect.

        Returns:
            CreatedOrder: The new order id and the product total known to the server.

        Raises:
            ApiError: If the server rejects the order or returns no order id.
            httpx.HTTPError: If the store API cannot be reached.
        """
        payload = await self._request("POST", "/api/orders")
        try:
            return CreatedOrder.model_validate(payload)
        except ValidationError:
            log.error(f"Order creation returned no order id: {payload}")
            raise ApiError("The store did not return an order id.")

    async def list_orders(self) -> List[Order]:
        payload = await self._request("GET", "/api/orders")
        if isinstance(payload, dict):
            payload = payload.get("orders", payload.get("pedidos", []))
        if not isinstance(payload, list):
            return []
        return [Order.model_validate(entry) for entry in payload if isinstance(entry, dict)]

    async def create_preference(self, order_id: str, total) -> PaymentPreference:
        """
        Requests a payment session for one order.

        Args:
            order_id (str): The order being paid.
            total: Amount to charge, shipping included.

        Returns:
            PaymentPreference: Carries the URL of the gateway's checkout page.

        Raises:
            ApiError: If the server rejects the request or returns no payment URL.
            httpx.HTTPError: If the store API cannot be reached.
        """
        body = {"orderId": order_id, "total": float(total or 0)}
        payload = await self._request("POST", "/api/payments/preference", json=body)
        try:
            return PaymentPreference.model_validate(payload)
        except ValidationError:
            log.error(f"[Order: {order_id}] Preference response carried no payment URL: {payload}")
            raise ApiError("The payment provider did not return a payment link.")


# --- Shipping Calculator Client (REST) ---
class ShippingQuoteClient:
    """
    Client for the public shipping calculator.
    The calculator needs no authentication.
    """
    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport = None):
        self.origin_zip = settings.SHIPPING_ORIGIN_ZIP
        self.client = httpx.AsyncClient(
            base_url=settings.SHIPPING_API_URL,
            timeout=build_timeout(settings),
            transport=transport,
        )

    async def aclose(self):
        await self.client.aclose()

    async def quote(self, destination_zip: str, parcel: Parcel,
                    origin_zip: Optional[str] = None) -> List[ShippingOption]:
        """
        Requests carrier quotes for one parcel.

        Args:
            destination_zip (str): The customer's postal code.
            parcel (Parcel): Aggregated dimensions and weight of the cart.
            origin_zip (str | None): Overrides the configured origin.

        Returns:
            list[ShippingOption]: Only the options the calculator could serve.

        Raises:
            ApiError: If the calculator answers with an error status.
            httpx.HTTPError: If the calculator cannot be reached.
        """
        params = {
            "from": origin_zip or self.origin_zip,
            "to": destination_zip,
            "width": parcel.width,
            "height": parcel.height,
            "length": parcel.length,
            "weight": parcel.weight,
            "insurance_value": 0,
        }
        try:
            response = await self.client.get("/api/v2/calculator", params=params)
        except httpx.HTTPError as e:
            log.error(f"Shipping calculator unreachable: {e}")
            raise

        if response.is_error:
            log.error(f"Shipping calculator answered {response.status_code}: {read_json(response)}")
            raise ApiError("Could not calculate shipping.", status_code=response.status_code)

        payload = read_json(response)
        if not isinstance(payload, list):
            return []
        options = [ShippingOption.model_validate(entry) for entry in payload if isinstance(entry, dict)]
        usable = [option for option in options if not option.has_error]
        if not usable:
            log.warning(f"No usable shipping option for {destination_zip} ({parcel}).")
        return usable
