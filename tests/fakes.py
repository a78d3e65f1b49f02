"""In-memory doubles for the store API, shipping calculator and payment launcher."""

import asyncio
from decimal import Decimal

from checkout_service.models import (
    CreatedOrder,
    Order,
    PaymentPreference,
    ShippingOption,
    UserProfile,
)


class FakeStoreApi:
    """
    Records every call; `fail[name] = exc` makes the next calls to `name` raise `exc`.
    `approve_on_call = n` flips pending orders to approved on the n-th order listing.
    """

    def __init__(self, cart=None, orders=None, user=None, order_total=None):
        self.cart = list(cart or [])
        self.orders = list(orders or [])
        self.user = user if user is not None else UserProfile(postal_code="01310 100")
        self.order_total = order_total
        self.calls = []
        self.fail = {}
        self.preferences = []
        self.decrements = []
        self.list_calls = 0
        self.approve_on_call = None
        self.decrement_gate = None
        self.next_order_number = 1

    def _call(self, name):
        self.calls.append(name)
        error = self.fail.get(name)
        if error is not None:
            raise error

    async def get_user(self):
        self._call("get_user")
        return self.user

    async def get_cart(self):
        self._call("get_cart")
        return list(self.cart)

    async def decrement_cart_item(self, product_ref):
        self._call("decrement_cart_item")
        self.decrements.append(product_ref)
        if self.decrement_gate is not None:
            await self.decrement_gate.wait()
        return {}

    async def create_order(self):
        self._call("create_order")
        order_id = f"order-{self.next_order_number}"
        self.next_order_number += 1
        total = self.order_total
        if total is None:
            total = sum((item.line_total for item in self.cart), Decimal("0"))
        self.orders.append(Order(id=order_id, total=total, status="pending"))
        self.cart = []
        return CreatedOrder(order_id=order_id, total=total)

    async def list_orders(self):
        self._call("list_orders")
        self.list_calls += 1
        if self.approve_on_call is not None and self.list_calls >= self.approve_on_call:
            self.orders = [
                order.model_copy(update={"status": "approved"}) if order.is_pending else order
                for order in self.orders
            ]
        return list(self.orders)

    async def create_preference(self, order_id, total):
        self._call("create_preference")
        self.preferences.append((order_id, Decimal(str(total))))
        return PaymentPreference(payment_url=f"https://pay.example.test/{order_id}")

    async def aclose(self):
        pass


class FakeShipping:
    def __init__(self, options=None):
        self.options = options if options is not None else [
            ShippingOption(id="1", name="PAC", price="7.50", delivery_time=7),
            ShippingOption(id="2", name="SEDEX", price="19.90", delivery_time=2),
        ]
        self.requests = []
        self.error = None

    async def quote(self, destination_zip, parcel, origin_zip=None):
        self.requests.append((destination_zip, parcel))
        if self.error is not None:
            raise self.error
        return list(self.options)

    async def aclose(self):
        pass


class FakeLauncher:
    def __init__(self, opens=True):
        self.opens = opens
        self.urls = []

    def open(self, url):
        self.urls.append(url)
        return self.opens


async def settle():
    """Lets scheduled tasks run until they block."""
    for _ in range(5):
        await asyncio.sleep(0)
