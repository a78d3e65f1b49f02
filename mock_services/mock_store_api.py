"""
mock_store_api.py — Mock Implementation of the Store API (REST)

This module provides a simulated store backend for testing the checkout flow.
It exposes a FastAPI application with an in-memory cart, order list and
payment-preference endpoint, shaped like the real store API (ids wrapped as
`{"$oid": ...}`, cart lines carrying their product fields).

Simulation Scenarios:
    • Order creation empties the cart and starts the order as "pending"
    • Payment confirmation (webhook) via POST /_control/orders/{id}/status
    • Payment provider outage via POST /_control/fail-preferences

Endpoints:
    GET    /api/users/me              — Current customer
    GET    /api/cart                  — Cart lines
    POST   /api/cart                  — Add a product
    DELETE /api/cart/item             — Decrement one line by one unit
    POST   /api/orders                — Create an order from the cart
    GET    /api/orders                — List the customer's orders
    POST   /api/payments/preference   — Create a payment link for an order

Port:
    Default: 8000 (HTTP)
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

app = FastAPI(title="Mock Store API")
log = logging.getLogger("mock_store_api")

CATALOG = {
    "p-100": {"name": "Trail Runner", "color": "Black", "model": "TR-1", "price": 10.0,
              "height": 2, "width": 3, "length": 4, "weight": 1},
    "p-200": {"name": "City Sneaker", "color": "White", "model": "CS-2", "price": 5.0,
              "height": 1, "width": 5, "length": 2, "weight": 3},
}

STATE = {}


def reset_state(cart: Optional[dict] = None):
    """Restores the initial cart (two Trail Runners, one City Sneaker) and forgets all orders."""
    STATE.clear()
    STATE.update({
        "cart": dict(cart) if cart is not None else {"p-100": 2, "p-200": 1},
        "orders": [],
        "fail_preferences": False,
        "preferences": [],
    })


reset_state()


class CartAddRequest(BaseModel):
    productId: str
    quantity: int = 1


class CartItemRequest(BaseModel):
    productId: str


class PreferenceRequest(BaseModel):
    orderId: str
    total: float


class StatusUpdate(BaseModel):
    status: str


class Toggle(BaseModel):
    enabled: bool = True


def require_token(authorization: Optional[str]):
    if not authorization or not authorization.startswith("Bearer ") or not authorization[7:].strip():
        raise HTTPException(status_code=401, detail="Not authenticated")


def cart_payload():
    return {
        "products": [
            {**CATALOG[pid], "_id": pid, "quantity": qty}
            for pid, qty in STATE["cart"].items()
        ]
    }


def find_order(order_id: str):
    for order in STATE["orders"]:
        if order["_id"]["$oid"] == order_id:
            return order
    return None


@app.exception_handler(HTTPException)
async def error_body(request, exc: HTTPException):
    # The real store reports errors as {"error": "..."}
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.get("/api/users/me")
def current_user(authorization: Optional[str] = Header(default=None)):
    require_token(authorization)
    return {"name": "Test Customer", "email": "customer@example.com", "postalCode": "01310 100"}


@app.get("/api/cart")
def get_cart(authorization: Optional[str] = Header(default=None)):
    require_token(authorization)
    return cart_payload()


@app.post("/api/cart")
def add_to_cart(request: CartAddRequest, authorization: Optional[str] = Header(default=None)):
    require_token(authorization)
    if request.productId not in CATALOG:
        raise HTTPException(status_code=404, detail="Product not found")
    STATE["cart"][request.productId] = STATE["cart"].get(request.productId, 0) + max(request.quantity, 1)
    return cart_payload()


@app.delete("/api/cart/item")
def decrement_cart_item(request: CartItemRequest, authorization: Optional[str] = Header(default=None)):
    require_token(authorization)
    quantity = STATE["cart"].get(request.productId)
    if quantity is None:
        raise HTTPException(status_code=404, detail="Item is not in the cart")
    if quantity <= 1:
        del STATE["cart"][request.productId]
    else:
        STATE["cart"][request.productId] = quantity - 1
    log.info(f"[STORE] Decremented {request.productId}")
    return cart_payload()


@app.post("/api/orders")
def create_order(authorization: Optional[str] = Header(default=None)):
    """
    Creates a pending order from the cart and empties the cart.

    Returns:
        dict: `{"msg", "orderId", "total"}` where total excludes shipping.
    """
    require_token(authorization)
    if not STATE["cart"]:
        raise HTTPException(status_code=400, detail="Cart is empty")

    items = [
        {"productId": pid, "quantity": qty, "unitPrice": CATALOG[pid]["price"]}
        for pid, qty in STATE["cart"].items()
    ]
    total = sum(item["unitPrice"] * item["quantity"] for item in items)
    order_id = uuid.uuid4().hex[:24]
    STATE["orders"].append({
        "_id": {"$oid": order_id},
        "total": total,
        "status": "pending",
        "items": items,
        "createdAt": datetime.now(timezone.utc).isoformat(),
    })
    STATE["cart"] = {}
    log.info(f"[STORE] Order {order_id} created ({total}).")
    return {"msg": "Order created", "orderId": order_id, "total": total}


@app.get("/api/orders")
def list_orders(authorization: Optional[str] = Header(default=None)):
    require_token(authorization)
    return STATE["orders"]


@app.post("/api/payments/preference")
def create_preference(request: PreferenceRequest, authorization: Optional[str] = Header(default=None)):
    require_token(authorization)
    if STATE["fail_preferences"]:
        raise HTTPException(status_code=502, detail="Payment provider unavailable")
    if find_order(request.orderId) is None:
        raise HTTPException(status_code=404, detail="Order not found")
    if request.total <= 0:
        raise HTTPException(status_code=400, detail="Invalid amount")

    preference_id = f"pref-{uuid.uuid4().hex[:12]}"
    STATE["preferences"].append({"orderId": request.orderId, "total": request.total, "id": preference_id})
    log.info(f"[STORE] Preference {preference_id} for order {request.orderId} ({request.total}).")
    return {
        "initPoint": f"https://pay.example.test/checkout?pref_id={preference_id}",
        "preferenceId": preference_id,
    }


# --- Test controls ---

@app.post("/_control/orders/{order_id}/status")
def set_order_status(order_id: str, update: StatusUpdate):
    order = find_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    order["status"] = update.status
    return order


@app.post("/_control/fail-preferences")
def fail_preferences(toggle: Toggle):
    STATE["fail_preferences"] = toggle.enabled
    return {"fail_preferences": toggle.enabled}


@app.post("/_control/reset")
def reset():
    reset_state()
    return {"status": "reset"}


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
