"""
mock_shipping_service.py — Mock Implementation of the Shipping Calculator (REST)

This module simulates the public shipping-rate calculator used by the cart page.

Simulation Scenarios:
    • Three carrier options for a normal parcel
    • The express option is error-flagged when the parcel weighs more than 30 kg
    • Missing destination postal code → HTTP 422

Endpoints:
    GET /api/v2/calculator — Quote a parcel between two postal codes.

Port:
    Default: 8002 (HTTP)
"""

import logging

from fastapi import FastAPI, Query

app = FastAPI(title="Mock Shipping Calculator")
log = logging.getLogger("mock_shipping_service")

MAX_EXPRESS_WEIGHT = 30.0


@app.get("/api/v2/calculator")
def calculate(
        origin: str = Query(..., alias="from"),
        destination: str = Query(..., alias="to"),
        width: float = 0,
        height: float = 0,
        length: float = 0,
        weight: float = 0,
        insurance_value: float = 0,
):
    """
    Returns one quote per carrier service.

    Prices grow with weight; the express service refuses heavy parcels with an
    `error` field instead of omitting itself, like the real calculator does.
    """
    log.info(f"[SHIP] Quote {origin} → {destination}: {width}x{height}x{length}cm, {weight}kg")
    base = round(10 + weight * 1.5, 2)
    options = [
        {"id": 1, "name": "PAC", "price": f"{base:.2f}", "delivery_time": 7,
         "company": {"name": "Correios", "picture": "https://example.test/correios.png"}},
        {"id": 2, "name": "SEDEX", "price": f"{base * 2:.2f}", "delivery_time": 2,
         "company": {"name": "Correios", "picture": "https://example.test/correios.png"}},
        {"id": 3, "name": ".Com", "price": f"{base * 1.2:.2f}", "delivery_time": 4,
         "company": {"name": "Jadlog", "picture": "https://example.test/jadlog.png"}},
    ]
    if weight > MAX_EXPRESS_WEIGHT:
        options[1] = {"id": 2, "name": "SEDEX", "error": "Weight exceeds the service limit",
                      "company": {"name": "Correios"}}
    return options


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8002)
