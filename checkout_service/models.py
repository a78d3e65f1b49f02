"""
models.py — Data Models for the Cart Checkout Flow

This module defines the data structures exchanged with the store API and the
shipping calculator. The upstream API is loosely typed: ids arrive as plain
strings, numbers or `{"_id": ...}` / `{"$oid": ...}` wrappers, and field names
come in English or Portuguese. Every model normalizes its input once, at
ingestion, so the rest of the package only ever sees canonical values.

Models:
    - CheckoutPhase: States of the cart page checkout.
    - ProductSnapshot: Denormalized product attributes embedded in a cart line.
    - CartItem: One line of the shopping cart.
    - OrderLine / Order: A placed order as reported by the order list.
    - CreatedOrder: Response of the order-creation call.
    - PaymentPreference: Response of the payment-preference call.
    - PendingOrderRecord: Local pointer to the order awaiting payment.
    - ShippingOption / Parcel: Shipping quote input and output.
    - UserProfile: The authenticated customer.
    - ShippingQuoteRequest / ShippingSelectionRequest: Request bodies of the HTTP surface.
"""

import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, List, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

APPROVED_STATUSES = frozenset({"approved", "aprovado"})
PENDING_STATUSES = frozenset({"pending", "pendente"})

ZERO = Decimal("0")


def normalize_id(raw: Any) -> Optional[str]:
    """
    Converts any upstream id representation into a plain string.

    Args:
        raw: A string, a number, or a mapping wrapping the value under `_id` or `$oid`.

    Returns:
        str | None: The canonical id, or None if `raw` carries no id at all.
    """
    if raw is None or raw is False or raw == "":
        return None
    if isinstance(raw, str):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    if isinstance(raw, (int, float)):
        return str(raw)
    if isinstance(raw, Mapping):
        if raw.get("_id") is not None:
            return normalize_id(raw["_id"])
        return normalize_id(raw.get("$oid"))
    return str(raw)


def first_id(data: Mapping, *keys: str) -> Optional[str]:
    """Returns the first key in `keys` that normalizes to an id."""
    for key in keys:
        value = normalize_id(data.get(key))
        if value:
            return value
    return None


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parses a non-negative amount, or returns None if it is missing or invalid."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


def to_quantity(value: Any) -> int:
    """Quantities are positive integers; anything else counts as 1."""
    if isinstance(value, bool):
        return 1
    try:
        quantity = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 1
    return quantity if quantity > 0 else 1


def to_measure(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        measure = float(value)
    except (TypeError, ValueError):
        return 0.0
    return measure if math.isfinite(measure) and measure > 0 else 0.0


class CheckoutPhase(str, Enum):
    """States of the cart page checkout state machine."""
    IDLE = "idle"
    RESUMING_PENDING = "resuming_pending"
    ORDER_CREATING = "order_creating"
    PREFERENCE_CREATING = "preference_creating"
    POLLING = "polling"
    APPROVED = "approved"
    TIMED_OUT = "timed_out"


class ProductSnapshot(BaseModel):
    """
    Product attributes copied into a cart line at read time.

    Not authoritative: the snapshot is replaced on every cart fetch.
    Dimensions are in centimeters and weight in kilograms.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(default="Product", validation_alias=AliasChoices("name", "nome"))
    image: Optional[str] = Field(default=None, validation_alias=AliasChoices("image", "imagem"))
    color: Optional[str] = Field(default=None, validation_alias=AliasChoices("color", "cor"))
    model: Optional[str] = Field(default=None, validation_alias=AliasChoices("model", "modelo"))
    price: Optional[Decimal] = Field(default=None, validation_alias=AliasChoices("price", "preco"))
    height: float = Field(default=0.0, validation_alias=AliasChoices("height", "altura"))
    width: float = Field(default=0.0, validation_alias=AliasChoices("width", "largura"))
    length: float = Field(default=0.0, validation_alias=AliasChoices("length", "comprimento"))
    weight: float = Field(default=0.0, validation_alias=AliasChoices("weight", "peso"))

    @field_validator("name", mode="before")
    @classmethod
    def _name_or_default(cls, value):
        return value if isinstance(value, str) and value else "Product"

    @field_validator("price", mode="before")
    @classmethod
    def _parse_price(cls, value):
        return to_decimal(value)

    @field_validator("height", "width", "length", "weight", mode="before")
    @classmethod
    def _parse_measure(cls, value):
        return to_measure(value)


class CartItem(BaseModel):
    """
    Represents one line of the shopping cart.

    Attributes:
        product_ref (str | None): Canonical id of the referenced product.
        quantity (int): Units of the product, always >= 1.
        unit_price (Decimal): Price per unit; falls back to the product price, then 0.
        product (ProductSnapshot): Denormalized product attributes.
    """
    product_ref: Optional[str] = None
    quantity: int = 1
    unit_price: Decimal = ZERO
    product: ProductSnapshot = Field(default_factory=ProductSnapshot)

    @model_validator(mode="before")
    @classmethod
    def _from_cart_entry(cls, data):
        if not isinstance(data, Mapping):
            return data

        nested = data.get("product", data.get("produto"))
        if isinstance(nested, ProductSnapshot):
            snapshot = nested
        elif isinstance(nested, Mapping):
            snapshot = ProductSnapshot.model_validate(nested)
        else:
            # Cart entries usually carry the product fields at top level
            snapshot = ProductSnapshot.model_validate(data)

        product_ref = first_id(data, "product_ref", "_id", "productId", "produtoId")
        if not product_ref and isinstance(nested, Mapping):
            product_ref = first_id(nested, "_id", "id")

        unit_price = None
        for key in ("unit_price", "unitPrice", "price", "preco"):
            if key in data:
                unit_price = to_decimal(data[key])
                break
        if unit_price is None:
            unit_price = snapshot.price if snapshot.price is not None else ZERO

        return {
            "product_ref": product_ref,
            "quantity": to_quantity(data.get("quantity", data.get("quantidade", 1))),
            "unit_price": unit_price,
            "product": snapshot,
        }

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class OrderLine(BaseModel):
    """Snapshot of one cart line taken at order-creation time."""
    product_ref: Optional[str] = None
    quantity: int = 1
    unit_price: Decimal = ZERO

    @model_validator(mode="before")
    @classmethod
    def _from_wire(cls, data):
        if not isinstance(data, Mapping):
            return data
        unit_price = None
        for key in ("unit_price", "unitPrice", "price", "preco", "precoUnitario"):
            if key in data:
                unit_price = to_decimal(data[key])
                break
        return {
            "product_ref": first_id(data, "product_ref", "productId", "produtoId", "_id"),
            "quantity": to_quantity(data.get("quantity", data.get("quantidade", 1))),
            "unit_price": unit_price if unit_price is not None else ZERO,
        }


class Order(BaseModel):
    """
    A placed order as reported by the store API.

    The id is immutable once assigned. The status is owned by the external
    order system; the client only observes it.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    total: Decimal = ZERO
    status: str = ""
    items: List[OrderLine] = Field(default_factory=list)
    created_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("created_at", "createdAt", "criadoEm")
    )

    @model_validator(mode="before")
    @classmethod
    def _normalize_id(cls, data):
        if isinstance(data, Mapping):
            data = dict(data)
            data["id"] = first_id(data, "id", "_id", "orderId", "pedidoId")
            data.pop("_id", None)
            if "items" not in data and "produtos" in data:
                data["items"] = data.pop("produtos")
        return data

    @field_validator("total", mode="before")
    @classmethod
    def _parse_total(cls, value):
        amount = to_decimal(value)
        return amount if amount is not None else ZERO

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value):
        return str(value or "").strip().lower()

    @field_validator("items", mode="before")
    @classmethod
    def _items_list(cls, value):
        return value if isinstance(value, list) else []

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, value):
        # Unparseable timestamps only lose their place in the sort order
        if isinstance(value, datetime):
            return value
        if isinstance(value, str) and value:
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return None
        return None

    @property
    def is_approved(self) -> bool:
        return self.status in APPROVED_STATUSES

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_STATUSES


class CreatedOrder(BaseModel):
    """Response of the order-creation call (the server also empties the cart)."""
    order_id: str
    total: Optional[Decimal] = None

    @model_validator(mode="before")
    @classmethod
    def _from_wire(cls, data):
        if not isinstance(data, Mapping):
            return data
        return {
            "order_id": first_id(data, "order_id", "orderId", "pedidoId", "_id", "id"),
            "total": to_decimal(data.get("total")),
        }


class PaymentPreference(BaseModel):
    """A payment session for one order/amount, identified by its checkout URL."""
    model_config = ConfigDict(populate_by_name=True)

    payment_url: str = Field(validation_alias=AliasChoices("payment_url", "paymentUrl", "initPoint", "init_point"))
    preference_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("preference_id", "preferenceId", "id")
    )

    @field_validator("preference_id", mode="before")
    @classmethod
    def _normalize_preference_id(cls, value):
        return normalize_id(value)


class PendingOrderRecord(BaseModel):
    """
    Durable pointer to the order currently awaiting payment.

    Only one record exists at a time; writing a new one replaces the old.
    """
    id: str
    total: Decimal = ZERO

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_record_id(cls, value):
        return normalize_id(value)

    @field_validator("total", mode="before")
    @classmethod
    def _parse_total(cls, value):
        amount = to_decimal(value)
        return amount if amount is not None else ZERO

    @field_serializer("total")
    def _serialize_total(self, value: Decimal):
        return float(value)


class Carrier(BaseModel):
    name: Optional[str] = None
    picture: Optional[str] = None


class ShippingOption(BaseModel):
    """
    One candidate returned by the shipping calculator.

    Attributes:
        id (str): Option identifier used for selection.
        name (str): Service name (e.g. "PAC", "SEDEX").
        price (Decimal): Shipping cost.
        delivery_time (int | None): Estimated delivery time in business days.
        error: Set by the calculator when this option cannot serve the route.
        company (Carrier | None): The carrier offering the service.
    """
    id: Optional[str] = None
    name: str = ""
    price: Decimal = ZERO
    delivery_time: Optional[int] = None
    error: Optional[Any] = None
    company: Optional[Carrier] = None

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_option_id(cls, value):
        return normalize_id(value)

    @field_validator("price", mode="before")
    @classmethod
    def _parse_price(cls, value):
        amount = to_decimal(value)
        return amount if amount is not None else ZERO

    @field_validator("delivery_time", mode="before")
    @classmethod
    def _parse_delivery_time(cls, value):
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @property
    def has_error(self) -> bool:
        return bool(self.error)

    @property
    def carrier_name(self) -> Optional[str]:
        return self.company.name if self.company else None


class Parcel(BaseModel):
    """One stacked package: heights and weights add up, the footprint is the largest item."""
    height: float = 0.0
    width: float = 0.0
    length: float = 0.0
    weight: float = 0.0


class UserProfile(BaseModel):
    """The authenticated customer (only the fields the checkout needs)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = Field(default=None, validation_alias=AliasChoices("name", "nome"))
    email: Optional[str] = None
    postal_code: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("postal_code", "postalCode", "cep")
    )

    @field_validator("postal_code", mode="before")
    @classmethod
    def _postal_code_text(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)


class ShippingQuoteRequest(BaseModel):
    """Body of the shipping-quote call; the customer's postal code is used when omitted."""
    model_config = ConfigDict(populate_by_name=True)

    postal_code: Optional[str] = Field(default=None, validation_alias=AliasChoices("postal_code", "postalCode"))


class ShippingSelectionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    option_id: Union[str, int] = Field(validation_alias=AliasChoices("option_id", "optionId"))
