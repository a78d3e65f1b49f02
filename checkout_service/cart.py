"""
cart.py — Cart View State

Totals shown on the cart page are never stored: they are derived from the
current cart lines and the selected shipping option every time the state
is read. The parcel aggregate sent to the shipping calculator is derived
the same way.
"""

from decimal import Decimal
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field, computed_field

from .models import (
    ZERO,
    CartItem,
    CheckoutPhase,
    Parcel,
    PendingOrderRecord,
    ShippingOption,
    UserProfile,
)


def cart_subtotal(items: Iterable[CartItem]) -> Decimal:
    return sum((item.line_total for item in items), ZERO)


def cart_item_count(items: Iterable[CartItem]) -> int:
    return sum(item.quantity for item in items)


def compute_grand_total(subtotal: Decimal, shipping_cost: Optional[Decimal] = None) -> Decimal:
    """Product subtotal plus the selected shipping cost (0 when none is selected)."""
    return Decimal(str(subtotal or 0)) + Decimal(str(shipping_cost or 0))


def compute_parcel_dimensions(items: Iterable[CartItem]) -> Parcel:
    """
    Aggregates the cart into one stacked package.

    Heights and weights are summed across items (scaled by quantity); width and
    length are the largest found in the cart.

    Args:
        items: Cart lines with their product snapshots.

    Returns:
        Parcel: Dimensions (cm) and weight (kg) for the shipping quote.
    """
    height = width = length = weight = 0.0
    for item in items:
        product = item.product
        height += product.height * item.quantity
        width = max(width, product.width)
        length = max(length, product.length)
        weight += product.weight * item.quantity
    return Parcel(height=height, width=width, length=length, weight=weight)


class CartViewState(BaseModel):
    """Everything the cart page renders, plus the derived totals."""

    items: List[CartItem] = Field(default_factory=list)
    user: Optional[UserProfile] = None
    loading: bool = False
    error: str = ""

    phase: CheckoutPhase = CheckoutPhase.IDLE
    finalizing: bool = False
    waiting_payment: bool = False
    order_id: Optional[str] = None
    poll_message: str = ""
    poll_error: str = ""
    resume_pending: Optional[PendingOrderRecord] = None
    busy_refs: List[str] = Field(default_factory=list)
    redirect_to: Optional[str] = None

    shipping_options: List[ShippingOption] = Field(default_factory=list)
    selected_shipping: Optional[ShippingOption] = None

    @computed_field
    @property
    def subtotal(self) -> Decimal:
        return cart_subtotal(self.items)

    @computed_field
    @property
    def shipping_cost(self) -> Decimal:
        return self.selected_shipping.price if self.selected_shipping else ZERO

    @computed_field
    @property
    def grand_total(self) -> Decimal:
        return compute_grand_total(self.subtotal, self.shipping_cost)

    @computed_field
    @property
    def item_count(self) -> int:
        return cart_item_count(self.items)
