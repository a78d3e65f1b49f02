"""
orders.py — Order Status Resolution

Pure lookups over the customer's order list. Ids are compared only after
normalization, so `"abc"`, `{"_id": "abc"}` and `{"$oid": "abc"}` all
resolve to the same order.
"""

from typing import Any, Iterable, Mapping, Optional, Union

from .models import Order, first_id, normalize_id

OrderLike = Union[Order, Mapping]


def order_id_of(order: OrderLike) -> Optional[str]:
    if isinstance(order, Order):
        return order.id
    if isinstance(order, Mapping):
        return first_id(order, "id", "_id", "orderId", "pedidoId")
    return None


def find_order(orders: Iterable[OrderLike], order_id: Any) -> Optional[Order]:
    """
    Finds the order whose normalized id matches `order_id`.

    Args:
        orders: Orders as models or raw API mappings.
        order_id: The id to look for, in any supported representation.

    Returns:
        Order | None: The first match, or None if the id is absent from the list.
    """
    wanted = normalize_id(order_id)
    if not wanted:
        return None
    for order in orders or ():
        if order_id_of(order) == wanted:
            return order if isinstance(order, Order) else Order.model_validate(order)
    return None


def _created_sort_key(order: Order) -> float:
    if order.created_at is None:
        return float("-inf")
    return order.created_at.timestamp()


def latest_pending_order(orders: Iterable[Order]) -> Optional[Order]:
    """Most recently created order still pending payment, or None."""
    pending = [order for order in orders or () if order.is_pending and order.id]
    if not pending:
        return None
    return max(pending, key=_created_sort_key)
