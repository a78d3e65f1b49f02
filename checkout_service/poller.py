"""
poller.py — Payment Confirmation Poller

After the customer is sent to the payment page, the gateway confirms the
payment to the store asynchronously. The poller watches the customer's order
list until the order turns "approved" or the attempt budget runs out.

Behavior:
    • At most one active run per poller: starting a new run cancels the previous one
    • Ticks never overlap: each tick waits `interval` after the previous one finished
    • Transient errors are logged and the run continues with the next tick
    • On approval the pending record is cleared and `on_approved` fires exactly once
    • On budget exhaustion `on_timeout` fires and the pending record is kept
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from .models import Order
from .orders import find_order
from .storage import PendingOrderStore

log = logging.getLogger(__name__)


class ConfirmationPoller:
    """
    Args:
        fetch_orders: Coroutine function returning the customer's current orders.
        store (PendingOrderStore): Cleared once approval is observed.
        on_approved (Callable[[str], None]): Called with the order id on approval.
        on_timeout (Callable[[str], None]): Called with the order id when the budget is spent.
        interval (float): Seconds between the end of one tick and the start of the next.
        max_attempts (int): Number of ticks before giving up.
        tick_timeout (float | None): Upper bound for one order-list fetch.
    """

    def __init__(
            self,
            fetch_orders: Callable[[], Awaitable[List[Order]]],
            store: PendingOrderStore,
            on_approved: Callable[[str], None],
            on_timeout: Callable[[str], None],
            interval: float = 5.0,
            max_attempts: int = 36,
            tick_timeout: Optional[float] = None,
    ):
        self.fetch_orders = fetch_orders
        self.store = store
        self.on_approved = on_approved
        self.on_timeout = on_timeout
        self.interval = interval
        self.max_attempts = max_attempts
        self.tick_timeout = tick_timeout
        self.attempts = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, order_id: str) -> asyncio.Task:
        """Cancels any running poll and starts watching `order_id`."""
        self.cancel()
        self.attempts = 0
        log.info(f"[Order: {order_id}] Watching for payment confirmation "
                 f"({self.max_attempts} x {self.interval}s).")
        self._task = asyncio.create_task(self._run(order_id), name=f"confirmation-poller-{order_id}")
        return self._task

    async def wait(self) -> None:
        """Waits until the current run ends, whether it finished or was cancelled."""
        if self._task is not None:
            await asyncio.wait({self._task})

    def cancel(self) -> None:
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            self._task = None

    async def _tick(self, order_id: str) -> bool:
        """Runs one check. Returns True once the order is approved."""
        try:
            if self.tick_timeout:
                orders = await asyncio.wait_for(self.fetch_orders(), timeout=self.tick_timeout)
            else:
                orders = await self.fetch_orders()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning(f"[Order: {order_id}] Transient error while polling (attempt {self.attempts}): {e}")
            return False

        order = find_order(orders, order_id)
        return order is not None and order.is_approved

    async def _run(self, order_id: str) -> None:
        while self.attempts < self.max_attempts:
            await asyncio.sleep(self.interval)
            self.attempts += 1
            log.debug(f"[Order: {order_id}] Poll attempt {self.attempts}/{self.max_attempts}")

            if await self._tick(order_id):
                log.info(f"[Order: {order_id}] Payment approved after {self.attempts} attempt(s).")
                self._release()
                self.store.clear()
                self.on_approved(order_id)
                return

        log.warning(f"[Order: {order_id}] Payment not confirmed after {self.attempts} attempts. "
                    f"Keeping the pending order for later.")
        self._release()
        self.on_timeout(order_id)

    def _release(self) -> None:
        if self._task is asyncio.current_task():
            self._task = None
