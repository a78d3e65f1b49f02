"""
workflow.py — Checkout Orchestration for the Cart Page

This module contains the state machine behind the cart page. One
`CheckoutSession` is created when the page is entered and torn down when it
is left; it owns the view state, the pending-order pointer and the
confirmation poller.

Workflow Overview:
1. Create the order (the store empties the cart as a side effect)
2. Persist the pending-order pointer, before anything else can fail
3. Request a payment preference for product total + shipping
4. Open the payment page
5. Poll the order list until the order is approved or the budget runs out

Recovery:
    - A pending order left by an earlier visit is reconciled on entry
    - `regenerate()` issues a new payment link for the same order, never a new order
    - `discard_pending()` forgets the pending order locally
"""

import logging
import re
from typing import Callable, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from .cart import CartViewState, compute_grand_total, compute_parcel_dimensions
from .clients import ShippingQuoteClient, StoreApiClient
from .config import Settings
from .errors import ApiError, CheckoutError, PreconditionError, ServiceError
from .launcher import PaymentSessionLauncher
from .models import CheckoutPhase, PaymentPreference, PendingOrderRecord, ShippingOption, normalize_id
from .orders import find_order, latest_pending_order
from .poller import ConfirmationPoller
from .storage import PendingOrderStore

log = logging.getLogger(__name__)

EXTERNAL_ERRORS = (ApiError, httpx.HTTPError, ValidationError)

WAITING_MESSAGE = ("We opened the payment page in a new tab. Complete the payment and come back here; "
                   "we are checking for the confirmation automatically.")
APPROVED_MESSAGE = "Payment approved! Redirecting…"
TIMEOUT_MESSAGE = ("We have not confirmed your payment yet. If you already paid, wait a few moments "
                   "or check 'My orders'.")


def describe_failure(error: Exception, default: str) -> str:
    """Turns a client exception into the message shown on the cart page."""
    if isinstance(error, ApiError) and error.message:
        return error.message
    if isinstance(error, httpx.TimeoutException):
        return "The store did not respond in time. Please try again."
    return default


class CheckoutSession:
    """
    State machine for one visit to the cart page.

    Phases: idle → order_creating → preference_creating → polling → (approved | timed_out),
    with `resuming_pending` reachable on entry when an unpaid order was left behind.

    Args:
        api (StoreApiClient): Cart, order and payment-preference calls.
        shipping (ShippingQuoteClient): Carrier quotes.
        store (PendingOrderStore): Durable pointer to the order awaiting payment.
        settings (Settings): Polling budget and checkout policy.
        launcher (PaymentSessionLauncher | None): Opens payment pages; built from `navigate` when omitted.
        navigate (Callable[[str], None] | None): Notified whenever the page should move elsewhere.
    """

    def __init__(
            self,
            api: StoreApiClient,
            shipping: ShippingQuoteClient,
            store: PendingOrderStore,
            settings: Settings,
            launcher: Optional[PaymentSessionLauncher] = None,
            navigate: Optional[Callable[[str], None]] = None,
    ):
        self.api = api
        self.shipping = shipping
        self.store = store
        self.settings = settings
        self.state = CartViewState()
        self.launcher = launcher or PaymentSessionLauncher(fallback=self.navigate)
        self._navigate_hook = navigate
        self._pending: Optional[PendingOrderRecord] = None
        self._closed = False
        self._generation = 0
        self.poller = ConfirmationPoller(
            fetch_orders=self.api.list_orders,
            store=store,
            on_approved=self._on_payment_approved,
            on_timeout=self._on_payment_timeout,
            interval=settings.POLL_INTERVAL_SECONDS,
            max_attempts=settings.POLL_MAX_ATTEMPTS,
            tick_timeout=max(settings.POLL_INTERVAL_SECONDS, settings.READ_TIMEOUT_SECONDS),
        )

    # --- Lifecycle ---

    async def on_enter(self):
        """Initial load: customer, cart, then reconciliation of a leftover pending order."""
        self._closed = False
        log.info("Cart page entered.")
        await self.load_user()
        try:
            await self.load_cart()
        except CheckoutError:
            pass  # already surfaced in state.error
        await self.reconcile_pending()

    def on_exit(self):
        """Stops polling. Responses arriving after this point are not applied."""
        self._closed = True
        self.poller.cancel()
        log.info("Cart page left, confirmation poller stopped.")

    @property
    def closed(self) -> bool:
        return self._closed

    def _superseded(self, generation: int) -> bool:
        """True once the page was left or the pending order discarded after `generation` was taken."""
        return self._closed or generation != self._generation

    # --- Helpers ---

    def navigate(self, url: str):
        log.info(f"Navigating to {url}")
        self.state.redirect_to = url
        if self._navigate_hook:
            self._navigate_hook(url)

    def success_url(self, order_id: str) -> str:
        return f"{self.settings.SUCCESS_PATH}?order={quote(order_id, safe='')}"

    def _error(self, error_cls, message: str) -> CheckoutError:
        """Records `message` for the page and returns the exception to raise."""
        if not self._closed:
            self.state.error = message
        log.warning(f"{error_cls.__name__}: {message}")
        return error_cls(message)

    # --- Loading ---

    async def load_user(self):
        try:
            user = await self.api.get_user()
        except EXTERNAL_ERRORS as e:
            log.warning(f"Could not load the customer profile: {e}")
            return None
        if not self._closed:
            self.state.user = user
        return user

    async def load_cart(self):
        """
        Replaces the displayed cart with the store's authoritative copy.

        Raises:
            ServiceError: If the cart cannot be fetched.
        """
        self.state.loading = True
        self.state.error = ""
        try:
            items = await self.api.get_cart()
        except EXTERNAL_ERRORS as e:
            raise self._error(ServiceError, describe_failure(e, "Could not load the cart.")) from e
        finally:
            self.state.loading = False

        if not self._closed:
            self.state.items = items
        return items

    async def reconcile_pending(self) -> Optional[PendingOrderRecord]:
        """
        Resolves a pending order saved by an earlier visit against the order list.

        Policy:
            - approved: clear the record and go to the success page
            - pending: offer to resume payment
            - any other status, or not found: clear the record
            - order list unavailable: keep the record untouched

        Returns:
            PendingOrderRecord | None: The record offered for resumption, if any.
        """
        saved = self.store.read()
        if saved is None:
            return None

        log_prefix = f"[Order: {saved.id}]"
        try:
            orders = await self.api.list_orders()
        except EXTERNAL_ERRORS as e:
            log.warning(f"{log_prefix} Could not verify the pending order ({e}). Keeping it.")
            return None
        if self._closed:
            return None

        found = find_order(orders, saved.id)
        if found is None:
            log.info(f"{log_prefix} Pending order no longer exists. Forgetting it.")
            self.store.clear()
            return None

        if found.is_approved:
            log.info(f"{log_prefix} Paid while the page was closed.")
            self.store.clear()
            self.state.phase = CheckoutPhase.APPROVED
            self.navigate(self.success_url(saved.id))
            return None

        if found.is_pending:
            record = PendingOrderRecord(id=saved.id, total=found.total or saved.total)
            log.info(f"{log_prefix} Still awaiting payment. Offering to resume.")
            self._pending = record
            self.state.resume_pending = record
            self.state.phase = CheckoutPhase.RESUMING_PENDING
            return record

        log.info(f"{log_prefix} Order is '{found.status}'. Forgetting it.")
        self.store.clear()
        return None

    # --- Cart lines ---

    async def decrement_item(self, product_ref):
        """
        Removes one unit of a cart line, then reloads the cart.

        Only one decrement per line may be in flight; other lines are independent.

        Raises:
            PreconditionError: While a payment is awaited or the line is already being updated.
            ServiceError: If the store rejects the decrement or the cart cannot be reloaded.
        """
        ref = normalize_id(product_ref)
        if not ref:
            return None
        if self.state.waiting_payment:
            raise self._error(PreconditionError, "The cart is locked while a payment is being confirmed.")
        if ref in self.state.busy_refs:
            raise self._error(PreconditionError, "This item is already being updated.")

        self.state.busy_refs.append(ref)
        try:
            try:
                await self.api.decrement_cart_item(ref)
            except EXTERNAL_ERRORS as e:
                raise self._error(ServiceError, describe_failure(e, "Could not decrease the quantity.")) from e
            return await self.load_cart()
        finally:
            if ref in self.state.busy_refs:
                self.state.busy_refs.remove(ref)

    # --- Shipping ---

    async def quote_shipping(self, destination_zip: Optional[str] = None):
        """
        Fetches carrier quotes for the current cart.

        Args:
            destination_zip (str | None): Defaults to the customer's postal code.

        Returns:
            list[ShippingOption]: Usable options, also stored in the view state.
        """
        if destination_zip is None and self.state.user is not None:
            destination_zip = self.state.user.postal_code
        destination_zip = re.sub(r"\s", "", destination_zip or "")
        if not destination_zip:
            raise self._error(PreconditionError, "Customer postal code not found.")

        parcel = compute_parcel_dimensions(self.state.items)
        try:
            options = await self.shipping.quote(destination_zip, parcel)
        except EXTERNAL_ERRORS as e:
            raise self._error(ServiceError, "Could not calculate shipping.") from e

        if not self._closed:
            self.state.shipping_options = options
            selected = self.state.selected_shipping
            if selected is not None and all(option.id != selected.id for option in options):
                self.state.selected_shipping = None
        return options

    def select_shipping(self, option_id) -> ShippingOption:
        wanted = normalize_id(option_id)
        for option in self.state.shipping_options:
            if option.id == wanted:
                self.state.selected_shipping = option
                log.info(f"Shipping option '{option.name}' selected ({option.price}).")
                return option
        raise self._error(PreconditionError, "Unknown shipping option.")

    # --- Checkout ---

    async def checkout(self) -> Optional[PaymentPreference]:
        """
        Creates the order, opens its payment page and starts waiting for confirmation.

        The pending record is written right after the order exists, so a reload at any
        later point can resume the payment without creating a second order.

        Returns:
            PaymentPreference | None: The opened payment session (None if the page was left meanwhile).

        Raises:
            PreconditionError: Empty cart, missing shipping option, or a payment already in progress.
            ServiceError: If the order or the payment preference could not be created.
        """
        state = self.state
        if state.finalizing or state.waiting_payment:
            raise self._error(PreconditionError, "A payment is already in progress.")
        if not state.items:
            raise self._error(PreconditionError, "Your cart is empty.")
        if self.settings.REQUIRE_SHIPPING_SELECTION and state.selected_shipping is None:
            raise self._error(PreconditionError, "Select a shipping option before checking out.")

        state.error = ""
        state.poll_error = ""
        state.poll_message = ""
        generation = self._generation
        state.finalizing = True
        state.phase = CheckoutPhase.ORDER_CREATING
        subtotal = state.subtotal
        shipping_cost = state.shipping_cost

        try:
            # Step 1: order (server clears the cart)
            log.info("Step 1: creating order...")
            try:
                created = await self.api.create_order()
            except EXTERNAL_ERRORS as e:
                state.phase = CheckoutPhase.IDLE
                raise self._error(ServiceError, describe_failure(e, "Could not create the order.")) from e

            order_id = created.order_id
            log_prefix = f"[Order: {order_id}]"
            order_total = created.total or subtotal

            # Step 2: durable pointer before any further call can fail
            record = PendingOrderRecord(id=order_id, total=order_total)
            self.store.save(record)
            self._pending = record
            if self._superseded(generation):
                return None

            state.order_id = order_id
            state.items = []  # optimistic: the next cart fetch is authoritative

            # Step 3: payment preference for products + shipping
            amount = compute_grand_total(order_total, shipping_cost)
            state.phase = CheckoutPhase.PREFERENCE_CREATING
            log.info(f"{log_prefix} Step 2: requesting payment preference ({order_total} + {shipping_cost} shipping).")
            try:
                preference = await self.api.create_preference(order_id, amount)
            except EXTERNAL_ERRORS as e:
                if not self._superseded(generation):
                    state.resume_pending = record
                    state.phase = CheckoutPhase.RESUMING_PENDING
                raise self._error(ServiceError, describe_failure(e, "Could not start the payment.")) from e
            if self._superseded(generation):
                log.info(f"{log_prefix} Checkout superseded before the payment page opened.")
                return None

            # Step 4 + 5: open the payment page and wait for confirmation
            log.info(f"{log_prefix} Step 3: opening payment page.")
            self.launcher.open(preference.payment_url)
            self._start_polling(order_id)
            return preference
        finally:
            state.finalizing = False

    async def regenerate(self) -> Optional[PaymentPreference]:
        """
        Issues a new payment link for the order already awaiting payment.

        The order is taken from this visit, else from the pending record, else the most
        recent pending order on the server. Never creates an order.

        Raises:
            PreconditionError: If a checkout or regeneration is in flight, or no pending order can be found.
            ServiceError: If the payment preference could not be created.
        """
        state = self.state
        if state.finalizing:
            raise self._error(PreconditionError, "A payment is already in progress.")

        state.error = ""
        state.poll_error = ""
        state.finalizing = True
        generation = self._generation
        try:
            return await self._regenerate(generation)
        finally:
            state.finalizing = False

    async def _regenerate(self, generation: int) -> Optional[PaymentPreference]:
        state = self.state
        pending = state.resume_pending or self._pending or self.store.read()
        if pending is None:
            try:
                orders = await self.api.list_orders()
            except EXTERNAL_ERRORS as e:
                log.warning(f"Could not look up pending orders: {e}")
                orders = []
            latest = latest_pending_order(orders)
            if latest is not None:
                pending = PendingOrderRecord(id=latest.id, total=latest.total)

        if pending is None:
            raise self._error(PreconditionError, "There is no pending order to pay.")

        log_prefix = f"[Order: {pending.id}]"
        total = pending.total
        try:
            found = find_order(await self.api.list_orders(), pending.id)
            if found is not None and found.total:
                total = found.total
        except EXTERNAL_ERRORS as e:
            log.warning(f"{log_prefix} Could not refresh the order total ({e}). Using {total}.")
        if self._superseded(generation):
            return None

        record = PendingOrderRecord(id=pending.id, total=total)
        log.info(f"{log_prefix} Regenerating payment link ({total}).")
        try:
            preference = await self.api.create_preference(record.id, record.total)
        except EXTERNAL_ERRORS as e:
            raise self._error(ServiceError,
                              describe_failure(e, "Could not generate the payment link again.")) from e
        if self._superseded(generation):
            log.info(f"{log_prefix} Regeneration superseded before the payment page opened.")
            return None

        self.launcher.open(preference.payment_url)
        self.store.save(record)
        self._pending = record
        state.order_id = record.id
        state.resume_pending = record
        self._start_polling(record.id)
        return preference

    def discard_pending(self):
        """
        Forgets the pending order locally. The order itself is left untouched on the server.

        A checkout or regeneration still awaiting a response when this runs does not open
        its payment page or start polling afterwards.
        """
        pending_id = self._pending.id if self._pending else None
        self._generation += 1
        self.poller.cancel()
        self.store.clear()
        self._pending = None
        state = self.state
        state.resume_pending = None
        state.order_id = None
        state.poll_message = ""
        state.poll_error = ""
        state.waiting_payment = False
        state.phase = CheckoutPhase.IDLE
        log.info(f"[Order: {pending_id}] Pending order discarded by the customer.")

    # --- Confirmation polling ---

    def _start_polling(self, order_id: str):
        state = self.state
        state.poll_error = ""
        state.poll_message = WAITING_MESSAGE
        state.waiting_payment = True
        state.phase = CheckoutPhase.POLLING
        self.poller.start(order_id)

    def _on_payment_approved(self, order_id: str):
        self._pending = None
        if self._closed:
            return
        state = self.state
        state.waiting_payment = False
        state.resume_pending = None
        state.poll_message = APPROVED_MESSAGE
        state.phase = CheckoutPhase.APPROVED
        self.navigate(self.success_url(order_id))

    def _on_payment_timeout(self, order_id: str):
        if self._closed:
            return
        state = self.state
        state.waiting_payment = False
        state.poll_message = ""
        state.poll_error = TIMEOUT_MESSAGE
        state.resume_pending = self._pending
        state.phase = CheckoutPhase.TIMED_OUT
