"""
main.py — FastAPI Entry Point for the Checkout Service

This module provides the REST API the cart page talks to. It hosts exactly one
`CheckoutSession` for the configured customer: the session is entered when the
application starts and left when it shuts down, which also stops any running
payment confirmation poll.

Responsibilities:
    • Expose the cart view state (items, totals, checkout progress)
    • Accept cart page actions: decrement, shipping quote/selection, checkout,
      payment link regeneration and pending-order discard
    • Translate checkout errors into JSON error responses
    • Provide system health information
"""

from contextlib import asynccontextmanager
from typing import Callable, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from .cart import CartViewState
from .clients import ShippingQuoteClient, StoreApiClient
from .config import Settings, get_settings
from .errors import CheckoutError
from .logging_config import get_logger, setup_logging
from .models import ShippingOption, ShippingQuoteRequest, ShippingSelectionRequest
from .storage import LocalStorage, PendingOrderStore
from .workflow import CheckoutSession

log = get_logger(__name__)


def build_session(settings: Settings) -> CheckoutSession:
    """Wires a session to the real store API, shipping calculator and local state directory."""
    store = PendingOrderStore(LocalStorage(settings.STATE_DIR), key=settings.PENDING_ORDER_KEY)
    return CheckoutSession(
        api=StoreApiClient(settings),
        shipping=ShippingQuoteClient(settings),
        store=store,
        settings=settings,
    )


def create_app(session_factory: Optional[Callable[[], CheckoutSession]] = None,
               configure_logging: bool = True) -> FastAPI:
    """
    Builds the FastAPI application.

    Args:
        session_factory: Creates the hosted session; defaults to `build_session(get_settings())`.
        configure_logging (bool): Install the global logging configuration on startup.

    Returns:
        FastAPI: The configured application.
    """
    if session_factory is None:
        session_factory = lambda: build_session(get_settings())  # noqa: E731

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if configure_logging:
            setup_logging()
        log.info("Checkout service starting...")
        session = session_factory()
        app.state.session = session
        await session.on_enter()

        yield

        session.on_exit()
        await session.api.aclose()
        await session.shipping.aclose()
        log.info("Checkout service stopped.")

    app = FastAPI(title="Storefront Checkout", lifespan=lifespan)

    @app.exception_handler(CheckoutError)
    async def checkout_error_handler(request: Request, exc: CheckoutError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    def get_session(request: Request) -> CheckoutSession:
        return request.app.state.session

    # Health Check Endpoint
    @app.get("/health")
    def health_check():
        """
        Simple health check endpoint.

        Returns:
            dict: A basic JSON object indicating service availability.
        """
        return {"status": "ok"}

    @app.get("/v1/cart", response_model=CartViewState)
    async def read_cart(session: CheckoutSession = Depends(get_session)):
        return session.state

    @app.post("/v1/cart/reload", response_model=CartViewState)
    async def reload_cart(session: CheckoutSession = Depends(get_session)):
        await session.load_cart()
        return session.state

    @app.post("/v1/cart/items/{product_ref}/decrement", response_model=CartViewState)
    async def decrement_item(product_ref: str, session: CheckoutSession = Depends(get_session)):
        await session.decrement_item(product_ref)
        return session.state

    @app.post("/v1/shipping/quotes", response_model=List[ShippingOption])
    async def quote_shipping(body: Optional[ShippingQuoteRequest] = None,
                             session: CheckoutSession = Depends(get_session)):
        postal_code = body.postal_code if body else None
        return await session.quote_shipping(postal_code)

    @app.put("/v1/shipping/selection", response_model=CartViewState)
    async def select_shipping(body: ShippingSelectionRequest, session: CheckoutSession = Depends(get_session)):
        session.select_shipping(body.option_id)
        return session.state

    @app.post("/v1/checkout", status_code=202, response_model=CartViewState)
    async def checkout(session: CheckoutSession = Depends(get_session)):
        """
        Starts the checkout: creates the order, opens the payment page and begins
        watching for the payment confirmation.

        Response code 202 (Accepted) indicates that the payment has been started;
        confirmation arrives asynchronously and shows up in the cart state.
        """
        await session.checkout()
        return session.state

    @app.post("/v1/checkout/regenerate", status_code=202, response_model=CartViewState)
    async def regenerate(session: CheckoutSession = Depends(get_session)):
        await session.regenerate()
        return session.state

    @app.delete("/v1/checkout/pending", response_model=CartViewState)
    async def discard_pending(session: CheckoutSession = Depends(get_session)):
        session.discard_pending()
        return session.state

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
