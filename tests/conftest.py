import pytest

from checkout_service.config import Settings
from checkout_service.models import CartItem
from checkout_service.storage import LocalStorage, PendingOrderStore
from checkout_service.workflow import CheckoutSession

from tests.fakes import FakeLauncher, FakeShipping, FakeStoreApi


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        STORE_API_URL="http://store.test",
        STORE_API_TOKEN="test-token",
        SHIPPING_API_URL="http://shipping.test",
        POLL_INTERVAL_SECONDS=0,
        POLL_MAX_ATTEMPTS=3,
        STATE_DIR=str(tmp_path / "state"),
        LOG_FILE=str(tmp_path / "checkout.log"),
    )


@pytest.fixture
def store(settings):
    return PendingOrderStore(LocalStorage(settings.STATE_DIR), key=settings.PENDING_ORDER_KEY)


@pytest.fixture
def cart_items():
    return [
        CartItem(product_ref="p-100", quantity=2, unit_price=10,
                 product={"name": "Trail Runner", "height": 2, "width": 3, "length": 4, "weight": 1}),
        CartItem(product_ref="p-200", quantity=1, unit_price=5,
                 product={"name": "City Sneaker", "height": 1, "width": 5, "length": 2, "weight": 3}),
    ]


@pytest.fixture
def api(cart_items):
    return FakeStoreApi(cart=cart_items)


@pytest.fixture
def shipping():
    return FakeShipping()


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def session(api, shipping, store, settings, launcher):
    return CheckoutSession(api=api, shipping=shipping, store=store, settings=settings, launcher=launcher)
