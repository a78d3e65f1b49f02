import asyncio

import pytest

from checkout_service.errors import ApiError
from checkout_service.models import Order, PendingOrderRecord
from checkout_service.poller import ConfirmationPoller

from tests.fakes import settle


class Recorder:
    def __init__(self):
        self.approved = []
        self.timed_out = []


def scripted(statuses, order_id="o-1"):
    """Order listing that reports the next status on each call (repeating the last one)."""
    calls = {"n": 0}

    async def fetch_orders():
        index = min(calls["n"], len(statuses) - 1)
        calls["n"] += 1
        status = statuses[index]
        if isinstance(status, Exception):
            raise status
        if status is None:
            return []
        return [Order.model_validate({"_id": {"$oid": order_id}, "status": status})]

    fetch_orders.calls = calls
    return fetch_orders


def make_poller(fetch_orders, store, recorder, max_attempts=5, interval=0, tick_timeout=None):
    return ConfirmationPoller(
        fetch_orders=fetch_orders,
        store=store,
        on_approved=recorder.approved.append,
        on_timeout=recorder.timed_out.append,
        interval=interval,
        max_attempts=max_attempts,
        tick_timeout=tick_timeout,
    )


@pytest.mark.asyncio
async def test_stops_on_the_tick_that_sees_approval(store):
    store.save(PendingOrderRecord(id="o-1", total=25))
    recorder = Recorder()
    fetch = scripted(["pending", "pending", "approved"])
    poller = make_poller(fetch, store, recorder)

    await poller.start("o-1")
    await settle()

    assert poller.attempts == 3
    assert fetch.calls["n"] == 3
    assert recorder.approved == ["o-1"]
    assert recorder.timed_out == []
    assert store.read() is None
    assert not poller.active


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts_and_keeps_record(store):
    store.save(PendingOrderRecord(id="o-1", total=25))
    recorder = Recorder()
    fetch = scripted(["pending"])
    poller = make_poller(fetch, store, recorder, max_attempts=4)

    await poller.start("o-1")

    assert fetch.calls["n"] == 4
    assert recorder.timed_out == ["o-1"]
    assert recorder.approved == []
    assert store.read().id == "o-1"
    assert not poller.active


@pytest.mark.asyncio
async def test_transient_errors_and_missing_order_do_not_stop_polling(store):
    recorder = Recorder()
    fetch = scripted([ApiError("Bad gateway", 502), ConnectionError("reset"), None, "approved"])
    poller = make_poller(fetch, store, recorder)

    await poller.start("o-1")

    assert poller.attempts == 4
    assert recorder.approved == ["o-1"]


@pytest.mark.asyncio
async def test_other_statuses_keep_polling(store):
    recorder = Recorder()
    poller = make_poller(scripted(["rejected"]), store, recorder, max_attempts=2)

    await poller.start("o-1")

    assert recorder.approved == []
    assert recorder.timed_out == ["o-1"]


@pytest.mark.asyncio
async def test_hung_fetch_is_bounded_by_tick_timeout(store):
    recorder = Recorder()

    async def hang():
        await asyncio.sleep(3600)

    poller = make_poller(hang, store, recorder, max_attempts=2, tick_timeout=0.01)

    await poller.start("o-1")

    assert poller.attempts == 2
    assert recorder.timed_out == ["o-1"]


@pytest.mark.asyncio
async def test_starting_again_cancels_the_previous_run(store):
    recorder = Recorder()
    poller = make_poller(scripted(["pending"]), store, recorder, interval=3600)

    first = poller.start("o-1")
    second = poller.start("o-2")
    await settle()

    assert first.cancelled()
    assert not second.done()
    assert poller.active

    poller.cancel()
    await settle()
    assert second.cancelled()
    assert not poller.active
    assert recorder.approved == [] and recorder.timed_out == []


@pytest.mark.asyncio
async def test_approval_fires_exactly_once(store):
    recorder = Recorder()
    fetch = scripted(["approved"])
    poller = make_poller(fetch, store, recorder)

    await poller.start("o-1")
    await settle()

    assert recorder.approved == ["o-1"]
    assert fetch.calls["n"] == 1


@pytest.mark.asyncio
async def test_wait_returns_after_cancel(store):
    poller = make_poller(scripted(["pending"]), store, Recorder(), interval=3600)
    poller.start("o-1")
    waiter = asyncio.create_task(poller.wait())
    await settle()

    poller.cancel()
    await asyncio.wait_for(waiter, timeout=1)
