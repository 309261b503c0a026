import asyncio
from datetime import timedelta

from conftest import CREATED_AT, FakeSink, FakeStore, order_row, scenario_a_items
from kitchen_print.dispatcher import SlipDispatcher
from kitchen_print.errors import OrderFetchError
from kitchen_print.events import PULL, PUSH, EventSource
from kitchen_print.ledger import DedupLedger
from kitchen_print.models import ChangeRecord
from kitchen_print.trigger import TriggerEngine

STARTED = CREATED_AT + timedelta(hours=1)


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def _source(store, dispatcher, clock):
    engine = TriggerEngine(store, dispatcher, ledger=DedupLedger())
    return EventSource(store, engine, poll_interval=3600, push_timeout=0.05, clock=clock)


async def _until(condition, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def test_silent_push_feed_falls_back_to_polling(dispatcher, sink):
    store = FakeStore(subscription="never")
    store.add(order_row(), scenario_a_items())
    clock = Clock(STARTED)
    source = _source(store, dispatcher, clock)

    async def scenario():
        mode = await source.start()
        # Paid before startup: never replayed.
        assert sink.jobs == []

        store.orders["order-101"]["updated_at"] = (STARTED + timedelta(minutes=1)).isoformat()
        clock.now = STARTED + timedelta(minutes=2)
        forwarded = await source.poll_once()
        await source.stop()
        return mode, forwarded

    mode, forwarded = asyncio.run(scenario())

    assert mode == PULL
    assert store.subscription.closed
    assert store.polls[0] == STARTED
    assert forwarded == 1
    assert [destination for destination, _ in sink.jobs] == ["Kitchen One", "Kitchen Two", "Counter"]
    assert source.since == STARTED + timedelta(minutes=2)


def test_subscription_error_falls_back_to_polling(dispatcher):
    store = FakeStore(subscription="error")
    source = _source(store, dispatcher, Clock(STARTED))

    async def scenario():
        mode = await source.start()
        await source.stop()
        return mode

    assert asyncio.run(scenario()) == PULL


def test_printed_orders_are_not_forwarded_again(store, dispatcher, sink):
    store.orders["order-101"]["updated_at"] = (STARTED + timedelta(minutes=1)).isoformat()
    source = _source(store, dispatcher, Clock(STARTED))
    source.since = STARTED

    assert asyncio.run(source.poll_once()) == 1
    source.since = STARTED
    assert asyncio.run(source.poll_once()) == 0
    assert len(sink.jobs) == 3


def test_poll_failure_keeps_watermark(store, dispatcher):
    clock = Clock(STARTED)
    source = _source(store, dispatcher, clock)
    source.since = STARTED
    store.poll_errors.append(OrderFetchError("poll failed"))
    clock.now = STARTED + timedelta(minutes=5)

    assert asyncio.run(source.poll_once()) == 0
    assert source.since == STARTED


def test_push_mode_forwards_changes(dispatcher, sink):
    store = FakeStore(subscription="ready")
    store.add(order_row(), scenario_a_items())
    source = _source(store, dispatcher, Clock(STARTED))

    async def scenario():
        mode = await source.start()
        store.on_change(ChangeRecord.updated({"id": "order-101", "payment_status": "pending"}, order_row()))
        await _until(lambda: len(sink.jobs) == 3)
        await source.stop()
        return mode

    assert asyncio.run(scenario()) == PUSH
    assert store.polls == []
    assert store.subscription.closed
    assert source.mode is None


def test_channel_loss_keeps_push_mode(dispatcher):
    store = FakeStore(subscription="ready")
    source = _source(store, dispatcher, Clock(STARTED))

    async def scenario():
        await source.start()
        store.on_error(RuntimeError("socket closed"))
        await asyncio.sleep(0.01)
        mode = source.mode
        await source.stop()
        return mode

    assert asyncio.run(scenario()) == PUSH


def test_partial_dispatch_is_retried_on_the_next_poll(store, resolver):
    sink = FakeSink(failing={"Kitchen Two"})
    dispatcher = SlipDispatcher(sink, resolver, slip_gap=0)
    store.orders["order-101"]["updated_at"] = (STARTED + timedelta(minutes=1)).isoformat()
    clock = Clock(STARTED)
    source = _source(store, dispatcher, clock)
    source.since = STARTED

    clock.now = STARTED + timedelta(minutes=2)
    assert asyncio.run(source.poll_once()) == 1
    assert not source.engine.already_printed("order-101")
    assert source.retry_pending == ["order-101"]

    sink.failing.clear()
    clock.now = STARTED + timedelta(minutes=3)
    assert asyncio.run(source.poll_once()) == 1
    assert source.engine.already_printed("order-101")
    assert source.retry_pending == []
    assert sink.attempts == ["Kitchen One", "Kitchen Two", "Counter"] * 2

    assert asyncio.run(source.poll_once()) == 0
    assert len(sink.attempts) == 6


def test_refused_subscription_falls_back_to_polling(dispatcher):
    store = FakeStore(subscription="refuse")
    source = _source(store, dispatcher, Clock(STARTED))

    async def scenario():
        mode = await source.start()
        await source.stop()
        return mode

    assert asyncio.run(scenario()) == PULL
    assert store.polls == [STARTED]


def test_unexpected_poll_error_keeps_polling(store, dispatcher, sink):
    store.orders["order-101"]["updated_at"] = (STARTED + timedelta(minutes=1)).isoformat()
    store.poll_errors.append(RuntimeError("http 502"))
    engine = TriggerEngine(store, dispatcher, ledger=DedupLedger())
    source = EventSource(store, engine, poll_interval=0.01, push_timeout=0.05, clock=Clock(STARTED))

    async def scenario():
        await source.start()
        await _until(lambda: len(sink.jobs) == 3)
        await source.stop()

    asyncio.run(scenario())

    assert len(store.polls) >= 2
    assert engine.already_printed("order-101")
