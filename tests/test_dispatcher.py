import asyncio
from datetime import timezone
from decimal import Decimal

import pytest

from conftest import FakeSink, order_row
from kitchen_print.dispatcher import SlipDispatcher
from kitchen_print.models import LineItem, Order
from kitchen_print.protocol import CMD_CUT_PARTIAL, CMD_DRAWER_PULSE


def test_one_slip_per_kitchen_in_order(dispatcher, sink, order, items):
    outcome = asyncio.run(dispatcher.dispatch(order, items))

    assert [destination for destination, _ in sink.jobs] == ["Kitchen One", "Kitchen Two", "Counter"]
    assert outcome.attempted == (1, 2, None)
    assert outcome.succeeded == (1, 2, None)
    assert outcome.success
    assert outcome.order_number == 101
    assert b"KITCHEN 1\n" in sink.jobs[0][1]
    assert b"KITCHEN (UNASSIGNED)\n" in sink.jobs[2][1]


def test_drawer_opens_on_first_slip_only(dispatcher, sink, order, items):
    asyncio.run(dispatcher.dispatch(order, items))

    first, *rest = [data for _, data in sink.jobs]
    assert first.endswith(CMD_CUT_PARTIAL + CMD_DRAWER_PULSE)
    assert all(CMD_DRAWER_PULSE not in data for data in rest)


def test_drawer_stays_shut_for_online_payments(sink, resolver, items):
    order = Order.from_record(order_row(payment_method="upi"))
    dispatcher = SlipDispatcher(sink, resolver, open_cash_drawer=True, slip_gap=0, tz=timezone.utc)
    asyncio.run(dispatcher.dispatch(order, items))
    assert all(CMD_DRAWER_PULSE not in data for _, data in sink.jobs)


def test_failed_slip_does_not_stop_the_rest(resolver, order, items):
    sink = FakeSink(failing={"Kitchen One"})
    dispatcher = SlipDispatcher(sink, resolver, slip_gap=0, tz=timezone.utc)

    outcome = asyncio.run(dispatcher.dispatch(order, items))

    assert sink.attempts == ["Kitchen One", "Kitchen Two", "Counter"]
    assert outcome.succeeded == (2, None)
    assert outcome.failed == (1,)
    assert not outcome.success
    assert outcome.slips[0].ok is False
    assert "printer offline" in outcome.slips[0].error


def test_unexpected_sink_errors_are_contained(resolver, order, items):
    class BrokenSink(FakeSink):
        def send(self, data, destination):
            raise RuntimeError("driver crashed")

    dispatcher = SlipDispatcher(BrokenSink(), resolver, slip_gap=0)
    outcome = asyncio.run(dispatcher.dispatch(order, items))
    assert outcome.succeeded == ()
    assert outcome.failed == (1, 2, None)


def test_order_without_items_sends_nothing(dispatcher, sink, order):
    outcome = asyncio.run(dispatcher.dispatch(order, []))
    assert sink.jobs == []
    assert outcome.attempted == ()
    assert outcome.success


def test_items_of_another_order_are_rejected(dispatcher, sink, order):
    stray = [LineItem("order-999", "Roti", 1, Decimal("15.00"), 2)]
    with pytest.raises(ValueError):
        asyncio.run(dispatcher.dispatch(order, stray))
    assert sink.attempts == []


def test_render_matches_what_is_sent(dispatcher, sink, order, items):
    rendered = dispatcher.render(order, items)
    asyncio.run(dispatcher.dispatch(order, items))
    assert [partition.key for partition, _ in rendered] == [1, 2, None]
    assert len(rendered) == len(sink.jobs)
