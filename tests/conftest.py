"""
Pytest fixtures and fakes for kitchen-print tests.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from kitchen_print.destinations import DestinationResolver
from kitchen_print.dispatcher import SlipDispatcher
from kitchen_print.errors import DeviceSendError, OrderFetchError, SubscriptionError
from kitchen_print.models import LineItem, Order, parse_timestamp
from kitchen_print.protocol import Feed, LeftRight, Line, Rule, draw_line, left_right

CREATED_AT = datetime(2026, 3, 14, 13, 5, tzinfo=timezone.utc)


class FakeSink:
    """Records every job; destinations in `failing` refuse jobs."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = set(failing or ())
        self.jobs: list[tuple[str, bytes]] = []
        self.attempts: list[str] = []

    def send(self, data: bytes, destination: str) -> None:
        self.attempts.append(destination)
        if destination in self.failing:
            raise DeviceSendError(destination, "printer offline")
        self.jobs.append((destination, data))

    def list_available_destinations(self) -> list[str]:
        return ["Kitchen One", "Kitchen Two", "Counter"]


class FakeSubscription:
    """A push feed that becomes ready, fails, or never answers."""

    def __init__(self, behaviour: str = "ready") -> None:
        self.behaviour = behaviour
        self.closed = False

    async def wait_ready(self) -> None:
        if self.behaviour == "ready":
            return
        if self.behaviour == "error":
            raise SubscriptionError("channel error")
        await asyncio.sleep(3600)

    def close(self) -> None:
        self.closed = True


class FakeStore:
    """In-memory order store keyed by order id."""

    def __init__(self, subscription: str = "never") -> None:
        self.orders: dict[str, dict] = {}
        self.items: dict[str, list[LineItem]] = {}
        self.subscription_behaviour = subscription
        self.subscription: FakeSubscription | None = None
        self.on_change = None
        self.on_error = None
        self.fail_fetch = False
        self.poll_errors: list[Exception] = []
        self.fetches: list[str] = []
        self.polls: list[datetime] = []

    def add(self, row: dict, items: list[LineItem]) -> None:
        self.orders[row["id"]] = row
        self.items[row["id"]] = items

    def ping(self) -> None:
        return None

    def fetch_order(self, order_id: str) -> Order | None:
        self.fetches.append(order_id)
        if self.fail_fetch:
            raise OrderFetchError("store offline")
        row = self.orders.get(order_id)
        return None if row is None else Order.from_record(row)

    def fetch_items(self, order_id: str) -> list[LineItem]:
        return list(self.items.get(order_id, []))

    def subscribe(self, on_change, on_error) -> FakeSubscription:
        self.on_change = on_change
        self.on_error = on_error
        if self.subscription_behaviour == "refuse":
            raise ConnectionError("websocket refused")
        self.subscription = FakeSubscription(self.subscription_behaviour)
        return self.subscription

    def query_changed_since(self, since: datetime, trigger_value: str) -> list[dict]:
        self.polls.append(since)
        if self.poll_errors:
            raise self.poll_errors.pop(0)
        rows = [
            row
            for row in self.orders.values()
            if row.get("payment_status") == trigger_value and parse_timestamp(row["updated_at"]) >= since
        ]
        return sorted(rows, key=lambda row: row["updated_at"])


def text_lines(document) -> list[str]:
    """Printed text of a document, one entry per line; feeds are blank lines."""
    lines: list[str] = []
    for directive in document:
        if isinstance(directive, Line):
            lines.append(directive.text)
        elif isinstance(directive, LeftRight):
            lines.append(left_right(directive.left, directive.right, directive.width))
        elif isinstance(directive, Rule):
            lines.append(draw_line(directive.char, directive.width))
        elif isinstance(directive, Feed):
            lines.extend([""] * directive.lines)
    return lines


def order_row(order_id: str = "order-101", number: int = 101, **overrides) -> dict:
    row = {
        "id": order_id,
        "order_number": number,
        "created_at": CREATED_AT.isoformat(),
        "updated_at": CREATED_AT.isoformat(),
        "order_type": "dine_in",
        "table_number": "5",
        "payment_method": "cash",
        "payment_status": "paid",
        "customer_name": None,
        "customer_phone": None,
    }
    row.update(overrides)
    return row


def scenario_a_items(order_id: str = "order-101") -> list[LineItem]:
    return [
        LineItem(order_id, "Veg Biryani", 2, Decimal("120.00"), 1),
        LineItem(order_id, "Roti", 3, Decimal("15.00"), 2),
        LineItem(order_id, "Water", 2, Decimal("20.00"), None),
    ]


@pytest.fixture
def order() -> Order:
    return Order.from_record(order_row())


@pytest.fixture
def items() -> list[LineItem]:
    return scenario_a_items()


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture
def resolver() -> DestinationResolver:
    return DestinationResolver("Counter", {1: "Kitchen One", 2: "Kitchen Two"})


@pytest.fixture
def dispatcher(sink, resolver) -> SlipDispatcher:
    return SlipDispatcher(sink, resolver, open_cash_drawer=True, slip_gap=0, tz=timezone.utc)


@pytest.fixture
def store(items) -> FakeStore:
    fake = FakeStore()
    fake.add(order_row(), items)
    return fake
