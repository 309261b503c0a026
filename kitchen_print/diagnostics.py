"""Printer checks and the built-in sample order."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal

from kitchen_print.config import TEST_PAGE_GAP_SECONDS, ShopProfile
from kitchen_print.destinations import DestinationResolver
from kitchen_print.layout import build_test_page
from kitchen_print.models import LineItem, Order, partition_label
from kitchen_print.protocol import encode
from kitchen_print.sinks import DeviceSink

logger = logging.getLogger(__name__)

SAMPLE_ORDER_ID = "sample-order"


def sample_order(now: datetime | None = None) -> tuple[Order, list[LineItem]]:
    """A dine-in cash order spread over three kitchens plus unassigned items."""
    order = Order(
        id=SAMPLE_ORDER_ID,
        order_number=101,
        created_at=now or datetime.now(timezone.utc),
        order_type="dine_in",
        table_number="5",
        payment_method="cash",
        payment_status="paid",
    )
    rows = [
        ("Veg Biryani", 2, "120.00", 1),
        ("Paneer Butter Masala", 1, "150.00", 1),
        ("Roti", 3, "15.00", 2),
        ("Garlic Naan", 2, "25.00", 2),
        ("Cold Coffee", 1, "60.00", 3),
        ("Water Bottle", 2, "20.00", None),
    ]
    items = [
        LineItem(order_id=order.id, name=name, quantity=qty, unit_price=Decimal(price), kitchen_number=kitchen)
        for name, qty, price, kitchen in rows
    ]
    return order, items


async def send_test_page(
    sink: DeviceSink, destination: str, shop: ShopProfile | None = None, now: datetime | None = None
) -> bool:
    """Print the connection test receipt on one printer."""
    document = build_test_page(destination, now or datetime.now(timezone.utc), shop)
    try:
        await asyncio.to_thread(sink.send, encode(document), destination)
    except Exception as exc:
        logger.error("test_page_failed destination=%r error=%s", destination, exc)
        return False
    logger.info("test_page_sent destination=%r", destination)
    return True


async def check_all_destinations(
    sink: DeviceSink,
    resolver: DestinationResolver,
    shop: ShopProfile | None = None,
    gap: float = TEST_PAGE_GAP_SECONDS,
) -> dict[str, bool]:
    """Test every distinct configured printer once; returns printer -> ok."""
    destinations = resolver.all_configured_destinations()
    results: dict[str, bool] = {}
    for index, (destination, kitchen) in enumerate(destinations.items()):
        if index > 0:
            await asyncio.sleep(gap)
        logger.info("test_page_start destination=%r kitchen=%s", destination, partition_label(kitchen))
        results[destination] = await send_test_page(sink, destination, shop)
    return results
