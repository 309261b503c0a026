from datetime import datetime, timezone
from decimal import Decimal

from conftest import order_row, text_lines
from kitchen_print.layout import build_slip, build_test_page, format_timestamp, order_totals
from kitchen_print.models import LineItem, Order
from kitchen_print.partition import partition_items
from kitchen_print.protocol import Cut, DrawerPulse, LeftRight, encode


def _slips(order, items, open_drawer_first=False):
    partitions = partition_items(items)
    return [
        build_slip(
            order,
            items,
            partition.key,
            partition.items,
            index,
            len(partitions),
            open_drawer=open_drawer_first and index == 1,
            tz=timezone.utc,
        )
        for index, partition in enumerate(partitions, start=1)
    ]


def _value(document, label):
    for directive in document:
        if isinstance(directive, LeftRight) and directive.left == label:
            return directive.right
    raise AssertionError(f"no line labelled {label!r}")


def test_order_totals():
    items = [LineItem("o", "Veg Biryani", 2, Decimal("120.00"), 1), LineItem("o", "Roti", 3, Decimal("15.00"), 2)]
    assert order_totals(items) == (Decimal("285.00"), Decimal("5.70"), Decimal("290.70"))


def test_order_totals_round_half_up():
    items = [LineItem("o", "Tea", 1, Decimal("0.25"))]
    subtotal, service, total = order_totals(items)
    assert (subtotal, service, total) == (Decimal("0.25"), Decimal("0.01"), Decimal("0.26"))


def test_scenario_totals_on_every_slip(order, items):
    slips = _slips(order, items)
    assert len(slips) == 3
    for slip in slips:
        assert _value(slip, "Order Subtotal:") == "325.00"
        assert _value(slip, "Service Charges (2%):") == "6.50"
        assert _value(slip, "Cash (Total):") == "331.50"


def test_kitchen_subtotals_only_on_multi_slip_orders(order, items):
    first, second, unassigned = _slips(order, items)
    assert _value(first, "Kitchen 1 subtotal:") == "240.00"
    assert _value(second, "Kitchen 2 subtotal:") == "45.00"
    assert _value(unassigned, "Kitchen Unassigned subtotal:") == "40.00"
    assert "Slip 2 of 3" in text_lines(second)

    single = [LineItem(order.id, "Veg Biryani", 1, Decimal("120.00"), 1)]
    (only,) = _slips(order, single)
    lines = text_lines(only)
    assert not any("subtotal:" in line for line in lines)
    assert not any(line.startswith("Slip ") for line in lines)


def test_header_and_banners(order, items):
    lines = text_lines(_slips(order, items)[2])
    assert lines[0] == "14-03-2026 01:05 PM" + " " * 17 + "Receipt #101"
    assert "KITCHEN (UNASSIGNED)" in lines
    assert "TABLE 5" in lines
    assert "DELIVERY ORDER" not in lines


def test_delivery_order_has_no_table_banner(items):
    order = Order.from_record(
        order_row(order_type="delivery", payment_method="upi", customer_name="Asha", customer_phone="98300")
    )
    document = _slips(order, items)[0]
    lines = text_lines(document)
    assert not any(line.startswith("TABLE") for line in lines)
    assert "DELIVERY ORDER" in lines
    assert _value(document, "Online (Total):") == "331.50"
    assert _value(document, "Customer:") == "Asha"


def test_item_rows_fit_the_roll_and_long_names_wrap(order):
    items = [LineItem(order.id, "Paneer Butter Masala Special", 1, Decimal("180.00"), 1)]
    lines = text_lines(_slips(order, items)[0])
    row = next(line for line in lines if line.startswith("Paneer"))
    assert len(row) == 48
    assert row.endswith("    180.00    180.00")
    assert "  Special" in lines


def test_drawer_pulse_follows_cut(order, items):
    slips = _slips(order, items, open_drawer_first=True)
    assert slips[0][-2:] == (Cut(), DrawerPulse())
    assert all(DrawerPulse() not in slip for slip in slips[1:])


def test_layout_is_deterministic(order, items):
    first = _slips(order, items, open_drawer_first=True)
    second = _slips(order, list(items), open_drawer_first=True)
    assert first == second
    assert [encode(slip) for slip in first] == [encode(slip) for slip in second]


def test_format_timestamp_morning():
    assert format_timestamp(datetime(2026, 1, 2, 0, 7, tzinfo=timezone.utc), timezone.utc) == "02-01-2026 12:07 AM"


def test_test_page_names_the_printer():
    lines = text_lines(build_test_page("Kitchen One", datetime(2026, 1, 2, tzinfo=timezone.utc), tz=timezone.utc))
    assert "Printer Name : Kitchen One" in lines
    assert "CONNECTION SUCCESS!" in lines
