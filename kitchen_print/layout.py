"""Kitchen slip layout: orders in, ESC/POS directive documents out."""

from __future__ import annotations

from datetime import datetime, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from kitchen_print.config import SERVICE_CHARGE_RATE, ShopProfile
from kitchen_print.models import LineItem, Order, PartitionKey
from kitchen_print.protocol import (
    CENTER,
    LEFT,
    NORMAL,
    RIGHT,
    Align,
    Bold,
    Cut,
    Directive,
    Document,
    DrawerPulse,
    Feed,
    Init,
    LeftRight,
    Line,
    Rule,
    TextSize,
    col,
)

# Item table columns; together they fill the 48-character line of an 80mm roll.
NAME_WIDTH = 21
QTY_WIDTH = 7
PRICE_WIDTH = 10
TOTAL_WIDTH = 10

HEAVY_RULE = "="
LIGHT_RULE = "-"

_CENT = Decimal("0.01")


def money(value: Decimal) -> str:
    return str(Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP))


def format_timestamp(value: datetime, tz: tzinfo | None = None) -> str:
    """Render `DD-MM-YYYY hh:mm AM` in `tz` (local time when omitted)."""
    local = value.astimezone(tz)
    return local.strftime("%d-%m-%Y %I:%M ") + ("PM" if local.hour >= 12 else "AM")


def order_totals(
    items: Iterable[LineItem], rate: Decimal = SERVICE_CHARGE_RATE
) -> tuple[Decimal, Decimal, Decimal]:
    """Return (subtotal, service charge, grand total) rounded to cents."""
    subtotal = sum((item.extended_price for item in items), Decimal("0")).quantize(_CENT, rounding=ROUND_HALF_UP)
    service = (subtotal * rate).quantize(_CENT, rounding=ROUND_HALF_UP)
    return subtotal, service, subtotal + service


def kitchen_banner(key: PartitionKey) -> str:
    return "KITCHEN (UNASSIGNED)" if key is None else f"KITCHEN {key}"


def payment_label(order: Order) -> str:
    return "Cash" if order.is_cash else "Online"


def item_row(name: str, quantity: object, price: str, total: str) -> str:
    return (
        col(name, NAME_WIDTH)
        + col(quantity, QTY_WIDTH, RIGHT)
        + col(price, PRICE_WIDTH, RIGHT)
        + col(total, TOTAL_WIDTH, RIGHT)
    )


def _bold(text: str) -> list[Directive]:
    return [Bold(True), Line(text), Bold(False)]


def _brand_block(shop: ShopProfile) -> list[Directive]:
    block: list[Directive] = [Align(CENTER), *_bold(shop.name)]
    block.extend(Line(line) for line in shop.address)
    block.append(Feed())
    return block


def build_slip(
    order: Order,
    all_items: Sequence[LineItem],
    partition_key: PartitionKey,
    partition_items: Sequence[LineItem],
    slip_index: int,
    total_slips: int,
    open_drawer: bool = False,
    shop: ShopProfile | None = None,
    rate: Decimal = SERVICE_CHARGE_RATE,
    tz: tzinfo | None = None,
) -> Document:
    """Lay out one kitchen slip; totals always cover the whole order."""
    shop = shop or ShopProfile()
    doc: list[Directive] = [Init()]

    doc += [
        Align(LEFT),
        TextSize(NORMAL),
        LeftRight(format_timestamp(order.created_at, tz), f"Receipt #{order.order_number}"),
        Line(shop.store_label),
        Feed(),
    ]
    doc += _brand_block(shop)

    doc += [Align(LEFT), Rule(HEAVY_RULE), Align(CENTER), Bold(True), Line(kitchen_banner(partition_key))]
    if total_slips > 1:
        doc.append(Line(f"Slip {slip_index} of {total_slips}"))
    doc += [Bold(False), Align(LEFT), Rule(HEAVY_RULE), Feed()]

    if not order.is_delivery and order.table_number:
        doc += [Align(CENTER), *_bold(f"TABLE {order.table_number}"), Feed()]

    doc.append(Align(LEFT))
    if order.customer_name:
        doc.append(LeftRight("Customer:", order.customer_name))
    if order.customer_phone:
        doc.append(LeftRight("Phone:", order.customer_phone))
    if order.customer_name or order.customer_phone:
        doc.append(Feed())

    doc += _bold(item_row("Item Name", "Qty", "Price", "Total"))
    doc.append(Rule(HEAVY_RULE))

    kitchen_subtotal = Decimal("0")
    for item in partition_items:
        kitchen_subtotal += item.extended_price
        doc += _bold(item_row(item.name, item.quantity, money(item.unit_price), money(item.extended_price)))
        if len(item.name) > NAME_WIDTH:
            doc += _bold("  " + item.name[NAME_WIDTH:])
    doc.append(Feed())

    if total_slips > 1:
        label = "Unassigned" if partition_key is None else partition_key
        doc += [
            Align(LEFT),
            Rule(LIGHT_RULE),
            LeftRight(f"Kitchen {label} subtotal:", money(kitchen_subtotal)),
            Feed(),
        ]

    subtotal, service, grand_total = order_totals(all_items, rate)
    percent = (rate * 100).normalize()
    doc += [
        Align(LEFT),
        Rule(HEAVY_RULE),
        LeftRight("Order Subtotal:", money(subtotal)),
        LeftRight(f"Service Charges ({percent:f}%):", money(service)),
        Bold(True),
        LeftRight(f"{payment_label(order)} (Total):", money(grand_total)),
        Bold(False),
        Feed(),
        Align(LEFT),
        Rule(HEAVY_RULE),
    ]

    doc += [Align(CENTER), Feed(), Line("Thanks for dining with us!"), Feed()]
    if order.is_delivery:
        doc += _bold("DELIVERY ORDER")
    doc += [Feed(3), Cut()]
    if open_drawer:
        doc.append(DrawerPulse())
    return tuple(doc)


def build_test_page(
    destination: str, now: datetime, shop: ShopProfile | None = None, tz: tzinfo | None = None
) -> Document:
    """Connection test receipt for one printer."""
    shop = shop or ShopProfile()
    doc: list[Directive] = [
        Init(),
        Align(LEFT),
        TextSize(NORMAL),
        Line(format_timestamp(now, tz)),
        Line(shop.store_label),
        Feed(),
        Align(CENTER),
        *_bold("*** PRINTER TEST ***"),
        Feed(),
    ]
    doc += _brand_block(shop)
    doc += [
        Align(LEFT),
        Rule(HEAVY_RULE),
        Feed(),
        Line(f"Printer Name : {destination}"),
        Line("Connection   : SUCCESS"),
        Feed(),
        Align(LEFT),
        Rule(HEAVY_RULE),
        Align(CENTER),
        *_bold("CONNECTION SUCCESS!"),
        Line("80mm Thermal  |  ESC/POS  |  RAW mode"),
        Feed(3),
        Cut(),
    ]
    return tuple(doc)
