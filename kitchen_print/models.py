"""Domain models for kitchen-print."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

PartitionKey = int | None

CASH = "cash"
DELIVERY = "delivery"


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO timestamp (or pass through a datetime); naive values are UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class Order:
    """An order row as fetched for one dispatch attempt."""

    id: str
    order_number: int
    created_at: datetime
    order_type: str = "dine_in"
    table_number: str | None = None
    payment_method: str = CASH
    payment_status: str = "pending"
    customer_name: str | None = None
    customer_phone: str | None = None
    updated_at: datetime | None = None

    @property
    def is_delivery(self) -> bool:
        return self.order_type == DELIVERY

    @property
    def is_cash(self) -> bool:
        return self.payment_method == CASH

    @classmethod
    def from_record(cls, row: Mapping[str, Any]) -> Order:
        """Build an order from a raw store row."""
        if row.get("id") in (None, ""):
            raise ValueError("order row has no id")
        if row.get("order_number") is None:
            raise ValueError(f"order {row['id']} has no order_number")
        created_at = parse_timestamp(row.get("created_at"))
        if created_at is None:
            raise ValueError(f"order {row['id']} has no created_at")
        return cls(
            id=str(row["id"]),
            order_number=int(row["order_number"]),
            created_at=created_at,
            order_type=str(row.get("order_type") or "dine_in"),
            table_number=_optional_text(row.get("table_number")),
            payment_method=str(row.get("payment_method") or CASH),
            payment_status=str(row.get("payment_status") or "pending"),
            customer_name=_optional_text(row.get("customer_name")),
            customer_phone=_optional_text(row.get("customer_phone")),
            updated_at=parse_timestamp(row.get("updated_at")),
        )


@dataclass(frozen=True)
class LineItem:
    """One order line; `kitchen_number` of None routes to the unassigned kitchen."""

    order_id: str
    name: str
    quantity: int
    unit_price: Decimal
    kitchen_number: PartitionKey = None

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"line item {self.name!r} has non-positive quantity {self.quantity}")
        if not self.unit_price.is_finite():
            raise ValueError(f"line item {self.name!r} has non-finite price {self.unit_price}")
        if self.unit_price < 0:
            raise ValueError(f"line item {self.name!r} has negative price {self.unit_price}")

    @property
    def extended_price(self) -> Decimal:
        return self.unit_price * self.quantity

    @classmethod
    def from_record(cls, row: Mapping[str, Any]) -> LineItem:
        """Build a line item from a raw `order_items` row."""
        try:
            price = Decimal(str(row.get("item_price", "0")))
        except InvalidOperation as exc:
            raise ValueError(f"line item has invalid price {row.get('item_price')!r}") from exc
        kitchen = row.get("kitchen_number")
        return cls(
            order_id=str(row["order_id"]),
            name=str(row.get("item_name") or "Item"),
            quantity=int(row.get("quantity", 0)),
            unit_price=price,
            kitchen_number=None if kitchen is None or kitchen == "" else int(kitchen),
        )


@dataclass(frozen=True)
class Partition:
    """Items of one order that share a kitchen."""

    key: PartitionKey
    items: tuple[LineItem, ...]

    @property
    def label(self) -> str:
        return partition_label(self.key)


def partition_label(key: PartitionKey) -> str:
    return "unassigned" if key is None else str(key)


@dataclass(frozen=True)
class SlipResult:
    """Delivery result of one kitchen slip."""

    key: PartitionKey
    destination: str
    ok: bool
    error: str | None = None


@dataclass(frozen=True)
class DispatchOutcome:
    """Per-order result of one dispatch call."""

    order_id: str
    order_number: int | None = None
    attempted: tuple[PartitionKey, ...] = ()
    succeeded: tuple[PartitionKey, ...] = ()
    slips: tuple[SlipResult, ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        return len(self.succeeded) == len(self.attempted)

    @property
    def failed(self) -> tuple[PartitionKey, ...]:
        return tuple(key for key in self.attempted if key not in self.succeeded)


@dataclass(frozen=True)
class ChangeRecord:
    """A raw order change delivered by an event source."""

    kind: str
    new: Mapping[str, Any]
    old: Mapping[str, Any] | None = None

    INSERTED = "inserted"
    UPDATED = "updated"
    POLLED = "polled"

    @property
    def order_id(self) -> str | None:
        value = self.new.get("id")
        return None if value is None else str(value)

    @classmethod
    def inserted(cls, row: Mapping[str, Any]) -> ChangeRecord:
        return cls(cls.INSERTED, row)

    @classmethod
    def updated(cls, old: Mapping[str, Any] | None, new: Mapping[str, Any]) -> ChangeRecord:
        return cls(cls.UPDATED, new, old or {})

    @classmethod
    def polled(cls, row: Mapping[str, Any]) -> ChangeRecord:
        return cls(cls.POLLED, row)
