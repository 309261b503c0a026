"""Order store interface and the SQLite-backed implementation."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol
from uuid import uuid4

from kitchen_print.config import DB_PATH
from kitchen_print.errors import OrderFetchError, SubscriptionError
from kitchen_print.models import ChangeRecord, LineItem, Order

ChangeHandler = Callable[[ChangeRecord], None]
ErrorHandler = Callable[[Exception], None]


class Subscription(Protocol):
    async def wait_ready(self) -> None:
        """Return once the change feed is live; raise SubscriptionError if it cannot be."""

    def close(self) -> None:
        ...


class OrderStore(Protocol):
    def ping(self) -> None:
        ...

    def fetch_order(self, order_id: str) -> Order | None:
        ...

    def fetch_items(self, order_id: str) -> list[LineItem]:
        ...

    def subscribe(self, on_change: ChangeHandler, on_error: ErrorHandler) -> Subscription:
        ...

    def query_changed_since(self, since: datetime, trigger_value: str) -> list[dict[str, Any]]:
        ...


def to_db_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _utc_now_iso() -> str:
    return to_db_timestamp(datetime.now(timezone.utc))


@dataclass(frozen=True)
class NewLineItem:
    """Line item input for `SqliteOrderStore.save_order`."""

    name: str
    quantity: int
    price: Decimal
    kitchen_number: int | None = None


class _NoChangeFeed:
    """SQLite has no change feed; the subscription never becomes ready."""

    def __init__(self, reason: str) -> None:
        self.reason = reason

    async def wait_ready(self) -> None:
        raise SubscriptionError(self.reason)

    def close(self) -> None:
        return None


class SqliteOrderStore:
    """Orders and order items in a local SQLite file."""

    def __init__(self, db_path: str = DB_PATH) -> None:
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        db_file = Path(self.db_path)
        db_file.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(db_file)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def bootstrap_schema(self) -> None:
        """Create persistence schema if it does not already exist."""
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS orders (
                    id TEXT PRIMARY KEY,
                    order_number INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    order_type TEXT NOT NULL DEFAULT 'dine_in',
                    table_number TEXT,
                    payment_method TEXT NOT NULL DEFAULT 'cash',
                    payment_status TEXT NOT NULL DEFAULT 'pending',
                    customer_name TEXT,
                    customer_phone TEXT
                );

                CREATE TABLE IF NOT EXISTS order_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    order_id TEXT NOT NULL,
                    line_index INTEGER NOT NULL,
                    item_name TEXT NOT NULL,
                    quantity INTEGER NOT NULL,
                    item_price TEXT NOT NULL,
                    kitchen_number INTEGER,
                    FOREIGN KEY(order_id) REFERENCES orders(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_order_items_order_id_line
                    ON order_items(order_id, line_index);

                CREATE INDEX IF NOT EXISTS idx_orders_status_updated
                    ON orders(payment_status, updated_at);
                """
            )

    def ping(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute("SELECT COUNT(*) FROM orders").fetchone()
        except sqlite3.Error as exc:
            raise OrderFetchError(f"order store unavailable at {self.db_path}: {exc}") from exc

    def save_order(
        self,
        order_number: int,
        items: Iterable[NewLineItem],
        order_type: str = "dine_in",
        table_number: str | None = None,
        payment_method: str = "cash",
        payment_status: str = "pending",
        customer_name: str | None = None,
        customer_phone: str | None = None,
    ) -> str:
        """Persist an order with its items and return the new order id."""
        copied_items = list(items)
        order_id = uuid4().hex
        now = _utc_now_iso()

        with self._connect() as conn:
            with conn:
                conn.execute(
                    """
                    INSERT INTO orders (id, order_number, created_at, updated_at, order_type, table_number,
                                        payment_method, payment_status, customer_name, customer_phone)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        order_id,
                        order_number,
                        now,
                        now,
                        order_type,
                        table_number,
                        payment_method,
                        payment_status,
                        customer_name,
                        customer_phone,
                    ),
                )
                for idx, item in enumerate(copied_items):
                    conn.execute(
                        """
                        INSERT INTO order_items (order_id, line_index, item_name, quantity, item_price, kitchen_number)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (order_id, idx, item.name, item.quantity, str(item.price), item.kitchen_number),
                    )
        return order_id

    def update_payment_status(self, order_id: str, status: str) -> None:
        """Update payment status and bump `updated_at`."""
        with self._connect() as conn:
            with conn:
                conn.execute(
                    "UPDATE orders SET payment_status = ?, updated_at = ? WHERE id = ?",
                    (status, _utc_now_iso(), order_id),
                )

    def fetch_order(self, order_id: str) -> Order | None:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
        except sqlite3.Error as exc:
            raise OrderFetchError(f"could not fetch order {order_id}: {exc}") from exc
        return None if row is None else Order.from_record(dict(row))

    def fetch_items(self, order_id: str) -> list[LineItem]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM order_items WHERE order_id = ? ORDER BY line_index",
                    (order_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise OrderFetchError(f"could not fetch items of order {order_id}: {exc}") from exc
        return [LineItem.from_record(dict(row)) for row in rows]

    def subscribe(self, on_change: ChangeHandler, on_error: ErrorHandler) -> Subscription:
        return _NoChangeFeed(f"sqlite store {self.db_path} has no change feed")

    def query_changed_since(self, since: datetime, trigger_value: str) -> list[dict[str, Any]]:
        """Orders updated at or after `since` whose payment status is `trigger_value`."""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM orders
                    WHERE updated_at >= ? AND payment_status = ?
                    ORDER BY updated_at ASC
                    """,
                    (to_db_timestamp(since), trigger_value),
                ).fetchall()
        except sqlite3.Error as exc:
            raise OrderFetchError(f"poll query failed: {exc}") from exc
        return [dict(row) for row in rows]
