"""Decide which order changes print, and print each order at most once per success."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from kitchen_print.config import TRIGGER_FIELD, TRIGGER_VALUE
from kitchen_print.dispatcher import SlipDispatcher
from kitchen_print.errors import KitchenPrintError
from kitchen_print.ledger import DedupLedger
from kitchen_print.models import ChangeRecord, DispatchOutcome
from kitchen_print.store import OrderStore

logger = logging.getLogger(__name__)


class TriggerEngine:
    """
    Turn qualifying change records into dispatches.

    An order id enters the ledger only after every slip was delivered. A partial
    failure leaves the order eligible, so the next qualifying event re-sends all
    of its slips.
    """

    def __init__(
        self,
        store: OrderStore,
        dispatcher: SlipDispatcher,
        ledger: DedupLedger | None = None,
        trigger_field: str = TRIGGER_FIELD,
        trigger_value: str = TRIGGER_VALUE,
        auto_print: bool = True,
        alert: Callable[[str], None] | None = None,
        on_outcome: Callable[[DispatchOutcome], None] | None = None,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.ledger = ledger if ledger is not None else DedupLedger()
        self.trigger_field = trigger_field
        self.trigger_value = trigger_value
        self.auto_print = auto_print
        self.alert = alert
        self.on_outcome = on_outcome
        self._lock = asyncio.Lock()

    def qualifies(self, change: ChangeRecord) -> bool:
        if change.new.get(self.trigger_field) != self.trigger_value:
            return False
        if change.kind == ChangeRecord.UPDATED and change.old is not None:
            return change.old.get(self.trigger_field) != self.trigger_value
        return True

    def already_printed(self, order_id: str) -> bool:
        return order_id in self.ledger

    async def handle(self, change: ChangeRecord) -> DispatchOutcome | None:
        """Handle one change record; returns the outcome when a dispatch ran."""
        if not self.qualifies(change):
            return None
        order_id = change.order_id
        if order_id is None:
            logger.warning("change_without_id kind=%s", change.kind)
            return None

        async with self._lock:
            return await self._handle_locked(order_id, change)

    async def _handle_locked(self, order_id: str, change: ChangeRecord) -> DispatchOutcome | None:
        number = change.new.get("order_number")
        if order_id in self.ledger:
            logger.info("order_skipped order=%s number=%s reason=already_printed", order_id, number)
            return None

        logger.info(
            "order_triggered order=%s number=%s kind=%s %s=%s",
            order_id,
            number,
            change.kind,
            self.trigger_field,
            change.new.get(self.trigger_field),
        )
        if self.alert is not None:
            self.alert(f"Order #{number} - payment confirmed")

        try:
            order = await asyncio.to_thread(self.store.fetch_order, order_id)
            items = await asyncio.to_thread(self.store.fetch_items, order_id) if order is not None else []
        except (KitchenPrintError, OSError, ValueError) as exc:
            logger.error("fetch_failed order=%s number=%s error=%s", order_id, number, exc)
            return None
        if order is None:
            logger.error("fetch_failed order=%s number=%s error=not found", order_id, number)
            return None

        if not self.auto_print:
            logger.warning("auto_print_disabled order=%s number=%s", order_id, number)
            return None

        try:
            outcome = await self.dispatcher.dispatch(order, items)
        except ValueError as exc:
            logger.error("dispatch_rejected order=%s number=%s error=%s", order_id, number, exc)
            return None

        if outcome.success:
            self.ledger.add(order_id)
        else:
            logger.warning("order_retry_pending order=%s number=%s", order_id, number)
        if self.on_outcome is not None:
            self.on_outcome(outcome)
        return outcome
