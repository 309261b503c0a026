"""Wire the store, printers and trigger pipeline into one running service."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from kitchen_print.config import Settings
from kitchen_print.destinations import DestinationResolver
from kitchen_print.diagnostics import check_all_destinations, sample_order
from kitchen_print.dispatcher import SlipDispatcher
from kitchen_print.events import EventSource
from kitchen_print.ledger import DedupLedger
from kitchen_print.models import DispatchOutcome
from kitchen_print.sinks import DeviceSink
from kitchen_print.store import OrderStore
from kitchen_print.trigger import TriggerEngine

logger = logging.getLogger(__name__)


class PrintService:
    """The auto-print server: one event source feeding one trigger engine."""

    def __init__(
        self,
        settings: Settings,
        store: OrderStore,
        sink: DeviceSink,
        alert: Callable[[str], None] | None = None,
        on_outcome: Callable[[DispatchOutcome], None] | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.sink = sink
        self.resolver = DestinationResolver(settings.default_printer, settings.kitchen_printers)
        self.dispatcher = SlipDispatcher(
            sink,
            self.resolver,
            open_cash_drawer=settings.open_cash_drawer,
            slip_gap=settings.slip_gap,
            shop=settings.shop,
            rate=settings.service_charge_rate,
        )
        self.engine = TriggerEngine(
            store,
            self.dispatcher,
            ledger=DedupLedger(settings.ledger_capacity),
            trigger_field=settings.trigger_field,
            trigger_value=settings.trigger_value,
            auto_print=settings.auto_print,
            alert=alert if settings.play_sound else None,
            on_outcome=on_outcome,
        )
        self.source = EventSource(
            store,
            self.engine,
            poll_interval=settings.poll_interval,
            push_timeout=settings.realtime_timeout,
        )

    async def check_store(self) -> None:
        """Raise OrderFetchError if the order store cannot be reached."""
        await asyncio.to_thread(self.store.ping)
        logger.info("store_connected")

    async def check_printers(self, print_test_page: bool = False) -> bool:
        available = await asyncio.to_thread(self.sink.list_available_destinations)
        for index, name in enumerate(available, start=1):
            logger.info("printer_available index=%d name=%r", index, name)
        if not print_test_page:
            return True
        results = await check_all_destinations(self.sink, self.resolver, self.settings.shop)
        failed = [name for name, ok in results.items() if not ok]
        if failed:
            logger.error("printer_test_failed printers=%r hint=check DEFAULT_PRINTER / KITCHEN_N_PRINTER", failed)
        return not failed

    async def print_sample(self) -> DispatchOutcome:
        order, items = sample_order()
        return await self.dispatcher.dispatch(order, items)

    async def run(self) -> None:
        """Start the event source and keep it running until cancelled."""
        mode = await self.source.start()
        logger.info(
            "server_running mode=%s trigger=%s=%r auto_print=%s",
            mode,
            self.settings.trigger_field,
            self.settings.trigger_value,
            self.settings.auto_print,
        )
        try:
            await self.source.wait()
        finally:
            await self.source.stop()
