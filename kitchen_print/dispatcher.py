"""Per-order slip dispatch: one slip per kitchen, failures isolated per slip."""

from __future__ import annotations

import asyncio
import logging
from datetime import tzinfo
from decimal import Decimal
from typing import Sequence

from kitchen_print.config import SERVICE_CHARGE_RATE, SLIP_GAP_SECONDS, ShopProfile
from kitchen_print.destinations import DestinationResolver
from kitchen_print.layout import build_slip
from kitchen_print.models import DispatchOutcome, LineItem, Order, Partition, PartitionKey, SlipResult, partition_label
from kitchen_print.partition import partition_items
from kitchen_print.protocol import Document, encode
from kitchen_print.sinks import DeviceSink

logger = logging.getLogger(__name__)


class SlipDispatcher:
    """Build, encode and send the kitchen slips of one order."""

    def __init__(
        self,
        sink: DeviceSink,
        resolver: DestinationResolver,
        open_cash_drawer: bool = False,
        slip_gap: float = SLIP_GAP_SECONDS,
        shop: ShopProfile | None = None,
        rate: Decimal = SERVICE_CHARGE_RATE,
        tz: tzinfo | None = None,
    ) -> None:
        self.sink = sink
        self.resolver = resolver
        self.open_cash_drawer = open_cash_drawer
        self.slip_gap = slip_gap
        self.shop = shop or ShopProfile()
        self.rate = rate
        self.tz = tz

    def render(self, order: Order, items: Sequence[LineItem]) -> list[tuple[Partition, Document]]:
        """Lay out the slip of every kitchen, in print order."""
        partitions = partition_items(items)
        total = len(partitions)
        rendered: list[tuple[Partition, Document]] = []
        for index, partition in enumerate(partitions, start=1):
            # The drawer opens once per order, on the first slip.
            open_drawer = self.open_cash_drawer and order.is_cash and index == 1
            document = build_slip(
                order,
                items,
                partition.key,
                partition.items,
                index,
                total,
                open_drawer=open_drawer,
                shop=self.shop,
                rate=self.rate,
                tz=self.tz,
            )
            rendered.append((partition, document))
        return rendered

    async def dispatch(self, order: Order, items: Sequence[LineItem]) -> DispatchOutcome:
        """
        Send every kitchen slip of `order`.

        A failed slip is logged and recorded; later slips are still attempted.
        Only a malformed order (items of another order) raises.
        """
        foreign = [item for item in items if item.order_id != order.id]
        if foreign:
            raise ValueError(f"order {order.id} was given {len(foreign)} item(s) of another order")

        slips_to_send = self.render(order, items)
        total = len(slips_to_send)
        if total == 0:
            logger.info("dispatch_empty order=%s number=%s", order.id, order.order_number)
            return DispatchOutcome(order_id=order.id, order_number=order.order_number)

        logger.info(
            "dispatch_start order=%s number=%s kitchens=[%s]",
            order.id,
            order.order_number,
            ", ".join(partition.label for partition, _ in slips_to_send),
        )

        attempted: list[PartitionKey] = []
        succeeded: list[PartitionKey] = []
        slips: list[SlipResult] = []
        for index, (partition, document) in enumerate(slips_to_send, start=1):
            data = encode(document)
            destination = self.resolver.resolve(partition.key)

            attempted.append(partition.key)
            result = await self._send(order, partition.key, destination, data, index, total)
            slips.append(result)
            if result.ok:
                succeeded.append(partition.key)

            if index < total:
                await asyncio.sleep(self.slip_gap)

        outcome = DispatchOutcome(
            order_id=order.id,
            order_number=order.order_number,
            attempted=tuple(attempted),
            succeeded=tuple(succeeded),
            slips=tuple(slips),
        )
        if outcome.success:
            logger.info("dispatch_done order=%s number=%s slips=%d", order.id, order.order_number, total)
        else:
            logger.error(
                "dispatch_partial order=%s number=%s failed=[%s]",
                order.id,
                order.order_number,
                ", ".join(partition_label(key) for key in outcome.failed),
            )
        return outcome

    async def _send(
        self, order: Order, key: PartitionKey, destination: str, data: bytes, index: int, total: int
    ) -> SlipResult:
        label = partition_label(key)
        try:
            await asyncio.to_thread(self.sink.send, data, destination)
        except Exception as exc:
            logger.error(
                "slip_failed order=%s kitchen=%s destination=%r slip=%d/%d error=%s",
                order.id,
                label,
                destination,
                index,
                total,
                exc,
            )
            return SlipResult(key=key, destination=destination, ok=False, error=str(exc))
        logger.info("slip_sent order=%s kitchen=%s destination=%r slip=%d/%d", order.id, label, destination, index, total)
        return SlipResult(key=key, destination=destination, ok=True)
