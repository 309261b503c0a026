"""Bounded memory of orders whose slips were all delivered."""

from __future__ import annotations

from collections import OrderedDict

from kitchen_print.config import LEDGER_CAPACITY


class DedupLedger:
    """FIFO-evicting set of fully dispatched order ids; lives for the process only."""

    def __init__(self, capacity: int = LEDGER_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("ledger capacity must be at least 1")
        self.capacity = capacity
        self._entries: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, order_id: str) -> None:
        if order_id in self._entries:
            return
        self._entries[order_id] = None
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def snapshot(self) -> list[str]:
        """Order ids oldest first."""
        return list(self._entries)
