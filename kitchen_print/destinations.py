"""Kitchen to printer resolution."""

from __future__ import annotations

from typing import Mapping

from kitchen_print.models import PartitionKey
from kitchen_print.partition import partition_sort_key


class DestinationResolver:
    """Map a kitchen number to a printer, falling back to one default printer."""

    def __init__(self, default: str, overrides: Mapping[int, str] | None = None) -> None:
        self.default = default
        self._overrides: dict[PartitionKey, str] = dict(overrides or {})

    def resolve(self, key: PartitionKey) -> str:
        return self._overrides.get(key) or self.default

    def all_configured_destinations(self) -> dict[str, PartitionKey]:
        """Each distinct printer once, with the first kitchen that routes to it."""
        unique: dict[str, PartitionKey] = {}
        for key in sorted(self._overrides, key=partition_sort_key):
            unique.setdefault(self._overrides[key], key)
        unique.setdefault(self.default, None)
        return unique
