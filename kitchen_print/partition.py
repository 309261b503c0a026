"""Split an order's line items into per-kitchen partitions."""

from __future__ import annotations

from typing import Iterable

from kitchen_print.models import LineItem, Partition, PartitionKey


def partition_sort_key(key: PartitionKey) -> tuple[bool, int]:
    """Numbered kitchens ascending, unassigned last."""
    return (key is None, key or 0)


def partition_items(items: Iterable[LineItem]) -> list[Partition]:
    """Group items by kitchen number; input order is kept inside each partition."""
    buckets: dict[PartitionKey, list[LineItem]] = {}
    for item in items:
        buckets.setdefault(item.kitchen_number, []).append(item)
    ordered_keys = sorted(buckets, key=partition_sort_key)
    return [Partition(key=key, items=tuple(buckets[key])) for key in ordered_keys]
