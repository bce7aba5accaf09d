"""Derived values of a count session.

Differences, item statuses and aggregate statistics are never stored. They
are recomputed here, from the item collection alone, every time a snapshot
is taken.
"""

import math
from typing import Iterable, Optional, Protocol, Sequence

from .database.models import Inventory, InventoryItem
from .schemas import (
    InventoryItemView,
    InventoryStats,
    InventoryView,
    ItemPage,
    ItemStatus,
    ItemStatusFilter,
)


class CountLine(Protocol):
    expected_quantity: int
    counted_quantity: Optional[int]


def item_difference(expected_quantity: int, counted_quantity: Optional[int]) -> int:
    """Counted minus expected; zero while the line is uncounted."""
    if counted_quantity is None:
        return 0
    return counted_quantity - expected_quantity


def item_status(expected_quantity: int, counted_quantity: Optional[int]) -> ItemStatus:
    if counted_quantity is None:
        return "pending"
    if counted_quantity == expected_quantity:
        return "counted"
    return "discrepancy"


def compute_stats(items: Iterable[CountLine]) -> InventoryStats:
    """Aggregate statistics over a collection of count lines.

    An empty collection yields all zeros and counts as fully counted.
    """
    total = counted = discrepancies = 0
    total_difference = positive = negative = 0
    for line in items:
        total += 1
        if line.counted_quantity is None:
            continue
        counted += 1
        difference = item_difference(line.expected_quantity, line.counted_quantity)
        total_difference += difference
        if difference > 0:
            discrepancies += 1
            positive += difference
        elif difference < 0:
            discrepancies += 1
            negative += difference
    return InventoryStats(
        total_items=total,
        counted_items=counted,
        pending_items=total - counted,
        items_with_discrepancy=discrepancies,
        total_discrepancy=total_difference,
        positive_adjustments=positive,
        negative_adjustments=negative,
        is_fully_counted=counted == total,
    )


def snapshot_item(item: InventoryItem) -> InventoryItemView:
    return InventoryItemView(
        id=item.id,
        product_id=item.product_id,
        product_name=item.product_name,
        product_sku=item.product_sku,
        product_barcode=item.product_barcode,
        expected_quantity=item.expected_quantity,
        counted_quantity=item.counted_quantity,
        has_been_counted=item.counted_quantity is not None,
        difference=item_difference(item.expected_quantity, item.counted_quantity),
        status=item_status(item.expected_quantity, item.counted_quantity),
        notes=item.notes,
        counted_at=item.counted_at,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


def snapshot_inventory(inventory: Inventory) -> InventoryView:
    """Build an immutable view of an inventory, its items and its statistics.

    Items and statistics come from the same pass over the loaded collection,
    so the aggregates always describe exactly the items in the view.
    """
    items = tuple(snapshot_item(item) for item in inventory.items)
    return InventoryView(
        id=inventory.id,
        inventory_number=inventory.inventory_number,
        name=inventory.name,
        description=inventory.description,
        status=inventory.status,
        created_by=inventory.created_by,
        started_at=inventory.started_at,
        completed_at=inventory.completed_at,
        cancelled_at=inventory.cancelled_at,
        created_at=inventory.created_at,
        updated_at=inventory.updated_at,
        items=items,
        stats=compute_stats(items),
    )


# ===== Presentation helpers (read only) =====


def filter_items(
    items: Iterable[InventoryItemView],
    search: Optional[str] = None,
    status: ItemStatusFilter = "all",
) -> list[InventoryItemView]:
    """Filter lines by free text (product name or SKU) and by status."""
    term = (search or "").strip().lower()
    result = []
    for line in items:
        if term and term not in line.product_name.lower() and term not in line.product_sku.lower():
            continue
        if status != "all" and line.status != status:
            continue
        result.append(line)
    return result


def paginate(items: Sequence[InventoryItemView], page: int = 1, page_size: int = 20) -> ItemPage:
    """Slice a 1-indexed page; the last page may be short, pages past the end are empty."""
    if page < 1:
        raise ValueError("page must be >= 1")
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    total = len(items)
    start = (page - 1) * page_size
    return ItemPage(
        items=tuple(items[start:start + page_size]),
        page=page,
        page_size=page_size,
        total=total,
        total_pages=math.ceil(total / page_size) if total else 0,
    )
