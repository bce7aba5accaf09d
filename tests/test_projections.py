"""Tests for derived values: differences, line statuses, statistics, filtering and paging."""

from dataclasses import dataclass
from typing import Optional

import pytest

from stockcount.projections import (
    compute_stats,
    filter_items,
    item_difference,
    item_status,
    paginate,
)
from stockcount.schemas import InventoryItemView


@dataclass
class Line:
    expected_quantity: int
    counted_quantity: Optional[int] = None


def view(item_id: int, name: str, sku: str, expected: int, counted: Optional[int] = None) -> InventoryItemView:
    return InventoryItemView(
        id=item_id,
        product_id=100 + item_id,
        product_name=name,
        product_sku=sku,
        expected_quantity=expected,
        counted_quantity=counted,
        has_been_counted=counted is not None,
        difference=item_difference(expected, counted),
        status=item_status(expected, counted),
    )


class TestItemDerivation:
    """Tests for item_difference and item_status."""

    def test_uncounted_is_pending_with_zero_difference(self) -> None:
        assert item_difference(10, None) == 0
        assert item_status(10, None) == "pending"

    def test_matching_count(self) -> None:
        assert item_difference(10, 10) == 0
        assert item_status(10, 10) == "counted"

    def test_shortage(self) -> None:
        assert item_difference(10, 8) == -2
        assert item_status(10, 8) == "discrepancy"

    def test_surplus(self) -> None:
        assert item_difference(5, 7) == 2
        assert item_status(5, 7) == "discrepancy"

    def test_counted_zero_is_a_count(self) -> None:
        """Zero on the shelf is a recorded count, not a pending line."""
        assert item_status(0, 0) == "counted"
        assert item_status(4, 0) == "discrepancy"
        assert item_difference(4, 0) == -4


class TestComputeStats:
    """Tests for compute_stats."""

    def test_empty_collection(self) -> None:
        stats = compute_stats([])

        assert stats.total_items == 0
        assert stats.counted_items == 0
        assert stats.items_with_discrepancy == 0
        assert stats.total_discrepancy == 0
        assert stats.is_fully_counted is True

    def test_mixed_lines(self) -> None:
        lines = [
            Line(10, 8),     # -2
            Line(5, 5),      # ok
            Line(3, 6),      # +3
            Line(7, None),   # pending
        ]

        stats = compute_stats(lines)

        assert stats.total_items == 4
        assert stats.counted_items == 3
        assert stats.pending_items == 1
        assert stats.items_with_discrepancy == 2
        assert stats.total_discrepancy == 1
        assert stats.positive_adjustments == 3
        assert stats.negative_adjustments == -2
        assert stats.is_fully_counted is False

    def test_uncounted_lines_do_not_contribute_to_discrepancy(self) -> None:
        stats = compute_stats([Line(50, None), Line(1, None)])

        assert stats.items_with_discrepancy == 0
        assert stats.total_discrepancy == 0
        assert stats.pending_items == 2

    def test_accepts_views(self) -> None:
        items = [view(1, "Cola", "COLA", 10, 8), view(2, "Chips", "CHIPS", 5, 5)]

        stats = compute_stats(items)

        assert stats.counted_items == 2
        assert stats.total_discrepancy == -2


class TestFilterItems:
    """Tests for filter_items."""

    @pytest.fixture
    def items(self) -> list[InventoryItemView]:
        return [
            view(1, "Cola 33cl", "COLA-33", 10, 8),
            view(2, "Salted Chips", "CHIPS-150", 5, 5),
            view(3, "Cola Zero", "COLA-Z", 4),
        ]

    def test_no_filters(self, items: list[InventoryItemView]) -> None:
        assert filter_items(items) == items

    def test_search_by_name_is_case_insensitive(self, items: list[InventoryItemView]) -> None:
        result = filter_items(items, search="cola")
        assert [i.id for i in result] == [1, 3]

    def test_search_by_sku(self, items: list[InventoryItemView]) -> None:
        result = filter_items(items, search="chips-1")
        assert [i.id for i in result] == [2]

    def test_filter_by_status(self, items: list[InventoryItemView]) -> None:
        assert [i.id for i in filter_items(items, status="pending")] == [3]
        assert [i.id for i in filter_items(items, status="discrepancy")] == [1]
        assert [i.id for i in filter_items(items, status="counted")] == [2]

    def test_search_and_status_combine(self, items: list[InventoryItemView]) -> None:
        result = filter_items(items, search="cola", status="pending")
        assert [i.id for i in result] == [3]

    def test_blank_search_matches_everything(self, items: list[InventoryItemView]) -> None:
        assert len(filter_items(items, search="   ")) == 3


class TestPaginate:
    """Tests for paginate."""

    @pytest.fixture
    def items(self) -> list[InventoryItemView]:
        return [view(i, f"Item {i}", f"SKU-{i}", 1) for i in range(1, 8)]

    def test_first_page(self, items: list[InventoryItemView]) -> None:
        page = paginate(items, page=1, page_size=3)

        assert [i.id for i in page.items] == [1, 2, 3]
        assert page.total == 7
        assert page.total_pages == 3

    def test_last_page_is_short(self, items: list[InventoryItemView]) -> None:
        page = paginate(items, page=3, page_size=3)
        assert [i.id for i in page.items] == [7]

    def test_page_past_the_end_is_empty(self, items: list[InventoryItemView]) -> None:
        page = paginate(items, page=4, page_size=3)
        assert page.items == ()
        assert page.total == 7

    def test_empty_collection(self) -> None:
        page = paginate([], page=1, page_size=20)
        assert page.items == ()
        assert page.total_pages == 0

    def test_invalid_page(self, items: list[InventoryItemView]) -> None:
        with pytest.raises(ValueError):
            paginate(items, page=0)
