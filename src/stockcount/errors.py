"""Errors raised by the reconciliation engine.

All of them leave the record store untouched: the engine rolls back the
unit of work before the error reaches the caller.
"""

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .collaborators import AdjustmentResult


class InventoryError(Exception):
    """Base class for reconciliation errors."""

    pass


class ValidationError(InventoryError):
    """Malformed input: negative or non-finite quantity, unknown product, blank name."""

    pass


class InvalidStateError(InventoryError):
    """Operation not legal in the inventory's current status."""

    pass


class DuplicateItemError(InventoryError):
    """Product already present in the inventory."""

    def __init__(self, inventory_id: int | None, product_id: int) -> None:
        self.inventory_id = inventory_id
        self.product_id = product_id
        where = f"inventory {inventory_id}" if inventory_id is not None else "this inventory"
        super().__init__(f"Product {product_id} is already in {where}")


class NotFoundError(InventoryError):
    """Unknown inventory or item ID."""

    pass


class AdjustmentFailure(InventoryError):
    """The stock sink rejected at least one adjustment during completion."""

    def __init__(self, inventory_id: int, failures: Sequence["AdjustmentResult"]) -> None:
        self.inventory_id = inventory_id
        self.failures = list(failures)
        details = "; ".join(
            f"product {f.product_id} ({f.delta:+d}): {f.reason or 'rejected'}" for f in self.failures
        )
        super().__init__(
            f"Stock adjustment failed for inventory {inventory_id}, nothing was applied: {details}"
        )
