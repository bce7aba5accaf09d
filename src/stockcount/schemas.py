"""Pydantic models exchanged with callers.

Views are frozen snapshots produced by :mod:`stockcount.projections`; they
serialize with camelCase aliases. Request models accept the legacy
``theoreticalQuantity`` / ``physicalQuantity`` names as aliases of the
canonical ``expected_quantity`` / ``counted_quantity`` fields.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from .database.models import InventoryStatus

ItemStatus = Literal["pending", "counted", "discrepancy"]
ItemStatusFilter = Literal["all", "pending", "counted", "discrepancy"]


class _View(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class InventoryItemView(_View):
    id: int
    product_id: int
    product_name: str
    product_sku: str
    product_barcode: Optional[str] = None
    expected_quantity: int
    counted_quantity: Optional[int] = None
    has_been_counted: bool
    difference: int
    status: ItemStatus
    notes: Optional[str] = None
    counted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InventoryStats(_View):
    total_items: int = 0
    counted_items: int = 0
    pending_items: int = 0
    items_with_discrepancy: int = 0
    total_discrepancy: int = 0
    positive_adjustments: int = 0
    negative_adjustments: int = 0
    is_fully_counted: bool = True


class InventoryView(_View):
    id: int
    inventory_number: Optional[str] = None
    name: str
    description: Optional[str] = None
    status: InventoryStatus
    created_by: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: tuple[InventoryItemView, ...] = ()
    stats: InventoryStats = InventoryStats()

    @computed_field(alias="totalItems")  # type: ignore[prop-decorator]
    @property
    def total_items(self) -> int:
        return self.stats.total_items

    @computed_field(alias="countedItems")  # type: ignore[prop-decorator]
    @property
    def counted_items(self) -> int:
        return self.stats.counted_items

    @computed_field(alias="itemsWithDiscrepancy")  # type: ignore[prop-decorator]
    @property
    def items_with_discrepancy(self) -> int:
        return self.stats.items_with_discrepancy

    @computed_field(alias="totalDiscrepancy")  # type: ignore[prop-decorator]
    @property
    def total_discrepancy(self) -> int:
        return self.stats.total_discrepancy

    def item(self, item_id: int) -> Optional[InventoryItemView]:
        for line in self.items:
            if line.id == item_id:
                return line
        return None

    def item_for_product(self, product_id: int) -> Optional[InventoryItemView]:
        for line in self.items:
            if line.product_id == product_id:
                return line
        return None


class ItemPage(_View):
    items: tuple[InventoryItemView, ...]
    page: int
    page_size: int
    total: int
    total_pages: int


class AdjustmentView(_View):
    model_config = ConfigDict(from_attributes=True)

    id: int
    inventory_id: Optional[int] = None
    product_id: int
    delta: int
    previous_quantity: int
    new_quantity: int
    applied_at: Optional[datetime] = None


# ===== Request models =====


class InventoryItemSeed(BaseModel):
    """Theoretical quantity captured for one product at creation time."""

    product_id: int = Field(..., validation_alias=AliasChoices("product_id", "productId"))
    expected_quantity: float = Field(
        ...,
        validation_alias=AliasChoices(
            "expected_quantity", "expectedQuantity", "theoretical_quantity", "theoreticalQuantity"
        ),
    )


class InventoryCreate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    created_by: Optional[str] = Field(None, validation_alias=AliasChoices("created_by", "createdBy", "createdById"))
    items: list[InventoryItemSeed] = Field(default_factory=list)


class InventoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[InventoryStatus] = None


class InventoryItemCreate(BaseModel):
    product_id: int = Field(..., validation_alias=AliasChoices("product_id", "productId"))
    expected_quantity: Optional[float] = Field(
        None,
        validation_alias=AliasChoices(
            "expected_quantity", "expectedQuantity", "theoretical_quantity", "theoreticalQuantity"
        ),
    )
    counted_quantity: Optional[float] = Field(
        None,
        validation_alias=AliasChoices(
            "counted_quantity", "countedQuantity", "physical_quantity", "physicalQuantity"
        ),
    )
    notes: Optional[str] = None


class InventoryItemBulkCreate(BaseModel):
    items: list[InventoryItemCreate] = Field(..., min_length=1)


class InventoryItemCountUpdate(BaseModel):
    counted_quantity: float = Field(
        ...,
        validation_alias=AliasChoices(
            "counted_quantity", "countedQuantity", "physical_quantity", "physicalQuantity"
        ),
    )
    notes: Optional[str] = None
