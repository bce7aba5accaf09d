"""Reconciliation engine for physical-inventory count sessions.

A count session moves through ``DRAFT -> IN_PROGRESS -> COMPLETED`` or ends
in ``CANCELLED`` from either of the first two states. Every operation runs
as one unit of work against the record store and returns a fresh, immutable
:class:`~stockcount.schemas.InventoryView` built from the same transaction,
so item data and aggregates are always read together.

Mutations on the same inventory are serialized by a per-inventory lock;
operations on different inventories run independently.
"""

import asyncio
import enum
import logging
import math
import weakref
from contextlib import asynccontextmanager, nullcontext
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncIterator, Callable, Iterable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from .collaborators import AdjustmentResult, Catalog, CatalogProduct, SqlCatalog, SqlStockLedger, StockAdjustmentSink
from .database import crud
from .database.models import Inventory, InventoryItem, InventoryStatus
from .errors import (
    AdjustmentFailure,
    DuplicateItemError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from .projections import compute_stats, filter_items, item_difference, paginate, snapshot_inventory
from .schemas import (
    AdjustmentView,
    InventoryItemCreate,
    InventoryItemSeed,
    InventoryStats,
    InventoryView,
    ItemPage,
    ItemStatusFilter,
)

logger = logging.getLogger(__name__)

ACTIVE_STATES = (InventoryStatus.DRAFT, InventoryStatus.IN_PROGRESS)


class UncountedPolicy(str, enum.Enum):
    """How ``complete`` treats items that were never counted."""

    EXCLUDE = "exclude"  # no adjustment, the line stays uncounted
    ZERO = "zero"  # recorded as counted 0, stock adjusted by -expected


# Quantities live in 32-bit INTEGER columns
MAX_QUANTITY = 2**31 - 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_quantity(value: Any, field: str = "quantity") -> int:
    """Return ``value`` as a non-negative int or raise ValidationError.

    Accepts ints and integral floats/decimals up to ``MAX_QUANTITY``;
    rejects booleans, NaN, infinities, negatives and fractions.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValidationError(f"{field} must be a number, got {value!r}")
    if not isinstance(value, int):
        if not math.isfinite(float(value)):
            raise ValidationError(f"{field} must be finite, got {value!r}")
        if value != int(value):
            raise ValidationError(f"{field} must be a whole number, got {value!r}")
        value = int(value)
    if value < 0:
        raise ValidationError(f"{field} must be >= 0, got {value}")
    if value > MAX_QUANTITY:
        raise ValidationError(f"{field} must be <= {MAX_QUANTITY}, got {value}")
    return value


def _validate_name(name: Optional[str]) -> str:
    if name is None:
        return f"Inventory {_utcnow():%Y-%m-%d %H:%M}"
    if not name.strip():
        raise ValidationError("name must not be blank")
    return name.strip()


def _find_duplicate(product_ids: Iterable[int], existing: Iterable[int] = ()) -> Optional[int]:
    seen = set(existing)
    for product_id in product_ids:
        if product_id in seen:
            return product_id
        seen.add(product_id)
    return None


class ReconciliationEngine:
    """Builds, counts and settles physical-inventory sessions.

    Args:
        session_factory: Callable returning an async context manager that
            yields an ``AsyncSession`` (e.g. ``AsyncSessionLocal``)
        catalog: Source of active products and their live stock levels
        stock: Sink receiving one adjustment per discrepant line on completion
        uncounted_policy: Treatment of uncounted lines on completion
        page_size: Default page size for :meth:`list_items`
    """

    def __init__(
        self,
        session_factory: Callable[[], Any],
        catalog: Optional[Catalog] = None,
        stock: Optional[StockAdjustmentSink] = None,
        uncounted_policy: UncountedPolicy = UncountedPolicy.EXCLUDE,
        page_size: int = 20,
    ) -> None:
        self._session_factory = session_factory
        self._catalog: Catalog = catalog or SqlCatalog()
        self._stock: StockAdjustmentSink = stock or SqlStockLedger()
        self.uncounted_policy = UncountedPolicy(uncounted_policy)
        self.page_size = page_size
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    # ===== Plumbing =====

    def _lock_for(self, inventory_id: int) -> asyncio.Lock:
        lock = self._locks.get(inventory_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[inventory_id] = lock
        return lock

    @asynccontextmanager
    async def _unit_of_work(self, inventory_id: Optional[int] = None) -> AsyncIterator[AsyncSession]:
        """Serialize on the inventory, then commit on success or roll back on error."""
        guard = self._lock_for(inventory_id) if inventory_id is not None else nullcontext()
        async with guard:
            async with self._session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:  # Intentionally broad: roll back anything flushed so far
                    await session.rollback()
                    raise

    @asynccontextmanager
    async def _read(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            yield session

    @staticmethod
    async def _load(session: AsyncSession, inventory_id: int, for_update: bool = False) -> Inventory:
        inventory = await crud.get_inventory(session, inventory_id, for_update=for_update)
        if inventory is None:
            raise NotFoundError(f"Inventory {inventory_id} not found")
        return inventory

    @staticmethod
    def _require(inventory: Inventory, allowed: Sequence[InventoryStatus], action: str) -> None:
        if inventory.state not in allowed:
            raise InvalidStateError(
                f"Cannot {action} inventory {inventory.id} in status {inventory.status}"
            )

    @staticmethod
    def _item(inventory: Inventory, item_id: int) -> InventoryItem:
        item = crud.find_inventory_item(inventory, item_id)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found in inventory {inventory.id}")
        return item

    async def _resolve_products(
        self, session: AsyncSession, product_ids: list[int]
    ) -> dict[int, CatalogProduct]:
        if not product_ids:
            return {}
        products = await self._catalog.list_active_products(session, product_ids=product_ids)
        by_id = {p.id: p for p in products}
        missing = [pid for pid in product_ids if pid not in by_id]
        if missing:
            raise ValidationError(f"Unknown or inactive product(s): {', '.join(map(str, missing))}")
        return by_id

    # ===== Queries =====

    async def get_all(self, status: Optional[InventoryStatus] = None) -> list[InventoryView]:
        """List inventories, newest first, optionally filtered by status."""
        async with self._read() as session:
            inventories = await crud.list_inventories(
                session, InventoryStatus(status) if status is not None else None
            )
            return [snapshot_inventory(inv) for inv in inventories]

    async def get_by_id(self, inventory_id: int) -> InventoryView:
        async with self._read() as session:
            return snapshot_inventory(await self._load(session, inventory_id))

    async def get_stats(self, inventory_id: int) -> InventoryStats:
        async with self._read() as session:
            inventory = await self._load(session, inventory_id)
            return compute_stats(inventory.items)

    async def list_items(
        self,
        inventory_id: int,
        search: Optional[str] = None,
        status: ItemStatusFilter = "all",
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> ItemPage:
        """Filtered, paginated lines of one inventory."""
        view = await self.get_by_id(inventory_id)
        try:
            return paginate(filter_items(view.items, search, status), page, page_size or self.page_size)
        except ValueError as e:
            raise ValidationError(str(e)) from e

    async def get_adjustments(self, inventory_id: int) -> list[AdjustmentView]:
        """Stock adjustments applied when the inventory was completed."""
        async with self._read() as session:
            await self._load(session, inventory_id)
            adjustments = await crud.list_stock_adjustments(session, inventory_id)
            return [AdjustmentView.model_validate(a) for a in adjustments]

    # ===== Creation & bulk item operations =====

    async def create(
        self,
        name: Optional[str] = None,
        description: Optional[str] = None,
        items: Optional[Sequence[InventoryItemSeed]] = None,
        created_by: Optional[str] = None,
    ) -> InventoryView:
        """Create a count session.

        With no items the session starts in DRAFT; with items it starts
        IN_PROGRESS with one pending line per product.

        Raises:
            ValidationError: blank name, negative quantity or unknown product
            DuplicateItemError: the same product appears twice in ``items``
        """
        name = _validate_name(name)
        seeds = [
            (seed.product_id, validate_quantity(seed.expected_quantity, "theoretical quantity"))
            for seed in items or []
        ]
        duplicate = _find_duplicate(pid for pid, _ in seeds)
        if duplicate is not None:
            raise DuplicateItemError(None, duplicate)

        async with self._unit_of_work() as session:
            products = await self._resolve_products(session, [pid for pid, _ in seeds])
            inventory = await crud.create_inventory(
                session,
                name=name,
                description=description,
                created_by=created_by,
                status=InventoryStatus.IN_PROGRESS if seeds else InventoryStatus.DRAFT,
            )
            for product_id, expected in seeds:
                product = products[product_id]
                await crud.add_inventory_item(
                    session,
                    inventory,
                    product_id=product.id,
                    product_name=product.name,
                    product_sku=product.sku,
                    product_barcode=product.barcode,
                    expected_quantity=expected,
                )
            await crud.log_transaction(
                session, "CREATE", inventory_id=inventory.id, data={"name": name, "items": len(seeds)}
            )
            view = snapshot_inventory(inventory)
        logger.info(f"Created inventory {view.inventory_number} (id={view.id}, status={view.status.value})")
        return view

    async def add_item(
        self,
        inventory_id: int,
        product_id: int,
        expected_quantity: Optional[float] = None,
        counted_quantity: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> InventoryView:
        """Add one product line; the expected quantity defaults to live stock."""
        return await self.add_items(
            inventory_id,
            [
                InventoryItemCreate(
                    product_id=product_id,
                    expected_quantity=expected_quantity,
                    counted_quantity=counted_quantity,
                    notes=notes,
                )
            ],
        )

    async def add_items(self, inventory_id: int, items: Sequence[InventoryItemCreate]) -> InventoryView:
        """Add several product lines at once; one bad entry rejects the whole batch.

        Raises:
            InvalidStateError: inventory is terminal, or a count is supplied
                while the inventory is not IN_PROGRESS
            DuplicateItemError: product already present (or repeated in the batch)
            ValidationError: bad quantity or unknown product
        """
        entries = [
            (
                entry,
                validate_quantity(entry.expected_quantity, "expected quantity")
                if entry.expected_quantity is not None
                else None,
                validate_quantity(entry.counted_quantity, "counted quantity")
                if entry.counted_quantity is not None
                else None,
            )
            for entry in items
        ]
        if not entries:
            raise ValidationError("at least one item is required")

        async with self._unit_of_work(inventory_id) as session:
            inventory = await self._load(session, inventory_id, for_update=True)
            self._require(inventory, ACTIVE_STATES, "add items to")
            if inventory.state != InventoryStatus.IN_PROGRESS and any(c is not None for _, _, c in entries):
                raise InvalidStateError(
                    f"Counts can only be recorded while inventory {inventory_id} is IN_PROGRESS"
                )
            duplicate = _find_duplicate(
                (entry.product_id for entry, _, _ in entries),
                existing=(item.product_id for item in inventory.items),
            )
            if duplicate is not None:
                raise DuplicateItemError(inventory_id, duplicate)

            products = await self._resolve_products(session, [entry.product_id for entry, _, _ in entries])
            for entry, expected, counted in entries:
                product = products[entry.product_id]
                await crud.add_inventory_item(
                    session,
                    inventory,
                    product_id=product.id,
                    product_name=product.name,
                    product_sku=product.sku,
                    product_barcode=product.barcode,
                    expected_quantity=expected if expected is not None else max(product.quantity, 0),
                    counted_quantity=counted,
                    notes=entry.notes,
                )
            await crud.log_transaction(
                session,
                "ADD_ITEMS",
                inventory_id=inventory_id,
                data={"product_ids": [entry.product_id for entry, _, _ in entries]},
            )
            view = snapshot_inventory(inventory)
        logger.info(f"Added {len(entries)} item(s) to inventory {inventory_id}")
        return view

    async def import_from_current_stock(self, inventory_id: int) -> InventoryView:
        """Add every active catalog product that is not yet in the inventory.

        Existing lines, and any counts recorded on them, are never touched,
        so re-running the import only fills in missing products. Products
        with negative live stock are skipped.
        """
        async with self._unit_of_work(inventory_id) as session:
            inventory = await self._load(session, inventory_id, for_update=True)
            self._require(inventory, ACTIVE_STATES, "import stock into")
            present = {item.product_id for item in inventory.items}
            added = []
            for product in await self._catalog.list_active_products(session):
                if product.id in present:
                    continue
                if product.quantity < 0:
                    logger.warning(
                        f"Skipping product {product.id} ({product.sku}) with negative stock {product.quantity}"
                    )
                    continue
                await crud.add_inventory_item(
                    session,
                    inventory,
                    product_id=product.id,
                    product_name=product.name,
                    product_sku=product.sku,
                    product_barcode=product.barcode,
                    expected_quantity=product.quantity,
                )
                added.append(product.id)
            await crud.log_transaction(
                session, "IMPORT_STOCK", inventory_id=inventory_id, data={"added": len(added)}
            )
            view = snapshot_inventory(inventory)
        logger.info(f"Imported {len(added)} product(s) from current stock into inventory {inventory_id}")
        return view

    # ===== Counting =====

    async def update_item_count(
        self,
        inventory_id: int,
        item_id: int,
        counted_quantity: float,
        notes: Optional[str] = None,
    ) -> InventoryView:
        """Record the physical count of one line (last write wins).

        Raises:
            ValidationError: count is negative, fractional or not finite
            InvalidStateError: inventory is not IN_PROGRESS
            NotFoundError: unknown inventory or item
        """
        counted = validate_quantity(counted_quantity, "counted quantity")
        async with self._unit_of_work(inventory_id) as session:
            inventory = await self._load(session, inventory_id, for_update=True)
            self._require(inventory, (InventoryStatus.IN_PROGRESS,), "record counts on")
            item = self._item(inventory, item_id)
            await crud.set_item_count(session, item, counted, notes=notes)
            await crud.log_transaction(
                session,
                "RECORD_COUNT",
                inventory_id=inventory_id,
                item_id=item_id,
                data={"counted_quantity": counted},
            )
            view = snapshot_inventory(inventory)
        logger.info(f"Recorded count {counted} for item {item_id} in inventory {inventory_id}")
        return view

    record_count = update_item_count

    async def remove_item(self, inventory_id: int, item_id: int) -> InventoryView:
        async with self._unit_of_work(inventory_id) as session:
            inventory = await self._load(session, inventory_id, for_update=True)
            self._require(inventory, ACTIVE_STATES, "remove items from")
            item = self._item(inventory, item_id)
            product_id = item.product_id
            await crud.remove_inventory_item(session, inventory, item)
            await crud.log_transaction(
                session,
                "REMOVE_ITEM",
                inventory_id=inventory_id,
                item_id=item_id,
                data={"product_id": product_id},
            )
            view = snapshot_inventory(inventory)
        logger.info(f"Removed item {item_id} from inventory {inventory_id}")
        return view

    # ===== State machine =====

    def _start(self, inventory: Inventory) -> None:
        self._require(inventory, (InventoryStatus.DRAFT,), "start")
        inventory.status = InventoryStatus.IN_PROGRESS.value
        inventory.started_at = _utcnow()

    def _cancel(self, inventory: Inventory) -> None:
        self._require(inventory, ACTIVE_STATES, "cancel")
        inventory.status = InventoryStatus.CANCELLED.value
        inventory.cancelled_at = _utcnow()

    async def _complete(self, session: AsyncSession, inventory: Inventory) -> list[AdjustmentResult]:
        self._require(inventory, (InventoryStatus.IN_PROGRESS,), "complete")

        uncounted = [item for item in inventory.items if item.counted_quantity is None]
        if uncounted and self.uncounted_policy == UncountedPolicy.ZERO:
            now = _utcnow()
            for item in uncounted:
                item.counted_quantity = 0
                item.counted_at = now
        elif uncounted:
            logger.warning(
                f"Completing inventory {inventory.id} with {len(uncounted)} uncounted item(s); "
                "they are left out of the stock adjustment"
            )

        applied: list[AdjustmentResult] = []
        failures: list[AdjustmentResult] = []
        for item in inventory.items:
            if item.counted_quantity is None:
                continue
            delta = item_difference(item.expected_quantity, item.counted_quantity)
            if delta == 0:
                continue
            result = await self._stock.apply_adjustment(session, item.product_id, delta, inventory.id)
            (applied if result.applied else failures).append(result)

        if failures:
            logger.warning(
                f"Rolling back completion of inventory {inventory.id}: "
                f"{len(failures)} adjustment(s) rejected"
            )
            raise AdjustmentFailure(inventory.id, failures)

        inventory.status = InventoryStatus.COMPLETED.value
        inventory.completed_at = _utcnow()
        return applied

    async def start(self, inventory_id: int) -> InventoryView:
        """DRAFT -> IN_PROGRESS.

        Starting an inventory that is already IN_PROGRESS (e.g. one created
        with items) changes nothing and returns its current snapshot.
        """
        async with self._unit_of_work(inventory_id) as session:
            inventory = await self._load(session, inventory_id, for_update=True)
            if inventory.state == InventoryStatus.IN_PROGRESS:
                return snapshot_inventory(inventory)
            self._start(inventory)
            await crud.log_transaction(session, "START", inventory_id=inventory_id)
            view = snapshot_inventory(inventory)
        logger.info(f"Started inventory {inventory_id}")
        return view

    async def complete(self, inventory_id: int) -> InventoryView:
        """IN_PROGRESS -> COMPLETED, applying one stock adjustment per discrepant line.

        The adjustments and the status change commit together. If the stock
        sink rejects any adjustment, nothing is applied, the inventory stays
        IN_PROGRESS and :class:`AdjustmentFailure` is raised.
        """
        async with self._unit_of_work(inventory_id) as session:
            inventory = await self._load(session, inventory_id, for_update=True)
            applied = await self._complete(session, inventory)
            await crud.log_transaction(
                session,
                "COMPLETE",
                inventory_id=inventory_id,
                data={"adjustments": [{"product_id": r.product_id, "delta": r.delta} for r in applied]},
            )
            view = snapshot_inventory(inventory)
        logger.info(f"Completed inventory {inventory_id} with {len(applied)} stock adjustment(s)")
        return view

    async def cancel(self, inventory_id: int) -> InventoryView:
        """DRAFT or IN_PROGRESS -> CANCELLED; no stock is adjusted."""
        async with self._unit_of_work(inventory_id) as session:
            inventory = await self._load(session, inventory_id, for_update=True)
            self._cancel(inventory)
            await crud.log_transaction(session, "CANCEL", inventory_id=inventory_id)
            view = snapshot_inventory(inventory)
        logger.info(f"Cancelled inventory {inventory_id}")
        return view

    async def update(
        self,
        inventory_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        status: Optional[InventoryStatus] = None,
    ) -> InventoryView:
        """Edit name/description and optionally move the inventory to a new status.

        A status change goes through the same transitions as
        :meth:`start`, :meth:`complete` and :meth:`cancel`.
        """
        async with self._unit_of_work(inventory_id) as session:
            inventory = await self._load(session, inventory_id, for_update=True)
            target = InventoryStatus(status) if status is not None else None
            if target == inventory.state:
                target = None
            if name is None and description is None and target is None:
                return snapshot_inventory(inventory)

            self._require(inventory, ACTIVE_STATES, "update")
            if name is not None:
                inventory.name = _validate_name(name)
            if description is not None:
                inventory.description = description

            if target == InventoryStatus.IN_PROGRESS:
                self._start(inventory)
            elif target == InventoryStatus.COMPLETED:
                await self._complete(session, inventory)
            elif target == InventoryStatus.CANCELLED:
                self._cancel(inventory)
            elif target == InventoryStatus.DRAFT:
                raise InvalidStateError(f"Inventory {inventory_id} cannot return to DRAFT")

            await crud.log_transaction(
                session,
                "UPDATE",
                inventory_id=inventory_id,
                data={"name": name, "description": description, "status": target.value if target else None},
            )
            await session.flush()
            view = snapshot_inventory(inventory)
        logger.info(f"Updated inventory {inventory_id}")
        return view

    async def delete(self, inventory_id: int) -> None:
        """Delete an inventory that is not IN_PROGRESS."""
        async with self._unit_of_work(inventory_id) as session:
            inventory = await self._load(session, inventory_id, for_update=True)
            if inventory.state == InventoryStatus.IN_PROGRESS:
                raise InvalidStateError(
                    f"Inventory {inventory_id} is IN_PROGRESS; cancel or complete it before deleting"
                )
            await crud.delete_inventory(session, inventory)
            await crud.log_transaction(
                session, "DELETE", inventory_id=inventory_id, data={"name": inventory.name}
            )
        logger.info(f"Deleted inventory {inventory_id}")
