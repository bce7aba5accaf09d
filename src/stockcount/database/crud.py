"""Record store operations for products and count sessions.

Product helpers commit on their own; they are used for catalog seeding.
Inventory helpers only flush: the reconciliation engine owns the
transaction and commits (or rolls back) once per operation.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .models import Inventory, InventoryItem, InventoryStatus, Product, StockAdjustment, TransactionLog

logger = logging.getLogger(__name__)


def format_inventory_number(inventory_id: int, created_at: Optional[datetime] = None) -> str:
    """Build the human-readable inventory number.

    Examples:
        format_inventory_number(42, datetime(2025, 3, 1)) -> "INV-20250301-00042"
    """
    stamp = (created_at or datetime.now(timezone.utc)).strftime("%Y%m%d")
    return f"INV-{stamp}-{inventory_id:05d}"


# ===== Product Operations =====


async def create_product(
    session: AsyncSession,
    name: str,
    sku: str,
    quantity: int = 0,
    barcode: Optional[str] = None,
    min_stock: int = 0,
    category: Optional[str] = None,
    price: Decimal | float | str = Decimal("0"),
    is_active: bool = True,
) -> Product:
    """Create a catalog product.

    Args:
        session: Database session
        name: Display name
        sku: Unique stock keeping unit
        quantity: Live stock level
        barcode: Optional barcode
        min_stock: Low-stock threshold
        category: Optional category name
        price: Unit price
        is_active: Whether the product is sold and counted

    Returns:
        The created product
    """
    product = Product(
        name=name,
        sku=sku,
        quantity=quantity,
        barcode=barcode,
        min_stock=min_stock,
        category=category,
        price=Decimal(str(price)),
        is_active=is_active,
    )
    session.add(product)
    await session.commit()
    logger.info(f"Created product: {product.name} (id={product.id}, sku={product.sku})")
    return product


async def get_product(session: AsyncSession, product_id: int) -> Optional[Product]:
    """Get a product by ID."""
    result = await session.execute(
        select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_products(
    session: AsyncSession,
    active_only: bool = True,
    product_ids: Optional[list[int]] = None,
) -> list[Product]:
    """List catalog products ordered by name.

    Args:
        session: Database session
        active_only: Skip deactivated products
        product_ids: Optional restriction to these IDs

    Returns:
        Matching products
    """
    query = select(Product)
    if active_only:
        query = query.where(Product.is_active.is_(True))
    if product_ids is not None:
        query = query.where(Product.id.in_(product_ids))
    result = await session.execute(query.order_by(Product.name, Product.id))
    return list(result.scalars().all())


# ===== Inventory Operations =====


async def create_inventory(
    session: AsyncSession,
    name: str,
    description: Optional[str] = None,
    created_by: Optional[str] = None,
    status: InventoryStatus = InventoryStatus.DRAFT,
) -> Inventory:
    """Insert a count session and assign its inventory number.

    Args:
        session: Database session
        name: Name of the session
        description: Optional description
        created_by: Optional reference to the creator
        status: Initial status

    Returns:
        The flushed inventory with an empty item collection
    """
    inventory = Inventory(
        name=name,
        description=description,
        created_by=created_by,
        status=status.value,
        inventory_number=None,
        started_at=datetime.now(timezone.utc) if status == InventoryStatus.IN_PROGRESS else None,
        completed_at=None,
        cancelled_at=None,
        items=[],
    )
    session.add(inventory)
    await session.flush()

    inventory.inventory_number = format_inventory_number(inventory.id, inventory.created_at)
    await session.flush()
    return inventory


async def get_inventory(
    session: AsyncSession, inventory_id: int, for_update: bool = False
) -> Optional[Inventory]:
    """Get an inventory with its items eager-loaded.

    Args:
        session: Database session
        inventory_id: ID of the inventory
        for_update: Lock the inventory row until the transaction ends

    Returns:
        The inventory if found, None otherwise
    """
    query = (
        select(Inventory)
        .where(Inventory.id == inventory_id)
        .options(selectinload(Inventory.items))
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def list_inventories(
    session: AsyncSession, status: Optional[InventoryStatus] = None
) -> list[Inventory]:
    """List inventories, newest first.

    Args:
        session: Database session
        status: Optional status filter

    Returns:
        Inventories with their items eager-loaded
    """
    query = select(Inventory).options(selectinload(Inventory.items))
    if status is not None:
        query = query.where(Inventory.status == status.value)
    result = await session.execute(
        query.order_by(Inventory.created_at.desc(), Inventory.id.desc()).execution_options(
            populate_existing=True
        )
    )
    return list(result.scalars().all())


async def delete_inventory(session: AsyncSession, inventory: Inventory) -> None:
    """Delete an inventory and its items."""
    await session.delete(inventory)
    await session.flush()


# ===== Inventory Item Operations =====


async def add_inventory_item(
    session: AsyncSession,
    inventory: Inventory,
    product_id: int,
    product_name: str,
    product_sku: str,
    expected_quantity: int,
    product_barcode: Optional[str] = None,
    counted_quantity: Optional[int] = None,
    notes: Optional[str] = None,
) -> InventoryItem:
    """Append a product line to an inventory.

    Args:
        session: Database session
        inventory: Inventory with items loaded
        product_id: Catalog product ID
        product_name: Snapshot of the product name
        product_sku: Snapshot of the SKU
        expected_quantity: Theoretical stock at capture time
        product_barcode: Snapshot of the barcode
        counted_quantity: Optional initial physical count
        notes: Optional operator notes

    Returns:
        The flushed item
    """
    item = InventoryItem(
        product_id=product_id,
        product_name=product_name,
        product_sku=product_sku,
        product_barcode=product_barcode,
        expected_quantity=expected_quantity,
        counted_quantity=counted_quantity,
        counted_at=datetime.now(timezone.utc) if counted_quantity is not None else None,
        notes=notes,
    )
    inventory.items.append(item)
    await session.flush()
    return item


def find_inventory_item(inventory: Inventory, item_id: int) -> Optional[InventoryItem]:
    """Find an item by ID inside a loaded inventory."""
    for item in inventory.items:
        if item.id == item_id:
            return item
    return None


async def set_item_count(
    session: AsyncSession,
    item: InventoryItem,
    counted_quantity: int,
    notes: Optional[str] = None,
) -> InventoryItem:
    """Record a physical count on a single item.

    Only ``counted_quantity``, ``counted_at`` and optionally ``notes`` are
    written; the rest of the inventory is left untouched.
    """
    item.counted_quantity = counted_quantity
    item.counted_at = datetime.now(timezone.utc)
    if notes is not None:
        item.notes = notes
    await session.flush()
    return item


async def remove_inventory_item(
    session: AsyncSession, inventory: Inventory, item: InventoryItem
) -> None:
    """Remove an item from an inventory (delete-orphan cascade deletes the row)."""
    inventory.items.remove(item)
    await session.flush()


# ===== Stock Adjustment Operations =====


async def list_stock_adjustments(
    session: AsyncSession, inventory_id: int
) -> list[StockAdjustment]:
    """List adjustments applied by an inventory, in application order."""
    result = await session.execute(
        select(StockAdjustment)
        .where(StockAdjustment.inventory_id == inventory_id)
        .order_by(StockAdjustment.id)
    )
    return list(result.scalars().all())


# ===== Transaction Log Operations =====


async def log_transaction(
    session: AsyncSession,
    operation: str,
    inventory_id: Optional[int] = None,
    item_id: Optional[int] = None,
    data: Optional[dict[str, Any]] = None,
    status: str = "CONFIRMED",
) -> TransactionLog:
    """Add an audit entry to the current transaction.

    Args:
        session: Database session
        operation: Operation type (CREATE, START, RECORD_COUNT, COMPLETE, ...)
        inventory_id: Optional ID of the affected inventory
        item_id: Optional ID of the affected item
        data: Optional additional data as dictionary
        status: Status of the entry

    Returns:
        The flushed transaction log entry
    """
    log_entry = TransactionLog(
        operation=operation,
        inventory_id=inventory_id,
        item_id=item_id,
        data=json.dumps(data, default=str) if data else None,
        status=status,
    )
    session.add(log_entry)
    await session.flush()
    return log_entry


async def get_transaction_logs(
    session: AsyncSession,
    inventory_id: Optional[int] = None,
    limit: int = 100,
) -> list[TransactionLog]:
    """Get audit entries, newest first.

    Args:
        session: Database session
        inventory_id: Optional inventory filter
        limit: Maximum number of entries to return

    Returns:
        List of transaction log entries
    """
    query = select(TransactionLog)
    if inventory_id is not None:
        query = query.where(TransactionLog.inventory_id == inventory_id)
    result = await session.execute(query.order_by(TransactionLog.id.desc()).limit(limit))
    return list(result.scalars().all())
