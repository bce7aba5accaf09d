"""Catalog and stock-adjustment collaborators used by the reconciliation engine.

Both operate inside the caller's session so that the engine decides when
the transaction commits.
"""

import logging
from decimal import Decimal
from typing import Optional, Protocol

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .database.crud import list_products
from .database.models import Product, StockAdjustment

logger = logging.getLogger(__name__)


class CatalogProduct(BaseModel):
    """Snapshot of an active catalog product."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    name: str
    sku: str
    barcode: Optional[str] = None
    quantity: int
    min_stock: int = 0
    category: Optional[str] = None
    price: Decimal = Decimal("0")


class AdjustmentResult(BaseModel):
    """Outcome of a single stock adjustment."""

    model_config = ConfigDict(frozen=True)

    product_id: int
    delta: int
    applied: bool
    previous_quantity: Optional[int] = None
    new_quantity: Optional[int] = None
    reason: Optional[str] = None


class Catalog(Protocol):
    async def list_active_products(
        self, session: AsyncSession, product_ids: Optional[list[int]] = None
    ) -> list[CatalogProduct]: ...


class StockAdjustmentSink(Protocol):
    async def apply_adjustment(
        self, session: AsyncSession, product_id: int, delta: int, inventory_id: Optional[int] = None
    ) -> AdjustmentResult: ...


class SqlCatalog:
    """Catalog backed by the ``products`` table."""

    async def list_active_products(
        self, session: AsyncSession, product_ids: Optional[list[int]] = None
    ) -> list[CatalogProduct]:
        products = await list_products(session, active_only=True, product_ids=product_ids)
        return [CatalogProduct.model_validate(p) for p in products]


class SqlStockLedger:
    """Applies deltas to ``products.quantity`` and records them in ``stock_adjustments``.

    Stock sold while a count was in progress can leave the live level below
    what the count's delta would remove. With ``clamp_at_zero`` (the default)
    the level stops at 0 and the recorded delta is the amount actually
    removed; otherwise such an adjustment is rejected.
    """

    def __init__(self, clamp_at_zero: bool = True) -> None:
        self.clamp_at_zero = clamp_at_zero

    async def apply_adjustment(
        self, session: AsyncSession, product_id: int, delta: int, inventory_id: Optional[int] = None
    ) -> AdjustmentResult:
        result = await session.execute(
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        product = result.scalar_one_or_none()
        if product is None:
            return AdjustmentResult(product_id=product_id, delta=delta, applied=False, reason="product not found")
        if not product.is_active:
            return AdjustmentResult(product_id=product_id, delta=delta, applied=False, reason="product is inactive")

        previous = product.quantity
        new_quantity = previous + delta
        reason = None
        if new_quantity < 0:
            if not self.clamp_at_zero:
                return AdjustmentResult(
                    product_id=product_id,
                    delta=delta,
                    applied=False,
                    previous_quantity=previous,
                    reason=f"stock would become negative ({new_quantity})",
                )
            logger.warning(
                f"Clamping stock for product {product_id} at 0: "
                f"{delta:+d} requested against live stock {previous}"
            )
            reason = f"clamped at zero, {delta:+d} requested"
            new_quantity = min(previous, 0)
            delta = new_quantity - previous

        product.quantity = new_quantity
        session.add(
            StockAdjustment(
                inventory_id=inventory_id,
                product_id=product_id,
                delta=delta,
                previous_quantity=previous,
                new_quantity=new_quantity,
            )
        )
        await session.flush()
        logger.info(f"Adjusted stock for product {product_id}: {previous} -> {new_quantity} ({delta:+d})")
        return AdjustmentResult(
            product_id=product_id,
            delta=delta,
            applied=True,
            previous_quantity=previous,
            new_quantity=new_quantity,
            reason=reason,
        )
