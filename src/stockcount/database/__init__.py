"""Database package initialization."""

from .crud import (
    add_inventory_item,
    create_inventory,
    create_product,
    delete_inventory,
    find_inventory_item,
    get_inventory,
    get_product,
    get_transaction_logs,
    list_inventories,
    list_products,
    list_stock_adjustments,
    log_transaction,
    remove_inventory_item,
    set_item_count,
)
from .engine import AsyncSessionLocal, close_db, get_session, init_db
from .models import (
    Base,
    Inventory,
    InventoryItem,
    InventoryStatus,
    Product,
    StockAdjustment,
    TransactionLog,
)

__all__ = [
    # Models
    "Base",
    "Inventory",
    "InventoryItem",
    "InventoryStatus",
    "Product",
    "StockAdjustment",
    "TransactionLog",
    # Engine
    "AsyncSessionLocal",
    "init_db",
    "close_db",
    "get_session",
    # CRUD - Products
    "create_product",
    "get_product",
    "list_products",
    # CRUD - Inventories
    "create_inventory",
    "get_inventory",
    "list_inventories",
    "delete_inventory",
    # CRUD - Items
    "add_inventory_item",
    "find_inventory_item",
    "set_item_count",
    "remove_inventory_item",
    # CRUD - Adjustments & audit
    "list_stock_adjustments",
    "log_transaction",
    "get_transaction_logs",
]
