"""FastMCP server exposing count sessions to assistants."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Optional, cast, get_args

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from .collaborators import SqlCatalog, SqlStockLedger
from .config import settings
from .database.engine import AsyncSessionLocal, close_db, init_db
from .errors import InventoryError
from .reconciliation import ReconciliationEngine, UncountedPolicy
from .schemas import InventoryView, ItemStatusFilter

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

reconciler = ReconciliationEngine(
    AsyncSessionLocal,
    catalog=SqlCatalog(),
    stock=SqlStockLedger(clamp_at_zero=settings.clamp_negative_stock),
    uncounted_policy=UncountedPolicy(settings.uncounted_policy),
    page_size=settings.items_page_size,
)


def _summary(view: InventoryView) -> dict[str, Any]:
    """Session header plus statistics, without the item lines."""
    return {
        "id": view.id,
        "inventory_number": view.inventory_number,
        "name": view.name,
        "status": view.status.value,
        "stats": view.stats.model_dump(),
    }


# Lifespan management for database connection
@asynccontextmanager
async def lifespan(app: Any) -> AsyncGenerator[None, None]:
    """Manage database lifecycle during server startup and shutdown."""
    logger.info("Starting stockcount MCP Server...")
    try:
        await init_db()
        logger.info("Database initialized successfully")
        yield
    finally:
        logger.info("Shutting down server...")
        await close_db()
        logger.info("Server shutdown complete")


# Initialize FastMCP server
mcp = FastMCP(
    name="stockcount",
    lifespan=lifespan,
)


@mcp.tool()  # type: ignore[misc]
async def list_count_sessions(status: Optional[str] = None) -> dict[str, Any]:
    """List physical-inventory count sessions.

    Args:
        status: Optional status filter (DRAFT, IN_PROGRESS, COMPLETED, CANCELLED)

    Returns:
        Dictionary with status, count and session summaries
    """
    try:
        views = await reconciler.get_all(status.upper() if status else None)
        return {
            "status": "success",
            "count": len(views),
            "sessions": [_summary(v) for v in views],
        }
    except ValueError:
        raise ToolError(f"Unknown status: {status}")
    except Exception as e:
        logger.exception("Error listing count sessions")
        raise ToolError(f"Failed to list count sessions: {str(e)}")


@mcp.tool()  # type: ignore[misc]
async def get_count_session(
    inventory_id: int,
    search: Optional[str] = None,
    item_status: str = "all",
    page: int = 1,
) -> dict[str, Any]:
    """Show one count session with a page of its lines.

    Args:
        inventory_id: ID of the session
        search: Optional text matched against product name or SKU
        item_status: "all", "pending", "counted" or "discrepancy"
        page: 1-based page number

    Returns:
        Session summary plus the requested page of lines

    Examples:
        - "What's left to count in inventory 3?" -> get_count_session(3, item_status="pending")
        - "Show discrepancies for cola" -> get_count_session(3, search="cola", item_status="discrepancy")
    """
    if item_status not in get_args(ItemStatusFilter):
        raise ToolError(f"Unknown item status: {item_status}")
    try:
        view = await reconciler.get_by_id(inventory_id)
        page_view = await reconciler.list_items(
            inventory_id, search=search, status=cast(ItemStatusFilter, item_status), page=page
        )
        return {
            "status": "success",
            "session": _summary(view),
            "page": page_view.page,
            "total_pages": page_view.total_pages,
            "items": [line.model_dump(mode="json") for line in page_view.items],
        }
    except InventoryError as e:
        raise ToolError(str(e))
    except Exception as e:
        logger.exception("Error reading count session")
        raise ToolError(f"Failed to read count session: {str(e)}")


@mcp.tool()  # type: ignore[misc]
async def start_count_session(inventory_id: int) -> dict[str, Any]:
    """Move a DRAFT count session to IN_PROGRESS so counts can be recorded."""
    try:
        view = await reconciler.start(inventory_id)
        return {"status": "success", "message": f"Started {view.name}", "session": _summary(view)}
    except InventoryError as e:
        raise ToolError(str(e))
    except Exception as e:
        logger.exception("Error starting count session")
        raise ToolError(f"Failed to start count session: {str(e)}")


@mcp.tool()  # type: ignore[misc]
async def record_count(
    inventory_id: int,
    item_id: int,
    counted_quantity: int,
    notes: Optional[str] = None,
) -> dict[str, Any]:
    """Record the physical count of one line.

    Args:
        inventory_id: ID of the session
        item_id: ID of the line (not the product)
        counted_quantity: Units physically found on the shelf
        notes: Optional operator notes

    Returns:
        Dictionary with the updated line and the session statistics
    """
    try:
        view = await reconciler.update_item_count(inventory_id, item_id, counted_quantity, notes=notes)
        line = view.item(item_id)
        return {
            "status": "success",
            "message": f"Counted {counted_quantity} x {line.product_name}" if line else "Count recorded",
            "item": line.model_dump(mode="json") if line else None,
            "stats": view.stats.model_dump(),
        }
    except InventoryError as e:
        raise ToolError(str(e))
    except Exception as e:
        logger.exception("Error recording count")
        raise ToolError(f"Failed to record count: {str(e)}")


@mcp.tool()  # type: ignore[misc]
async def count_session_stats(inventory_id: int) -> dict[str, Any]:
    """Counting progress and discrepancy totals of a session."""
    try:
        stats = await reconciler.get_stats(inventory_id)
        return {"status": "success", "inventory_id": inventory_id, "stats": stats.model_dump()}
    except InventoryError as e:
        raise ToolError(str(e))
    except Exception as e:
        logger.exception("Error computing stats")
        raise ToolError(f"Failed to compute stats: {str(e)}")


@mcp.tool()  # type: ignore[misc]
async def complete_count_session(inventory_id: int) -> dict[str, Any]:
    """Complete a session and apply the stock adjustments for every discrepancy.

    This is irreversible. Uncounted lines follow the configured policy.
    """
    try:
        view = await reconciler.complete(inventory_id)
        adjustments = await reconciler.get_adjustments(inventory_id)
        return {
            "status": "success",
            "message": f"Completed {view.name} with {len(adjustments)} stock adjustment(s)",
            "session": _summary(view),
            "adjustments": [{"product_id": a.product_id, "delta": a.delta} for a in adjustments],
        }
    except InventoryError as e:
        raise ToolError(str(e))
    except Exception as e:
        logger.exception("Error completing count session")
        raise ToolError(f"Failed to complete count session: {str(e)}")


@mcp.tool()  # type: ignore[misc]
async def cancel_count_session(inventory_id: int) -> dict[str, Any]:
    """Cancel a session; no stock is adjusted."""
    try:
        view = await reconciler.cancel(inventory_id)
        return {"status": "success", "message": f"Cancelled {view.name}", "session": _summary(view)}
    except InventoryError as e:
        raise ToolError(str(e))
    except Exception as e:
        logger.exception("Error cancelling count session")
        raise ToolError(f"Failed to cancel count session: {str(e)}")


def main() -> None:
    """Entry point for the MCP server."""
    logger.info("Initializing stockcount MCP Server")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
