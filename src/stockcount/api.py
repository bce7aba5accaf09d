"""FastAPI REST API for physical-inventory count sessions."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import APIRouter, FastAPI, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

# Load environment variables from .env file (find it relative to this file)
_env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(_env_path)

from . import errors
from .collaborators import SqlCatalog, SqlStockLedger
from .config import settings
from .database.engine import AsyncSessionLocal, close_db, init_db
from .database.models import InventoryStatus
from .reconciliation import ReconciliationEngine, UncountedPolicy
from .schemas import (
    AdjustmentView,
    InventoryCreate,
    InventoryItemBulkCreate,
    InventoryItemCountUpdate,
    InventoryItemCreate,
    InventoryStats,
    InventoryUpdate,
    InventoryView,
    ItemPage,
    ItemStatusFilter,
)

# Configure logging
logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
logger = logging.getLogger(__name__)

reconciler = ReconciliationEngine(
    AsyncSessionLocal,
    catalog=SqlCatalog(),
    stock=SqlStockLedger(clamp_at_zero=settings.clamp_negative_stock),
    uncounted_policy=UncountedPolicy(settings.uncounted_policy),
    page_size=settings.items_page_size,
)

ERROR_STATUS_CODES: dict[type[errors.InventoryError], int] = {
    errors.ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    errors.InvalidStateError: status.HTTP_409_CONFLICT,
    errors.DuplicateItemError: status.HTTP_409_CONFLICT,
    errors.NotFoundError: status.HTTP_404_NOT_FOUND,
    errors.AdjustmentFailure: status.HTTP_502_BAD_GATEWAY,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage database lifecycle."""
    logger.info("Starting stockcount API...")
    await init_db()
    logger.info("Database initialized")
    yield
    logger.info("Shutting down...")
    await close_db()


# Create FastAPI app
app = FastAPI(
    title="stockcount API",
    description="Physical-inventory count sessions: counting, discrepancies and stock adjustments",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate limiting
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return JSON 429 with Retry-After header."""
    retry_after = exc.detail.split(" ")[-1] if exc.detail else "60"
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded"},
        headers={"Retry-After": retry_after},
    )


@app.exception_handler(errors.InventoryError)
async def inventory_error_handler(request: Request, exc: errors.InventoryError) -> JSONResponse:
    """Map reconciliation errors to HTTP status codes."""
    status_code = next(
        (code for cls, code in ERROR_STATUS_CODES.items() if isinstance(exc, cls)),
        status.HTTP_400_BAD_REQUEST,
    )
    content: dict = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, errors.AdjustmentFailure):
        content["failures"] = [f.model_dump(mode="json") for f in exc.failures]
    return JSONResponse(status_code=status_code, content=content)


@app.get("/health")
async def health_check():
    """Health check endpoint: verifies DB connectivity."""
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "dependencies": {"database": "healthy"},
        }
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "dependencies": {"database": "unhealthy"},
            },
        )


# API router for versioned endpoints, mounted at both /api and /api/v1
api_router = APIRouter(prefix="/inventories", tags=["inventories"])


# ===== Inventory Endpoints =====


@api_router.get("", response_model=list[InventoryView])
async def list_inventories(
    status_filter: Optional[InventoryStatus] = Query(None, alias="status", description="Filter by status"),
):
    """List count sessions, newest first."""
    return await reconciler.get_all(status_filter)


@api_router.post("", response_model=InventoryView, status_code=status.HTTP_201_CREATED)
async def create_inventory(body: InventoryCreate):
    """Create a count session, optionally seeded with theoretical quantities."""
    return await reconciler.create(
        name=body.name,
        description=body.description,
        items=body.items,
        created_by=body.created_by,
    )


@api_router.get("/{inventory_id}", response_model=InventoryView)
async def get_inventory(inventory_id: int):
    """Get a count session with its items and statistics."""
    return await reconciler.get_by_id(inventory_id)


@api_router.patch("/{inventory_id}", response_model=InventoryView)
async def update_inventory(inventory_id: int, body: InventoryUpdate):
    """Edit name/description or move the session to another status."""
    return await reconciler.update(
        inventory_id, name=body.name, description=body.description, status=body.status
    )


@api_router.delete("/{inventory_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_inventory(inventory_id: int):
    """Delete a count session that is not in progress."""
    await reconciler.delete(inventory_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ===== Status Transitions =====


@api_router.post("/{inventory_id}/start", response_model=InventoryView)
async def start_inventory(inventory_id: int):
    return await reconciler.start(inventory_id)


@api_router.patch("/{inventory_id}/complete", response_model=InventoryView)
async def complete_inventory(inventory_id: int):
    """Complete the session and apply stock adjustments for every discrepancy."""
    return await reconciler.complete(inventory_id)


@api_router.patch("/{inventory_id}/cancel", response_model=InventoryView)
async def cancel_inventory(inventory_id: int):
    return await reconciler.cancel(inventory_id)


# ===== Item Endpoints =====


@api_router.get("/{inventory_id}/items", response_model=ItemPage)
async def list_inventory_items(
    inventory_id: int,
    search: Optional[str] = Query(None, description="Match product name or SKU"),
    item_status: ItemStatusFilter = Query("all", alias="status", description="Filter by line status"),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, alias="pageSize", ge=1, le=500),
):
    """Filtered, paginated lines of a session."""
    return await reconciler.list_items(
        inventory_id, search=search, status=item_status, page=page, page_size=page_size
    )


@api_router.post("/{inventory_id}/items", response_model=InventoryView, status_code=status.HTTP_201_CREATED)
async def add_inventory_item(inventory_id: int, body: InventoryItemCreate):
    return await reconciler.add_items(inventory_id, [body])


@api_router.post("/{inventory_id}/items/bulk", response_model=InventoryView, status_code=status.HTTP_201_CREATED)
async def add_inventory_items(inventory_id: int, body: InventoryItemBulkCreate):
    """Add several lines at once; the whole batch is rejected on the first error."""
    return await reconciler.add_items(inventory_id, body.items)


@api_router.patch("/{inventory_id}/items/{item_id}", response_model=InventoryView)
async def update_inventory_item(inventory_id: int, item_id: int, body: InventoryItemCountUpdate):
    """Record the physical count of a line."""
    return await reconciler.update_item_count(
        inventory_id, item_id, body.counted_quantity, notes=body.notes
    )


@api_router.delete("/{inventory_id}/items/{item_id}", response_model=InventoryView)
async def remove_inventory_item(inventory_id: int, item_id: int):
    return await reconciler.remove_item(inventory_id, item_id)


@api_router.post("/{inventory_id}/import-stock", response_model=InventoryView)
async def import_from_current_stock(inventory_id: int):
    """Add every active product not already in the session."""
    return await reconciler.import_from_current_stock(inventory_id)


# ===== Statistics & Adjustments =====


@api_router.get("/{inventory_id}/stats", response_model=InventoryStats)
async def get_inventory_stats(inventory_id: int):
    return await reconciler.get_stats(inventory_id)


@api_router.get("/{inventory_id}/adjustments", response_model=list[AdjustmentView])
async def get_inventory_adjustments(inventory_id: int):
    """Stock adjustments applied when the session was completed."""
    return await reconciler.get_adjustments(inventory_id)


# ===== Mount API router at both /api (backward compat) and /api/v1 =====
app.include_router(api_router, prefix="/api/v1")
app.include_router(api_router, prefix="/api")


def run_api():
    """Run the FastAPI server."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)  # nosec B104


if __name__ == "__main__":
    run_api()
