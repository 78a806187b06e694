"""
FastAPI application entry point.

Registers all API routers and handles application startup configuration.
"""

from fastapi import FastAPI
import logging

from voucher_alloc.settings import MODE, ALLOCATION_CONFIG, setup_logging
from voucher_alloc.api.utils.responses import success_response

# Import all routers
from voucher_alloc.api.routers.staff_router import router as staff_router
from voucher_alloc.api.routers.allocation_router import router as allocation_router
from voucher_alloc.api.routers.stats_router import router as stats_router
from voucher_alloc.api.routers.upload_router import router as upload_router

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

# Initialize FastAPI application
app = FastAPI(
    title="Voucher Allocation API",
    description="Distributes transfer-voucher lines across warehouse staff with month-to-date fairness",
    version="0.1.0",
)


@app.get("/")
def health_check():
    """Root endpoint - health check."""
    return success_response(message="Voucher allocation API")


# Register routers
app.include_router(staff_router, tags=["Staff"])
app.include_router(allocation_router, tags=["Allocation"])
app.include_router(stats_router, tags=["Month Statistics"])
app.include_router(upload_router, tags=["Spreadsheets"])

logger.info("[Startup] All routers registered successfully")
logger.info("[Startup] Application started in %s mode, allocation config %s", MODE.upper(), ALLOCATION_CONFIG)
