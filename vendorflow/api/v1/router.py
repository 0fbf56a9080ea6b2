from fastapi import APIRouter

from vendorflow.api.v1.endpoints import (
    # Orders & Assignment
    orders,
    order_splitting,
    # Fulfillment
    tracking,
    proofs,
    # Monitoring
    order_monitoring,
    # Finance
    financials,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Orders & Assignment ====================
api_router.include_router(
    orders.router,
    prefix="/orders",
    tags=["Orders"]
)
api_router.include_router(
    order_splitting.router,
    prefix="/order-splitting",
    tags=["Order Splitting"]
)

# ==================== Fulfillment ====================
api_router.include_router(
    tracking.router,
    prefix="/tracking",
    tags=["Tracking"]
)
api_router.include_router(
    proofs.router,
    prefix="/proofs",
    tags=["Proof Approvals"]
)

# ==================== Monitoring ====================
api_router.include_router(
    order_monitoring.router,
    prefix="/order-monitoring",
    tags=["Order Monitoring"]
)

# ==================== Finance ====================
api_router.include_router(
    financials.router,
    prefix="/financials",
    tags=["Vendor Financials"]
)
