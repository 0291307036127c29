from fastapi import APIRouter

from billing.api.v1.health import router as health_router
from billing.api.v1.charges import router as charges_router
from billing.api.v1.billing_periods import router as billing_periods_router
from billing.api.v1.analytics import router as analytics_router


v1_router = APIRouter()

# ------------------------------------------------------------------
# SYSTEM / CORE
# ------------------------------------------------------------------
v1_router.include_router(health_router, tags=["health"])

# ------------------------------------------------------------------
# BILLING
# ------------------------------------------------------------------
v1_router.include_router(charges_router, tags=["charges"])
v1_router.include_router(billing_periods_router, tags=["billing-periods"])

# ------------------------------------------------------------------
# REPORTING
# ------------------------------------------------------------------
v1_router.include_router(analytics_router, tags=["analytics"])
