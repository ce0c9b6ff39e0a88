# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the Settlement API.
# It configures the FastAPI application with middleware, routers, and handlers.
#
# Usage:
#   uvicorn app.main:app --reload
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.exceptions import SettlementException, settlement_exception_handler
from app.routers import health, settlement

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Logs startup configuration and shutdown.
    """
    logger.info(f"Starting Settlement API in {settings.ENVIRONMENT} mode")
    logger.info(
        f"Settlement window: {settings.SETTLEMENT_WINDOW_DAYS} days, "
        f"payout currency: {settings.PAYOUT_CURRENCY}"
    )

    yield

    logger.info("Shutting down Settlement API")


# Create FastAPI application
app = FastAPI(
    title="Pre-order Settlement API",
    description="""
## Tiered Pre-order Settlement

Closes out pre-order campaigns once their settlement window has elapsed.

### Pipeline

| Step | What happens |
|------|--------------|
| **Tier settlement** | Final charged units decide the tier (1-3) |
| **Refund credits** | Tier-1 buyers get (tier 1 price - settled price) per unit as credit |
| **Production** | Campaign moves to `in_production` with its settled tier |
| **Payout** | Designer royalty is transferred via Stripe; campaign moves to `completed` |

### Quick Start

```bash
# Queue a batch
curl -X POST http://localhost:8000/api/v1/settlement/runs \\
  -H "X-Settlement-Secret: $SETTLEMENT_SECRET"

# Check it
curl http://localhost:8000/api/v1/settlement/runs/{task_id} \\
  -H "X-Settlement-Secret: $SETTLEMENT_SECRET"
```
""",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Settlement",
            "description": "Trigger and inspect settlement batches",
        },
        {
            "name": "Health",
            "description": "API health and readiness checks",
        },
    ],
)


# =============================================================================
# Middleware
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list if settings.is_production else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(SettlementException)
async def handle_settlement_exception(request: Request, exc: SettlementException):
    """Handle settlement exceptions."""
    return await settlement_exception_handler(request, exc)


@app.exception_handler(Exception)
async def handle_general_exception(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
        }
    )


# =============================================================================
# Routers
# =============================================================================

# Health check endpoints
app.include_router(
    health.router,
    prefix="/api/v1",
    tags=["Health"]
)

# Settlement endpoints
app.include_router(
    settlement.router,
    prefix="/api/v1/settlement",
    tags=["Settlement"]
)


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint - returns API info.
    """
    return {
        "name": "Pre-order Settlement API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/v1/health",
    }
