"""
Eco Wifi Admin API - Main FastAPI Application

Exposes the hotspot entitlement engine to the management console:
- Voucher listing, creation, bulk generation, import/export, redemption
- Subscription listing with derived status, suspend/activate
- Payment listing
"""

import sys
from pathlib import Path
from contextlib import asynccontextmanager

# Add parent directory to path to import existing modules
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from utils.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events"""
    logger.info("=" * 50)
    logger.info("  Eco Wifi - Entitlement Admin API")
    logger.info(f"  → http://{settings.ECOWIFI_HOST}:{settings.ECOWIFI_PORT}")
    logger.info(f"  → Backend: {settings.API_BASE_URL}")
    logger.info("=" * 50)
    yield
    logger.info("Eco Wifi Admin API shutting down...")


app = FastAPI(
    title="Eco Wifi Admin API",
    description="Hotspot voucher, subscription and payment administration",
    version="1.0.0",
    lifespan=lifespan,
    redirect_slashes=False,
)

# Management console dev servers
cors_origins = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]

if settings.ECOWIFI_HOST not in ["localhost", "127.0.0.1"]:
    cors_origins.append(f"http://{settings.ECOWIFI_HOST}:5173")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Accept", "Authorization", "Content-Type", "X-Requested-With"],
    expose_headers=["Content-Disposition"],
)

# Import and include routers
from web_ui.api.routes import vouchers, subscriptions, payments

app.include_router(vouchers.router, prefix="/api/v1/vouchers", tags=["Vouchers"])
app.include_router(subscriptions.router, prefix="/api/v1/subscriptions", tags=["Subscriptions"])
app.include_router(payments.router, prefix="/api/v1/payments", tags=["Payments"])


@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "name": "Eco Wifi Admin API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.ECOWIFI_HOST, port=settings.ECOWIFI_PORT)
