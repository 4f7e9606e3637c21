"""
FastAPI application - Main entry point
"""

from dotenv import load_dotenv

load_dotenv()

import logging
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.endpoints.payments import close_all_checkouts, get_config, payments_api

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Errand Payments API",
    description="Hosted checkout sessions: initialize, detect completion, verify",
    version="1.0.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register payments API router
app.include_router(payments_api, prefix="/api/v1/payments", tags=["Payments"])


# ============================================================================
# ENDPOINTS
# ============================================================================
@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {"service": "Errand Payments API", "status": "healthy", "version": "1.0.0", "timestamp": datetime.now().isoformat()}


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check with the active gateway mode."""
    cfg = get_config()
    return {
        "status": "healthy",
        "gateway": {"mode": cfg.gateway.mode, "production": cfg.gateway.production},
        "platform": cfg.checkout.platform,
        "timestamp": datetime.now().isoformat(),
    }


# ============================================================================
# STARTUP/SHUTDOWN EVENTS
# ============================================================================
@app.on_event("startup")
async def startup_event():
    """Load payment config on startup"""
    logger.info("Starting Errand Payments API...")
    try:
        cfg = get_config()
        logger.info("Payment gateway mode=%s base_url=%s", cfg.gateway.mode, cfg.gateway.base_url)
    except Exception as e:
        logger.error("Error loading payment config: %s", e)


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down Errand Payments API...")
    await close_all_checkouts()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=9090)
