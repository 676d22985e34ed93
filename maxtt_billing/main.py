"""FastAPI app entry point for the MaxTT billing core."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from maxtt_billing.api.routes import router
from maxtt_billing.config import get_settings, validate_settings
from maxtt_billing.core.logging import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate settings and configure logging on startup."""
    settings = get_settings()
    validate_settings(settings)
    setup_logging(settings.log_level)
    yield


app = FastAPI(
    title="MaxTT Billing Core API",
    description="Sealant dosage, pricing and invoice planning for MaxTT franchisees",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(router, prefix="/api")


@app.get("/health")
async def health():
    return {"status": "ok", "service": "maxtt-billing-core"}
