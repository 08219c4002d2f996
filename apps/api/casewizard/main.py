"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from casewizard.core.config import settings
from casewizard.core.rate_limit import AccountCreationLimiter
from casewizard.db.session import SessionLocal, engine
from casewizard.services.handoff_service import HandoffStore
from casewizard.services.identity_service import DataIntegrityError
from casewizard.services.local_store import LocalStore, LocalStoreUnavailableError
from casewizard.services.wizard_registry import WizardRegistry

logging.basicConfig(
    level=logging.DEBUG if settings.ENV == "dev" else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from casewizard.core.rate_limit import limiter


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Case Wizard API",
    description="Workflow session engine for the immigration case wizard",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Process-wide stores; the account limiter is owned here and passed to wizards
app.state.local_store = LocalStore(SessionLocal)
app.state.handoff_store = HandoffStore()
app.state.account_limiter = AccountCreationLimiter()
app.state.wizards = WizardRegistry()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(LocalStoreUnavailableError)
async def local_store_unavailable_handler(request: Request, exc: LocalStoreUnavailableError):
    logger.error("Local store unavailable", exc_info=exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Local storage is unavailable; progress cannot be saved"},
    )


@app.exception_handler(DataIntegrityError)
async def data_integrity_handler(request: Request, exc: DataIntegrityError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# ============================================================================
# Routers
# ============================================================================

from casewizard.routers import workflows

app.include_router(workflows.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies local cache connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
