"""
Payment reconciliation backend — FastAPI application entry-point.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.recon.database import Base, SessionLocal, engine
from app.recon.errors import ReconError
from app.recon.mailbox import MailboxError, MessageNotFound
from app.recon.runtime import Capabilities, RuntimeSettings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(name)-30s  %(levelname)-5s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: ensure data dir + tables exist
    os.makedirs(settings.DATA_DIR, exist_ok=True)
    # Import models so Base.metadata knows about them
    from app.recon import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready (%s)", settings.DATABASE_URL)

    app.state.runtime_settings = RuntimeSettings.from_settings(SessionLocal, settings)
    app.state.capabilities = Capabilities.from_settings(settings)
    logger.info("Capabilities: %s", app.state.capabilities)

    yield
    logger.info("Shutting down")


app = FastAPI(
    title="Recon",
    description="Mailbox payment evidence → review → invoice ledger",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReconError)
async def recon_error_handler(request: Request, exc: ReconError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(MailboxError)
async def mailbox_error_handler(request: Request, exc: MailboxError):
    if isinstance(exc, MessageNotFound):
        return JSONResponse(
            status_code=404,
            content={"error": "NOT_FOUND", "message": "Message no longer in mailbox"},
        )
    logger.error("Mailbox call failed on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=502,
        content={"error": "MAILBOX_UNAVAILABLE", "message": str(exc)},
    )


@app.get("/")
async def root():
    return {"service": "Recon", "version": "0.1.0", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# ── Register API router ──────────────────────────────────────────────────
from app.recon.routers.sync import router as sync_router  # noqa: E402
from app.recon.routers.receipts import router as receipts_router  # noqa: E402
from app.recon.routers.bank_credits import router as bank_credits_router  # noqa: E402
from app.recon.routers.invoices import router as invoices_router  # noqa: E402
from app.recon.routers.settings import router as settings_router  # noqa: E402

app.include_router(sync_router, prefix="/api", tags=["Mailbox Sync"])
app.include_router(receipts_router, prefix="/api", tags=["Receipts"])
app.include_router(bank_credits_router, prefix="/api", tags=["Bank Credits"])
app.include_router(invoices_router, prefix="/api", tags=["Invoices"])
app.include_router(settings_router, prefix="/api", tags=["Settings"])
