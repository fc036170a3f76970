"""
wagerline.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn wagerline.api.main:app --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from wagerline.api.deps import get_config, get_engine  # noqa: E402
from wagerline.api.routes.accounts import router as accounts_router  # noqa: E402
from wagerline.api.routes.webhooks import router as webhooks_router  # noqa: E402
from wagerline.engine.errors import LedgerError  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Comma-separated ``CORS_ALLOW_ORIGINS``; empty means no browser origins."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if not raw:
        return []
    return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the engine, start periodic jobs."""
    engine = get_engine()
    config = get_config()
    scheduler = None
    if config.scheduler_enabled:
        from wagerline.jobs.scheduler import start_scheduler

        scheduler = start_scheduler(engine)
    logger.info("Wagerline API started — engine ready (%s)", engine.url.database)
    yield
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    logger.info("Wagerline API shutting down")


app = FastAPI(
    title="Wagerline Ledger API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s → %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(webhooks_router, prefix="/api")
app.include_router(accounts_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
