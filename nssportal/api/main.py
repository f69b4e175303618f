"""
nssportal.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn nssportal.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from nssportal.api.deps import get_portal  # noqa: E402
from nssportal.api.routes.notifications import router as notifications_router  # noqa: E402
from nssportal.api.routes.participations import router as participations_router  # noqa: E402
from nssportal.api.routes.problems import router as problems_router  # noqa: E402
from nssportal.api.routes.ws import router as ws_router  # noqa: E402
from nssportal.database.engine import init_db  # noqa: E402
from nssportal.errors import (  # noqa: E402
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    PortalError,
    ValidationError,
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[PortalError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    InvalidStateError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
}


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle: build the portal, flush fan-outs on exit."""
    portal = app.dependency_overrides.get(get_portal, get_portal)()
    init_db(portal.engine)
    logger.info("NSS Portal API started — engine ready (%s)", portal.engine.url.database)
    yield
    logger.info("NSS Portal API shutting down — waiting for %d fan-out(s)", portal.dispatcher.pending)
    await portal.dispatcher.drain()
    mailer = portal.fanout.email.mailer
    if hasattr(mailer, "aclose"):
        await mailer.aclose()


app = FastAPI(
    title="NSS Portal API",
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


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    code = next(
        (code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if code >= 500:
        logger.error("Unhandled portal error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc)})


# Mount routers
app.include_router(problems_router, prefix="/api")
app.include_router(participations_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(ws_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
