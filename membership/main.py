from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings, load_settings
from .database import init_db, make_engine, ping
from .errors import MembershipError
from .repositories.registry import Repositories, build_repositories

from .api.members import router as members_router
from .api.events import router as events_router
from .api.announcements import router as announcements_router
from .api.messages import router as messages_router
from .api.admin import router as admin_router
from .api.push import router as push_router

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, repos: Optional[Repositories] = None) -> FastAPI:
    """
    Build the API.

    The engine and repositories are created here (or passed in by tests) and
    hung off app.state; nothing is a module-level singleton.
    """
    settings = settings or load_settings()
    owns_store = repos is None
    if repos is None:
        repos = build_repositories(make_engine(settings.resolved_database_url), settings)

    app = FastAPI(title="Membership API", version=settings.app_version)
    app.state.settings = settings
    app.state.repos = repos

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Startup ---
    if owns_store:

        @app.on_event("startup")
        def _startup() -> None:
            # Creates tables for all registered SQLModel models (idempotent)
            init_db(repos.engine)

    # --- Error envelope: everything renders as {"detail": ...} ---
    @app.exception_handler(MembershipError)
    async def membership_error_handler(request: Request, exc: MembershipError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Malformed input is a 400 like every other validation failure.
        errors = exc.errors()
        first = errors[0] if errors else {}
        loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        msg = first.get("msg", "Invalid request")
        return JSONResponse(status_code=400, content={"detail": f"{loc}: {msg}" if loc else msg})

    # --- Health / meta ---
    @app.get("/health", tags=["meta"])
    def health() -> Dict[str, Any]:
        return {
            "ok": True,
            "env": settings.env,
            "api_base": settings.public_api_base,
            "version": settings.app_version,
        }

    @app.get("/health/live", tags=["meta"])
    def health_live() -> Dict[str, str]:
        return {"status": "alive"}

    @app.get("/health/ready", tags=["meta"])
    def health_ready() -> JSONResponse:
        try:
            latency_ms = ping(repos.engine)
        except (SQLAlchemyError, OSError) as e:
            logger.warning("readiness: store unreachable: %s", e)
            return JSONResponse(status_code=503, content={"status": "unavailable", "store": {"reachable": False}})
        return JSONResponse(
            status_code=200,
            content={"status": "ready", "store": {"reachable": True, "latency_ms": round(latency_ms, 2)}},
        )

    @app.get("/version", tags=["meta"])
    def version() -> Dict[str, Any]:
        return {"name": settings.app_name, "version": settings.app_version}

    # --- API routers ---
    app.include_router(members_router)
    app.include_router(events_router)
    app.include_router(announcements_router)
    app.include_router(messages_router)
    app.include_router(admin_router)
    app.include_router(push_router)

    return app


def run() -> None:
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    import uvicorn

    # NOTE: init_db is handled by the FastAPI startup hook.
    # reload should be True in local dev, False in prod.
    uvicorn.run(
        "membership.main:create_app",
        factory=True,
        host=settings.host,
        port=int(settings.port),
        reload=bool(settings.reload),
    )
