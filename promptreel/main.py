from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from promptreel.core.settings import S
from promptreel.metrics import metrics_endpoint, metrics_middleware, set_app_info
from promptreel.routers.auth import router as auth_router
from promptreel.routers.misc import router as misc_router
from promptreel.routers.profile import router as profile_router
from promptreel.routers.videos import router as videos_router
from promptreel.routers.webhook import router as webhook_router
from promptreel.services.names import NameCache

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    logging.basicConfig(
        level=getattr(logging, S.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title=S.app_name, version="0.1.0")
    app.state.name_cache = NameCache()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in S.cors_origins.split(",") if o.strip()] or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if S.metrics_enabled:
        app.middleware("http")(metrics_middleware)
        set_app_info(app.title, app.version)
        app.get("/metrics")(metrics_endpoint)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"detail": "Internal server error"}, status_code=500)

    missing = S.missing_backend_settings()
    if missing:
        logger.warning("backend not configured, missing: %s", ", ".join(missing))

    app.include_router(auth_router)
    app.include_router(videos_router)
    app.include_router(profile_router)
    app.include_router(webhook_router)
    app.include_router(misc_router)

    return app

app = create_app()
