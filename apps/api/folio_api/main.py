from __future__ import annotations

import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from folio_api.dependencies import get_settings
from folio_api.interface.api.routes import router
from folio_api.log import configure_logging
from folio_api.pipeline import installed_version

# The webhook carries its own HMAC signature.
AUTH_EXEMPT_PATHS = {"/health", "/hooks/github"}


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)
    app = FastAPI(title="Folio API", version=installed_version() or "0.0.0")

    logger = logging.getLogger("folio.api")

    @app.middleware("http")
    async def request_id_and_logging(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()

        if settings.api_auth_mode == "bearer":
            if request.url.path not in AUTH_EXEMPT_PATHS:
                token = settings.api_auth_token or ""
                auth = request.headers.get("authorization") or ""
                if not token or auth != f"Bearer {token}":
                    return JSONResponse(
                        status_code=401,
                        content={"detail": "unauthorized"},
                        headers={"X-Request-ID": request_id},
                    )

        try:
            response = await call_next(request)
        except Exception:
            dt_ms = (time.perf_counter() - start) * 1000.0
            logger.exception("request_error", extra={"rid": request_id, "path": request.url.path, "ms": dt_ms})
            return JSONResponse(
                status_code=500,
                content={"detail": "internal_error", "request_id": request_id},
                headers={"X-Request-ID": request_id},
            )

        dt_ms = (time.perf_counter() - start) * 1000.0
        fields = {
            "rid": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "ms": dt_ms,
        }
        if settings.api_debug_log:
            fields["query"] = request.url.query
        logger.info("request", extra=fields)
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(router)
    return app
