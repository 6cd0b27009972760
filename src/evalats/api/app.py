from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from evalats.api.files import router as files_router
from evalats.api.reports import router as reports_router
from evalats.api.routes import router as api_router
from evalats.config import get_settings
from evalats.db.init import init_database
from evalats.errors import DomainError, ErrorKind

logger = logging.getLogger(__name__)

STATUS_FOR_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.PRECONDITION_FAILED: 409,
    ErrorKind.VALIDATION_ERROR: 422,
}


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(title=settings.app_name)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def _startup() -> None:
        init_database()

    @app.exception_handler(DomainError)
    async def _domain_error(request: Request, exc: DomainError) -> JSONResponse:
        status_code = STATUS_FOR_KIND.get(exc.kind, 400)
        if status_code == 404:
            logger.info("%s %s -> %s", request.method, request.url.path, exc.message)
        else:
            logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind.value, exc.message)
        return JSONResponse(exc.to_dict(), status_code=status_code)

    @app.get("/health")
    def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    app.include_router(api_router)
    app.include_router(reports_router)
    app.include_router(files_router)
    return app
