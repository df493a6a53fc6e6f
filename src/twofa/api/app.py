"""FastAPI application — 2FA enrollment and login endpoints."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from twofa import __version__
from twofa.api import routes
from twofa.errors import PersistenceError
from twofa.service import TwoFactorService

logger = logging.getLogger(__name__)


def create_app(service: TwoFactorService) -> FastAPI:
    app = FastAPI(
        title="twofa",
        description="TOTP two-factor enrollment and verification",
        version=__version__,
    )
    app.state.twofa = service

    @app.exception_handler(PersistenceError)
    async def _persistence_error(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error("Storage failure handling %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Unable to save two-factor settings."})

    app.include_router(routes.router)
    app.include_router(routes.login_router)
    return app
