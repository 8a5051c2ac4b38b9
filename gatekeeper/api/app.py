"""
Gatekeeper API - Application FastAPI

Toute GatekeeperError devient une réponse {code, message} au statut
associé. Les réponses 401 portent l'en-tête WWW-Authenticate. Chaque
réponse renvoie l'identifiant de corrélation de ses logs (X-Correlation-ID).
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .routes import admin_router, auth_router, rbac_router
from .. import __version__
from ..container import Gatekeeper
from ..core.errors import GatekeeperError, InvalidRequestError
from ..logging import CORRELATION_HEADER, StructuredLogger, request_context


def create_app(gatekeeper: Optional[Gatekeeper] = None, logger: Optional[StructuredLogger] = None) -> FastAPI:
    """
    Construit l'application HTTP.

    Args:
        gatekeeper: Services assemblés (défaut: Gatekeeper.from_file())
        logger: Logger des erreurs HTTP
    """
    gatekeeper = gatekeeper or Gatekeeper.from_file()
    logger = logger or StructuredLogger("gatekeeper.api")

    app = FastAPI(title="Gatekeeper", version=__version__)
    app.state.gatekeeper = gatekeeper

    @app.middleware("http")
    async def correlation_middleware(request: Request, call_next):
        with request_context(request.headers.get(CORRELATION_HEADER)) as correlation_id:
            response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    @app.exception_handler(GatekeeperError)
    async def gatekeeper_error_handler(request: Request, exc: GatekeeperError) -> JSONResponse:
        if exc.http_status >= 500:
            logger.error("Request failed", path=request.url.path, code=exc.code.value, error=str(exc))
        else:
            logger.debug("Request rejected", path=request.url.path, code=exc.code.value)
        headers = {"WWW-Authenticate": "Bearer"} if exc.http_status == 401 else None
        return JSONResponse(status_code=exc.http_status, content=exc.to_response(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()})
        error = InvalidRequestError(f"Invalid fields: {', '.join(fields)}" if fields else None)
        return JSONResponse(status_code=error.http_status, content=error.to_response())

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok", "version": __version__}

    app.include_router(auth_router)
    app.include_router(rbac_router)
    app.include_router(admin_router)
    return app
