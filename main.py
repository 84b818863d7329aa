# main.py
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from healthdesk import auth as auth_router
from healthdesk import connectors as connectors_router
from healthdesk import notes as notes_router
from healthdesk import reports as reports_router
from healthdesk.config import Settings
from healthdesk.database import build_session_factory
from healthdesk.errors import AppError
from healthdesk.gemini import LabAnalyzer
from healthdesk.sessions import SessionStore
from healthdesk.sso import IdentityProvider

logger = logging.getLogger("healthdesk")


def _describe_validation_error(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(title="Healthdesk API")
    app.state.settings = settings
    app.state.session_factory = build_session_factory(settings.database_url)
    app.state.identity_provider = IdentityProvider(settings)
    app.state.session_store = SessionStore(settings, app.state.identity_provider)
    app.state.analyzer = LabAnalyzer(settings)

    if not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY is not set. Lab analysis will be disabled.")
    if not settings.idp_configured:
        logger.warning("SSO provider credentials are not set. SSO and connectors will be disabled.")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router.router)
    app.include_router(reports_router.router)
    app.include_router(notes_router.router)
    app.include_router(connectors_router.router)

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(exc.to_body(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        body = {"success": False, "error": "Invalid request", "details": _describe_validation_error(exc)}
        return JSONResponse(body, status_code=400)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"success": False, "error": "Internal server error"}, status_code=500)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
