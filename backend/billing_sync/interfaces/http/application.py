import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from billing_sync.application.handlers import build_default_dispatcher
from billing_sync.application.services.event_dispatcher import EventDispatcher
from billing_sync.application.services.signature_verifier import StripeSignatureVerifier
from billing_sync.application.services.webhook_reconciler import WebhookReconciler
from billing_sync.core.config import Settings
from billing_sync.core.config import settings as default_settings
from billing_sync.domain import models  # noqa: F401
from billing_sync.infrastructure.db.session import get_session_factory
from billing_sync.interfaces.api.router import api_router
from billing_sync.interfaces.http.middleware import MetricsMiddleware, RequestIDMiddleware

logger = logging.getLogger("billing_sync")


def _error_payload(*, request: Request, error_code: str, message: str) -> dict:
    trace_id = getattr(request.state, "request_id", None)
    return {
        "error_code": error_code,
        "message": message,
        "trace_id": trace_id,
    }


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict) and "error_code" in exc.detail and "message" in exc.detail:
        error_code = str(exc.detail["error_code"])
        detail = str(exc.detail["message"])
    else:
        error_code = str(exc.status_code)
        detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(request=request, error_code=error_code, message=detail),
    )


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content=_error_payload(
            request=request,
            error_code="validation_error",
            message="Request validation failed",
        ),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception path=%s method=%s", request.url.path, request.method)
    return JSONResponse(
        status_code=500,
        content=_error_payload(
            request=request,
            error_code="internal_server_error",
            message="Internal server error",
        ),
    )


def create_app(
    settings: Settings | None = None,
    session_factory=None,
    dispatcher: EventDispatcher | None = None,
    verifier: StripeSignatureVerifier | None = None,
) -> FastAPI:
    settings = settings or default_settings
    session_factory = session_factory or get_session_factory()

    app = FastAPI(title=settings.app_name)
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.reconciler = WebhookReconciler(
        verifier=verifier or StripeSignatureVerifier.from_settings(settings),
        dispatcher=dispatcher or build_default_dispatcher(),
        session_factory=session_factory,
        lease_seconds=settings.webhook_processing_lease_seconds,
    )

    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(api_router)
    return app
