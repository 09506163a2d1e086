from time import perf_counter

from fastapi import APIRouter, Request, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from billing_sync.infrastructure.observability.metrics import metrics_response

router = APIRouter()


@router.get("/health", status_code=status.HTTP_200_OK)
def health_check(request: Request, response: Response) -> dict:
    db_status = "up"
    db_latency_ms: float | None = None

    try:
        db_started_at = perf_counter()
        with request.app.state.session_factory() as db:
            db.execute(text("SELECT 1"))
        db_latency_ms = round((perf_counter() - db_started_at) * 1000, 2)
    except SQLAlchemyError:
        db_status = "down"

    if db_status != "up":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {
        "status": "ok" if db_status == "up" else "degraded",
        "services": {
            "api": "up",
            "database": db_status,
            "db_latency_ms": db_latency_ms,
            "webhook_secret_configured": bool(request.app.state.settings.stripe_webhook_secret),
        },
    }


@router.get("/metrics", include_in_schema=False)
def metrics():
    return metrics_response()
