from fastapi import APIRouter, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from billing_sync.application.services.webhook_reconciler import STATUS_IN_FLIGHT, WebhookProcessingError

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/billing", status_code=status.HTTP_200_OK)
async def billing_webhook(request: Request) -> dict:
    reconciler = request.app.state.reconciler
    signature_header = request.headers.get(request.app.state.settings.webhook_signature_header)
    payload_bytes = await request.body()

    try:
        result = await run_in_threadpool(
            reconciler.handle_delivery,
            payload_bytes=payload_bytes,
            signature_header=signature_header,
        )
    except WebhookProcessingError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error_code": "webhook_processing_failed", "message": exc.message},
        ) from exc

    if result.status == STATUS_IN_FLIGHT:
        # Another delivery holds the lease; the provider retries on 5xx.
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error_code": "webhook_event_in_flight", "message": "Webhook event is already being processed"},
        )

    return {"received": True, "event_id": result.stripe_event_id, "status": result.status}
