import logging
from functools import lru_cache

from billing_sync.application.handlers import build_default_dispatcher
from billing_sync.application.services.signature_verifier import StripeSignatureVerifier
from billing_sync.application.services.webhook_reconciler import WebhookReconciler
from billing_sync.core.config import settings
from billing_sync.domain import models  # noqa: F401
from billing_sync.infrastructure.db.session import get_session_factory
from workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_reconciler() -> WebhookReconciler:
    return WebhookReconciler(
        verifier=StripeSignatureVerifier.from_settings(settings),
        dispatcher=build_default_dispatcher(),
        session_factory=get_session_factory(),
        lease_seconds=settings.webhook_processing_lease_seconds,
    )


@celery_app.task(name="workers.tasks.redrive_stale_webhook_events")
def redrive_stale_webhook_events() -> dict:
    summary = get_reconciler().redrive_stale_events(
        older_than_seconds=settings.webhook_redrive_after_seconds,
        max_attempts=settings.webhook_redrive_max_attempts,
        limit=settings.webhook_redrive_batch_size,
    )
    if summary["failed"]:
        logger.warning("webhook_redrive_failures failed=%s candidates=%s", summary["failed"], summary["candidates"])
    return summary
