from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from billing_sync.application.handlers.common import parse_uuid
from billing_sync.application.services import revenue_ledger
from billing_sync.domain.events import PaymentIntentEvent

logger = logging.getLogger(__name__)

PAYMENT_INTENT_EVENT_TYPES = (
    "payment_intent.succeeded",
    "payment_intent.payment_failed",
)


def handle_payment_intent_event(db: Session, event: PaymentIntentEvent) -> None:
    payment_intent = event.object
    booking_id = parse_uuid(payment_intent.booking_id)
    if booking_id is None:
        # Platform charges without a booking have nothing to project.
        logger.info(
            "payment_intent_without_booking stripe_payment_intent_id=%s event_type=%s",
            payment_intent.id,
            event.type,
        )
        return
    if not payment_intent.tenant_id:
        logger.warning(
            "payment_intent_missing_tenant stripe_payment_intent_id=%s booking_id=%s event_type=%s",
            payment_intent.id,
            booking_id,
            event.type,
        )
        return

    if event.type == "payment_intent.succeeded":
        applied = revenue_ledger.project_payment_succeeded(
            db,
            tenant_id=payment_intent.tenant_id,
            booking_id=booking_id,
            payment_intent_id=payment_intent.id,
            transfer_id=payment_intent.transfer_id,
        )
    else:
        error = payment_intent.last_payment_error or {}
        logger.warning(
            "payment_intent_failed stripe_payment_intent_id=%s booking_id=%s reason=%s",
            payment_intent.id,
            booking_id,
            error.get("message") or error.get("code"),
        )
        applied = revenue_ledger.project_payment_failed(
            db,
            tenant_id=payment_intent.tenant_id,
            booking_id=booking_id,
            payment_intent_id=payment_intent.id,
        )

    logger.info(
        "payment_intent_projected stripe_payment_intent_id=%s booking_id=%s event_type=%s applied=%s",
        payment_intent.id,
        booking_id,
        event.type,
        applied,
    )
