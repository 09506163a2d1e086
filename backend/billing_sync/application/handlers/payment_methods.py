from __future__ import annotations

import logging

from sqlalchemy import delete
from sqlalchemy.orm import Session

from billing_sync.application.handlers.common import from_unix, tenant_for_customer, warn_if_stale
from billing_sync.domain.events import PaymentMethodEvent
from billing_sync.domain.models.stripe_payment_method import StripePaymentMethod
from billing_sync.infrastructure.db.upsert import upsert_row

logger = logging.getLogger(__name__)

PAYMENT_METHOD_EVENT_TYPES = (
    "payment_method.attached",
    "payment_method.updated",
    "payment_method.automatically_updated",
    "payment_method.detached",
)


def handle_payment_method_event(db: Session, event: PaymentMethodEvent) -> None:
    payment_method = event.object

    if event.type == "payment_method.detached":
        result = db.execute(
            delete(StripePaymentMethod).where(StripePaymentMethod.stripe_payment_method_id == payment_method.id)
        )
        logger.info(
            "payment_method_detached stripe_payment_method_id=%s removed=%s",
            payment_method.id,
            result.rowcount,
        )
        return

    if not payment_method.customer:
        logger.warning("payment_method_missing_customer stripe_payment_method_id=%s", payment_method.id)
        return

    tenant_id = tenant_for_customer(db, payment_method.customer)
    if not tenant_id:
        logger.warning(
            "payment_method_customer_not_found stripe_payment_method_id=%s stripe_customer_id=%s",
            payment_method.id,
            payment_method.customer,
        )
        return

    card = payment_method.card or {}
    warn_if_stale(
        db,
        StripePaymentMethod.stripe_payment_method_id,
        payment_method.id,
        event_id=event.id,
        event_created=event.created,
    )
    upsert_row(
        db,
        StripePaymentMethod,
        {
            "tenant_id": tenant_id,
            "stripe_customer_id": payment_method.customer,
            "stripe_payment_method_id": payment_method.id,
            "type": payment_method.type,
            "card_brand": card.get("brand"),
            "card_last4": card.get("last4"),
            "card_exp_month": card.get("exp_month"),
            "card_exp_year": card.get("exp_year"),
            "billing_details": payment_method.billing_details,
            "metadata_json": payment_method.metadata,
            "last_event_created_at": from_unix(event.created),
        },
        conflict_column="stripe_payment_method_id",
    )
