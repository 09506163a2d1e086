from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from billing_sync.application.handlers.common import (
    from_unix,
    tenant_for_customer,
    tenant_for_subscription,
    warn_if_stale,
)
from billing_sync.domain.events import InvoiceEvent
from billing_sync.domain.models.stripe_invoice import StripeInvoice
from billing_sync.infrastructure.db.upsert import upsert_row

logger = logging.getLogger(__name__)

INVOICE_EVENT_TYPES = (
    "invoice.created",
    "invoice.updated",
    "invoice.finalized",
    "invoice.paid",
    "invoice.payment_failed",
    "invoice.voided",
    "invoice.marked_uncollectible",
)


def handle_invoice_event(db: Session, event: InvoiceEvent) -> None:
    invoice = event.object
    tenant_id = (
        invoice.tenant_id
        or tenant_for_subscription(db, invoice.subscription)
        or tenant_for_customer(db, invoice.customer)
    )
    if not tenant_id:
        logger.warning("invoice_missing_tenant stripe_invoice_id=%s event_id=%s", invoice.id, event.id)
        return

    warn_if_stale(db, StripeInvoice.stripe_invoice_id, invoice.id, event_id=event.id, event_created=event.created)
    upsert_row(
        db,
        StripeInvoice,
        {
            "tenant_id": tenant_id,
            "stripe_customer_id": invoice.customer or "",
            "stripe_subscription_id": invoice.subscription,
            "stripe_invoice_id": invoice.id,
            "invoice_number": invoice.number,
            "status": invoice.status or "draft",
            "amount_due": invoice.amount_due,
            "amount_paid": invoice.amount_paid,
            "subtotal": invoice.subtotal,
            "total": invoice.total,
            "tax": invoice.tax,
            "currency": invoice.currency,
            "due_date": from_unix(invoice.due_date),
            "paid_at": from_unix(invoice.status_transitions.get("paid_at")),
            "invoice_pdf": invoice.invoice_pdf,
            "invoice_hosted_url": invoice.hosted_invoice_url,
            "line_items": invoice.lines.get("data") or [],
            "metadata_json": invoice.metadata,
            "last_event_created_at": from_unix(event.created),
        },
        conflict_column="stripe_invoice_id",
    )
