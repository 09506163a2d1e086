from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from billing_sync.application.handlers.common import from_unix, warn_if_stale
from billing_sync.domain.events import CustomerEvent
from billing_sync.domain.models.stripe_customer import StripeCustomer
from billing_sync.infrastructure.db.upsert import upsert_row

logger = logging.getLogger(__name__)

CUSTOMER_EVENT_TYPES = ("customer.created", "customer.updated")


def handle_customer_event(db: Session, event: CustomerEvent) -> None:
    customer = event.object
    tenant_id = customer.tenant_id
    if not tenant_id:
        logger.warning("customer_missing_tenant stripe_customer_id=%s event_id=%s", customer.id, event.id)
        return

    warn_if_stale(db, StripeCustomer.stripe_customer_id, customer.id, event_id=event.id, event_created=event.created)
    upsert_row(
        db,
        StripeCustomer,
        {
            "tenant_id": tenant_id,
            "stripe_customer_id": customer.id,
            "email": customer.email or "",
            "name": customer.name or "",
            "phone": customer.phone or None,
            "address": customer.address,
            "metadata_json": customer.metadata,
            "last_event_created_at": from_unix(event.created),
        },
        conflict_column="stripe_customer_id",
    )
