from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from billing_sync.application.handlers.common import from_unix, tenant_for_customer, warn_if_stale
from billing_sync.domain.events import SubscriptionEvent, SubscriptionObject
from billing_sync.domain.models.stripe_subscription import StripeSubscription
from billing_sync.infrastructure.db.upsert import upsert_row

logger = logging.getLogger(__name__)

SUBSCRIPTION_EVENT_TYPES = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "customer.subscription.paused",
    "customer.subscription.resumed",
)


def _period_bound(subscription: SubscriptionObject, field: str) -> int | None:
    # Newer API versions moved the billing period onto the subscription item.
    value = getattr(subscription, field)
    if value is None:
        value = subscription.first_item.get(field)
    return value


def _subscription_row(tenant_id: str, subscription: SubscriptionObject, event_created: int | None) -> dict:
    price = subscription.price
    product = price.get("product")
    if isinstance(product, dict):
        product = product.get("id")
    recurring = price.get("recurring") or {}
    return {
        "tenant_id": tenant_id,
        "stripe_customer_id": subscription.customer or "",
        "stripe_subscription_id": subscription.id,
        "stripe_price_id": price.get("id"),
        "stripe_product_id": product,
        "status": subscription.status,
        "current_period_start": from_unix(_period_bound(subscription, "current_period_start")),
        "current_period_end": from_unix(_period_bound(subscription, "current_period_end")),
        "cancel_at_period_end": subscription.cancel_at_period_end,
        "canceled_at": from_unix(subscription.canceled_at),
        "trial_start": from_unix(subscription.trial_start),
        "trial_end": from_unix(subscription.trial_end),
        "plan_name": price.get("nickname") or product or "Unknown Plan",
        "plan_price": price.get("unit_amount"),
        "billing_cycle": recurring.get("interval"),
        "currency": price.get("currency") or "usd",
        "metadata_json": subscription.metadata,
        "last_event_created_at": from_unix(event_created),
    }


def handle_subscription_event(db: Session, event: SubscriptionEvent) -> None:
    subscription = event.object
    tenant_id = subscription.tenant_id or tenant_for_customer(db, subscription.customer)
    if not tenant_id:
        logger.warning(
            "subscription_missing_tenant stripe_subscription_id=%s event_id=%s",
            subscription.id,
            event.id,
        )
        return

    warn_if_stale(
        db,
        StripeSubscription.stripe_subscription_id,
        subscription.id,
        event_id=event.id,
        event_created=event.created,
    )
    upsert_row(
        db,
        StripeSubscription,
        _subscription_row(tenant_id, subscription, event.created),
        conflict_column="stripe_subscription_id",
    )
