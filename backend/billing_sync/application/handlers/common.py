from __future__ import annotations

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_sync.domain.models.stripe_customer import StripeCustomer
from billing_sync.domain.models.stripe_subscription import StripeSubscription

logger = logging.getLogger(__name__)


def from_unix(value) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def parse_uuid(raw: str | None) -> UUID | None:
    if not raw:
        return None
    try:
        return UUID(str(raw))
    except ValueError:
        return None


def tenant_for_customer(db: Session, stripe_customer_id: str | None) -> str | None:
    if not stripe_customer_id:
        return None
    return db.execute(
        select(StripeCustomer.tenant_id).where(StripeCustomer.stripe_customer_id == stripe_customer_id)
    ).scalar_one_or_none()


def tenant_for_subscription(db: Session, stripe_subscription_id: str | None) -> str | None:
    if not stripe_subscription_id:
        return None
    return db.execute(
        select(StripeSubscription.tenant_id).where(
            StripeSubscription.stripe_subscription_id == stripe_subscription_id
        )
    ).scalar_one_or_none()


def warn_if_stale(db: Session, key_column, key: str, *, event_id: str, event_created: int | None) -> None:
    """Log when an event older than the stored row is about to overwrite it.

    Last applied write still wins; the warning only makes reordering visible.
    """
    incoming = from_unix(event_created)
    if incoming is None:
        return
    model = key_column.class_
    stored = _as_utc(
        db.execute(select(model.last_event_created_at).where(key_column == key)).scalar_one_or_none()
    )
    if stored is not None and incoming < stored:
        logger.warning(
            "webhook_event_out_of_order table=%s key=%s event_id=%s event_created=%s stored_created=%s",
            model.__tablename__,
            key,
            event_id,
            incoming.isoformat(),
            stored.isoformat(),
        )
