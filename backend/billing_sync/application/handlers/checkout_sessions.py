from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from billing_sync.domain.events import CheckoutSessionEvent

logger = logging.getLogger(__name__)

CHECKOUT_SESSION_EVENT_TYPES = ("checkout.session.completed",)


def handle_checkout_session_completed(db: Session, event: CheckoutSessionEvent) -> None:
    session = event.object
    if not session.tenant_id:
        logger.warning("checkout_session_missing_tenant checkout_session_id=%s", session.id)
        return

    if session.mode == "subscription":
        # customer.subscription.* events carry the authoritative subscription state.
        logger.info(
            "checkout_session_subscription_deferred checkout_session_id=%s stripe_subscription_id=%s",
            session.id,
            session.subscription,
        )
        return

    logger.info(
        "checkout_session_completed checkout_session_id=%s mode=%s payment_status=%s payment_intent=%s",
        session.id,
        session.mode,
        session.payment_status,
        session.payment_intent,
    )
