from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from billing_sync.application.handlers.common import parse_uuid
from billing_sync.application.services import revenue_ledger
from billing_sync.domain.events import PayoutEvent
from billing_sync.domain.models.payout import Payout, PayoutRecordStatus

logger = logging.getLogger(__name__)

PAYOUT_EVENT_TYPES = (
    "payout.paid",
    "payout.failed",
    "payout.canceled",
)


def handle_payout_event(db: Session, event: PayoutEvent) -> None:
    """Fan a provider payout out to the bookings it settles.

    The booking fan-out and the payout row update share the caller's
    transaction, so either every booking moves or none does.
    """
    payout_object = event.object
    payout = db.execute(
        select(Payout).where(Payout.stripe_payout_id == payout_object.id)
    ).scalar_one_or_none()
    if payout is None:
        logger.warning("payout_record_not_found stripe_payout_id=%s event_type=%s", payout_object.id, event.type)
        return

    booking_ids = []
    for raw_id in payout.booking_ids or []:
        booking_id = parse_uuid(raw_id)
        if booking_id is None:
            logger.warning("payout_booking_id_invalid stripe_payout_id=%s booking_id=%s", payout.stripe_payout_id, raw_id)
            continue
        booking_ids.append(booking_id)

    if event.type == "payout.paid":
        updated = revenue_ledger.project_payout_paid(
            db,
            tenant_id=payout.tenant_id,
            booking_ids=booking_ids,
            stripe_payout_id=payout.stripe_payout_id,
        )
        values = {
            "status": PayoutRecordStatus.PAID.value,
            "failure_message": None,
            "processed_at": datetime.now(UTC),
        }
    else:
        updated = revenue_ledger.project_payout_failed(db, tenant_id=payout.tenant_id, booking_ids=booking_ids)
        values = {
            "status": PayoutRecordStatus.FAILED.value,
            "failure_message": payout_object.failure_message
            or payout_object.failure_code
            or ("Payout canceled" if event.type == "payout.canceled" else "Payout failed"),
        }

    db.execute(
        update(Payout)
        .where(Payout.id == payout.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    logger.info(
        "payout_projected stripe_payout_id=%s event_type=%s bookings=%s bookings_updated=%s",
        payout.stripe_payout_id,
        event.type,
        len(booking_ids),
        updated,
    )
