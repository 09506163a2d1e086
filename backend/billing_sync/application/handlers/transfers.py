from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_sync.application.handlers.common import parse_uuid
from billing_sync.application.services import revenue_ledger
from billing_sync.domain.events import TransferEvent
from billing_sync.domain.models.booking import Booking

logger = logging.getLogger(__name__)

TRANSFER_EVENT_TYPES = (
    "transfer.created",
    "transfer.paid",
    "transfer.reversed",
)


def handle_transfer_event(db: Session, event: TransferEvent) -> None:
    transfer = event.object
    booking_id = parse_uuid(transfer.booking_id)
    if booking_id is None:
        logger.info("transfer_without_booking stripe_transfer_id=%s event_type=%s", transfer.id, event.type)
        return

    tenant_id = transfer.tenant_id or db.execute(
        select(Booking.tenant_id).where(Booking.id == booking_id)
    ).scalar_one_or_none()
    if not tenant_id:
        logger.warning("transfer_booking_not_found stripe_transfer_id=%s booking_id=%s", transfer.id, booking_id)
        return

    if event.type == "transfer.reversed":
        applied = revenue_ledger.project_transfer_reversed(db, tenant_id=tenant_id, booking_id=booking_id)
    else:
        applied = revenue_ledger.project_transfer(
            db,
            tenant_id=tenant_id,
            booking_id=booking_id,
            transfer_id=transfer.id,
        )

    logger.info(
        "transfer_projected stripe_transfer_id=%s booking_id=%s event_type=%s applied=%s",
        transfer.id,
        booking_id,
        event.type,
        applied,
    )
