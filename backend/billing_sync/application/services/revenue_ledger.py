"""Projection of provider settlement state onto bookings and revenue transactions.

Every write here is a single guarded UPDATE, so re-applying the same event
converges on the same rows and a late, older event cannot move a booking's
payout status backwards along ``pending -> transferred -> paid_out``.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from billing_sync.domain.models.booking import Booking, BookingPaymentStatus, BookingPayoutStatus
from billing_sync.domain.models.revenue_transaction import RevenueTransaction, RevenueTransactionStatus

logger = logging.getLogger(__name__)

PAYOUT_PROGRESSION = (
    BookingPayoutStatus.PENDING,
    BookingPayoutStatus.TRANSFERRED,
    BookingPayoutStatus.PAID_OUT,
)


def payout_status_predecessors(target: BookingPayoutStatus) -> tuple[str, ...]:
    if target is BookingPayoutStatus.FAILED:
        return (BookingPayoutStatus.PENDING.value, BookingPayoutStatus.TRANSFERRED.value)
    position = PAYOUT_PROGRESSION.index(target)
    earlier = tuple(status.value for status in PAYOUT_PROGRESSION[:position])
    return earlier + (BookingPayoutStatus.FAILED.value,)


def _payout_status_may_become(target: BookingPayoutStatus):
    return or_(Booking.payout_status.is_(None), Booking.payout_status.in_(payout_status_predecessors(target)))


def _bulk(stmt):
    return stmt.execution_options(synchronize_session=False)


def project_payment_succeeded(
    db: Session,
    *,
    tenant_id: str,
    booking_id: UUID,
    payment_intent_id: str,
    transfer_id: str | None = None,
) -> bool:
    booking_result = db.execute(
        _bulk(
            update(Booking)
            .where(Booking.id == booking_id, Booking.tenant_id == tenant_id)
            .values(
                payment_intent_id=payment_intent_id,
                payment_status=BookingPaymentStatus.PAID.value,
                paid_at=func.coalesce(Booking.paid_at, datetime.now(UTC)),
                status="confirmed",
            )
        )
    )
    if booking_result.rowcount == 0:
        logger.warning(
            "revenue_ledger_booking_not_found booking_id=%s payment_intent_id=%s",
            booking_id,
            payment_intent_id,
        )
        return False

    transaction_values = {"status": RevenueTransactionStatus.COMPLETED.value}
    if transfer_id:
        transaction_values["stripe_transfer_id"] = transfer_id
    db.execute(
        _bulk(
            update(RevenueTransaction)
            .where(RevenueTransaction.stripe_payment_intent_id == payment_intent_id)
            .values(**transaction_values)
        )
    )
    return True


def project_payment_failed(db: Session, *, tenant_id: str, booking_id: UUID, payment_intent_id: str) -> bool:
    booking_result = db.execute(
        _bulk(
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.tenant_id == tenant_id,
                or_(Booking.payment_status.is_(None), Booking.payment_status != BookingPaymentStatus.PAID.value),
            )
            .values(payment_intent_id=payment_intent_id, payment_status=BookingPaymentStatus.FAILED.value)
        )
    )
    db.execute(
        _bulk(
            update(RevenueTransaction)
            .where(
                RevenueTransaction.stripe_payment_intent_id == payment_intent_id,
                RevenueTransaction.status != RevenueTransactionStatus.COMPLETED.value,
            )
            .values(status=RevenueTransactionStatus.FAILED.value)
        )
    )
    return booking_result.rowcount > 0


def _advance_booking_payout_status(db: Session, *, tenant_id: str, booking_ids: list[UUID], target, **extra) -> int:
    if not booking_ids:
        return 0
    result = db.execute(
        _bulk(
            update(Booking)
            .where(
                Booking.id.in_(booking_ids),
                Booking.tenant_id == tenant_id,
                _payout_status_may_become(target),
            )
            .values(payout_status=target.value, **extra)
        )
    )
    return result.rowcount


def project_transfer(db: Session, *, tenant_id: str, booking_id: UUID, transfer_id: str) -> bool:
    linked = db.execute(
        _bulk(
            update(Booking)
            .where(Booking.id == booking_id, Booking.tenant_id == tenant_id)
            .values(transfer_id=transfer_id)
        )
    )
    if linked.rowcount == 0:
        logger.warning("revenue_ledger_booking_not_found booking_id=%s transfer_id=%s", booking_id, transfer_id)
        return False

    _advance_booking_payout_status(
        db,
        tenant_id=tenant_id,
        booking_ids=[booking_id],
        target=BookingPayoutStatus.TRANSFERRED,
    )
    db.execute(
        _bulk(
            update(RevenueTransaction)
            .where(RevenueTransaction.booking_id == booking_id)
            .values(stripe_transfer_id=transfer_id)
        )
    )
    return True


def project_transfer_reversed(db: Session, *, tenant_id: str, booking_id: UUID) -> bool:
    updated = _advance_booking_payout_status(
        db,
        tenant_id=tenant_id,
        booking_ids=[booking_id],
        target=BookingPayoutStatus.FAILED,
    )
    return updated > 0


def project_payout_paid(db: Session, *, tenant_id: str, booking_ids: list[UUID], stripe_payout_id: str) -> int:
    return _advance_booking_payout_status(
        db,
        tenant_id=tenant_id,
        booking_ids=booking_ids,
        target=BookingPayoutStatus.PAID_OUT,
        payout_id=stripe_payout_id,
    )


def project_payout_failed(db: Session, *, tenant_id: str, booking_ids: list[UUID]) -> int:
    return _advance_booking_payout_status(
        db,
        tenant_id=tenant_id,
        booking_ids=booking_ids,
        target=BookingPayoutStatus.FAILED,
    )
