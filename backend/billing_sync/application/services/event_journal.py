from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from billing_sync.domain.events import StripeEventEnvelope
from billing_sync.domain.models.webhook_event import WebhookEvent
from billing_sync.infrastructure.db.upsert import insert_ignore_conflict

ERROR_MESSAGE_MAX_LENGTH = 4000
DEFAULT_LEASE_SECONDS = 300


class JournalOutcome(StrEnum):
    NEW = "new"
    REDELIVERED = "redelivered"
    DUPLICATE = "duplicate"
    IN_FLIGHT = "in_flight"


@dataclass(frozen=True)
class JournalEntry:
    stripe_event_id: str
    event_type: str
    outcome: JournalOutcome
    processing_attempts: int

    @property
    def should_dispatch(self) -> bool:
        return self.outcome in (JournalOutcome.NEW, JournalOutcome.REDELIVERED)


def record_event(
    db: Session,
    envelope: StripeEventEnvelope,
    *,
    lease_seconds: int = DEFAULT_LEASE_SECONDS,
    now: datetime | None = None,
) -> JournalEntry:
    """Journal a delivery and decide whether this caller may apply it.

    A fresh insert holds the processing lease. An unprocessed row can only be
    re-applied by whoever claims its lease after the previous holder released
    it or let it expire; everyone else sees ``IN_FLIGHT``.
    """
    now = now or datetime.now(UTC)
    inserted = insert_ignore_conflict(
        db,
        WebhookEvent,
        {
            "stripe_event_id": envelope.id,
            "event_type": envelope.type,
            "livemode": envelope.livemode,
            "event_data": envelope.model_dump(mode="json"),
            "processed": False,
            "lease_expires_at": now + timedelta(seconds=lease_seconds),
        },
        conflict_columns=["stripe_event_id"],
    )
    stored = get_event(db, envelope.id)
    if stored is None:
        raise RuntimeError(f"Journal entry for {envelope.id} vanished after insert")

    if inserted:
        outcome = JournalOutcome.NEW
    elif stored.processed:
        outcome = JournalOutcome.DUPLICATE
    elif claim_event(db, envelope.id, lease_seconds=lease_seconds, now=now):
        outcome = JournalOutcome.REDELIVERED
    else:
        outcome = JournalOutcome.IN_FLIGHT
    return JournalEntry(
        stripe_event_id=stored.stripe_event_id,
        event_type=stored.event_type,
        outcome=outcome,
        processing_attempts=stored.processing_attempts,
    )


def get_event(db: Session, stripe_event_id: str) -> WebhookEvent | None:
    return db.execute(
        select(WebhookEvent)
        .where(WebhookEvent.stripe_event_id == stripe_event_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def claim_event(
    db: Session,
    stripe_event_id: str,
    *,
    lease_seconds: int = DEFAULT_LEASE_SECONDS,
    now: datetime | None = None,
) -> bool:
    now = now or datetime.now(UTC)
    result = db.execute(
        update(WebhookEvent)
        .where(
            WebhookEvent.stripe_event_id == stripe_event_id,
            WebhookEvent.processed.is_(False),
            or_(WebhookEvent.lease_expires_at.is_(None), WebhookEvent.lease_expires_at <= now),
        )
        .values(lease_expires_at=now + timedelta(seconds=lease_seconds))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def mark_processed(db: Session, stripe_event_id: str) -> None:
    now = datetime.now(UTC)
    db.execute(
        update(WebhookEvent)
        .where(WebhookEvent.stripe_event_id == stripe_event_id)
        .values(
            processed=True,
            processed_at=now,
            error_message=None,
            lease_expires_at=None,
            last_attempted_at=now,
            processing_attempts=WebhookEvent.processing_attempts + 1,
        )
    )


def mark_failed(db: Session, stripe_event_id: str, error: str) -> None:
    db.execute(
        update(WebhookEvent)
        .where(WebhookEvent.stripe_event_id == stripe_event_id, WebhookEvent.processed.is_(False))
        .values(
            error_message=(error or "Unknown error")[:ERROR_MESSAGE_MAX_LENGTH],
            lease_expires_at=None,
            last_attempted_at=datetime.now(UTC),
            processing_attempts=WebhookEvent.processing_attempts + 1,
        )
    )


def list_redrive_candidates(
    db: Session,
    *,
    older_than_seconds: int,
    max_attempts: int,
    limit: int,
    now: datetime | None = None,
) -> list[WebhookEvent]:
    cutoff = (now or datetime.now(UTC)) - timedelta(seconds=max(0, older_than_seconds))
    return list(
        db.execute(
            select(WebhookEvent)
            .where(
                WebhookEvent.processed.is_(False),
                WebhookEvent.received_at <= cutoff,
                WebhookEvent.processing_attempts < max_attempts,
            )
            .order_by(WebhookEvent.received_at.asc())
            .limit(limit)
        ).scalars()
    )
